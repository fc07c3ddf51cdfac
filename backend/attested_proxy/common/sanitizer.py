"""
Log Redaction Module

Masks credentials in header sets before they are written to logs. Forwarded
headers are never modified; only the copies handed to the logger are.
"""

from collections.abc import Mapping
from typing import Any

# Header names whose values are credentials (lowercase)
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "x-api-key",
        "api-key",
        "cookie",
    }
)


def mask_credential(value: str) -> str:
    """
    Mask a credential value

    Keeps the scheme prefix (e.g. `Bearer `) and a few characters of the token so
    that keys remain distinguishable in logs.

    Examples:
        >>> mask_credential("Bearer sk-1234567890abcdef")
        'Bearer sk-1***...***ef'
        >>> mask_credential("short")
        '***'
    """
    if not value:
        return value

    prefix = ""
    token = value
    if value.lower().startswith("bearer "):
        prefix = "Bearer "
        token = value[7:]

    if len(token) <= 8:
        return f"{prefix}***"

    return f"{prefix}{token[:4]}***...***{token[-2:]}"


def sanitize_headers(headers: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Return a copy of `headers` safe for logging.

    Args:
        headers: Header mapping (any key case)

    Returns:
        dict: New dictionary with credential values masked
    """
    if not headers:
        return {}

    sanitized = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS and isinstance(value, str):
            sanitized[key] = mask_credential(value)
        else:
            sanitized[key] = value
    return sanitized
