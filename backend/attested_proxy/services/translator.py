"""
Request Translator

Turns an inbound request into the outbound request descriptor issued through the
secure transport. Pure: the API key decision is passed in, never read from settings.
"""

from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Optional

from attested_proxy.common.proxy_headers import HeaderItems, strip_request_headers
from attested_proxy.common.url_validator import join_target_url

# Methods whose inbound payload is never forwarded
BODYLESS_METHODS = frozenset({"GET", "HEAD"})

DEFAULT_CONTENT_TYPE = "application/json"


@dataclass
class OutboundRequest:
    """
    Outbound Request Descriptor

    Built fresh for every inbound request. Header names are lowercase.
    """

    method: str
    url: str
    headers: dict[str, str]
    body: Optional[AsyncIterable[bytes]] = None


def prepare_request_headers(
    headers: HeaderItems | None,
    api_key: Optional[str] = None,
) -> dict[str, str]:
    """
    Prepare request headers

    Removes connection-specific headers, injects the configured API key when the
    caller sent no credentials, and defaults the content type.

    Args:
        headers: Inbound request headers
        api_key: Configured upstream API key, or None

    Returns:
        dict: Outbound headers (new dictionary)
    """
    prepared = strip_request_headers(headers)

    # A caller-supplied Authorization header always wins
    if not prepared.get("authorization") and api_key:
        prepared["authorization"] = f"Bearer {api_key}"

    if not prepared.get("content-type"):
        prepared["content-type"] = DEFAULT_CONTENT_TYPE

    return prepared


def build_outbound_request(
    method: str,
    target: str,
    headers: HeaderItems | None,
    body: Optional[AsyncIterable[bytes]],
    *,
    base_url: str,
    api_key: Optional[str] = None,
) -> OutboundRequest:
    """
    Build the outbound request descriptor

    Args:
        method: Inbound HTTP method
        target: Inbound path plus query string
        headers: Inbound request headers
        body: Inbound body stream; forwarded unbuffered
        base_url: Upstream base URL from the secure session
        api_key: Configured upstream API key, or None

    Returns:
        OutboundRequest: Descriptor for the secure transport

    Raises:
        TranslationError: If the target cannot be resolved against the base URL
    """
    method = method.upper()
    return OutboundRequest(
        method=method,
        url=join_target_url(base_url, target),
        headers=prepare_request_headers(headers, api_key),
        body=None if method in BODYLESS_METHODS else body,
    )
