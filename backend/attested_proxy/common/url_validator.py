"""
Target URL Resolution

Resolves the inbound request target against the upstream base URL and refuses
targets that would leave the upstream origin.
"""

import logging
from urllib.parse import urljoin, urlparse

from attested_proxy.common.errors import TranslationError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = {"http", "https"}


def join_target_url(base_url: str, target: str) -> str:
    """
    Resolve `target` (path plus optional query) against `base_url`.

    Uses RFC 3986 reference resolution: an absolute path replaces the base
    path, so `/v1/chat/completions` against `https://api.example/v1` gives
    `https://api.example/v1/chat/completions`. The query string is kept verbatim.

    Args:
        base_url: Upstream base URL exposed by the secure transport
        target: Inbound request target, e.g. `/v1/models?limit=5`

    Returns:
        str: Absolute outbound URL

    Raises:
        TranslationError: If either URL is unusable, or the target would change
            the scheme or authority of the base URL
    """
    base = urlparse(base_url)
    if base.scheme not in ALLOWED_SCHEMES or not base.netloc:
        raise TranslationError(f"Invalid upstream base URL: {base_url!r}")

    if not target:
        target = "/"

    try:
        resolved = urljoin(base_url, target)
        parsed = urlparse(resolved)
    except ValueError as e:
        raise TranslationError(f"Invalid request target {target!r}: {e}") from e

    if parsed.scheme != base.scheme or parsed.netloc != base.netloc:
        logger.warning("Rejected request target outside upstream origin: %s", target)
        raise TranslationError(f"Request target {target!r} leaves the upstream origin")

    return resolved
