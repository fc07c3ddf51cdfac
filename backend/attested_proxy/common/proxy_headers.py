"""
Proxy header utilities.

The proxy sits between a client connection and an outbound transport that frames
both directions itself: httpx recomputes request framing and transparently decodes
compressed upstream bodies, and Starlette re-frames the client response. Headers
describing the *original* framing must therefore not be forwarded in either direction.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

# Connection-specific or recomputed by the outbound transport.
REQUEST_DROP_HEADERS = frozenset(
    {
        "host",
        "content-length",
        "connection",
    }
)

# Body framing / encoding headers that become invalid after relaying.
RESPONSE_DROP_HEADERS = frozenset(
    {
        "content-encoding",
        "content-length",
        "transfer-encoding",
        "connection",
    }
)

HeaderItems = Mapping[str, str] | Iterable[tuple[str, str]]


def iter_header_items(headers: HeaderItems | None) -> Iterable[tuple[str, str]]:
    """Yield `(name, value)` pairs from a mapping or a list of pairs."""
    if not headers:
        return ()
    if isinstance(headers, Mapping):
        return headers.items()
    return headers


def strip_request_headers(headers: HeaderItems | None) -> dict[str, str]:
    """
    Normalize inbound headers for forwarding.

    Names are lowercased, repeated names keep the last value, and the
    connection-specific headers in `REQUEST_DROP_HEADERS` are removed.
    """
    stripped: dict[str, str] = {}
    for key, value in iter_header_items(headers):
        name = key.lower()
        if name in REQUEST_DROP_HEADERS:
            continue
        stripped[name] = value
    return stripped


def sanitize_upstream_response_headers(headers: HeaderItems | None) -> list[tuple[str, str]]:
    """
    Remove body framing headers from upstream response headers.

    Returns a list of pairs so repeated headers (e.g. `set-cookie`) survive.
    Every other header is kept unchanged, including the case of its name.
    """
    return [
        (key, value)
        for key, value in iter_header_items(headers)
        if key.lower() not in RESPONSE_DROP_HEADERS
    ]
