"""
Secure Transport Module Initialization
"""

from attested_proxy.transport.base import (
    BufferedBody,
    PullBody,
    PushBody,
    SecureTransport,
    UpstreamBody,
    UpstreamResponse,
    resolve_body,
)
from attested_proxy.transport.httpx_transport import HttpxSecureTransport, create_transport

__all__ = [
    "BufferedBody",
    "PullBody",
    "PushBody",
    "SecureTransport",
    "UpstreamBody",
    "UpstreamResponse",
    "resolve_body",
    "HttpxSecureTransport",
    "create_transport",
]
