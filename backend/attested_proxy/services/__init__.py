"""
Service Layer Module Initialization
"""

from attested_proxy.services.proxy_service import ProxyService
from attested_proxy.services.relay import relay_response
from attested_proxy.services.session import SecureSession, check_verification_document
from attested_proxy.services.translator import OutboundRequest, build_outbound_request

__all__ = [
    "ProxyService",
    "relay_response",
    "SecureSession",
    "check_verification_document",
    "OutboundRequest",
    "build_outbound_request",
]
