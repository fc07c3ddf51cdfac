"""
API Dependency Injection Module

Provides the dependencies required by the proxy route.
"""

from typing import Annotated

from fastapi import Depends, Request

from attested_proxy.common.errors import ServiceError
from attested_proxy.services.proxy_service import ProxyService


def get_proxy_service(request: Request) -> ProxyService:
    """
    Get the proxy service wired up during application startup

    Raises:
        ServiceError: If the secure session has not been initialized yet
    """
    service = getattr(request.app.state, "proxy_service", None)
    if service is None:
        raise ServiceError("Secure session is not initialized")
    return service


ProxyServiceDep = Annotated[ProxyService, Depends(get_proxy_service)]
