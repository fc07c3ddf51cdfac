"""
Proxy API

Single catch-all route forwarding every request to the upstream.
"""

from fastapi import APIRouter, Request
from fastapi.routing import APIRoute

from attested_proxy.api.deps import ProxyServiceDep


class AnyMethodRoute(APIRoute):
    """
    Route accepting every HTTP method, extension methods (PROPFIND, QUERY...) included.

    Starlette only answers 405 when a route has a non-empty method set.
    """

    def __init__(self, path: str, endpoint, **kwargs):
        super().__init__(path, endpoint, **kwargs)
        self.methods = set()


router = APIRouter(tags=["Proxy"], route_class=AnyMethodRoute)


def inbound_target(request: Request) -> str:
    """
    Raw request target (path and query) as received, still percent-encoded.
    """
    raw_path = request.scope.get("raw_path")
    # Some servers leave the query attached to raw_path
    path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


# A fixed operation_id: FastAPI would otherwise derive one from the method set
@router.api_route("/{path:path}", operation_id="proxy", include_in_schema=False)
async def proxy(request: Request, service: ProxyServiceDep):
    """
    Forward the request through the secure session
    """
    return await service.forward(
        method=request.method,
        target=inbound_target(request),
        headers=request.headers.items(),
        body=request.stream(),
    )
