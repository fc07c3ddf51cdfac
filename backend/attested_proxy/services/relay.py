"""
Response Relay

Turns an upstream response into the client-facing Starlette response: status code,
filtered headers, and a body relayed according to its resolved shape.
"""

import inspect
import logging
from collections.abc import AsyncIterator

import anyio
import anyio.to_thread
from starlette.responses import Response, StreamingResponse

from attested_proxy.common.proxy_headers import sanitize_upstream_response_headers
from attested_proxy.transport.base import (
    BufferedBody,
    PullBody,
    PushBody,
    UpstreamResponse,
)

logger = logging.getLogger(__name__)

# Read size for pull-style upstream bodies
CHUNK_SIZE = 64 * 1024


async def relay_response(upstream: UpstreamResponse) -> Response:
    """
    Build the client response for an upstream response.

    Streaming shapes release the upstream when the body is exhausted, fails, or the
    client goes away; buffered and empty shapes release it before returning.

    Args:
        upstream: Response returned by the secure session

    Returns:
        Response: Starlette response ready to be sent
    """
    body = upstream.body

    if isinstance(body, PushBody):
        response: Response = StreamingResponse(
            _relay_push(upstream, body),
            status_code=upstream.status_code,
        )
    elif isinstance(body, PullBody):
        response = StreamingResponse(
            _relay_pull(upstream, body),
            status_code=upstream.status_code,
        )
    elif isinstance(body, BufferedBody):
        await upstream.aclose()
        response = Response(content=body.content, status_code=upstream.status_code)
    else:
        await upstream.aclose()
        response = Response(status_code=upstream.status_code)

    for key, value in sanitize_upstream_response_headers(upstream.headers):
        response.headers.append(key, value)

    return response


async def _relay_push(upstream: UpstreamResponse, body: PushBody) -> AsyncIterator[bytes]:
    # Each chunk is only pulled after the previous one was sent, which
    # propagates client backpressure to the upstream.
    try:
        async for chunk in body.stream:
            if chunk:
                yield chunk
    except Exception as e:
        logger.error(f"Upstream stream interrupted after response start: {e}", exc_info=True)
        raise
    finally:
        with anyio.CancelScope(shield=True):
            await upstream.aclose()


async def _relay_pull(upstream: UpstreamResponse, body: PullBody) -> AsyncIterator[bytes]:
    reader = body.reader
    is_async = inspect.iscoroutinefunction(reader.read)
    try:
        while True:
            if is_async:
                chunk = reader.read(CHUNK_SIZE)
            else:
                chunk = await anyio.to_thread.run_sync(reader.read, CHUNK_SIZE)
            # Plain callables may still hand back an awaitable (wrapped coroutines)
            if inspect.isawaitable(chunk):
                chunk = await chunk
            if not chunk:
                break
            yield bytes(chunk)
    except Exception as e:
        logger.error(f"Upstream reader failed after response start: {e}", exc_info=True)
        raise
    finally:
        with anyio.CancelScope(shield=True):
            await upstream.aclose()
