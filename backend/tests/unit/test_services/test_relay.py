"""
Response relay unit tests
"""

import io

import pytest
from starlette.responses import StreamingResponse

from attested_proxy.services.relay import relay_response
from attested_proxy.transport.base import (
    BufferedBody,
    PullBody,
    PushBody,
    UpstreamResponse,
    resolve_body,
)

from conftest import async_chunks, collect_body


class AsyncReader:
    """Pull-style reader handing out fixed chunks"""

    def __init__(self, *chunks: bytes):
        self._chunks = list(chunks)
        self.reads = 0

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        return self._chunks.pop(0) if self._chunks else b""


class Closable:
    def __init__(self):
        self.closed = 0

    async def __call__(self):
        self.closed += 1


def _upstream(body, headers=None, closer=None, status_code=200) -> UpstreamResponse:
    response = UpstreamResponse(
        status_code=status_code,
        reason_phrase="OK",
        headers=headers or [],
        body=body,
    )
    if closer is not None:
        response.on_close(closer)
    return response


class TestResolveBody:
    """Body shape detection priority"""

    @pytest.mark.asyncio
    async def test_none(self):
        assert await resolve_body(None) is None

    @pytest.mark.asyncio
    async def test_push_wins_over_pull(self):
        class Both:
            def __aiter__(self):
                return async_chunks(b"x")

            def read(self, size=-1):
                return b"x"

        body = await resolve_body(Both())
        assert isinstance(body, PushBody)

    @pytest.mark.asyncio
    async def test_pull(self):
        body = await resolve_body(io.BytesIO(b"abc"))
        assert isinstance(body, PullBody)

    @pytest.mark.asyncio
    async def test_bytes(self):
        assert await resolve_body(b"abc") == BufferedBody(b"abc")
        assert await resolve_body("abc") == BufferedBody(b"abc")

    @pytest.mark.asyncio
    async def test_buffer_accessor_fallback(self):
        async def read_all():
            return b"Fallback response"

        body = await resolve_body(object(), read_all=read_all)
        assert body == BufferedBody(b"Fallback response")

    @pytest.mark.asyncio
    async def test_unsupported(self):
        with pytest.raises(TypeError):
            await resolve_body(object())


class TestRelayResponse:
    """Client response construction"""

    @pytest.mark.asyncio
    async def test_push_stream(self):
        closer = Closable()
        upstream = _upstream(
            PushBody(async_chunks(b'{"success":', b"true}")),
            headers=[("content-type", "application/json")],
            closer=closer,
        )

        response = await relay_response(upstream)

        assert isinstance(response, StreamingResponse)
        assert response.status_code == 200
        assert await collect_body(response) == b'{"success":true}'
        assert response.headers["content-type"] == "application/json"
        assert closer.closed == 1

    @pytest.mark.asyncio
    async def test_pull_stream(self):
        closer = Closable()
        reader = AsyncReader(b"data: one\n\n", b"data: two\n\n")
        upstream = _upstream(PullBody(reader), closer=closer)

        response = await relay_response(upstream)

        assert await collect_body(response) == b"data: one\n\ndata: two\n\n"
        # Two chunks then the end-of-stream sentinel
        assert reader.reads == 3
        assert closer.closed == 1

    @pytest.mark.asyncio
    async def test_blocking_pull_reader(self):
        upstream = _upstream(PullBody(io.BytesIO(b"blocking body")))

        response = await relay_response(upstream)

        assert await collect_body(response) == b"blocking body"

    @pytest.mark.asyncio
    async def test_pull_reader_returning_awaitable(self):
        inner = AsyncReader(b"wrapped ", b"reader")

        class WrappedReader:
            # Plain function handing back the coroutine of an async read
            def read(self, size: int = -1):
                return inner.read(size)

        closer = Closable()
        response = await relay_response(_upstream(PullBody(WrappedReader()), closer=closer))

        assert await collect_body(response) == b"wrapped reader"
        assert inner.reads == 3
        assert closer.closed == 1

    @pytest.mark.asyncio
    async def test_buffered(self):
        closer = Closable()
        upstream = _upstream(BufferedBody(b"Fallback response"), closer=closer)

        response = await relay_response(upstream)

        assert response.body == b"Fallback response"
        # Released before the response is even sent
        assert closer.closed == 1

    @pytest.mark.asyncio
    async def test_no_body(self):
        closer = Closable()
        response = await relay_response(_upstream(None, closer=closer, status_code=204))

        assert response.status_code == 204
        assert response.body == b""
        assert closer.closed == 1

    @pytest.mark.asyncio
    async def test_filters_framing_headers(self):
        upstream = _upstream(
            PushBody(async_chunks(b"x")),
            headers=[
                ("content-encoding", "gzip"),
                ("content-length", "999"),
                ("transfer-encoding", "chunked"),
                ("connection", "keep-alive"),
                ("x-custom-header", "value"),
                ("set-cookie", "a=1"),
                ("set-cookie", "b=2"),
            ],
        )

        response = await relay_response(upstream)

        for name in ("content-encoding", "content-length", "transfer-encoding", "connection"):
            assert name not in response.headers
        assert response.headers["x-custom-header"] == "value"
        assert response.headers.getlist("set-cookie") == ["a=1", "b=2"]

    @pytest.mark.asyncio
    async def test_status_copied(self):
        response = await relay_response(_upstream(BufferedBody(b"{}"), status_code=429))
        assert response.status_code == 429

    @pytest.mark.asyncio
    async def test_stream_failure_after_start_propagates_and_releases(self):
        async def broken():
            yield b"partial"
            raise ConnectionError("upstream reset")

        closer = Closable()
        response = await relay_response(_upstream(PushBody(broken()), closer=closer))

        received = []
        with pytest.raises(ConnectionError):
            async for chunk in response.body_iterator:
                received.append(chunk)

        assert received == [b"partial"]
        assert closer.closed == 1

    @pytest.mark.asyncio
    async def test_abandoned_stream_releases_upstream(self):
        closer = Closable()
        response = await relay_response(
            _upstream(PushBody(async_chunks(b"a", b"b", b"c")), closer=closer)
        )

        iterator = response.body_iterator
        assert await iterator.__anext__() == b"a"
        # Client went away
        await iterator.aclose()

        assert closer.closed == 1
