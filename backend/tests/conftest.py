"""
Test Configuration Module
"""

from typing import Any, Callable, Optional

import pytest
import pytest_asyncio

from attested_proxy.services.session import SecureSession
from attested_proxy.transport.base import BufferedBody, SecureTransport, UpstreamResponse

BASE_URL = "https://api.tinfoil.ai/v1"
START_MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z


def minutes_to_ms(minutes: float) -> int:
    return int(minutes * 60 * 1000)


class FakeClock:
    """Controllable epoch-millisecond clock"""

    def __init__(self, start_ms: int = START_MS):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeTransport(SecureTransport):
    """In-memory secure transport recording every fetch"""

    def __init__(
        self,
        base_url: str = BASE_URL,
        document: Any = None,
        ready_error: Optional[Exception] = None,
        fetch_error: Optional[Exception] = None,
        response_factory: Optional[Callable[[], UpstreamResponse]] = None,
    ):
        self.base_url = base_url
        self.document = {"securityVerified": True} if document is None else document
        self.ready_error = ready_error
        self.fetch_error = fetch_error
        self.response_factory = response_factory or (
            lambda: UpstreamResponse(status_code=200, reason_phrase="OK", body=BufferedBody(b"{}"))
        )
        self.ready_calls = 0
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def ready(self) -> None:
        self.ready_calls += 1
        if self.ready_error is not None:
            raise self.ready_error

    async def get_verification_document(self) -> Any:
        return self.document

    def get_base_url(self) -> str:
        return self.base_url

    async def fetch(self, url, *, method, headers, body=None, stream=True) -> UpstreamResponse:
        self.calls.append(
            {"url": url, "method": method, "headers": headers, "body": body, "stream": stream}
        )
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.response_factory()

    async def aclose(self) -> None:
        self.closed = True


class TransportFactory:
    """Hands out queued transports, then default ones"""

    def __init__(self, *transports: FakeTransport):
        self._queue = list(transports)
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = self._queue.pop(0) if self._queue else FakeTransport()
        self.created.append(transport)
        return transport


async def async_chunks(*chunks: bytes):
    for chunk in chunks:
        yield chunk


async def collect_body(response) -> bytes:
    """Drain a Starlette response body without a server"""
    if hasattr(response, "body_iterator"):
        return b"".join([chunk async for chunk in response.body_iterator])
    return response.body


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest_asyncio.fixture
async def session(clock, transport) -> SecureSession:
    """Initialized session over a single fake transport"""
    session = SecureSession(TransportFactory(transport), clock=clock)
    await session.initialize()
    return session
