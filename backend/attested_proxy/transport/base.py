"""
Secure Transport Base Classes

Defines the interface of the attested transport capability consumed by the proxy,
and the upstream response it produces.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Union

logger = logging.getLogger(__name__)


class ChunkReader(Protocol):
    """Sequential read-chunk interface; `read` may be a coroutine or blocking."""

    def read(self, size: int = -1) -> Any: ...


@dataclass(frozen=True)
class PushBody:
    """Body the upstream pushes to us; relayed by iterating it."""

    stream: AsyncIterable[bytes]


@dataclass(frozen=True)
class PullBody:
    """Body read chunk by chunk until an empty chunk signals end of stream."""

    reader: ChunkReader


@dataclass(frozen=True)
class BufferedBody:
    """Fully materialized body."""

    content: bytes


UpstreamBody = Union[PushBody, PullBody, BufferedBody, None]


@dataclass
class UpstreamResponse:
    """
    Upstream Response Data Class

    Encapsulates the response returned by the secure transport. The body shape is
    resolved once by the transport adapter.
    """

    # HTTP status code
    status_code: int
    # Reason phrase reported by the upstream
    reason_phrase: str = ""
    # Response headers as (name, value) pairs; repeated names allowed
    headers: list[tuple[str, str]] = field(default_factory=list)
    # Response body
    body: UpstreamBody = None
    # Release callbacks, run once by `aclose()` in reverse registration order
    close_callbacks: list[Callable[[], Awaitable[None]]] = field(default_factory=list)
    _closed: bool = field(default=False, init=False, repr=False)

    def on_close(self, callback: Callable[[], Awaitable[None]]) -> None:
        self.close_callbacks.append(callback)

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        """Release the upstream stream and anything bound to it. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for callback in reversed(self.close_callbacks):
            try:
                await callback()
            except Exception as e:
                # Logged only; the relay outcome stands
                logger.warning(f"Error while releasing upstream response: {e}")


async def resolve_body(
    raw: Any,
    read_all: Optional[Callable[[], Awaitable[bytes]]] = None,
) -> UpstreamBody:
    """
    Resolve a duck-typed body into one of the tagged body shapes.

    Probes in priority order: push (async iterable), pull (`read`), bytes-like,
    then the `read_all` accessor. The first applicable shape wins even when the
    object supports several.

    Args:
        raw: Body object handed over by a transport library
        read_all: Optional "all bytes" accessor used when `raw` exposes no stream

    Returns:
        UpstreamBody: Tagged body, or None when there is no body at all
    """
    if raw is None:
        return None
    if hasattr(raw, "__aiter__"):
        return PushBody(raw)
    if callable(getattr(raw, "read", None)):
        return PullBody(raw)
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return BufferedBody(bytes(raw))
    if isinstance(raw, str):
        return BufferedBody(raw.encode("utf-8"))
    if read_all is not None:
        return BufferedBody(bytes(await read_all()))
    raise TypeError(f"Unsupported upstream body type: {type(raw).__name__}")


class SecureTransport(ABC):
    """
    Attested Transport Abstract Base Class

    A request-issuing capability whose channel has been verified against the remote
    execution environment. The proxy owns one instance at a time through the
    secure session; instances are replaced on reset, never reconfigured.
    """

    @abstractmethod
    async def ready(self) -> None:
        """
        Suspend until the transport is usable.

        Raises:
            Exception: Any handshake failure
        """

    @abstractmethod
    async def get_verification_document(self) -> Any:
        """Return the verification document, or None when none was obtained."""

    @abstractmethod
    def get_base_url(self) -> str:
        """Upstream base URL requests are resolved against."""

    @abstractmethod
    async def fetch(
        self,
        url: str,
        *,
        method: str,
        headers: dict[str, str],
        body: Optional[AsyncIterable[bytes]] = None,
        stream: bool = True,
    ) -> UpstreamResponse:
        """
        Issue a request through the verified channel.

        Args:
            url: Absolute target URL
            method: HTTP method
            headers: Outbound headers
            body: Streaming request body, or None
            stream: Return the body as a stream instead of buffering it

        Returns:
            UpstreamResponse: Status, headers and tagged body
        """

    async def aclose(self) -> None:
        """Release resources held by the transport."""
