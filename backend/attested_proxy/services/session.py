"""
Secure Session Service

Owns the attested transport: verifies it once at startup, tracks when it was last
verified, and replaces it with a freshly verified transport on reset.

Concurrency model: all mutations (`initialize`, `reset`, `reset_if_due`) are
serialized through one asyncio.Lock, and the verified state is published as a
single immutable snapshot, so readers (`get_base_url`, `should_reset`,
`issue_request`) see either the state before a reset or the state after it.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional

from attested_proxy.common.errors import UpstreamError, VerificationError
from attested_proxy.common.time import Clock, now_ms
from attested_proxy.services.translator import OutboundRequest
from attested_proxy.transport.base import SecureTransport, UpstreamResponse

logger = logging.getLogger(__name__)

VERIFICATION_FAILED_MESSAGE = (
    "Verification failed: No verification document received or security verification failed."
)

# Flag names a verification document may use to report its own check result
_SECURITY_FLAGS = ("securityVerified", "security_verified")


def check_verification_document(document: Any) -> None:
    """
    Validate a verification document.

    The document is otherwise opaque: it must be present and non-empty, and a
    security-verified flag, when it carries one, must not be `False`.

    Raises:
        VerificationError: If the document is missing or reports a failed check
    """
    if document is None:
        raise VerificationError(VERIFICATION_FAILED_MESSAGE)
    if isinstance(document, (Mapping, str, bytes, list, tuple)) and len(document) == 0:
        raise VerificationError(VERIFICATION_FAILED_MESSAGE)

    for flag in _SECURITY_FLAGS:
        if isinstance(document, Mapping):
            value = document.get(flag)
        else:
            value = getattr(document, flag, None)
        if value is False:
            raise VerificationError(VERIFICATION_FAILED_MESSAGE)


@dataclass(frozen=True)
class SessionSnapshot:
    """Verified session state, replaced as a whole on every (re)verification."""

    transport: SecureTransport
    verification_document: Any
    last_verified_at_ms: int


class SecureSession:
    """
    Secure Session Manager

    Example:
        session = SecureSession(lambda: create_transport(settings))
        await session.initialize()
        if session.should_reset(settings.reset_interval_ms):
            await session.reset()
    """

    def __init__(
        self,
        transport_factory: Callable[[], SecureTransport],
        clock: Clock = now_ms,
    ):
        """
        Initialize session manager

        Args:
            transport_factory: Builds an unready transport; called once per (re)verification
            clock: Epoch-millisecond clock
        """
        self._transport_factory = transport_factory
        self._clock = clock
        self._lock = asyncio.Lock()
        self._snapshot: Optional[SessionSnapshot] = None
        # Open upstream responses per transport, so a replaced transport is
        # only closed once nothing is streaming through it any more
        self._in_flight: dict[SecureTransport, int] = {}
        self._retired: list[SecureTransport] = []

    # ============ Read operations ============

    @property
    def verified(self) -> bool:
        return self._snapshot is not None

    @property
    def last_verified_at_ms(self) -> Optional[int]:
        snapshot = self._snapshot
        return snapshot.last_verified_at_ms if snapshot else None

    def get_base_url(self) -> str:
        """
        Current upstream base URL.

        Never blocks and ignores staleness; callers decide whether to reset first.
        """
        return self._require_snapshot().transport.get_base_url()

    def should_reset(self, interval_ms: int) -> bool:
        """Whether at least `interval_ms` has passed since the last verification."""
        snapshot = self._snapshot
        if snapshot is None:
            return True
        return self._clock() - snapshot.last_verified_at_ms >= interval_ms

    async def issue_request(self, outbound: OutboundRequest) -> UpstreamResponse:
        """
        Issue an outbound request through the current transport.

        Args:
            outbound: Request descriptor built by the translator

        Returns:
            UpstreamResponse: The caller must `aclose()` it once relayed

        Raises:
            UpstreamError: Wrapping any transport failure
        """
        transport = self._require_snapshot().transport
        self._acquire(transport)
        try:
            response = await transport.fetch(
                outbound.url,
                method=outbound.method,
                headers=outbound.headers,
                body=outbound.body,
                stream=True,
            )
        except UpstreamError:
            await self._release(transport)
            raise
        except Exception as e:
            await self._release(transport)
            raise UpstreamError(str(e) or type(e).__name__) from e

        async def release() -> None:
            await self._release(transport)

        response.on_close(release)
        return response

    # ============ Mutating operations ============

    async def initialize(self) -> SessionSnapshot:
        """
        Verify the first transport. Must complete before traffic is accepted.

        Raises:
            VerificationError: If the handshake fails or the document is rejected
            RuntimeError: If the session was already initialized
        """
        async with self._lock:
            if self._snapshot is not None:
                raise RuntimeError("Secure session is already initialized")
            logger.info("Initializing secure session")
            self._snapshot = await self._verify_new_transport()
            logger.info("Environment verified successfully")
            return self._snapshot

    async def reset(self) -> SessionSnapshot:
        """
        Re-verify with a fresh transport.

        On failure the previous session stays in force and the error is raised.
        """
        async with self._lock:
            return await self._reset_locked()

    async def reset_if_due(self, interval_ms: int) -> bool:
        """
        Reset only if still due once the lock is held.

        Concurrent callers that all observed a stale session trigger a single reset.

        Returns:
            bool: Whether a reset was performed
        """
        async with self._lock:
            if not self.should_reset(interval_ms):
                return False
            await self._reset_locked()
            return True

    async def aclose(self) -> None:
        """Close the current transport and every retired one."""
        async with self._lock:
            transports = list(self._retired)
            if self._snapshot is not None:
                transports.append(self._snapshot.transport)
            self._retired.clear()
            self._in_flight.clear()
            self._snapshot = None
        for transport in transports:
            await self._close_transport(transport)

    # ============ Internals ============

    def _require_snapshot(self) -> SessionSnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise VerificationError("Secure session has not been verified")
        return snapshot

    async def _reset_locked(self) -> SessionSnapshot:
        previous = self._snapshot
        logger.info("Resetting secure session")
        snapshot = await self._verify_new_transport()
        self._snapshot = snapshot
        logger.info(
            f"Secure session reset complete (last verified at {snapshot.last_verified_at_ms})"
        )

        if previous is not None and previous.transport is not snapshot.transport:
            await self._retire(previous.transport)
        return snapshot

    async def _verify_new_transport(self) -> SessionSnapshot:
        """Build, ready and verify a transport; nothing is published on failure."""
        transport = self._transport_factory()
        try:
            logger.info("Waiting for secure transport")
            await transport.ready()
            logger.info("Verifying execution environment")
            document = await transport.get_verification_document()
            check_verification_document(document)
        except VerificationError:
            await self._close_transport(transport)
            raise
        except Exception as e:
            await self._close_transport(transport)
            raise VerificationError(f"Secure transport handshake failed: {e}") from e

        logger.debug(f"Verification document: {_describe(document)}")

        verified_at = self._clock()
        previous = self._snapshot
        if previous is not None and verified_at <= previous.last_verified_at_ms:
            verified_at = previous.last_verified_at_ms + 1
        return SessionSnapshot(
            transport=transport,
            verification_document=document,
            last_verified_at_ms=verified_at,
        )

    def _acquire(self, transport: SecureTransport) -> None:
        self._in_flight[transport] = self._in_flight.get(transport, 0) + 1

    async def _release(self, transport: SecureTransport) -> None:
        remaining = self._in_flight.get(transport, 0) - 1
        if remaining > 0:
            self._in_flight[transport] = remaining
            return
        self._in_flight.pop(transport, None)
        if transport in self._retired:
            self._retired.remove(transport)
            await self._close_transport(transport)

    async def _retire(self, transport: SecureTransport) -> None:
        if self._in_flight.get(transport, 0) > 0:
            self._retired.append(transport)
            return
        await self._close_transport(transport)

    @staticmethod
    async def _close_transport(transport: SecureTransport) -> None:
        try:
            await transport.aclose()
        except Exception as e:
            logger.warning(f"Error closing secure transport: {e}")


def _describe(document: Any) -> str:
    try:
        return json.dumps(document, indent=2, default=str)
    except (TypeError, ValueError):
        return repr(document)
