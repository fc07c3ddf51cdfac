"""
httpx Secure Transport

Concrete transport adapter built on httpx.AsyncClient. The verification document is
fetched from the upstream during `ready()`; interpreting it is left to the secure
session, and the cryptographic attestation protocol itself is out of scope here.
"""

import logging
from collections.abc import AsyncIterable
from typing import Any, Optional

import httpx

from attested_proxy.config import Settings
from attested_proxy.transport.base import SecureTransport, UpstreamResponse, resolve_body

logger = logging.getLogger(__name__)


class HttpxSecureTransport(SecureTransport):
    """
    httpx-backed Secure Transport

    Holds one `httpx.AsyncClient` for its whole lifetime; a session reset creates a
    new transport rather than reconfiguring this one.
    """

    def __init__(
        self,
        base_url: str,
        attestation_url: str,
        timeout: Optional[float] = None,
        verify: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize transport

        Args:
            base_url: Upstream base URL
            attestation_url: Absolute URL of the verification document
            timeout: Request timeout (seconds); None disables it
            verify: Verify upstream TLS certificates
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url
        self.attestation_url = attestation_url
        self.timeout = timeout
        self.verify = verify
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._document: Any = None

    async def _get_client(self) -> httpx.AsyncClient:
        """
        Get or create HTTP client instance

        Returns:
            httpx.AsyncClient: HTTP client instance
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                verify=self.verify,
                transport=self._transport,
            )
        return self._client

    async def ready(self) -> None:
        client = await self._get_client()
        logger.info(f"Fetching verification document from {self.attestation_url}")
        response = await client.get(
            self.attestation_url,
            headers={"accept": "application/json"},
        )
        response.raise_for_status()
        self._document = response.json() if response.content else None

    async def get_verification_document(self) -> Any:
        return self._document

    def get_base_url(self) -> str:
        return self.base_url

    async def fetch(
        self,
        url: str,
        *,
        method: str,
        headers: dict[str, str],
        body: Optional[AsyncIterable[bytes]] = None,
        stream: bool = True,
    ) -> UpstreamResponse:
        client = await self._get_client()
        request = client.build_request(method, url, headers=headers, content=body)
        response = await client.send(request, stream=stream)

        # aiter_bytes decodes content-encoding, which the relay drops
        raw_body = response.aiter_bytes() if stream else response.content
        upstream_body = await resolve_body(raw_body, read_all=response.aread)

        upstream = UpstreamResponse(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            headers=list(response.headers.multi_items()),
            body=upstream_body,
        )
        upstream.on_close(response.aclose)
        return upstream

    async def aclose(self) -> None:
        """Close HTTP Client"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_transport(settings: Settings) -> HttpxSecureTransport:
    """
    Create configured secure transport

    Args:
        settings: Application settings

    Returns:
        HttpxSecureTransport: Unready transport instance
    """
    return HttpxSecureTransport(
        base_url=settings.UPSTREAM_BASE_URL,
        attestation_url=settings.attestation_url,
        timeout=settings.HTTP_TIMEOUT,
        verify=settings.TLS_VERIFY,
    )
