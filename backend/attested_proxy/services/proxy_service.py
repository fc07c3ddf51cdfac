"""
Proxy Service Module

Per-request orchestration: translate the inbound request, issue it through the
secure session, and relay the upstream response. Any failure before the response
starts becomes a uniform 500.
"""

import logging
from collections.abc import AsyncIterable
from typing import Optional

from fastapi import status
from fastapi.responses import JSONResponse
from starlette.responses import Response

from attested_proxy.common.errors import error_body
from attested_proxy.common.proxy_headers import HeaderItems
from attested_proxy.common.sanitizer import sanitize_headers
from attested_proxy.services.relay import relay_response
from attested_proxy.services.session import SecureSession
from attested_proxy.services.translator import build_outbound_request
from attested_proxy.transport.base import UpstreamResponse

logger = logging.getLogger(__name__)


class ProxyService:
    """
    Proxy Orchestrator

    Holds the session and the request policy (API key, reset-on-request) so the
    translator and relay stay free of configuration lookups.
    """

    def __init__(
        self,
        session: SecureSession,
        api_key: Optional[str] = None,
        reset_interval_ms: int = 3600 * 1000,
        reset_on_request: bool = False,
    ):
        """
        Initialize service

        Args:
            session: Verified secure session
            api_key: Upstream API key injected when clients send no Authorization
            reset_interval_ms: Re-verification cadence
            reset_on_request: Check staleness and reset on the request path
        """
        self.session = session
        self.api_key = api_key
        self.reset_interval_ms = reset_interval_ms
        self.reset_on_request = reset_on_request

    async def forward(
        self,
        method: str,
        target: str,
        headers: HeaderItems,
        body: Optional[AsyncIterable[bytes]] = None,
    ) -> Response:
        """
        Proxy one request

        Args:
            method: Inbound HTTP method
            target: Inbound path plus query string
            headers: Inbound headers
            body: Inbound body stream

        Returns:
            Response: Relayed upstream response, or a 500 JSON error
        """
        logger.info(f"Incoming request: {method} {target}")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Incoming request headers: {sanitize_headers(dict(headers))}")

        upstream: Optional[UpstreamResponse] = None
        try:
            if self.reset_on_request:
                await self._refresh_session_if_due()

            outbound = build_outbound_request(
                method,
                target,
                headers,
                body,
                base_url=self.session.get_base_url(),
                api_key=self.api_key,
            )
            logger.info(f"Outgoing request URL: {outbound.url}")

            upstream = await self.session.issue_request(outbound)
            logger.info(
                f"Upstream response status: {upstream.status_code} {upstream.reason_phrase}"
            )
            logger.debug(f"Upstream response headers: {upstream.headers}")

            return await relay_response(upstream)

        except Exception as e:
            logger.error(f"Proxy error: {str(e)}", exc_info=True)
            if upstream is not None:
                await upstream.aclose()
            return JSONResponse(
                content=error_body(str(e) or type(e).__name__),
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

    async def _refresh_session_if_due(self) -> None:
        """
        Reset a stale session before serving.

        A failed reset is logged and the previously verified session keeps serving.
        """
        if not self.session.should_reset(self.reset_interval_ms):
            return
        try:
            await self.session.reset_if_due(self.reset_interval_ms)
        except Exception as e:
            logger.warning(f"Secure session reset failed, keeping previous session: {e}")
