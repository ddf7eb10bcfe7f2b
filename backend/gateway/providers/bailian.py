import asyncio
from typing import Optional

import httpx
import structlog

from gateway.core.config import Settings

logger = structlog.get_logger()

USER_AGENT = "bailian-gateway/1.0"


def pool_limits(settings: Settings) -> httpx.Limits:
    # Every call goes to one host, so the per-host idle cap doubles as the
    # pool-wide one when no total is configured
    return httpx.Limits(
        max_connections=settings.MAX_CONNS_PER_HOST,
        max_keepalive_connections=settings.MAX_IDLE_CONNS or settings.MAX_IDLE_CONNS_PER_HOST,
        keepalive_expiry=settings.IDLE_CONN_TIMEOUT,
    )


def _build_client(
    settings: Settings,
    timeout_seconds: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds, connect=settings.CONNECT_TIMEOUT),
        limits=pool_limits(settings),
        proxy=settings.PROXY_URL or None,
        transport=transport,
    )


class BailianForwarder:
    """
    Outbound side of the gateway: one POST per inbound request.

    Buffered and streamed calls use separate pools so long-lived streams
    cannot starve ordinary requests. Nothing here retries.
    """

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient,
        stream_client: httpx.AsyncClient,
        request_timeout: float,
    ):
        self._api_key = api_key
        self._client = client
        self._stream_client = stream_client
        self._request_timeout = request_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "BailianForwarder":
        forwarder = cls(
            api_key=settings.ALIYUN_API_KEY,
            client=_build_client(settings, settings.REQUEST_TIMEOUT, transport),
            stream_client=_build_client(settings, settings.STREAM_TIMEOUT, transport),
            request_timeout=settings.REQUEST_TIMEOUT,
        )
        logger.info(
            "forwarder_initialized",
            max_conns_per_host=settings.MAX_CONNS_PER_HOST,
            max_idle_conns=settings.MAX_IDLE_CONNS or settings.MAX_IDLE_CONNS_PER_HOST,
            request_timeout=settings.REQUEST_TIMEOUT,
            stream_timeout=settings.STREAM_TIMEOUT,
        )
        return forwarder

    def _headers(self, accept: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "Accept": accept,
        }

    async def complete(
        self, endpoint: str, body: bytes, accept: Optional[str] = None
    ) -> httpx.Response:
        """POST and read the whole response within REQUEST_TIMEOUT."""
        async with asyncio.timeout(self._request_timeout):
            return await self._client.post(
                endpoint,
                content=body,
                headers=self._headers(accept or "application/json"),
            )

    async def open_stream(self, endpoint: str, body: bytes) -> httpx.Response:
        """
        POST and return as soon as headers arrive. The body is left unread;
        the caller owns the response and must `aclose()` it.
        """
        request = self._stream_client.build_request(
            "POST",
            endpoint,
            content=body,
            headers=self._headers("text/event-stream"),
        )
        return await self._stream_client.send(request, stream=True)

    async def aclose(self) -> None:
        await self._client.aclose()
        await self._stream_client.aclose()
