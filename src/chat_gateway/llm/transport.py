"""HTTP transport shared by all providers.

One ``httpx.AsyncClient`` per transport, configured once with the optional
forward proxy and timeouts from config.  Failures are mapped onto the
gateway's ``TransportError`` family; nothing is retried here.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from chat_gateway.config import GatewayConfig, TimeoutSpec
from chat_gateway.errors import HTTPStatusError, NetworkError

from .request_builder import WireRequest

_logger = logging.getLogger(__name__)


class Transport:
    """Async HTTP client wrapper used by :class:`ChatGateway`."""

    def __init__(
        self,
        proxy_url: str | None = None,
        timeout: TimeoutSpec | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        timeout = timeout or TimeoutSpec()
        self.proxy_url = proxy_url
        kwargs = {}
        if transport is not None:
            kwargs["transport"] = transport
        elif proxy_url:
            kwargs["proxy"] = proxy_url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                timeout.default, connect=timeout.connect, read=timeout.read,
            ),
            **kwargs,
        )

    @classmethod
    def from_config(cls, config: GatewayConfig) -> Transport:
        return cls(proxy_url=config.proxy.url, timeout=config.timeout)

    # ------------------------------------------------------------------
    # Buffered
    # ------------------------------------------------------------------

    async def send(self, request: WireRequest) -> httpx.Response:
        """Issue *request* and return the fully read response."""
        _logger.debug("%s %s", request.method, request.url)
        try:
            resp = await self._client.request(
                request.method,
                request.url,
                json=request.payload,
                headers=request.headers,
            )
        except httpx.HTTPError as e:
            raise NetworkError(e) from e
        if not resp.is_success:
            raise HTTPStatusError(resp.status_code, resp.text)
        return resp

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def send_streaming(
        self, request: WireRequest,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open a streaming call; yields an iterator of raw body chunks.

        Chunks are read from the network only as the iterator is advanced.
        Leaving the ``async with`` block closes the response, including
        when the consumer stops early.
        """
        _logger.debug("%s %s (stream)", request.method, request.url)
        try:
            async with self._client.stream(
                request.method,
                request.url,
                json=request.payload,
                headers=request.headers,
            ) as resp:
                if not resp.is_success:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise HTTPStatusError(resp.status_code, body)
                yield resp.aiter_bytes()
        except httpx.HTTPError as e:
            raise NetworkError(e) from e

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
