"""
Shared outbound HTTP client.

One httpx.AsyncClient for every call to the Graph API, with a bounded
timeout so a stuck upstream call cannot hang a request.
"""
import asyncio
import logging
from typing import Optional

import httpx

from interest_finder.core.config_loader import read_tunables

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class HttpClientManager:
    """Creates the shared client lazily and closes it on shutdown."""

    def __init__(self, timeout: float = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            timeout: Per-request timeout in seconds
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        if timeout is None:
            timeout = read_tunables("interest_search").get("request_timeout", DEFAULT_TIMEOUT)
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

    async def get_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self._timeout),
                    limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
                    transport=self._transport,
                )
                logger.info(f"🌐 HTTP client created (timeout={self._timeout}s)")
        return self._client

    async def close(self):
        async with self._client_lock:
            if self._client and not self._client.is_closed:
                await self._client.aclose()
                self._client = None
                logger.info("🌐 HTTP client closed")
