"""HTTP client management for Outlook Sync.

A pooled ``httpx.AsyncClient`` for the token endpoint and Microsoft Graph
calls. The client is bound to the event loop that created it; a manager
called from a different loop opens a fresh client, so hosts that run each
invocation under its own ``asyncio.run`` keep working.
"""

import asyncio
from functools import lru_cache

import httpx

from .config import get_settings_instance
from .logging import get_logger

logger = get_logger(__name__)


class HTTPClientManager:
    """Manages HTTP client connections with pooling for external APIs."""

    def __init__(self) -> None:
        self._client: httpx.AsyncClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._settings = get_settings_instance()

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with connection pooling for the running loop."""
        loop = asyncio.get_running_loop()
        if self._client is not None and (self._loop is not loop or self._client.is_closed):
            # Connections of a finished loop cannot be reused or closed from here.
            logger.debug("Discarding HTTP client bound to another event loop")
            self._client = None
        if self._client is None:
            logger.debug("Creating new HTTP client with connection pooling")
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20, keepalive_expiry=30.0),
                timeout=httpx.Timeout(self._settings.http_timeout),
                headers={"User-Agent": f"{self._settings.app_name}/{self._settings.version}"},
            )
            self._loop = loop
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        client, loop = self._client, self._loop
        self._client = None
        self._loop = None
        if client is None:
            return
        if loop is asyncio.get_running_loop():
            logger.debug("Closing HTTP client")
            await client.aclose()


@lru_cache(maxsize=1)
def get_http_client_manager() -> HTTPClientManager:
    """Get the process-wide HTTP client manager instance."""
    return HTTPClientManager()


async def close_http_client() -> None:
    """Close the process-wide HTTP client (call during shutdown)."""
    await get_http_client_manager().close()
