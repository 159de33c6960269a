"""Global HTTP client manager.

One pooled httpx.AsyncClient is shared by every request that reaches the
execution backend, so concurrent test runs reuse connections instead of
paying a TCP handshake each.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator

import httpx
import structlog

from apihost.config import SandboxConfig

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = structlog.get_logger()


class HTTPClientManager:
    """Owns the lifecycle of a shared httpx.AsyncClient.

    Usage:
        await http_client_manager.startup(settings.sandbox)
        client = http_client_manager.client
        ...
        await http_client_manager.shutdown()
    """

    def __init__(self) -> None:
        self._client: httpx.AsyncClient | None = None
        self._log = logger.bind(component="http_client")

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the shared HTTP client.

        Raises:
            RuntimeError: If client is not initialized (call startup first)
        """
        if self._client is None:
            raise RuntimeError("HTTP client not initialized. Call startup() first.")
        return self._client

    @property
    def is_started(self) -> bool:
        return self._client is not None

    async def startup(self, config: SandboxConfig | None = None) -> None:
        """Create the pooled client from sandbox settings."""
        if self._client is not None:
            self._log.warning("http_client.already_started")
            return

        config = config or SandboxConfig()
        limits = httpx.Limits(
            max_connections=config.max_connections,
            max_keepalive_connections=config.max_keepalive_connections,
            keepalive_expiry=30.0,
        )
        # Read timeout is set per request from the execution timeout
        timeout = httpx.Timeout(
            connect=config.connect_timeout,
            read=config.max_timeout_seconds + config.grace_seconds,
            write=30.0,
            pool=10.0,
        )
        self._client = httpx.AsyncClient(limits=limits, timeout=timeout, http2=False)

        self._log.info(
            "http_client.started",
            max_connections=config.max_connections,
            max_keepalive=config.max_keepalive_connections,
        )

    async def shutdown(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is None:
            return

        await self._client.aclose()
        self._client = None
        self._log.info("http_client.shutdown")


# Global singleton instance
http_client_manager = HTTPClientManager()


@asynccontextmanager
async def lifespan_http_client(
    app: "FastAPI", config: SandboxConfig | None = None
) -> AsyncGenerator[None, None]:
    """Lifespan helper that starts and stops the shared client."""
    await http_client_manager.startup(config)
    try:
        yield
    finally:
        await http_client_manager.shutdown()


def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client.

    Raises:
        RuntimeError: If client not initialized
    """
    return http_client_manager.client
