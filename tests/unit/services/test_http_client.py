"""Unit tests for HTTPClientManager."""

from __future__ import annotations

import pytest

from apihost.config import SandboxConfig
from apihost.services.http.client import HTTPClientManager


async def test_client_unavailable_before_startup():
    manager = HTTPClientManager()

    assert manager.is_started is False
    with pytest.raises(RuntimeError):
        _ = manager.client


async def test_startup_and_shutdown():
    manager = HTTPClientManager()

    await manager.startup(SandboxConfig(max_connections=7, max_keepalive_connections=3))
    client = manager.client
    assert manager.is_started

    # Second startup is a no-op
    await manager.startup()
    assert manager.client is client

    await manager.shutdown()
    assert manager.is_started is False
    assert client.is_closed

    # Shutdown twice is harmless
    await manager.shutdown()
