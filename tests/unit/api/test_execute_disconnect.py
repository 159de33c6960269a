"""Tests for run_until_disconnect: client disconnects cancel backend runs."""

from __future__ import annotations

import asyncio

import pytest

from apihost.adapters.base import ExecutionResult
from apihost.api.v1 import execute as execute_module
from apihost.api.v1.execute import run_until_disconnect
from apihost.config import Settings
from apihost.services.sandbox_gateway import ExecutionGateway
from tests.fakes import FakeExecutionBackend


class FakeRequest:
    """Reports a disconnect once ``gone`` is set."""

    def __init__(self) -> None:
        self.gone = asyncio.Event()
        self.polls = 0

    async def is_disconnected(self) -> bool:
        self.polls += 1
        return self.gone.is_set()


@pytest.fixture(autouse=True)
def fast_polling(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(execute_module, "_DISCONNECT_POLL_SECONDS", 0.01)


async def test_result_is_returned_while_connected(fake_settings: Settings):
    backend = FakeExecutionBackend(ExecutionResult(output="6\n", exit_code=0, duration_ms=4))
    gateway = ExecutionGateway(backend, fake_settings.sandbox)

    result = await run_until_disconnect(
        FakeRequest(), gateway, code="print(6)", runtime="python"
    )

    assert result == ExecutionResult(output="6\n", exit_code=0, duration_ms=4)
    assert backend.cancel_calls == []


async def test_disconnect_cancels_backend_run(fake_settings: Settings):
    backend = FakeExecutionBackend(block=True)
    gateway = ExecutionGateway(backend, fake_settings.sandbox)
    request = FakeRequest()

    run = asyncio.create_task(
        run_until_disconnect(request, gateway, code="while True: pass", runtime="python")
    )
    await asyncio.wait_for(backend.started.wait(), timeout=1)
    request.gone.set()

    result = await asyncio.wait_for(run, timeout=1)

    assert result is None
    assert request.polls >= 1
    execution_id = backend.execute_calls[0]["execution_id"]
    assert backend.cancel_calls == [execution_id]


async def test_cancelling_the_handler_cancels_backend_run(fake_settings: Settings):
    backend = FakeExecutionBackend(block=True)
    gateway = ExecutionGateway(backend, fake_settings.sandbox)

    run = asyncio.create_task(
        run_until_disconnect(FakeRequest(), gateway, code="x", runtime="python")
    )
    await asyncio.wait_for(backend.started.wait(), timeout=1)
    run.cancel()

    with pytest.raises(asyncio.CancelledError):
        await run
    # The orphaned gateway task finishes its cleanup on its own
    for _ in range(100):
        if backend.cancel_calls:
            break
        await asyncio.sleep(0.01)

    assert backend.cancel_calls == [backend.execute_calls[0]["execution_id"]]
