"""Ad-hoc execution endpoint.

Runs code on the sandbox backend without touching any API resource. If
the caller disconnects, the run is cancelled on the backend too.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

from apihost.adapters.base import ExecutionResult
from apihost.api.dependencies import CurrentUser, GatewayDep
from apihost.services.sandbox_gateway import ExecutionGateway

router = APIRouter()
_log = structlog.get_logger()

# How often to poll for client disconnects while a run is in flight
_DISCONNECT_POLL_SECONDS = 0.5

CLIENT_DISCONNECTED = "Client disconnected"


class ExecuteRequest(BaseModel):
    code: str
    runtime: str
    timeout: int | None = None
    stdin: str | None = None


class ExecuteResponse(BaseModel):
    output: str | None = None
    error: str | None = None
    exit_code: int | None = None
    duration_ms: int


async def run_until_disconnect(
    request: Request,
    gateway: ExecutionGateway,
    **kwargs,
) -> ExecutionResult | None:
    """Run ``gateway.execute`` and cancel it if the client goes away.

    Returns None when the client disconnected before the result was ready.
    """
    task = asyncio.create_task(gateway.execute(**kwargs))
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=_DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                _log.info("execute.client_disconnected")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                return None
    finally:
        if not task.done():
            task.cancel()


@router.post("/execute", response_model=ExecuteResponse)
async def execute(
    request: ExecuteRequest,
    http_request: Request,
    gateway: GatewayDep,
    user: CurrentUser,
) -> ExecuteResponse:
    result = await run_until_disconnect(
        http_request,
        gateway,
        code=request.code,
        runtime=request.runtime,
        timeout=request.timeout,
        stdin=request.stdin,
    )
    if result is None:
        # Nobody is listening; the status code is never seen
        return ExecuteResponse(error=CLIENT_DISCONNECTED, duration_ms=0)
    _log.debug("execute.done", user_id=user.id, exit_code=result.exit_code)
    return ExecuteResponse(**result.to_dict())
