"""Invocation of deployed endpoints.

Mounted at the configured endpoints base path, outside /v1. Access is
gated by the resource's visibility through the API key service and every
call is recorded in the execution log.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

from apihost.api.dependencies import (
    ApiKeyServiceDep,
    ArtifactManagerDep,
    ExecutionLogDep,
    GatewayDep,
    PresentedKeyDep,
    RegistryDep,
)
from apihost.api.v1.execute import CLIENT_DISCONNECTED, ExecuteResponse, run_until_disconnect
from apihost.config import get_settings
from apihost.errors import ApiHostError, PreconditionFailedError

router = APIRouter()
_log = structlog.get_logger()


class InvokeRequest(BaseModel):
    input: Any = None


@router.post("/{api_id}/{slug}", response_model=ExecuteResponse)
async def invoke_api(
    api_id: str,
    slug: str,
    http_request: Request,
    registry: RegistryDep,
    artifacts: ArtifactManagerDep,
    keys: ApiKeyServiceDep,
    gateway: GatewayDep,
    executions: ExecutionLogDep,
    presented_key: PresentedKeyDep,
    request: InvokeRequest | None = None,
) -> ExecuteResponse:
    base_path = get_settings().endpoints.base_path.rstrip("/")
    api = await registry.get_by_endpoint(f"{base_path}/{api_id}/{slug}")

    # Credentials first: lifecycle state is only disclosed to allowed callers
    api_key = await keys.authorize_invocation(api, presented_key)

    if not api.is_routable:
        raise PreconditionFailedError(
            "API is not deployed",
            details={"current_status": api.status.value},
        )

    code = await artifacts.read_source(api)

    stdin = None
    if request is not None and request.input is not None:
        stdin = json.dumps(request.input)
    request_bytes = len(stdin.encode("utf-8")) if stdin else 0

    _log.info(
        "invoke.start",
        api_id=api.id,
        key_prefix=api_key.key_prefix if api_key is not None else None,
    )
    try:
        result = await run_until_disconnect(
            http_request,
            gateway,
            code=code,
            runtime=api.runtime.value,
            stdin=stdin,
        )
    except ApiHostError as e:
        await executions.record(api, api_key=api_key, error=e.message, request_bytes=request_bytes)
        raise

    if result is None:
        await executions.record(
            api, api_key=api_key, error=CLIENT_DISCONNECTED, request_bytes=request_bytes
        )
        return ExecuteResponse(error=CLIENT_DISCONNECTED, duration_ms=0)

    await executions.record(api, api_key=api_key, result=result, request_bytes=request_bytes)
    return ExecuteResponse(**result.to_dict())
