"""API resource endpoints: CRUD, upload, lifecycle and execution history."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, File, Query, Response, UploadFile
from pydantic import BaseModel

from apihost.api.dependencies import (
    ArtifactManagerDep,
    CurrentUser,
    ExecutionLogDep,
    ExpectedVersionDep,
    RegistryDep,
)
from apihost.models.api_resource import ApiResource
from apihost.models.code_artifact import CodeArtifact
from apihost.models.execution import Execution
from apihost.services.executions import DEFAULT_HISTORY_LIMIT, DEFAULT_STATS_HOURS

router = APIRouter()


# Request/Response Models


class CreateApiRequest(BaseModel):
    name: str
    runtime: str
    description: str = ""
    version: str = "v1"
    visibility: str = "private"


class UpdateApiRequest(BaseModel):
    """Partial update. Only fields present in the body are applied."""

    model_config = {"extra": "allow"}

    name: str | None = None
    description: str | None = None
    visibility: str | None = None


class ApiResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    description: str
    version: str
    runtime: str
    visibility: str
    status: str
    code_artifact_ref: str | None
    endpoint: str | None
    lock_version: int
    created_at: datetime
    updated_at: datetime
    deployed_at: datetime | None


class ApiListResponse(BaseModel):
    items: list[ApiResponse]


class ArtifactResponse(BaseModel):
    id: str
    api_id: str
    filename: str
    size_bytes: int
    language_hint: str
    sha256: str
    uploaded_at: datetime


class ExecutionResponse(BaseModel):
    id: str
    api_id: str
    api_key_id: str | None
    caller_id: str | None
    exit_code: int | None
    error: str | None
    duration_ms: int
    request_bytes: int
    response_bytes: int
    executed_at: datetime


class ExecutionListResponse(BaseModel):
    api_id: str
    count: int
    items: list[ExecutionResponse]


class ExecutionStatsResponse(BaseModel):
    api_id: str
    period_hours: int
    total_requests: int
    success_count: int
    error_count: int
    success_rate: float
    avg_duration_ms: float | None
    min_duration_ms: int | None
    max_duration_ms: int | None


def _api_to_response(
api: ApiResource) -> ApiResponse:
    return ApiResponse(
        id=api.id,
        owner_id=api.owner_id,
        name=api.name,
        description=api.description,
        version=api.version,
        runtime=api.runtime.value,
        visibility=api.visibility.value,
        status=api.status.value,
        code_artifact_ref=api.code_artifact_ref,
        endpoint=api.endpoint,
        lock_version=api.lock_version,
        created_at=api.created_at,
        updated_at=api.updated_at,
        deployed_at=api.deployed_at,
    )


def _artifact_to_response(artifact: CodeArtifact) -> ArtifactResponse:
    return ArtifactResponse(
        id=artifact.id,
        api_id=artifact.api_id,
        filename=artifact.filename,
        size_bytes=artifact.size_bytes,
        language_hint=artifact.language_hint,
        sha256=artifact.sha256,
        uploaded_at=artifact.uploaded_at,
    )


def _execution_to_response(execution: Execution) -> ExecutionResponse:
    return ExecutionResponse(
        id=execution.id,
        api_id=execution.api_id,
        api_key_id=execution.api_key_id,
        caller_id=execution.caller_id,
        exit_code=execution.exit_code,
        error=execution.error,
        duration_ms=execution.duration_ms,
        request_bytes=execution.request_bytes,
        response_bytes=execution.response_bytes,
        executed_at=execution.executed_at,
    )


def _version_headers(
response: Response, api: ApiResource) -> None:
    response.headers["ETag"] = str(api.lock_version)


@router.get("", response_model=ApiListResponse)
async def list_apis(registry: RegistryDep, user: CurrentUser) -> ApiListResponse:
    apis = await registry.list_for_owner(user.id)
    return ApiListResponse(items=[_api_to_response(api) for api in apis])


@router.post("", response_model=ApiResponse, status_code=201)
async def create_api(
    request: CreateApiRequest,
    response: Response,
    registry: RegistryDep,
    user: CurrentUser,
) -> ApiResponse:
    api = await registry.create(
        user.id,
        name=request.name,
        runtime=request.runtime,
        description=request.description,
        version=request.version,
        visibility=request.visibility,
    )
    _version_headers(response, api)
    return _api_to_response(api)


@router.get("/{api_id}", response_model=ApiResponse)
async def get_api(
    api_id: str, response: Response, registry: RegistryDep, user: CurrentUser
) -> ApiResponse:
    api = await registry.get(api_id, user.id)
    _version_headers(response, api)
    return _api_to_response(api)


@router.patch("/{api_id}", response_model=ApiResponse)
async def update_api(
    api_id: str,
    request: UpdateApiRequest,
    response: Response,
    registry: RegistryDep,
    user: CurrentUser,
    expected: ExpectedVersionDep,
) -> ApiResponse:
    changes: dict[str, Any] = {
        name: getattr(request, name) for name in request.model_fields_set
    }
    changes.update(request.model_extra or {})
    api = await registry.update(api_id, user.id, changes, expected_version=expected)
    _version_headers(response, api)
    return _api_to_response(api)


@router.delete("/{api_id}", status_code=204)
async def delete_api(
    api_id: str,
    registry: RegistryDep,
    user: CurrentUser,
    expected: ExpectedVersionDep,
) -> Response:
    await registry.delete(api_id, user.id, expected_version=expected)
    return Response(status_code=204)


@router.post("/{api_id}/upload", response_model=ApiResponse)
async def upload_code(
    api_id: str,
    response: Response,
    artifacts: ArtifactManagerDep,
    user: CurrentUser,
    code: UploadFile = File(...),
) -> ApiResponse:
    try:
        api = await artifacts.upload(api_id, user.id, code)
    finally:
        await code.close()
    _version_headers(response, api)
    return _api_to_response(api)


@router.get("/{api_id}/artifact", response_model=ArtifactResponse)
async def get_artifact(
    api_id: str, artifacts: ArtifactManagerDep, user: CurrentUser
) -> ArtifactResponse:
    artifact = await artifacts.get_current(api_id, user.id)
    return _artifact_to_response(artifact)


@router.post("/{api_id}/deploy", response_model=ApiResponse)
async def deploy_api(
    api_id: str,
    response: Response,
    registry: RegistryDep,
    user: CurrentUser,
    expected: ExpectedVersionDep,
) -> ApiResponse:
    api = await registry.deploy(api_id, user.id, expected_version=expected)
    _version_headers(response, api)
    return _api_to_response(api)


@router.post("/{api_id}/stop", response_model=ApiResponse)
async def stop_api(
    api_id: str,
    response: Response,
    registry: RegistryDep,
    user: CurrentUser,
    expected: ExpectedVersionDep,
) -> ApiResponse:
    api = await registry.stop(api_id, user.id, expected_version=expected)
    _version_headers(response, api)
    return _api_to_response(api)


@router.get("/{api_id}/executions", response_model=ExecutionListResponse)
async def list_executions(
    api_id: str,
    executions: ExecutionLogDep,
    user: CurrentUser,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=1000),
) -> ExecutionListResponse:
    items = await executions.history(api_id, user.id, limit=limit)
    return ExecutionListResponse(
        api_id=api_id,
        count=len(items),
        items=[_execution_to_response(e) for e in items],
    )


@router.get("/{api_id}/stats", response_model=ExecutionStatsResponse)
async def get_execution_stats(
    api_id: str,
    executions: ExecutionLogDep,
    user: CurrentUser,
    hours: int = Query(DEFAULT_STATS_HOURS, ge=1, le=24 * 365),
) -> ExecutionStatsResponse:
    stats = await executions.stats(api_id, user.id, hours=hours)
    return ExecutionStatsResponse(**stats.to_dict())
