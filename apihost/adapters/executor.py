"""HTTP adapter for the sandbox executor service.

Wire contract:
- POST /execute {execution_id, code, runtime, timeout_sec[, stdin]}
  -> {output?, error?, exit_code?, duration_ms}
- POST /executions/{execution_id}/cancel
- GET  /health
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from apihost.adapters.base import BackendResponseError, ExecutionBackend, ExecutionResult
from apihost.services.http import http_client_manager

logger = structlog.get_logger()


def _get_shared_client() -> httpx.AsyncClient | None:
    """Get shared HTTP client if available.

    Returns None if client manager is not initialized (e.g., in tests).
    """
    try:
        return http_client_manager.client
    except RuntimeError:
        return None


def _parse_result(data: Any) -> ExecutionResult:
    if not isinstance(data, dict):
        raise BackendResponseError("Executor returned a non-object body")

    exit_code = data.get("exit_code")
    if exit_code is not None and not isinstance(exit_code, int):
        raise BackendResponseError("Executor returned a non-integer exit_code")

    duration = data.get("duration_ms", 0)
    if not isinstance(duration, (int, float)):
        raise BackendResponseError("Executor returned a non-numeric duration_ms")

    output = data.get("output")
    error = data.get("error")
    return ExecutionResult(
        output=output if output is None else str(output),
        error=error if error is None else str(error),
        exit_code=exit_code,
        duration_ms=int(duration),
    )


class ExecutorAdapter(ExecutionBackend):
    """HTTP adapter for the executor service.

    Uses the shared connection pool when the app is running and falls back
    to a temporary client otherwise. ``transport`` is for tests.
    """

    def __init__(
        self,
        base_url: str,
        *,
        connect_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._connect_timeout = connect_timeout
        self._transport = transport
        self._log = logger.bind(adapter="executor", base_url=self._base_url)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        timeout: float = 10.0,
    ) -> httpx.Response:
        url = f"{self._base_url}{path}"
        request_timeout = httpx.Timeout(timeout, connect=self._connect_timeout)

        client = None if self._transport is not None else _get_shared_client()
        if client is not None:
            return await client.request(method, url, json=json, timeout=request_timeout)

        async with httpx.AsyncClient(transport=self._transport, trust_env=False) as temp_client:
            return await temp_client.request(method, url, json=json, timeout=request_timeout)

    async def execute(
        self,
        *,
        execution_id: str,
        code: str,
        runtime: str,
        timeout_sec: int,
        stdin: str | None = None,
        wait_timeout: float | None = None,
    ) -> ExecutionResult:
        payload: dict[str, Any] = {
            "execution_id": execution_id,
            "code": code,
            "runtime": runtime,
            "timeout_sec": timeout_sec,
        }
        if stdin is not None:
            payload["stdin"] = stdin

        response = await self._request(
            "POST",
            "/execute",
            json=payload,
            timeout=wait_timeout if wait_timeout is not None else float(timeout_sec),
        )

        if response.status_code >= 400:
            self._log.error(
                "executor.request_failed",
                execution_id=execution_id,
                status=response.status_code,
            )
            raise BackendResponseError(
                f"Executor request failed: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            raise BackendResponseError("Executor returned an undecodable body")
        return _parse_result(data)

    async def cancel(self, execution_id: str) -> None:
        try:
            response = await self._request(
                "POST", f"/executions/{execution_id}/cancel", timeout=5.0
            )
        except httpx.HTTPError as e:
            self._log.warning("executor.cancel_failed", execution_id=execution_id, error=str(e))
            return
        if response.status_code >= 400 and response.status_code != 404:
            self._log.warning(
                "executor.cancel_rejected",
                execution_id=execution_id,
                status=response.status_code,
            )

    async def health(self) -> bool:
        try:
            response = await self._request("GET", "/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False
