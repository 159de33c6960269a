"""Execution sandbox gateway.

Dispatches ad-hoc runs to the execution backend and normalizes the result.
Never touches API resource state.

Failure policy:
- connect-level network failure: retried once, then SandboxUnavailableError
- backend 4xx/5xx or undecodable body: SandboxUnavailableError
- client-side deadline (timeout + grace) exceeded: backend run is cancelled
  and a result with ``error="Execution timeout exceeded"`` is returned
- caller cancelled: backend run is cancelled, CancelledError re-raised
"""

from __future__ import annotations

import asyncio
import time
import uuid

import httpx
import structlog

from apihost.adapters.base import BackendResponseError, ExecutionBackend, ExecutionResult
from apihost.config import SUPPORTED_RUNTIMES, SandboxConfig
from apihost.errors import SandboxUnavailableError, ValidationError

logger = structlog.get_logger()

TIMEOUT_ERROR = "Execution timeout exceeded"


class ExecutionGateway:
    """Runs code on the sandbox backend with retry, deadline and cancel propagation."""

    def __init__(self, backend: ExecutionBackend, config: SandboxConfig) -> None:
        self._backend = backend
        self._config = config
        self._log = logger.bind(service="sandbox_gateway")

    def clamp_timeout(self, timeout: int | None) -> int:
        if timeout is None:
            timeout = self._config.default_timeout_seconds
        return max(1, min(int(timeout), self._config.max_timeout_seconds))

    async def execute(
        self,
        *,
        code: str,
        runtime: str,
        timeout: int | None = None,
        stdin: str | None = None,
    ) -> ExecutionResult:
        """Run ``code`` under ``runtime`` and wait for the result.

        Raises:
            ValidationError: Empty code or unsupported runtime
            SandboxUnavailableError: Backend unreachable or misbehaving
        """
        if not code or not code.strip():
            raise ValidationError(
                "code is required", details={"field": "code", "reason": "empty"}
            )
        if runtime not in SUPPORTED_RUNTIMES:
            raise ValidationError(
                f"Unsupported runtime: {runtime}",
                details={"field": "runtime", "allowed": list(SUPPORTED_RUNTIMES)},
            )

        timeout_sec = self.clamp_timeout(timeout)
        deadline = timeout_sec + self._config.grace_seconds
        execution_id = f"exec-{uuid.uuid4().hex[:12]}"
        log = self._log.bind(execution_id=execution_id, runtime=runtime)

        attempts = 1 + max(0, self._config.network_retries)
        started = time.monotonic()

        for attempt in range(1, attempts + 1):
            try:
                async with asyncio.timeout(deadline):
                    result = await self._backend.execute(
                        execution_id=execution_id,
                        code=code,
                        runtime=runtime,
                        timeout_sec=timeout_sec,
                        stdin=stdin,
                        wait_timeout=deadline,
                    )
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                if attempt < attempts:
                    log.warning("sandbox.execute.retry", attempt=attempt, error=str(e))
                    await asyncio.sleep(self._config.retry_delay_seconds)
                    continue
                log.error("sandbox.execute.unreachable", attempts=attempt, error=str(e))
                raise SandboxUnavailableError(
                    "Execution backend unreachable", details={"attempts": attempt}
                )
            except (TimeoutError, httpx.TimeoutException):
                await self._cancel(execution_id)
                elapsed = int((time.monotonic() - started) * 1000)
                log.warning("sandbox.execute.timeout", timeout_sec=timeout_sec)
                return ExecutionResult(error=TIMEOUT_ERROR, duration_ms=elapsed)
            except BackendResponseError as e:
                log.error("sandbox.execute.bad_response", status=e.status_code)
                details = {"status": e.status_code} if e.status_code else {}
                raise SandboxUnavailableError("Execution backend failed", details=details)
            except httpx.HTTPError as e:
                log.error("sandbox.execute.transport_error", error=str(e))
                raise SandboxUnavailableError("Execution backend unreachable")
            except asyncio.CancelledError:
                log.info("sandbox.execute.cancelled")
                await asyncio.shield(self._cancel(execution_id))
                raise

            log.info(
                "sandbox.execute.done",
                exit_code=result.exit_code,
                duration_ms=result.duration_ms,
                failed=result.error is not None,
            )
            return result

        raise SandboxUnavailableError("Execution backend unreachable")

    async def _cancel(self, execution_id: str) -> None:
        try:
            await self._backend.cancel(execution_id)
        except Exception as e:
            self._log.warning("sandbox.cancel_failed", execution_id=execution_id, error=str(e))
