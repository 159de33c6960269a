"""Execution backend adapter base class.

An adapter speaks the wire protocol of one sandbox backend. It owns:
1. HTTP communication
2. Translating backend responses into ExecutionResult
3. Mapping transport failures to exceptions the gateway understands

Retry, deadline and cancellation policy live in the gateway, not here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any


class BackendResponseError(Exception):
    """Backend answered, but not with a usable result."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ExecutionResult:
    """Normalized outcome of one sandbox run.

    ``exit_code != 0`` with captured output is a successful run of a
    failing program. ``error`` is set for sandbox-level failures
    (crash, timeout, resource limit).
    """

    output: str | None = None
    error: str | None = None
    exit_code: int | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ExecutionBackend(ABC):
    """Abstract execution backend interface."""

    @abstractmethod
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
        """Run code to completion and return its result.

        Raises:
            httpx.ConnectError / httpx.ConnectTimeout: Backend unreachable
            httpx.TimeoutException: No answer within ``wait_timeout``
            BackendResponseError: Backend answered with an error status or bad body
        """
        ...

    @abstractmethod
    async def cancel(self, execution_id: str) -> None:
        """Ask the backend to abort a run. Best-effort."""
        ...

    async def health(self) -> bool:
        return True
