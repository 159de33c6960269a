"""Execution log - invocation history and usage stats per API resource.

Every call to a deployed endpoint is recorded, including failed and
abandoned runs. Reads are owner-only and go through the registry's
ownership check.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import timedelta

import structlog
from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from apihost.adapters.base import ExecutionResult
from apihost.managers.api_resource import ApiResourceRegistry
from apihost.models.api_key import ApiKey
from apihost.models.api_resource import ApiResource
from apihost.models.execution import Execution
from apihost.utils.datetime import utcnow

logger = structlog.get_logger()

DEFAULT_HISTORY_LIMIT = 100
DEFAULT_STATS_HOURS = 24


@dataclass
class ExecutionStats:
    """Aggregates over one API's executions in a trailing window."""

    api_id: str
    period_hours: int
    total_requests: int
    success_count: int
    error_count: int
    success_rate: float
    avg_duration_ms: float | None = None
    min_duration_ms: int | None = None
    max_duration_ms: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class ExecutionLog:
    """Records invocations and answers history/stats queries."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._log = logger.bind(service="executions")

        self._registry = ApiResourceRegistry(db_session)

    async def record(
        self,
        api: ApiResource,
        *,
        api_key: ApiKey | None,
        result: ExecutionResult | None = None,
        error: str | None = None,
        request_bytes: int = 0,
    ) -> Execution:
        """Persist one invocation.

        ``error`` overrides the result's error, for runs that never produced
        a result (backend down, client gone).
        """
        output = result.output if result is not None else None
        execution = Execution(
            id=f"exec-{uuid.uuid4().hex[:12]}",
            api_id=api.id,
            api_key_id=api_key.id if api_key is not None else None,
            caller_id=api_key.user_id if api_key is not None else None,
            exit_code=result.exit_code if result is not None else None,
            error=error if error is not None else (result.error if result is not None else None),
            duration_ms=result.duration_ms if result is not None else 0,
            request_bytes=request_bytes,
            response_bytes=len(output.encode("utf-8")) if output else 0,
            executed_at=utcnow(),
        )
        self._db.add(execution)
        await self._db.commit()
        await self._db.refresh(execution)

        self._log.info(
            "execution.record",
            api_id=execution.api_id,
            execution_id=execution.id,
            exit_code=execution.exit_code,
            duration_ms=execution.duration_ms,
            failed=not execution.succeeded,
        )
        return execution

    async def history(
        self, api_id: str, caller_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[Execution]:
        """Most recent executions of an owned API, newest first."""
        await self._registry.get(api_id, caller_id)

        result = await self._db.execute(
            select(Execution)
            .where(Execution.api_id == api_id)
            .order_by(Execution.executed_at.desc(), Execution.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def stats(
        self, api_id: str, caller_id: str, *, hours: int = DEFAULT_STATS_HOURS
    ) -> ExecutionStats:
        """Counts and duration aggregates over the last ``hours`` hours."""
        await self._registry.get(api_id, caller_id)

        since = utcnow() - timedelta(hours=hours)
        succeeded = and_(Execution.error.is_(None), Execution.exit_code == 0)
        result = await self._db.execute(
            select(
                func.count(Execution.id),
                func.count(case((succeeded, 1))),
                func.avg(Execution.duration_ms),
                func.min(Execution.duration_ms),
                func.max(Execution.duration_ms),
            ).where(Execution.api_id == api_id, Execution.executed_at >= since)
        )
        total, success_count, avg_ms, min_ms, max_ms = result.one()

        return ExecutionStats(
            api_id=api_id,
            period_hours=hours,
            total_requests=total,
            success_count=success_count,
            error_count=total - success_count,
            success_rate=(success_count / total * 100) if total else 0.0,
            avg_duration_ms=float(avg_ms) if avg_ms is not None else None,
            min_duration_ms=min_ms,
            max_duration_ms=max_ms,
        )
