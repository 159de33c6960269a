"""Execution backend adapters."""

from apihost.adapters.base import BackendResponseError, ExecutionBackend, ExecutionResult
from apihost.adapters.executor import ExecutorAdapter

__all__ = [
    "BackendResponseError",
    "ExecutionBackend",
    "ExecutionResult",
    "ExecutorAdapter",
]
