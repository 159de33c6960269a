"""Concurrency utilities for apihost."""

from apihost.concurrency.locks import (
    cleanup_resource_locks,
    get_api_lock,
    get_upload_lock,
)

__all__ = ["get_api_lock", "get_upload_lock", "cleanup_resource_locks"]
