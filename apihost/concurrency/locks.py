"""Per-resource in-memory locks for concurrency control.

Two independent lock families exist per API resource:
- transition lock: serializes deploy/stop/update/delete and the final
  artifact swap
- upload lock: serializes artifact uploads (blob writes) for one resource

Note: These locks only work within a single process/instance.
For multi-instance deployments the registry also re-reads rows with
SELECT ... FOR UPDATE and commits with a compare-and-swap on lock_version.
"""

from __future__ import annotations

import asyncio

# Key: "<family>:<api_id>", Value: asyncio.Lock
_locks: dict[str, asyncio.Lock] = {}
_locks_lock = asyncio.Lock()


async def _get_lock(key: str) -> asyncio.Lock:
    async with _locks_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            _locks[key] = lock
        return lock


async def get_api_lock(api_id: str) -> asyncio.Lock:
    """Get or create the lifecycle transition lock for an API resource.

    Transitions on different resources never share a lock, so they
    proceed fully in parallel.
    """
    return await _get_lock(f"api:{api_id}")


async def get_upload_lock(api_id: str) -> asyncio.Lock:
    """Get or create the artifact upload lock for an API resource."""
    return await _get_lock(f"upload:{api_id}")


async def cleanup_resource_locks(api_id: str) -> None:
    """Drop both locks of a deleted resource.

    Called after deletion to free memory.
    """
    async with _locks_lock:
        _locks.pop(f"api:{api_id}", None)
        _locks.pop(f"upload:{api_id}", None)

