from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.services.workflow_errors import CollaboratorUnavailable, LockContended


logger = logging.getLogger(__name__)


def _lock_key(loan_id) -> str:
    return f"lock:invest:{loan_id}"


async def acquire(redis: Redis, loan_id, ttl_seconds: int) -> bool:
    try:
        return bool(await redis.set(_lock_key(loan_id), "1", ex=max(1, ttl_seconds), nx=True))
    except RedisError as exc:
        raise CollaboratorUnavailable("coordination_store", "Unable to acquire loan lock") from exc


async def release(redis: Redis, loan_id) -> None:
    try:
        await redis.delete(_lock_key(loan_id))
    except RedisError:
        # TTL expiry frees the lock if the delete never lands.
        logger.warning("Failed to release loan lock loan_id=%s", loan_id, exc_info=True)


@asynccontextmanager
async def loan_lock(redis: Redis, loan_id, ttl_seconds: int) -> AsyncIterator[None]:
    """Hold the per-loan investment lock for the body of the ``async with``.

    Contention is reported immediately as ``LockContended``; the caller retries.
    """
    if not await acquire(redis, loan_id, ttl_seconds):
        raise LockContended(
            "Loan is being updated by another request, please retry",
            details={"loan_id": str(loan_id)},
        )
    try:
        yield
    finally:
        await release(redis, loan_id)
