"""Redis-backed idempotency markers for state-changing loan operations.

A marker is written only after every durable write of an operation has
committed. Its presence means the operation already happened, so a verbatim
retry is rejected with ``DuplicateRequest``. Markers expire after the
configured TTL; older retries are treated as new requests.
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.services.workflow_errors import (
    CollaboratorUnavailable,
    DuplicateRequest,
    ValidationFailed,
)


logger = logging.getLogger(__name__)

KEY_PREFIX = "idempotency"
MAX_TOKEN_LENGTH = 100


def validate_token(value: str | None) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationFailed(
            "Idempotency-Key is required",
            details={"field": "Idempotency-Key"},
        )
    if len(cleaned) > MAX_TOKEN_LENGTH:
        raise ValidationFailed(
            "Idempotency-Key is too long",
            details={"field": "Idempotency-Key", "max_length": MAX_TOKEN_LENGTH},
        )
    return cleaned


def approval_key(loan_id, token: str) -> str:
    return f"approve:{loan_id}:{validate_token(token)}"


def investment_key(loan_id, investor_id, token: str) -> str:
    # Investor id is part of the key so two investors reusing a token don't collide.
    return f"invest:{loan_id}:{investor_id}:{validate_token(token)}"


def disbursement_key(loan_id, token: str) -> str:
    return f"disburse:{loan_id}:{validate_token(token)}"


class IdempotencyGuard:
    def __init__(self, redis: Redis, *, ttl_seconds: int) -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _redis_key(key: str) -> str:
        return f"{KEY_PREFIX}:{key}"

    async def is_used(self, key: str) -> bool:
        try:
            return bool(await self.redis.exists(self._redis_key(key)))
        except RedisError as exc:
            raise CollaboratorUnavailable(
                "coordination_store", "Unable to check idempotency key"
            ) from exc

    async def ensure_unused(self, key: str) -> None:
        if await self.is_used(key):
            raise DuplicateRequest(key)

    async def commit(self, key: str, marker: str, ttl_seconds: int | None = None) -> bool:
        ttl = ttl_seconds or self.ttl_seconds
        try:
            stored = await self.redis.set(self._redis_key(key), marker, ex=max(1, ttl), nx=True)
        except RedisError as exc:
            raise CollaboratorUnavailable(
                "coordination_store", "Unable to record idempotency key"
            ) from exc
        return bool(stored)

    async def commit_quietly(self, key: str, marker: str) -> None:
        """Record the marker; failures are logged because the durable writes already happened."""
        try:
            stored = await self.commit(key, marker)
        except CollaboratorUnavailable:
            logger.warning("Idempotency marker not recorded key=%s", key, exc_info=True)
            return
        if not stored:
            logger.warning("Idempotency marker already present key=%s", key)
