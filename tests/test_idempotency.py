from uuid import uuid4

import pytest

from conftest import FakeRedis
from app.services import idempotency
from app.services.idempotency import IdempotencyGuard
from app.services.workflow_errors import (
    CollaboratorUnavailable,
    DuplicateRequest,
    ValidationFailed,
)


@pytest.mark.parametrize("token", [None, "", "   "])
def test_missing_token_is_rejected(token):
    with pytest.raises(ValidationFailed) as exc_info:
        idempotency.validate_token(token)
    assert exc_info.value.details["field"] == "Idempotency-Key"


def test_token_length_is_capped():
    assert idempotency.validate_token("k" * 100) == "k" * 100
    with pytest.raises(ValidationFailed):
        idempotency.validate_token("k" * 101)


def test_keys_are_scoped_per_operation_and_investor():
    loan_id = uuid4()
    investor_a, investor_b = uuid4(), uuid4()
    assert idempotency.approval_key(loan_id, " tok ") == f"approve:{loan_id}:tok"
    assert idempotency.disbursement_key(loan_id, "tok") == f"disburse:{loan_id}:tok"
    assert idempotency.investment_key(loan_id, investor_a, "tok") != idempotency.investment_key(
        loan_id, investor_b, "tok"
    )


@pytest.mark.asyncio
async def test_commit_then_retry_is_duplicate():
    redis = FakeRedis()
    guard = IdempotencyGuard(redis, ttl_seconds=120)
    key = idempotency.approval_key(uuid4(), "tok")

    await guard.ensure_unused(key)
    assert await guard.commit(key, "approved") is True
    assert redis.store[f"idempotency:{key}"] == "approved"
    assert redis.ttls[f"idempotency:{key}"] == 120

    with pytest.raises(DuplicateRequest):
        await guard.ensure_unused(key)


@pytest.mark.asyncio
async def test_commit_does_not_overwrite_existing_marker():
    redis = FakeRedis()
    guard = IdempotencyGuard(redis, ttl_seconds=120)
    assert await guard.commit("k", "first") is True
    assert await guard.commit("k", "second", ttl_seconds=5) is False
    assert redis.store["idempotency:k"] == "first"


@pytest.mark.asyncio
async def test_redis_failure_on_check_is_collaborator_unavailable():
    guard = IdempotencyGuard(FakeRedis(fail_on={"exists"}), ttl_seconds=60)
    with pytest.raises(CollaboratorUnavailable) as exc_info:
        await guard.is_used("k")
    assert exc_info.value.collaborator == "coordination_store"


@pytest.mark.asyncio
async def test_commit_quietly_logs_instead_of_raising(caplog):
    guard = IdempotencyGuard(FakeRedis(fail_on={"set"}), ttl_seconds=60)
    with caplog.at_level("WARNING", logger="app.services.idempotency"):
        await guard.commit_quietly("k", "approved")
    assert "Idempotency marker not recorded" in caplog.text
