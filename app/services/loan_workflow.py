"""Loan origination workflow: propose, approve, invest, disburse.

Every state-changing call follows the same discipline:

1. reject verbatim retries through the idempotency guard,
2. (investments only) hold the per-loan Redis lock,
3. load the loan and check legality against the state machine,
4. stage all durable writes on the request's session and commit once,
5. record the idempotency marker (best effort).

A failure before the commit rolls the session back and removes any document
stored during the call, so a partial transition is never visible.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.logging import get_audit_logger
from app.core.settings import settings
from app.models.investment import Investment
from app.models.investor import Investor
from app.models.loan import Loan
from app.models.loan_approval import LoanApproval
from app.models.loan_disbursement import LoanDisbursement
from app.schemas.loan import LoanDTO, LoanState
from app.services import idempotency, investment_aggregator, loan_state_machine
from app.services.idempotency import IdempotencyGuard
from app.services.loan_lock import loan_lock
from app.services.loan_store import LoanStore
from app.services.notifications import NotificationSender
from app.services.storage.adapter import DocumentStore
from app.services.workflow_errors import (
    CollaboratorUnavailable,
    ConcurrentUpdate,
    InvalidTransition,
    InvestorAlreadyRegistered,
    LoanWorkflowError,
    ValidationFailed,
)


logger = logging.getLogger(__name__)
audit_logger = get_audit_logger()

# Precision and scale of the Numeric(10, 4) rate and roi columns.
RATE_PLACES = 4
RATE_INTEGER_DIGITS = 6


@dataclass(frozen=True)
class InvestmentOutcome:
    investment: Investment
    loan: Loan
    total_invested: Decimal
    fully_funded: bool


@dataclass(frozen=True)
class InvestmentSummary:
    loan: Loan
    investments: list[Investment]
    total_invested: Decimal
    remaining_amount: Decimal
    fully_funded: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_timestamp(value, field: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationFailed(
                f"{field} must be an RFC 3339 timestamp", details={"field": field}
            ) from exc
    else:
        raise ValidationFailed(f"{field} is required", details={"field": field})
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _cache_key(loan_id) -> str:
    return f"cache:loan:{loan_id}"


def agreement_letter_path(loan_id) -> str:
    return f"agreements/{loan_id}.pdf"


class LoanWorkflow:
    def __init__(
        self,
        store: LoanStore,
        redis: Redis,
        documents: DocumentStore,
        notifier: NotificationSender,
        *,
        idempotency_ttl_seconds: int | None = None,
        lock_ttl_seconds: int | None = None,
        cache_ttl_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.redis = redis
        self.documents = documents
        self.notifier = notifier
        self.idempotency = IdempotencyGuard(
            redis, ttl_seconds=idempotency_ttl_seconds or settings.idempotency_ttl_seconds
        )
        self.lock_ttl_seconds = lock_ttl_seconds or settings.lock_ttl_seconds
        self.cache_ttl_seconds = cache_ttl_seconds or settings.loan_cache_ttl_seconds

    # -- commands --

    async def create_loan(self, *, borrower_id: UUID, principal_amount, rate, roi) -> Loan:
        principal_amount = investment_aggregator.coerce_decimal(
            principal_amount, "principal_amount"
        )
        rate = investment_aggregator.coerce_decimal(
            rate, "rate", places=RATE_PLACES, integer_digits=RATE_INTEGER_DIGITS
        )
        roi = investment_aggregator.coerce_decimal(
            roi, "roi", places=RATE_PLACES, integer_digits=RATE_INTEGER_DIGITS
        )
        if principal_amount <= 0:
            raise ValidationFailed(
                "principal_amount must be positive", details={"field": "principal_amount"}
            )
        if rate < 0 or roi < 0:
            raise ValidationFailed(
                "rate and roi must not be negative", details={"fields": ["rate", "roi"]}
            )

        now = _utcnow()
        loan = Loan(
            id=uuid4(),
            borrower_id=borrower_id,
            principal_amount=principal_amount,
            rate=rate,
            roi=roi,
            state=LoanState.PROPOSED.value,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.store.create_loan(loan)
            await self.store.commit()
        except Exception:
            await self._abort()
            raise
        audit_logger.info(
            "loan.created loan_id=%s borrower_id=%s principal=%s",
            loan.id,
            borrower_id,
            principal_amount,
        )
        return loan

    async def approve_loan(
        self,
        loan_id: UUID,
        *,
        employee_id: UUID,
        picture_proof: bytes,
        picture_proof_filename: str,
        approval_date,
        idempotency_key: str,
    ) -> Loan:
        key = idempotency.approval_key(loan_id, idempotency_key)
        await self.idempotency.ensure_unused(key)
        approved_at = _coerce_timestamp(approval_date, "approval_date")

        loan = await self.store.get_loan_by_id(loan_id)
        loan_state_machine.can_transition(loan.state, LoanState.APPROVED)

        proof_path = self.documents.store(picture_proof, picture_proof_filename)
        try:
            approval = LoanApproval(
                loan_id=loan.id,
                employee_id=employee_id,
                picture_proof_url=self.documents.url_for(proof_path),
                approval_date=approved_at,
                created_at=_utcnow(),
            )
            loan_state_machine.transition(loan, LoanState.APPROVED)
            await self.store.update_loan(loan)
            await self.store.create_approval(approval)
            await self.store.commit()
        except Exception:
            await self._abort(proof_path)
            raise

        await self.idempotency.commit_quietly(key, "approved")
        await self._evict_cached_loan(loan.id)
        audit_logger.info("loan.approved loan_id=%s employee_id=%s", loan.id, employee_id)
        return loan

    async def invest(
        self,
        loan_id: UUID,
        *,
        investor_id: UUID,
        amount,
        idempotency_key: str,
    ) -> InvestmentOutcome:
        key = idempotency.investment_key(loan_id, investor_id, idempotency_key)
        amount = investment_aggregator.coerce_decimal(amount, "amount")

        async with loan_lock(self.redis, loan_id, self.lock_ttl_seconds):
            await self.idempotency.ensure_unused(key)

            loan = await self.store.get_loan_by_id(loan_id)
            if loan.state != LoanState.APPROVED.value:
                raise InvalidTransition(
                    loan.state,
                    LoanState.INVESTED.value,
                    "loan must be in approved state to accept investments",
                )

            current_total = await self.store.get_total_invested_by_loan_id(loan.id)
            investment_aggregator.validate_amount(loan, amount, current_total)

            investment = Investment(
                id=uuid4(),
                loan_id=loan.id,
                investor_id=investor_id,
                amount=amount,
                created_at=_utcnow(),
            )
            try:
                await self.store.create_investment(investment)
                new_total = await self.store.get_total_invested_by_loan_id(loan.id)
                fully_funded = investment_aggregator.is_fully_funded(loan, new_total)
                if fully_funded:
                    loan_state_machine.transition(loan, LoanState.INVESTED)
                    await self.store.update_loan(loan)
                    loan.agreement_letter_url = self.documents.url_for(
                        agreement_letter_path(loan.id)
                    )
                    await self.store.update_loan(loan)
                await self.store.commit()
            except Exception:
                await self._abort()
                raise

            audit_logger.info(
                "loan.investment_added loan_id=%s investor_id=%s amount=%s total=%s",
                loan.id,
                investor_id,
                amount,
                new_total,
            )
            if fully_funded:
                audit_logger.info("loan.invested loan_id=%s total=%s", loan.id, new_total)
                await self._evict_cached_loan(loan.id)
                await self._notify_investors(loan)

            await self.idempotency.commit_quietly(key, "invested")

        return InvestmentOutcome(
            investment=investment,
            loan=loan,
            total_invested=new_total,
            fully_funded=fully_funded,
        )

    async def disburse_loan(
        self,
        loan_id: UUID,
        *,
        employee_id: UUID,
        signed_agreement: bytes,
        signed_agreement_filename: str,
        disbursement_date,
        idempotency_key: str,
    ) -> Loan:
        key = idempotency.disbursement_key(loan_id, idempotency_key)
        await self.idempotency.ensure_unused(key)
        disbursed_at = _coerce_timestamp(disbursement_date, "disbursement_date")

        loan = await self.store.get_loan_by_id(loan_id)
        loan_state_machine.can_transition(loan.state, LoanState.DISBURSED)

        agreement_path = self.documents.store(signed_agreement, signed_agreement_filename)
        try:
            disbursement = LoanDisbursement(
                loan_id=loan.id,
                employee_id=employee_id,
                signed_agreement_url=self.documents.url_for(agreement_path),
                disbursement_date=disbursed_at,
                created_at=_utcnow(),
            )
            loan_state_machine.transition(loan, LoanState.DISBURSED)
            await self.store.update_loan(loan)
            await self.store.create_disbursement(disbursement)
            await self.store.commit()
        except Exception:
            await self._abort(agreement_path)
            raise

        await self.idempotency.commit_quietly(key, "disbursed")
        await self._evict_cached_loan(loan.id)
        audit_logger.info("loan.disbursed loan_id=%s employee_id=%s", loan.id, employee_id)
        return loan

    async def register_investor(self, *, name: str, email: str) -> Investor:
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name:
            raise ValidationFailed("name is required", details={"field": "name"})
        if not email:
            raise ValidationFailed("email is required", details={"field": "email"})
        if await self.store.get_investor_by_email(email) is not None:
            raise InvestorAlreadyRegistered(email)

        investor = Investor(id=uuid4(), name=name, email=email, created_at=_utcnow())
        try:
            await self.store.create_investor(investor)
            await self.store.commit()
        except ConcurrentUpdate as exc:
            # Unique email index hit by a parallel registration.
            await self._abort()
            raise InvestorAlreadyRegistered(email) from exc
        except Exception:
            await self._abort()
            raise
        audit_logger.info("investor.registered investor_id=%s", investor.id)
        return investor

    # -- queries --

    async def get_loan(self, loan_id: UUID) -> Loan:
        loan = await self.store.get_loan_by_id(loan_id)
        await self._cache_loan(loan)
        return loan

    async def get_loans_by_state(self, state: LoanState | str) -> list[Loan]:
        try:
            state = LoanState(state)
        except ValueError as exc:
            raise ValidationFailed(
                "Invalid loan state",
                details={"field": "state", "allowed": [item.value for item in LoanState]},
            ) from exc
        return await self.store.get_loans_by_state(state.value)

    async def get_approval(self, loan_id: UUID) -> LoanApproval:
        await self.store.get_loan_by_id(loan_id)
        return await self.store.get_approval_by_loan_id(loan_id)

    async def get_disbursement(self, loan_id: UUID) -> LoanDisbursement:
        await self.store.get_loan_by_id(loan_id)
        return await self.store.get_disbursement_by_loan_id(loan_id)

    async def get_investor(self, investor_id: UUID) -> Investor:
        return await self.store.get_investor_by_id(investor_id)

    async def get_investment_summary(self, loan_id: UUID) -> InvestmentSummary:
        loan = await self.store.get_loan_by_id(loan_id)
        investments = await self.store.get_investments_by_loan_id(loan_id)
        total = await self.store.get_total_invested_by_loan_id(loan_id)
        return InvestmentSummary(
            loan=loan,
            investments=investments,
            total_invested=total,
            remaining_amount=investment_aggregator.remaining_amount(loan, total),
            fully_funded=investment_aggregator.is_fully_funded(loan, total),
        )

    # -- best-effort side channels --

    async def _abort(self, *document_paths: str) -> None:
        try:
            await self.store.rollback()
        except CollaboratorUnavailable:
            logger.warning("Rollback failed", exc_info=True)
        for path in document_paths:
            try:
                self.documents.delete(path)
            except CollaboratorUnavailable:
                logger.warning("Failed to delete orphaned document path=%s", path, exc_info=True)

    async def _notify_investors(self, loan: Loan) -> None:
        try:
            investments = await self.store.get_investments_by_loan_id(loan.id)
            investor_ids = list(dict.fromkeys(item.investor_id for item in investments))
            emails = await self.store.get_investor_emails(investor_ids)
        except LoanWorkflowError:
            logger.warning("Skipping agreement notices loan_id=%s", loan.id, exc_info=True)
            return

        await asyncio.gather(
            *(
                self._send_agreement_notice(loan, investor_id, emails.get(investor_id))
                for investor_id in investor_ids
            )
        )

    async def _send_agreement_notice(self, loan: Loan, investor_id: UUID, email: str | None) -> None:
        if not email:
            logger.warning(
                "No email on file for investor_id=%s loan_id=%s", investor_id, loan.id
            )
            return
        try:
            await self.notifier.send_agreement_notice(email, loan.agreement_letter_url)
        except Exception:
            logger.warning(
                "Agreement notice failed investor_id=%s loan_id=%s",
                investor_id,
                loan.id,
                exc_info=True,
            )

    async def _cache_loan(self, loan: Loan) -> None:
        try:
            await self.redis.setex(
                _cache_key(loan.id),
                self.cache_ttl_seconds,
                LoanDTO.model_validate(loan).model_dump_json(),
            )
        except RedisError:
            logger.debug("Loan cache refresh skipped loan_id=%s", loan.id, exc_info=True)

    async def _evict_cached_loan(self, loan_id: UUID) -> None:
        try:
            await self.redis.delete(_cache_key(loan_id))
        except RedisError:
            logger.debug("Loan cache eviction skipped loan_id=%s", loan_id, exc_info=True)
