from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.models.investment import Investment
from app.models.investor import Investor
from app.models.loan import Loan
from app.models.loan_approval import LoanApproval
from app.models.loan_disbursement import LoanDisbursement
from app.services.workflow_errors import (
    ApprovalNotFound,
    CollaboratorUnavailable,
    ConcurrentUpdate,
    DisbursementNotFound,
    InvestorNotFound,
    LoanNotFound,
    ValidationFailed,
)


UNIQUE_VIOLATION = "23505"


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        state = _sqlstate(exc)
        if state is not None and state != UNIQUE_VIOLATION:
            # CHECK, NOT NULL and FK violations mean the input itself was rejected.
            raise ValidationFailed(
                "The request was rejected by a storage constraint",
                details={"operation": operation, "sqlstate": state},
            ) from exc
        raise ConcurrentUpdate(
            "The loan was updated by another request. Please refresh and retry.",
            details={"operation": operation},
        ) from exc
    except StaleDataError as exc:
        raise ConcurrentUpdate(
            "The loan was updated by another request. Please refresh and retry.",
            details={"operation": operation},
        ) from exc
    except SQLAlchemyError as exc:
        raise CollaboratorUnavailable("storage", f"Storage failure during {operation}") from exc


class LoanStore:
    """Durable entity store over one ``AsyncSession``.

    Writes are flushed but not committed; the workflow calls ``commit`` once
    all writes of an operation succeeded, or ``rollback`` otherwise.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _add(self, obj, operation: str):
        with _storage_errors(operation):
            self.db.add(obj)
            await self.db.flush()
        return obj

    async def create_loan(self, loan: Loan) -> Loan:
        return await self._add(loan, "create_loan")

    async def get_loan_by_id(self, loan_id: UUID) -> Loan:
        with _storage_errors("get_loan_by_id"):
            loan = await self.db.get(Loan, loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        return loan

    async def get_loans_by_state(self, state: str) -> list[Loan]:
        stmt = select(Loan).where(Loan.state == state).order_by(Loan.created_at.desc())
        with _storage_errors("get_loans_by_state"):
            result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update_loan(self, loan: Loan) -> Loan:
        return await self._add(loan, "update_loan")

    async def create_approval(self, approval: LoanApproval) -> LoanApproval:
        return await self._add(approval, "create_approval")

    async def get_approval_by_loan_id(self, loan_id: UUID) -> LoanApproval:
        with _storage_errors("get_approval_by_loan_id"):
            approval = await self.db.get(LoanApproval, loan_id)
        if approval is None:
            raise ApprovalNotFound(loan_id)
        return approval

    async def create_investment(self, investment: Investment) -> Investment:
        return await self._add(investment, "create_investment")

    async def get_investments_by_loan_id(self, loan_id: UUID) -> list[Investment]:
        stmt = (
            select(Investment)
            .where(Investment.loan_id == loan_id)
            .order_by(Investment.created_at.asc())
        )
        with _storage_errors("get_investments_by_loan_id"):
            result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_total_invested_by_loan_id(self, loan_id: UUID) -> Decimal:
        stmt = select(func.coalesce(func.sum(Investment.amount), 0)).where(
            Investment.loan_id == loan_id
        )
        with _storage_errors("get_total_invested_by_loan_id"):
            result = await self.db.execute(stmt)
        total = result.scalar_one()
        return total if isinstance(total, Decimal) else Decimal(str(total))

    async def create_disbursement(self, disbursement: LoanDisbursement) -> LoanDisbursement:
        return await self._add(disbursement, "create_disbursement")

    async def get_disbursement_by_loan_id(self, loan_id: UUID) -> LoanDisbursement:
        with _storage_errors("get_disbursement_by_loan_id"):
            disbursement = await self.db.get(LoanDisbursement, loan_id)
        if disbursement is None:
            raise DisbursementNotFound(loan_id)
        return disbursement

    async def create_investor(self, investor: Investor) -> Investor:
        return await self._add(investor, "create_investor")

    async def get_investor_by_id(self, investor_id: UUID) -> Investor:
        with _storage_errors("get_investor_by_id"):
            investor = await self.db.get(Investor, investor_id)
        if investor is None:
            raise InvestorNotFound(investor_id)
        return investor

    async def get_investor_by_email(self, email: str) -> Investor | None:
        stmt = select(Investor).where(Investor.email == email)
        with _storage_errors("get_investor_by_email"):
            result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_investor_emails(self, investor_ids: Iterable[UUID]) -> dict[UUID, str]:
        ids = list(dict.fromkeys(investor_ids))
        if not ids:
            return {}
        stmt = select(Investor).where(Investor.id.in_(ids))
        with _storage_errors("get_investor_emails"):
            result = await self.db.execute(stmt)
        return {investor.id: investor.email for investor in result.scalars().all()}

    async def commit(self) -> None:
        with _storage_errors("commit"):
            await self.db.commit()

    async def rollback(self) -> None:
        with _storage_errors("rollback"):
            await self.db.rollback()
