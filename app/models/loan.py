import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        CheckConstraint("principal_amount > 0", name="ck_loan_principal_positive"),
        CheckConstraint("rate >= 0", name="ck_loan_rate_nonneg"),
        CheckConstraint("roi >= 0", name="ck_loan_roi_nonneg"),
        CheckConstraint("version >= 1", name="ck_loan_version_positive"),
        CheckConstraint(
            "state IN ('proposed', 'approved', 'invested', 'disbursed')",
            name="ck_loan_state",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    principal_amount = Column(Numeric(18, 2), nullable=False)
    rate = Column(Numeric(10, 4), nullable=False)
    roi = Column(Numeric(10, 4), nullable=False)
    agreement_letter_url = Column(String(1024), nullable=True)
    state = Column(String(20), nullable=False, default="proposed", index=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}
