from sqlalchemy import Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class LoanDisbursement(Base):
    __tablename__ = "loan_disbursements"

    loan_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loans.id", ondelete="CASCADE"),
        primary_key=True,
    )
    employee_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    signed_agreement_url = Column(String(1024), nullable=False)
    disbursement_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
