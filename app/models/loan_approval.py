from sqlalchemy import Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class LoanApproval(Base):
    __tablename__ = "loan_approvals"

    loan_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loans.id", ondelete="CASCADE"),
        primary_key=True,
    )
    employee_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    picture_proof_url = Column(String(1024), nullable=False)
    approval_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
