"""loan origination tables

Revision ID: 0001_loan_origination
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_loan_origination"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "investors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("email", name="uq_investors_email"),
    )

    op.create_table(
        "loans",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("borrower_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("principal_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("rate", sa.Numeric(10, 4), nullable=False),
        sa.Column("roi", sa.Numeric(10, 4), nullable=False),
        sa.Column("agreement_letter_url", sa.String(length=1024), nullable=True),
        sa.Column("state", sa.String(length=20), nullable=False, server_default="proposed"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("principal_amount > 0", name="ck_loan_principal_positive"),
        sa.CheckConstraint("rate >= 0", name="ck_loan_rate_nonneg"),
        sa.CheckConstraint("roi >= 0", name="ck_loan_roi_nonneg"),
        sa.CheckConstraint("version >= 1", name="ck_loan_version_positive"),
        sa.CheckConstraint(
            "state IN ('proposed', 'approved', 'invested', 'disbursed')",
            name="ck_loan_state",
        ),
    )
    op.create_index("ix_loans_borrower_id", "loans", ["borrower_id"])
    op.create_index("ix_loans_state", "loans", ["state"])

    op.create_table(
        "loan_approvals",
        sa.Column("loan_id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("picture_proof_url", sa.String(length=1024), nullable=False),
        sa.Column("approval_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_loan_approvals_employee_id", "loan_approvals", ["employee_id"])

    op.create_table(
        "investments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("loan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("investor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_investment_amount_positive"),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_investments_loan_id", "investments", ["loan_id"])
    op.create_index("ix_investments_investor_id", "investments", ["investor_id"])
    op.create_index("ix_investments_loan_created", "investments", ["loan_id", "created_at"])

    op.create_table(
        "loan_disbursements",
        sa.Column("loan_id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("signed_agreement_url", sa.String(length=1024), nullable=False),
        sa.Column("disbursement_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_loan_disbursements_employee_id", "loan_disbursements", ["employee_id"])


def downgrade() -> None:
    op.drop_index("ix_loan_disbursements_employee_id", table_name="loan_disbursements")
    op.drop_table("loan_disbursements")
    op.drop_index("ix_investments_loan_created", table_name="investments")
    op.drop_index("ix_investments_investor_id", table_name="investments")
    op.drop_index("ix_investments_loan_id", table_name="investments")
    op.drop_table("investments")
    op.drop_index("ix_loan_approvals_employee_id", table_name="loan_approvals")
    op.drop_table("loan_approvals")
    op.drop_index("ix_loans_state", table_name="loans")
    op.drop_index("ix_loans_borrower_id", table_name="loans")
    op.drop_table("loans")
    op.drop_table("investors")
