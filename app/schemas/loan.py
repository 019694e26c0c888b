from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LoanState(str, Enum):
    PROPOSED = "proposed"
    APPROVED = "approved"
    INVESTED = "invested"
    DISBURSED = "disbursed"


class LoanCreateRequest(BaseModel):
    borrower_id: UUID
    principal_amount: Decimal = Field(gt=0)
    rate: Decimal = Field(ge=0)
    roi: Decimal = Field(ge=0)


class InvestRequest(BaseModel):
    investor_id: UUID
    amount: Decimal = Field(gt=0)


class LoanDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: lambda value: str(value)})

    id: UUID
    borrower_id: UUID
    principal_amount: Decimal
    rate: Decimal
    roi: Decimal
    agreement_letter_url: str | None = None
    state: LoanState
    created_at: datetime
    updated_at: datetime


class LoanListResponse(BaseModel):
    items: list[LoanDTO]
    total: int


class LoanApprovalDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    loan_id: UUID
    employee_id: UUID
    picture_proof_url: str
    approval_date: datetime
    created_at: datetime


class InvestmentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: lambda value: str(value)})

    id: UUID
    loan_id: UUID
    investor_id: UUID
    amount: Decimal
    created_at: datetime


class LoanDisbursementDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    loan_id: UUID
    employee_id: UUID
    signed_agreement_url: str
    disbursement_date: datetime
    created_at: datetime


class InvestmentSummaryResponse(BaseModel):
    model_config = ConfigDict(json_encoders={Decimal: lambda value: str(value)})

    loan_id: UUID
    principal_amount: Decimal
    total_invested: Decimal
    remaining_amount: Decimal
    fully_funded: bool
    investments: list[InvestmentDTO]


class InvestResponse(BaseModel):
    model_config = ConfigDict(json_encoders={Decimal: lambda value: str(value)})

    investment: InvestmentDTO
    loan: LoanDTO
    total_invested: Decimal
    fully_funded: bool
