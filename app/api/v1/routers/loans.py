from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Header, Query, UploadFile, status

from app.api import deps
from app.schemas.loan import (
    InvestmentDTO,
    InvestmentSummaryResponse,
    InvestRequest,
    InvestResponse,
    LoanApprovalDTO,
    LoanCreateRequest,
    LoanDisbursementDTO,
    LoanDTO,
    LoanListResponse,
    LoanState,
)
from app.services.loan_workflow import LoanWorkflow


router = APIRouter(prefix="/loans", tags=["loans"])


@router.post(
    "",
    response_model=LoanDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Propose a new loan",
)
async def create_loan(
    payload: LoanCreateRequest,
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> LoanDTO:
    loan = await workflow.create_loan(
        borrower_id=payload.borrower_id,
        principal_amount=payload.principal_amount,
        rate=payload.rate,
        roi=payload.roi,
    )
    return LoanDTO.model_validate(loan)


@router.get("", response_model=LoanListResponse, summary="List loans in a given state")
async def list_loans(
    state: LoanState = Query(...),
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> LoanListResponse:
    loans = await workflow.get_loans_by_state(state)
    return LoanListResponse(
        items=[LoanDTO.model_validate(loan) for loan in loans],
        total=len(loans),
    )


@router.get("/{loan_id}", response_model=LoanDTO, summary="Get a loan")
async def get_loan(
    loan_id: UUID,
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> LoanDTO:
    return LoanDTO.model_validate(await workflow.get_loan(loan_id))


@router.get("/{loan_id}/approval", response_model=LoanApprovalDTO, summary="Get loan approval")
async def get_loan_approval(
    loan_id: UUID,
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> LoanApprovalDTO:
    return LoanApprovalDTO.model_validate(await workflow.get_approval(loan_id))


@router.get(
    "/{loan_id}/disbursement",
    response_model=LoanDisbursementDTO,
    summary="Get loan disbursement",
)
async def get_loan_disbursement(
    loan_id: UUID,
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> LoanDisbursementDTO:
    return LoanDisbursementDTO.model_validate(await workflow.get_disbursement(loan_id))


@router.get(
    "/{loan_id}/investments",
    response_model=InvestmentSummaryResponse,
    summary="Funding progress and investments of a loan",
)
async def get_loan_investments(
    loan_id: UUID,
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> InvestmentSummaryResponse:
    summary = await workflow.get_investment_summary(loan_id)
    return InvestmentSummaryResponse(
        loan_id=summary.loan.id,
        principal_amount=summary.loan.principal_amount,
        total_invested=summary.total_invested,
        remaining_amount=summary.remaining_amount,
        fully_funded=summary.fully_funded,
        investments=[InvestmentDTO.model_validate(item) for item in summary.investments],
    )


@router.post("/{loan_id}/approve", response_model=LoanDTO, summary="Approve a proposed loan")
async def approve_loan(
    loan_id: UUID,
    approval_date: str = Form(...),
    picture_proof: UploadFile = File(...),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    employee_id: UUID = Depends(deps.get_actor_id),
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> LoanDTO:
    content = await picture_proof.read()
    loan = await workflow.approve_loan(
        loan_id,
        employee_id=employee_id,
        picture_proof=content,
        picture_proof_filename=picture_proof.filename or "picture_proof.bin",
        approval_date=approval_date,
        idempotency_key=idempotency_key,
    )
    return LoanDTO.model_validate(loan)


@router.post("/{loan_id}/invest", response_model=InvestResponse, summary="Invest in an approved loan")
async def invest(
    loan_id: UUID,
    payload: InvestRequest,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> InvestResponse:
    outcome = await workflow.invest(
        loan_id,
        investor_id=payload.investor_id,
        amount=payload.amount,
        idempotency_key=idempotency_key,
    )
    return InvestResponse(
        investment=InvestmentDTO.model_validate(outcome.investment),
        loan=LoanDTO.model_validate(outcome.loan),
        total_invested=outcome.total_invested,
        fully_funded=outcome.fully_funded,
    )


@router.post("/{loan_id}/disburse", response_model=LoanDTO, summary="Disburse an invested loan")
async def disburse_loan(
    loan_id: UUID,
    disbursement_date: str = Form(...),
    signed_agreement: UploadFile = File(...),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    employee_id: UUID = Depends(deps.get_actor_id),
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> LoanDTO:
    content = await signed_agreement.read()
    loan = await workflow.disburse_loan(
        loan_id,
        employee_id=employee_id,
        signed_agreement=content,
        signed_agreement_filename=signed_agreement.filename or "signed_agreement.bin",
        disbursement_date=disbursement_date,
        idempotency_key=idempotency_key,
    )
    return LoanDTO.model_validate(loan)
