from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api import deps
from app.schemas.investor import InvestorCreateRequest, InvestorDTO
from app.services.loan_workflow import LoanWorkflow


router = APIRouter(prefix="/investors", tags=["investors"])


@router.post(
    "",
    response_model=InvestorDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Register an investor",
)
async def register_investor(
    payload: InvestorCreateRequest,
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> InvestorDTO:
    investor = await workflow.register_investor(name=payload.name, email=payload.email)
    return InvestorDTO.model_validate(investor)


@router.get("/{investor_id}", response_model=InvestorDTO, summary="Get an investor")
async def get_investor(
    investor_id: UUID,
    workflow: LoanWorkflow = Depends(deps.get_loan_workflow),
) -> InvestorDTO:
    return InvestorDTO.model_validate(await workflow.get_investor(investor_id))
