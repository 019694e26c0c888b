from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_actor_id
from app.db.session import get_db
from app.services.loan_store import LoanStore
from app.services.loan_workflow import LoanWorkflow
from app.services.notifications import get_notification_sender
from app.services.storage.adapter import get_document_store
from app.utils.redis_client import get_redis_client


async def get_actor_id(actor_id: str | None = Header(default=None, alias="X-Actor-ID")) -> UUID:
    """Identity of the caller, as established by the upstream auth layer."""
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "X-Actor-ID header is required"},
        )
    try:
        parsed = UUID(actor_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_actor_id", "message": "X-Actor-ID must be a UUID"},
        ) from exc
    set_actor_id(str(parsed))
    return parsed


async def get_loan_workflow(db: AsyncSession = Depends(get_db)) -> LoanWorkflow:
    return LoanWorkflow(
        store=LoanStore(db),
        redis=get_redis_client(),
        documents=get_document_store(),
        notifier=get_notification_sender(),
    )
