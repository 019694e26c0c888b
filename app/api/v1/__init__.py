from fastapi import APIRouter

from app.api.v1.routers import health, investors, loans

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(loans.router)
api_router.include_router(investors.router)

__all__ = ["api_router"]
