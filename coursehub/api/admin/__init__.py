"""Admin API router aggregation."""

from fastapi import APIRouter

from coursehub.api.admin.agents import router as agents_router
from coursehub.api.admin.audit import router as audit_router
from coursehub.api.admin.commissions import router as commissions_router
from coursehub.api.admin.dashboard import router as dashboard_router
from coursehub.api.admin.payout_requests import router as payout_requests_router

admin_router = APIRouter(prefix="/admin", tags=["Admin"])

admin_router.include_router(dashboard_router)
admin_router.include_router(commissions_router)
admin_router.include_router(payout_requests_router)
admin_router.include_router(agents_router)
admin_router.include_router(audit_router)

__all__ = ["admin_router"]
