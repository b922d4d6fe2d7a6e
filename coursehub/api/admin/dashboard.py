"""Admin dashboard and ledger maintenance endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.auth.dependencies import require_admin
from coursehub.db import get_db
from coursehub.models import User
from coursehub.schemas.common import ok
from coursehub.services.reconciliation import run_reconciliation
from coursehub.services.rollups import admin_overview, monthly_commission_trend

router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    overview = await admin_overview(db)
    overview["commission_trend"] = await monthly_commission_trend(db)
    return ok(overview)


@router.post("/ledger/reconcile")
async def reconcile_ledger(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Backfill missing commissions, then rebuild agent totals from the ledger.

    Same work as the scheduled reconciliation job.
    """
    result = await run_reconciliation(db, acting_user_id=current_user.id)
    return ok(result, "Ledger reconciled")
