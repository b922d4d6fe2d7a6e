"""Admin commission and payout endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursehub.auth.dependencies import require_admin
from coursehub.db import get_db
from coursehub.models import Commission, CommissionStatus, Payout, PayoutStatus, User
from coursehub.schemas.commission import (
    BulkPayoutRequest,
    BulkPayoutResponse,
    CommissionResponse,
    CommissionStatusUpdate,
    ManualPayoutRequest,
    ManualPayoutResponse,
    PayoutResponse,
)
from coursehub.schemas.common import Pagination, ok
from coursehub.services.payouts import (
    process_bulk_payout,
    process_manual_payout,
    update_commission_status,
)
from coursehub.services.rollups import commission_status_totals
from coursehub.utils.audit import get_client_ip

router = APIRouter()


@router.get("/commissions")
async def list_commissions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    status: Optional[CommissionStatus] = Query(None),
    agent_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """All commissions with filters and per-status totals."""
    query = select(Commission).options(
        selectinload(Commission.agent),
        selectinload(Commission.referral),
    )

    if status:
        query = query.where(Commission.status == status)

    if agent_id:
        query = query.where(Commission.agent_id == agent_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0

    query = query.order_by(Commission.created_at.desc(), Commission.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)

    items = []
    for commission in result.scalars().all():
        item = CommissionResponse.model_validate(commission).model_dump()
        item["agent_username"] = commission.agent.username if commission.agent else None
        item["referral_username"] = commission.referral.username if commission.referral else None
        items.append(item)

    return ok({
        "commissions": items,
        "stats": await commission_status_totals(db, agent_id=agent_id),
        "pagination": Pagination.build(page, limit, total),
    })


@router.put("/commissions/{commission_id}/status")
async def set_commission_status(
    request: Request,
    commission_id: int,
    data: CommissionStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Mark one pending commission paid or cancelled."""
    commission = await update_commission_status(
        db,
        commission_id,
        data.status,
        acting_admin_id=current_user.id,
        method=data.payout_method,
        notes=data.notes,
        reference=data.payout_reference,
        ip_address=get_client_ip(request),
    )
    return ok(
        CommissionResponse.model_validate(commission),
        f"Commission marked as {commission.status.value}",
    )


@router.post("/commissions/bulk-payout")
async def bulk_payout(
    request: Request,
    data: BulkPayoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Mark a set of pending commissions paid in one go."""
    summary = await process_bulk_payout(
        db,
        data.commission_ids,
        data.payout_method,
        data.notes,
        acting_admin_id=current_user.id,
        ip_address=get_client_ip(request),
    )
    return ok(
        BulkPayoutResponse(
            count=summary.count,
            total_amount=summary.total_amount,
            method=summary.method,
            processed_at=summary.processed_at,
            commission_ids=summary.commission_ids,
        ),
        f"Paid {summary.count} commissions",
    )


@router.post("/commissions/payout")
async def manual_payout(
    request: Request,
    data: ManualPayoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Pay an agent an amount, oldest pending commissions first."""
    result = await process_manual_payout(
        db,
        data.agent_id,
        data.amount,
        method=data.payout_method,
        notes=data.notes,
        acting_admin_id=current_user.id,
        reference=data.payout_reference,
        ip_address=get_client_ip(request),
    )
    return ok(
        ManualPayoutResponse(
            payout=PayoutResponse.model_validate(result.payout),
            requested_amount=result.requested_amount,
            commission_ids=result.commission_ids,
            remaining_pending=result.remaining_pending,
        ),
        "Payout processed",
    )


@router.get("/payouts")
async def list_payouts(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    agent_id: Optional[int] = Query(None),
    status: Optional[PayoutStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    query = select(Payout)

    if agent_id:
        query = query.where(Payout.agent_id == agent_id)

    if status:
        query = query.where(Payout.status == status)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0

    query = query.order_by(Payout.created_at.desc(), Payout.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)

    return ok({
        "payouts": [PayoutResponse.model_validate(p) for p in result.scalars().all()],
        "pagination": Pagination.build(page, limit, total),
    })
