"""Admin review of agent payout requests."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursehub.auth.dependencies import require_admin
from coursehub.db import get_db
from coursehub.models import PayoutRequest, PayoutRequestStatus, User
from coursehub.schemas.common import Pagination, ok
from coursehub.schemas.payout import PayoutRequestProcess, PayoutRequestResponse
from coursehub.services.payouts import process_payout_request
from coursehub.utils.audit import get_client_ip

router = APIRouter(prefix="/payout-requests")


@router.get("")
async def list_payout_requests(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    status: Optional[PayoutRequestStatus] = Query(None),
    agent_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    query = select(PayoutRequest).options(selectinload(PayoutRequest.commissions))

    if status:
        query = query.where(PayoutRequest.status == status)

    if agent_id:
        query = query.where(PayoutRequest.agent_id == agent_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0

    query = query.order_by(PayoutRequest.created_at.desc(), PayoutRequest.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)

    return ok({
        "requests": [PayoutRequestResponse.from_model(r) for r in result.scalars().all()],
        "pagination": Pagination.build(page, limit, total),
    })


@router.put("/{request_id}/process")
async def process_request(
    request: Request,
    request_id: int,
    data: PayoutRequestProcess,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Approve, reject or complete a payout request."""
    payout_request = await process_payout_request(
        db,
        request_id,
        data.decision,
        acting_admin_id=current_user.id,
        admin_notes=data.admin_notes,
        rejection_reason=data.rejection_reason,
        payout_reference=data.payout_reference,
        ip_address=get_client_ip(request),
    )
    return ok(
        PayoutRequestResponse.from_model(payout_request),
        f"Payout request {payout_request.status.value}",
    )
