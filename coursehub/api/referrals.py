"""
Referral program endpoints for agents.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursehub.auth.dependencies import get_current_user, require_admin, require_agent
from coursehub.db import get_db
from coursehub.models import (
    BankDetails,
    Commission,
    CommissionStatus,
    PayoutRequest,
    PayoutRequestStatus,
    User,
)
from coursehub.schemas.commission import CommissionResponse
from coursehub.schemas.common import Pagination, ok
from coursehub.schemas.payout import PayoutRequestCreate, PayoutRequestResponse
from coursehub.schemas.user import (
    AgentApplyRequest,
    BankDetailsResponse,
    BankDetailsUpdate,
    UserResponse,
)
from coursehub.services.agents import apply_as_agent, update_bank_details
from coursehub.services.payouts import create_payout_request
from coursehub.services.rollups import (
    agent_commission_totals,
    agent_dashboard,
    referral_stats,
    top_agents,
)
from coursehub.utils.audit import get_client_ip

router = APIRouter(prefix="/referrals", tags=["Referrals"])


@router.get("/commissions")
async def list_my_commissions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_agent),
    status: Optional[CommissionStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Agent's commissions, newest first, with per-status totals."""
    query = select(Commission).where(Commission.agent_id == current_user.id)
    if status:
        query = query.where(Commission.status == status)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0

    query = query.order_by(Commission.created_at.desc(), Commission.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)

    return ok({
        "commissions": [CommissionResponse.model_validate(c) for c in result.scalars().all()],
        "stats": await agent_commission_totals(db, current_user.id),
        "pagination": Pagination.build(page, limit, total),
    })


@router.get("/dashboard")
async def my_dashboard(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_agent),
):
    return ok(await agent_dashboard(db, current_user.id))


@router.get("/stats")
async def my_referral_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_agent),
):
    """Referred users, buyers and monthly signups."""
    return ok(await referral_stats(db, current_user.id))


@router.post("/become-agent")
async def become_agent(
    request: Request,
    data: AgentApplyRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Switch to the agent role. Earning payouts still needs admin approval."""
    user = await apply_as_agent(
        db,
        current_user.id,
        first_name=data.first_name,
        last_name=data.last_name,
        ip_address=get_client_ip(request),
    )
    return ok(UserResponse.model_validate(user), "Agent application submitted")


@router.get("/bank-details")
async def get_my_bank_details(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_agent),
):
    bank = await db.scalar(select(BankDetails).where(BankDetails.user_id == current_user.id))
    return ok(BankDetailsResponse.from_model(bank) if bank else None)


@router.put("/bank-details")
async def put_my_bank_details(
    request: Request,
    data: BankDetailsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_agent),
):
    """Create or edit bank details. Any edit clears verification."""
    bank = await update_bank_details(
        db,
        current_user.id,
        data.model_dump(exclude_unset=True),
        ip_address=get_client_ip(request),
    )
    return ok(BankDetailsResponse.from_model(bank), "Bank details updated")


@router.post("/payout-requests")
async def request_payout(
    request: Request,
    data: PayoutRequestCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_agent),
):
    payout_request = await create_payout_request(
        db,
        current_user.id,
        data.amount,
        method=data.payment_method,
        notes=data.notes,
        commission_ids=data.commission_ids,
        ip_address=get_client_ip(request),
    )
    return ok(PayoutRequestResponse.from_model(payout_request), "Payout request submitted")


@router.get("/payout-requests")
async def list_my_payout_requests(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_agent),
    status: Optional[PayoutRequestStatus] = Query(None),
):
    query = (
        select(PayoutRequest)
        .options(selectinload(PayoutRequest.commissions))
        .where(PayoutRequest.agent_id == current_user.id)
    )
    if status:
        query = query.where(PayoutRequest.status == status)

    result = await db.execute(query.order_by(PayoutRequest.created_at.desc()))
    return ok([PayoutRequestResponse.from_model(r) for r in result.scalars().all()])


@router.get("/top-agents")
async def list_top_agents(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    limit: int = Query(10, ge=1, le=100),
):
    return ok(await top_agents(db, limit=limit))
