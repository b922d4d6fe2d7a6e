"""Admin agent management endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.auth.dependencies import require_admin
from coursehub.db import get_db
from coursehub.models import User, UserRole
from coursehub.schemas.common import ok
from coursehub.schemas.user import (
    AgentApproveRequest,
    BankDetailsResponse,
    BankVerificationRequest,
    UserResponse,
)
from coursehub.services.agents import approve_agent, verify_bank_details
from coursehub.utils.audit import get_client_ip

router = APIRouter(prefix="/agents")


@router.get("")
async def list_agents(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    approved: Optional[bool] = Query(None),
):
    query = select(User).where(User.role == UserRole.AGENT)
    if approved is not None:
        query = query.where(User.is_active_agent.is_(approved))

    result = await db.execute(query.order_by(User.created_at.desc()))
    return ok([UserResponse.model_validate(u) for u in result.scalars().all()])


@router.put("/{agent_id}/approve")
async def approve(
    request: Request,
    agent_id: int,
    data: AgentApproveRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    agent = await approve_agent(
        db,
        agent_id,
        acting_admin_id=current_user.id,
        commission_rate=data.commission_rate,
        ip_address=get_client_ip(request),
    )
    return ok(UserResponse.model_validate(agent), "Agent approved")


@router.put("/{agent_id}/verify-bank-details")
async def verify_bank(
    request: Request,
    agent_id: int,
    data: BankVerificationRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    bank = await verify_bank_details(
        db,
        agent_id,
        data.is_verified,
        acting_admin_id=current_user.id,
        notes=data.notes,
        ip_address=get_client_ip(request),
    )
    return ok(
        BankDetailsResponse.from_model(bank),
        "Bank details verified" if bank.is_verified else "Bank details verification revoked",
    )
