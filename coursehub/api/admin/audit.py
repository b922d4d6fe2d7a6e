"""Admin audit log API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursehub.auth.dependencies import require_admin
from coursehub.db import get_db
from coursehub.models import AuditAction, AuditLog, User
from coursehub.schemas.common import Pagination, ok

router = APIRouter(prefix="/audit")


@router.get("")
async def list_audit_logs(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    user_id: Optional[int] = Query(None),
    action: Optional[AuditAction] = Query(None),
    target_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
):
    """Audit trail of money-moving actions, newest first."""
    query = select(AuditLog).options(selectinload(AuditLog.user))

    if user_id:
        query = query.where(AuditLog.user_id == user_id)

    if action:
        query = query.where(AuditLog.action == action)

    if target_type:
        query = query.where(AuditLog.target_type == target_type)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)

    return ok({
        "logs": [
            {
                "id": log.id,
                "user_id": log.user_id,
                "username": log.user.username if log.user else "system",
                "action": log.action.value,
                "target_type": log.target_type,
                "target_id": log.target_id,
                "metadata": log.action_metadata,
                "ip_address": log.ip_address,
                "created_at": log.created_at,
            }
            for log in result.scalars().all()
        ],
        "pagination": Pagination.build(page, limit, total),
    })
