"""
Audit trail for money-moving and account actions.

Entries are added to the caller's session, so they commit or roll back
together with the change they describe.
"""

import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.models.audit import AuditAction, AuditLog

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    """Decimals become strings so amounts keep their cents in the JSON column."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


async def log_action(
    db: AsyncSession,
    user_id: Optional[int],
    action: AuditAction,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action_metadata: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Record one action.

    Args:
        user_id: Acting user, None for scheduled jobs
        target_type: "payment", "commission", "payout_request", ...
        action_metadata: Amounts, ids and old/new statuses
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        action_metadata=_jsonable(action_metadata) if action_metadata else None,
        ip_address=ip_address,
    )
    db.add(entry)
    logger.debug(f"Audit {action.value} by {user_id} on {target_type}:{target_id}")
    return entry


def get_client_ip(request) -> Optional[str]:
    """Client address, honouring X-Forwarded-For from the reverse proxy."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    if request.client:
        return request.client.host
    return None
