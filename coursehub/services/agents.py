"""
Agent lifecycle: application, approval and bank details.

None of this touches commissions. Bank details gate payouts, approval gates
commissions only when COMMISSION_REQUIRES_ACTIVE_AGENT is enabled.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursehub.config import settings
from coursehub.models import AuditAction, BankDetails, User, UserRole
from coursehub.models.base import utc_now
from coursehub.services.exceptions import InvalidState, NotFound, ValidationError
from coursehub.utils.audit import log_action

logger = logging.getLogger(__name__)

BANK_FIELDS = (
    "account_holder_name",
    "account_number",
    "bank_name",
    "routing_number",
    "swift_code",
    "iban",
)


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.scalar(
        select(User).options(selectinload(User.bank_details)).where(User.id == user_id)
    )
    if not user:
        raise NotFound("User not found", details={"user_id": user_id})
    return user


async def apply_as_agent(
    db: AsyncSession,
    user_id: int,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> User:
    """Turn a regular user into an agent awaiting approval."""
    user = await _get_user(db, user_id)

    if user.role == UserRole.AGENT:
        raise InvalidState("Already an agent")
    if user.role == UserRole.ADMIN:
        raise InvalidState("Admins cannot become agents")

    user.role = UserRole.AGENT
    user.is_active_agent = False
    user.commission_rate = settings.default_commission_rate
    if first_name:
        user.first_name = first_name
    if last_name:
        user.last_name = last_name

    await log_action(
        db,
        user.id,
        AuditAction.APPLY_AGENT,
        target_type="user",
        target_id=user.id,
        ip_address=ip_address,
    )
    await db.flush()

    logger.info(f"User {user.id} applied to become an agent")
    return user


async def approve_agent(
    db: AsyncSession,
    agent_id: int,
    acting_admin_id: int,
    commission_rate=None,
    ip_address: Optional[str] = None,
) -> User:
    """Approve an agent application, optionally setting their rate."""
    user = await _get_user(db, agent_id)

    if user.role != UserRole.AGENT:
        raise InvalidState("User is not an agent")
    if user.is_active_agent:
        raise InvalidState("Agent is already approved")

    if commission_rate is not None:
        if not 0 <= commission_rate <= 100:
            raise ValidationError("Commission rate must be between 0 and 100")
        user.commission_rate = commission_rate

    user.is_active_agent = True
    user.agent_approved_at = utc_now()

    await log_action(
        db,
        acting_admin_id,
        AuditAction.APPROVE_AGENT,
        target_type="user",
        target_id=user.id,
        action_metadata={"commission_rate": str(user.commission_rate)},
        ip_address=ip_address,
    )
    await db.flush()

    logger.info(f"Agent {user.id} approved by admin {acting_admin_id}")
    return user


async def update_bank_details(
    db: AsyncSession,
    user_id: int,
    data: Dict[str, Any],
    ip_address: Optional[str] = None,
) -> BankDetails:
    """
    Create or edit the agent's bank details.

    Any change to the stored details clears verification.
    """
    user = await _get_user(db, user_id)
    if user.role != UserRole.AGENT:
        raise InvalidState("Only agents can add bank details")

    bank = user.bank_details
    if bank is None:
        bank = BankDetails(user_id=user.id)
        db.add(bank)
        user.bank_details = bank

    changed = []
    for name in BANK_FIELDS:
        if name not in data:
            continue
        value = data[name]
        if isinstance(value, str):
            value = value.strip() or None
        if getattr(bank, name) != value:
            setattr(bank, name, value)
            changed.append(name)

    if changed and bank.is_verified:
        bank.is_verified = False
        bank.verified_at = None
        bank.verified_by_id = None
        bank.verification_notes = None
        logger.info(f"Bank details of user {user.id} changed, verification reset")

    await log_action(
        db,
        user.id,
        AuditAction.UPDATE_BANK_DETAILS,
        target_type="bank_details",
        target_id=user.id,
        action_metadata={"fields": changed},
        ip_address=ip_address,
    )
    await db.flush()
    return bank


async def verify_bank_details(
    db: AsyncSession,
    agent_id: int,
    is_verified: bool,
    acting_admin_id: int,
    notes: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> BankDetails:
    """Admin marks bank details verified (or revokes verification)."""
    user = await _get_user(db, agent_id)

    if user.role != UserRole.AGENT:
        raise InvalidState("Only agents can have bank details verified")

    bank = user.bank_details
    if not bank or not bank.is_complete:
        raise InvalidState("Agent has not provided bank details yet")

    bank.is_verified = is_verified
    bank.verification_notes = notes
    bank.verified_at = utc_now()
    bank.verified_by_id = acting_admin_id

    await log_action(
        db,
        acting_admin_id,
        AuditAction.VERIFY_BANK_DETAILS,
        target_type="bank_details",
        target_id=user.id,
        action_metadata={"is_verified": is_verified},
        ip_address=ip_address,
    )
    await db.flush()

    logger.info(
        f"Bank details of agent {user.id} "
        f"{'verified' if is_verified else 'unverified'} by admin {acting_admin_id}"
    )
    return bank
