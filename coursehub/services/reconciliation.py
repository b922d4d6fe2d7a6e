"""
Ledger reconciliation.

User.total_commission and User.total_referrals are caches of the commission
ledger. They are updated incrementally, and this module rebuilds them:
- total_commission = sum of the agent's pending + paid commissions
- total_referrals  = size of the agent's referral set

backfill_missing_commissions covers the other direction: completed referral
payments whose commission creation failed and was only logged.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.config import settings
from coursehub.models import (
    AuditAction,
    Commission,
    CommissionStatus,
    Payment,
    PaymentStatus,
    User,
    UserRole,
    agent_referrals,
)
from coursehub.services.commission import create_commission_safely
from coursehub.utils.audit import log_action
from coursehub.utils.money import to_money

logger = logging.getLogger(__name__)


async def reconcile_agent_totals(
    db: AsyncSession,
    agent_id: Optional[int] = None,
    acting_user_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Overwrite drifted agent counters with values derived from the ledger.

    Returns:
        One entry per corrected agent with old and new values
    """
    earned_query = (
        select(Commission.agent_id, func.coalesce(func.sum(Commission.amount), 0))
        .where(Commission.status.in_([CommissionStatus.PENDING, CommissionStatus.PAID]))
        .group_by(Commission.agent_id)
    )
    referrals_query = (
        select(agent_referrals.c.agent_id, func.count())
        .group_by(agent_referrals.c.agent_id)
    )
    users_query = select(User).where(
        or_(
            User.role == UserRole.AGENT,
            User.total_commission != 0,
            User.total_referrals != 0,
            User.id.in_(select(Commission.agent_id)),
        )
    )
    if agent_id is not None:
        earned_query = earned_query.where(Commission.agent_id == agent_id)
        referrals_query = referrals_query.where(agent_referrals.c.agent_id == agent_id)
        users_query = select(User).where(User.id == agent_id)

    earned = {aid: to_money(total) for aid, total in (await db.execute(earned_query)).all()}
    referrals = dict((await db.execute(referrals_query)).all())
    users = (
        await db.execute(
            users_query.order_by(User.id).execution_options(populate_existing=True)
        )
    ).scalars().all()

    corrections = []
    for user in users:
        expected_commission = earned.get(user.id, to_money(0))
        expected_referrals = referrals.get(user.id, 0)
        current_commission = to_money(user.total_commission or 0)
        current_referrals = user.total_referrals or 0

        if (
            current_commission == expected_commission
            and current_referrals == expected_referrals
        ):
            continue

        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                total_commission=expected_commission,
                total_referrals=expected_referrals,
            )
        )
        corrections.append({
            "agent_id": user.id,
            "total_commission": {"old": str(current_commission), "new": str(expected_commission)},
            "total_referrals": {"old": current_referrals, "new": expected_referrals},
        })
        logger.warning(
            f"Agent {user.id} counters drifted: commission {current_commission} -> "
            f"{expected_commission}, referrals {current_referrals} -> {expected_referrals}"
        )

    if corrections:
        await log_action(
            db,
            acting_user_id,
            AuditAction.RECONCILE_LEDGER,
            target_type="user",
            target_id=agent_id,
            action_metadata={"corrections": corrections},
        )
        await db.flush()

    return corrections


async def backfill_missing_commissions(db: AsyncSession) -> Dict[str, Any]:
    """
    Create commissions for completed referral payments that have none.

    Uses the referrer's current rate and eligibility. Payments whose referrer
    is no longer an eligible agent are left out of the query, so they are not
    re-checked on every run.
    """
    has_commission = select(Commission.id).where(Commission.payment_id == Payment.id).exists()
    query = (
        select(Payment)
        .join(User, User.id == Payment.referral_agent_id)
        .where(
            Payment.status == PaymentStatus.COMPLETED,
            User.role == UserRole.AGENT,
            ~has_commission,
        )
        .order_by(Payment.created_at, Payment.id)
    )
    if settings.commission_requires_active_agent:
        query = query.where(User.is_active_agent.is_(True))
    payments = (await db.execute(query)).scalars().all()

    created: List[int] = []
    skipped: List[int] = []
    failed: List[Dict[str, Any]] = []

    for payment in payments:
        commission, warning = await create_commission_safely(
            db, payment, payment.referral_agent_id
        )
        if commission:
            created.append(commission.id)
        elif warning:
            failed.append({"payment_id": payment.id, "error": warning})
        else:
            # Referrer lost eligibility since the query ran
            skipped.append(payment.id)

    if payments:
        logger.info(
            f"Commission backfill: {len(payments)} payments checked, "
            f"{len(created)} created, {len(skipped)} skipped, {len(failed)} failed"
        )

    return {
        "checked": len(payments),
        "created": created,
        "skipped": skipped,
        "failed": failed,
    }


async def run_reconciliation(
    db: AsyncSession,
    acting_user_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Backfill first, then rebuild counters so they include the new rows."""
    backfill = await backfill_missing_commissions(db)
    corrections = await reconcile_agent_totals(db, acting_user_id=acting_user_id)
    return {"backfill": backfill, "corrections": corrections}
