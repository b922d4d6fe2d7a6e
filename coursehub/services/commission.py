"""
Referral commission engine.

Rules:
- Commission = payment amount x agent rate (percent) / 100, rounded to cents
- Only users whose role is still `agent` earn commission on new payments
- With COMMISSION_REQUIRES_ACTIVE_AGENT=true the agent must also be approved
- The rate used is snapshotted on the commission, later rate changes don't touch it
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.config import settings
from coursehub.models import (
    Commission,
    CommissionStatus,
    Payment,
    User,
    UserRole,
    agent_referrals,
)
from coursehub.utils.money import to_money

logger = logging.getLogger(__name__)


def calculate_commission_amount(amount: Decimal, rate_percent: Decimal) -> Decimal:
    """Commission for a payment amount at a percentage rate.

    Args:
        amount: Payment amount in major units
        rate_percent: Agent rate, e.g. Decimal("10") for 10%

    Returns:
        Commission amount rounded to cents
    """
    return to_money(Decimal(amount) * Decimal(rate_percent) / Decimal("100"))


def is_commission_eligible(
    agent: Optional[User],
    require_active: Optional[bool] = None,
) -> bool:
    """Whether a referrer earns commission on a payment made now."""
    if agent is None or agent.role != UserRole.AGENT:
        return False
    if require_active is None:
        require_active = settings.commission_requires_active_agent
    if require_active and not agent.is_active_agent:
        return False
    return True


async def add_referral(db: AsyncSession, agent_id: int, referral_id: int) -> bool:
    """Add a purchaser to the agent's referral set. Returns True if it was new."""
    exists = await db.scalar(
        select(agent_referrals.c.agent_id).where(
            agent_referrals.c.agent_id == agent_id,
            agent_referrals.c.referral_id == referral_id,
        )
    )
    if exists is not None:
        return False

    await db.execute(
        insert(agent_referrals).values(agent_id=agent_id, referral_id=referral_id)
    )
    return True


async def adjust_agent_commission_total(
    db: AsyncSession,
    agent_id: int,
    delta: Decimal,
    referrals_delta: int = 0,
) -> None:
    """Apply a delta to the agent's denormalized counters in one UPDATE."""
    values = {"total_commission": User.total_commission + delta}
    if referrals_delta:
        values["total_referrals"] = User.total_referrals + referrals_delta
    await db.execute(
        update(User)
        .where(User.id == agent_id)
        .values(**values)
    )


async def compute_commission(
    db: AsyncSession,
    payment: Payment,
    referring_agent: Optional[User],
) -> Optional[Commission]:
    """
    Create the pending commission for a completed payment.

    Returns None when there is no eligible referrer. Otherwise persists one
    Commission, mirrors it on the payment and updates the agent counters.
    """
    if referring_agent is None:
        return None

    if not is_commission_eligible(referring_agent):
        logger.info(
            f"Referrer {referring_agent.id} not eligible for commission "
            f"(role={referring_agent.role.value}, active={referring_agent.is_active_agent})"
        )
        return None

    rate = Decimal(referring_agent.commission_rate)
    amount = calculate_commission_amount(payment.amount, rate)

    commission = Commission(
        agent_id=referring_agent.id,
        referral_id=payment.user_id,
        payment_id=payment.id,
        amount=amount,
        original_amount=payment.amount,
        commission_rate=rate,
        status=CommissionStatus.PENDING,
    )
    db.add(commission)

    payment.commission_amount = amount
    payment.commission_status = CommissionStatus.PENDING
    await db.flush()

    is_new_referral = await add_referral(db, referring_agent.id, payment.user_id)
    await adjust_agent_commission_total(
        db,
        referring_agent.id,
        amount,
        referrals_delta=1 if is_new_referral else 0,
    )

    logger.info(
        f"Commission {commission.id} created: agent={referring_agent.id} "
        f"payment={payment.id} amount={amount} rate={rate}%"
    )
    return commission


async def create_commission_safely(
    db: AsyncSession,
    payment: Payment,
    agent_id: int,
) -> Tuple[Optional[Commission], Optional[str]]:
    """
    Commission creation as used by payment processing.

    Runs in a SAVEPOINT and never raises: the payment stays valid when the
    commission fails, the failure is logged and returned as a warning.
    Missing commissions are picked up later by reconciliation.
    """
    try:
        async with db.begin_nested():
            agent = await db.get(User, agent_id)
            commission = await compute_commission(db, payment, agent)
        return commission, None
    except Exception as e:
        logger.error(f"Commission creation failed for payment {payment.id}: {e}")
        # The savepoint rollback expired the payment; reload it
        await db.refresh(payment)
        return None, f"Commission could not be created: {e}"
