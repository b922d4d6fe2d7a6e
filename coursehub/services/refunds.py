"""
Refunds and commission cancellation.

Stripe is called before anything local changes: a provider failure leaves the
payment and its commission exactly as they were. Only a still-pending
commission is cancelled; a paid one stays paid (no clawback).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.models import (
    AuditAction,
    Commission,
    CommissionStatus,
    Payment,
    PaymentStatus,
)
from coursehub.models.base import utc_now
from coursehub.services.commission import adjust_agent_commission_total
from coursehub.services.exceptions import InvalidState, NotFound, ValidationError
from coursehub.services.stripe_gateway import StripeGateway
from coursehub.utils.audit import log_action

logger = logging.getLogger(__name__)


@dataclass
class RefundResult:
    payment: Payment
    refund_id: str
    refund_status: str
    cancelled_commission: Optional[Commission] = None


async def cancel_pending_commission(
    db: AsyncSession,
    commission: Commission,
    note: str,
    acting_admin_id: Optional[int] = None,
) -> bool:
    """
    pending -> cancelled, conditional on the current status.

    Decrements the agent's total by the commission amount when the
    transition happened. Returns False if the commission was not pending.
    """
    now = utc_now()
    result = await db.execute(
        update(Commission)
        .where(
            Commission.id == commission.id,
            Commission.status == CommissionStatus.PENDING,
        )
        .values(
            status=CommissionStatus.CANCELLED,
            payout_notes=note,
            processed_by_id=acting_admin_id,
            processed_at=now,
        )
    )
    if result.rowcount != 1:
        return False

    await db.execute(
        update(Payment)
        .where(Payment.id == commission.payment_id)
        .values(commission_status=CommissionStatus.CANCELLED)
    )
    await adjust_agent_commission_total(db, commission.agent_id, -commission.amount)

    logger.info(
        f"Commission {commission.id} cancelled, agent {commission.agent_id} "
        f"total reduced by {commission.amount}"
    )
    return True


async def process_refund(
    db: AsyncSession,
    gateway: StripeGateway,
    payment_id: int,
    reason: str,
    acting_admin_id: int,
    ip_address: Optional[str] = None,
) -> RefundResult:
    """
    Refund a completed payment.

    Raises:
        ValidationError: Empty reason
        NotFound: Payment does not exist
        InvalidState: Payment is not completed (or was refunded concurrently)
        ExternalProviderError: Stripe refused or failed; nothing was changed
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Refund reason is required")

    payment = await db.get(Payment, payment_id)
    if not payment:
        raise NotFound("Payment not found", details={"payment_id": payment_id})

    if payment.status != PaymentStatus.COMPLETED:
        raise InvalidState(
            "Payment is not completed",
            details={"payment_id": payment_id, "status": payment.status.value},
        )

    refund = await gateway.create_refund(payment.transaction_id, reason)

    result = await db.execute(
        update(Payment)
        .where(
            Payment.id == payment.id,
            Payment.status == PaymentStatus.COMPLETED,
        )
        .values(
            status=PaymentStatus.REFUNDED,
            refund_reason=reason,
            refunded_at=utc_now(),
            refund_id=refund.id,
        )
    )
    if result.rowcount != 1:
        # Stripe accepted the refund but another request got here first
        logger.error(
            f"Payment {payment.id} changed state during refund {refund.id}"
        )
        raise InvalidState("Payment was modified concurrently", details={"payment_id": payment.id})

    cancelled = None
    commissions = (
        await db.execute(select(Commission).where(Commission.payment_id == payment.id))
    ).scalars().all()

    for commission in commissions:
        if commission.status != CommissionStatus.PENDING:
            logger.info(
                f"Commission {commission.id} is {commission.status.value}, "
                f"left unchanged by refund of payment {payment.id}"
            )
            continue
        if await cancel_pending_commission(
            db, commission, f"Refunded: {reason}", acting_admin_id
        ):
            cancelled = commission

    await log_action(
        db,
        acting_admin_id,
        AuditAction.REFUND_PAYMENT,
        target_type="payment",
        target_id=payment.id,
        action_metadata={
            "refund_id": refund.id,
            "amount": str(payment.amount),
            "reason": reason,
            "cancelled_commission_id": cancelled.id if cancelled else None,
        },
        ip_address=ip_address,
    )
    await db.flush()

    logger.info(f"Payment {payment.id} refunded (refund {refund.id})")
    return RefundResult(
        payment=payment,
        refund_id=refund.id,
        refund_status=refund.status,
        cancelled_commission=cancelled,
    )
