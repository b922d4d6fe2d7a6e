"""
Payment API endpoints: checkout, Stripe webhook, manual confirmation, refunds.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.auth.dependencies import get_current_user, require_admin
from coursehub.db import get_db
from coursehub.models import Payment, PaymentStatus, User, UserRole
from coursehub.schemas.common import Pagination, ok
from coursehub.schemas.payment import (
    CreatePaymentIntentRequest,
    ManualConfirmRequest,
    PaymentProcessedResponse,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
)
from coursehub.services.exceptions import NotFound, SignatureVerificationFailed
from coursehub.services.notifications import purchase_confirmation_task
from coursehub.services.payment_processor import (
    PaymentOutcome,
    PaymentResult,
    confirm_payment_manually,
    create_payment_intent,
    handle_stripe_webhook,
)
from coursehub.services.refunds import process_refund
from coursehub.services.rollups import monthly_revenue, payment_overview
from coursehub.services.stripe_gateway import StripeGateway, get_stripe_gateway
from coursehub.utils.audit import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def schedule_confirmation(background_tasks: BackgroundTasks, outcome: PaymentOutcome) -> None:
    """Queue the receipt email for a newly applied payment."""
    if not outcome.is_new:
        return
    background_tasks.add_task(
        purchase_confirmation_task,
        outcome.payment.user_id,
        outcome.payment.course_id,
        outcome.payment.id,
    )


@router.post("/create-payment-intent")
async def create_intent(
    data: CreatePaymentIntentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_user),
):
    """Create a Stripe PaymentIntent for a course."""
    result = await create_payment_intent(db, gateway, current_user.id, data.course_id)
    return ok(result, "Payment intent created")


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
):
    """
    Stripe webhook receiver.

    Only a bad signature is answered with an error (400). Everything else is
    acknowledged with 200 so Stripe stops retrying: failures are logged.
    """
    payload = await request.body()

    try:
        outcome = await handle_stripe_webhook(db, gateway, payload, stripe_signature)
    except SignatureVerificationFailed:
        raise
    except Exception as e:
        logger.exception(f"Stripe webhook processing failed: {e}")
        return {"received": True}

    if outcome is not None:
        if outcome.result == PaymentResult.ERROR:
            logger.error(f"Stripe webhook not applied: {outcome.error}")
        for warning in outcome.warnings:
            logger.warning(f"Stripe webhook: {warning}")
        schedule_confirmation(background_tasks, outcome)

    return {"received": True}


@router.post("/manual-confirm")
async def manual_confirm(
    data: ManualConfirmRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_user),
):
    """Apply a succeeded PaymentIntent when the webhook has not arrived."""
    outcome = await confirm_payment_manually(
        db,
        gateway,
        data.payment_intent_id,
        data.course_id,
        current_user.id,
    )
    schedule_confirmation(background_tasks, outcome)

    if outcome.result == PaymentResult.DUPLICATE:
        message = "Payment already processed"
    elif outcome.result == PaymentResult.ALREADY_ENROLLED:
        message = "You already have access to this course"
    else:
        message = "Payment confirmed"

    return ok(
        PaymentProcessedResponse(
            result=outcome.result.value,
            payment=PaymentResponse.model_validate(outcome.payment) if outcome.payment else None,
            commission_id=outcome.commission.id if outcome.commission else None,
            warnings=outcome.warnings,
        ),
        message,
    )


@router.get("")
async def list_payments(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    status: Optional[PaymentStatus] = Query(None),
    user_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Own payments; admins see everyone's and may filter by user."""
    query = select(Payment)

    if current_user.role != UserRole.ADMIN:
        query = query.where(Payment.user_id == current_user.id)
    elif user_id:
        query = query.where(Payment.user_id == user_id)

    if status:
        query = query.where(Payment.status == status)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0

    query = query.order_by(Payment.created_at.desc(), Payment.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)

    return ok({
        "payments": [PaymentResponse.model_validate(p) for p in result.scalars().all()],
        "pagination": Pagination.build(page, limit, total),
    })


@router.get("/stats/overview")
async def payment_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    months: int = Query(12, ge=1, le=36),
):
    """Revenue, refunds and commissions overview."""
    return ok({
        "overview": await payment_overview(db),
        "monthly_revenue": await monthly_revenue(db, months=months),
    })


@router.post("/refund")
async def refund_payment(
    request: Request,
    data: RefundRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(require_admin),
):
    """Refund a completed payment through Stripe."""
    result = await process_refund(
        db,
        gateway,
        data.payment_id,
        data.reason,
        acting_admin_id=current_user.id,
        ip_address=get_client_ip(request),
    )
    return ok(
        RefundResponse(
            refund_id=result.refund_id,
            refund_status=result.refund_status,
            payment=PaymentResponse.model_validate(result.payment),
            cancelled_commission_id=(
                result.cancelled_commission.id if result.cancelled_commission else None
            ),
        ),
        "Payment refunded",
    )


@router.get("/{payment_id}")
async def get_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Single payment, visible to its owner and admins."""
    payment = await db.get(Payment, payment_id)
    if not payment or (
        current_user.role != UserRole.ADMIN and payment.user_id != current_user.id
    ):
        raise NotFound("Payment not found", details={"payment_id": payment_id})
    return ok(PaymentResponse.model_validate(payment))
