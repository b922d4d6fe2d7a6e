"""
Payment event processing.

Both the Stripe webhook and the manual confirmation fallback end up in
apply_payment_success. The payment's transaction_id (Stripe PaymentIntent id)
is unique in the database, so whichever path inserts first wins and the other
sees a duplicate.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.models import (
    Commission,
    Course,
    CoursePurchase,
    Payment,
    PaymentStatus,
    User,
    enrollments,
)
from coursehub.services.commission import create_commission_safely
from coursehub.services.exceptions import (
    InvalidState,
    LedgerError,
    NotFound,
    ValidationError,
)
from coursehub.services.stripe_gateway import PaymentIntentInfo, StripeGateway
from coursehub.utils.money import from_cents, to_money

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


class PaymentResult(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    ALREADY_ENROLLED = "already_enrolled"
    FAILED_RECORDED = "failed_recorded"
    ERROR = "error"


@dataclass
class PaymentEvent:
    """Normalized payment notification, whatever delivered it."""

    transaction_id: str
    amount: Decimal
    user_id: int
    course_id: int
    currency: str = "usd"


@dataclass
class PaymentOutcome:
    result: PaymentResult
    payment: Optional[Payment] = None
    commission: Optional[Commission] = None
    user: Optional[User] = None
    course: Optional[Course] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_new(self) -> bool:
        """True only for the call that actually applied the payment."""
        return self.result == PaymentResult.PROCESSED


async def get_payment_by_transaction(
    db: AsyncSession,
    transaction_id: str,
) -> Optional[Payment]:
    return await db.scalar(
        select(Payment).where(Payment.transaction_id == transaction_id)
    )


async def is_enrolled(db: AsyncSession, user_id: int, course_id: int) -> bool:
    row = await db.scalar(
        select(enrollments.c.user_id).where(
            enrollments.c.user_id == user_id,
            enrollments.c.course_id == course_id,
        )
    )
    return row is not None


async def _load_user_and_course(db: AsyncSession, event: PaymentEvent):
    user = await db.get(User, event.user_id)
    if not user:
        raise NotFound("User not found", details={"user_id": event.user_id})

    course = await db.get(Course, event.course_id)
    if not course:
        raise NotFound("Course not found", details={"course_id": event.course_id})

    return user, course


async def _insert_payment(db: AsyncSession, payment: Payment) -> bool:
    """Insert inside a SAVEPOINT. False when the transaction id already exists."""
    try:
        async with db.begin_nested():
            db.add(payment)
            await db.flush()
    except IntegrityError:
        return False
    return True


async def _grant_access(db: AsyncSession, user_id: int, course_id: int) -> None:
    """Purchase entry and enrollment, each only if missing."""
    purchase_id = await db.scalar(
        select(CoursePurchase.id).where(
            CoursePurchase.user_id == user_id,
            CoursePurchase.course_id == course_id,
        )
    )
    if purchase_id is None:
        db.add(CoursePurchase(user_id=user_id, course_id=course_id))

    if not await is_enrolled(db, user_id, course_id):
        await db.execute(
            insert(enrollments).values(user_id=user_id, course_id=course_id)
        )


async def _reuse_failed_payment(
    db: AsyncSession,
    payment: Payment,
    event: PaymentEvent,
    referral_agent_id: Optional[int],
) -> bool:
    """
    A PaymentIntent can fail and then succeed on retry with the same id.
    Flip the recorded failure to completed, only if it is still failed.
    """
    result = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.FAILED)
        .values(
            status=PaymentStatus.COMPLETED,
            amount=to_money(event.amount),
            referral_agent_id=referral_agent_id,
        )
    )
    return result.rowcount == 1


async def apply_payment_success(
    db: AsyncSession,
    event: PaymentEvent,
) -> PaymentOutcome:
    """
    Apply a successful charge exactly once.

    Returns a PaymentOutcome whose result is:
    - duplicate: a payment with this transaction id already exists
    - already_enrolled: user already has the course, nothing written
    - processed: payment completed, commission (if any) and enrollment created

    Raises:
        NotFound: User or course does not exist
    """
    existing = await get_payment_by_transaction(db, event.transaction_id)
    if existing and existing.status != PaymentStatus.FAILED:
        logger.info(f"Payment {event.transaction_id} already processed, skipping")
        return PaymentOutcome(result=PaymentResult.DUPLICATE, payment=existing)

    user, course = await _load_user_and_course(db, event)

    if await is_enrolled(db, user.id, course.id):
        logger.warning(
            f"User {user.id} already enrolled in course {course.id}, "
            f"ignoring payment {event.transaction_id}"
        )
        return PaymentOutcome(
            result=PaymentResult.ALREADY_ENROLLED,
            user=user,
            course=course,
        )

    referral_agent_id = user.referred_by_id

    if existing:
        if not await _reuse_failed_payment(db, existing, event, referral_agent_id):
            return PaymentOutcome(result=PaymentResult.DUPLICATE, payment=existing)
        payment = existing
    else:
        payment = Payment(
            user_id=user.id,
            course_id=course.id,
            amount=to_money(event.amount),
            currency=event.currency,
            payment_method="stripe",
            transaction_id=event.transaction_id,
            status=PaymentStatus.COMPLETED,
            referral_agent_id=referral_agent_id,
        )
        if not await _insert_payment(db, payment):
            logger.info(
                f"Payment {event.transaction_id} inserted concurrently, treating as duplicate"
            )
            winner = await get_payment_by_transaction(db, event.transaction_id)
            return PaymentOutcome(result=PaymentResult.DUPLICATE, payment=winner)

    outcome = PaymentOutcome(
        result=PaymentResult.PROCESSED,
        payment=payment,
        user=user,
        course=course,
    )

    if referral_agent_id:
        commission, warning = await create_commission_safely(db, payment, referral_agent_id)
        outcome.commission = commission
        if warning:
            outcome.warnings.append(warning)

    await _grant_access(db, user.id, course.id)
    await db.flush()

    logger.info(
        f"Payment {payment.transaction_id} completed: user={user.id} "
        f"course={course.id} amount={payment.amount}"
    )
    return outcome


async def record_payment_failure(
    db: AsyncSession,
    event: PaymentEvent,
) -> PaymentOutcome:
    """Store a failed payment for audit. No commission, no enrollment."""
    existing = await get_payment_by_transaction(db, event.transaction_id)
    if existing:
        return PaymentOutcome(result=PaymentResult.DUPLICATE, payment=existing)

    user, course = await _load_user_and_course(db, event)

    payment = Payment(
        user_id=user.id,
        course_id=course.id,
        amount=to_money(event.amount),
        currency=event.currency,
        payment_method="stripe",
        transaction_id=event.transaction_id,
        status=PaymentStatus.FAILED,
    )
    if not await _insert_payment(db, payment):
        winner = await get_payment_by_transaction(db, event.transaction_id)
        return PaymentOutcome(result=PaymentResult.DUPLICATE, payment=winner)

    logger.info(f"Payment {event.transaction_id} failed for user {user.id}")
    return PaymentOutcome(
        result=PaymentResult.FAILED_RECORDED,
        payment=payment,
        user=user,
        course=course,
    )


async def _handle_safely(db: AsyncSession, event: PaymentEvent, apply) -> PaymentOutcome:
    try:
        async with db.begin_nested():
            return await apply(db, event)
    except LedgerError as e:
        logger.error(f"Payment event {event.transaction_id} not applied: {e.message}")
        return PaymentOutcome(result=PaymentResult.ERROR, error=e.message)
    except Exception:
        logger.exception(f"Unexpected error processing payment event {event.transaction_id}")
        return PaymentOutcome(result=PaymentResult.ERROR, error="Internal error")


async def handle_payment_succeeded(
    db: AsyncSession,
    event: PaymentEvent,
) -> PaymentOutcome:
    """Transport-facing success handler. Never raises."""
    return await _handle_safely(db, event, apply_payment_success)


async def handle_payment_failed(
    db: AsyncSession,
    event: PaymentEvent,
) -> PaymentOutcome:
    """Transport-facing failure handler. Never raises."""
    return await _handle_safely(db, event, record_payment_failure)


def _parse_id(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name} in payment metadata", details={name: value})


def payment_event_from_intent(intent: Dict[str, Any]) -> PaymentEvent:
    """Build a PaymentEvent from a PaymentIntent object of a webhook event."""
    metadata = intent.get("metadata") or {}
    transaction_id = intent.get("id")
    if not transaction_id:
        raise ValidationError("Payment intent without id")

    return PaymentEvent(
        transaction_id=transaction_id,
        amount=from_cents(intent.get("amount") or 0),
        user_id=_parse_id(metadata.get("userId"), "userId"),
        course_id=_parse_id(metadata.get("courseId"), "courseId"),
        currency=intent.get("currency") or "usd",
    )


async def handle_stripe_webhook(
    db: AsyncSession,
    gateway: StripeGateway,
    payload: bytes,
    signature: Optional[str],
) -> Optional[PaymentOutcome]:
    """
    Verify and dispatch a Stripe webhook.

    Returns None for event types the ledger ignores.

    Raises:
        SignatureVerificationFailed: Before anything is read or written
    """
    event = gateway.construct_event(payload, signature)
    event_type = event.get("type")

    if event_type not in (PAYMENT_SUCCEEDED, PAYMENT_FAILED):
        logger.info(f"Ignoring Stripe event {event.get('id')} of type {event_type}")
        return None

    intent = (event.get("data") or {}).get("object") or {}
    try:
        payment_event = payment_event_from_intent(intent)
    except ValidationError as e:
        logger.error(f"Stripe event {event.get('id')} rejected: {e.message}")
        return PaymentOutcome(result=PaymentResult.ERROR, error=e.message)

    if event_type == PAYMENT_SUCCEEDED:
        outcome = await handle_payment_succeeded(db, payment_event)
    else:
        outcome = await handle_payment_failed(db, payment_event)

    logger.info(
        f"Stripe event {event.get('id')} ({event_type}) -> {outcome.result.value}"
    )
    return outcome


def _check_intent_owner(intent: PaymentIntentInfo, user_id: int, course_id: int) -> None:
    """Metadata written at checkout must match the confirming user and course."""
    meta_user = intent.metadata.get("userId")
    meta_course = intent.metadata.get("courseId")
    if meta_user is not None and meta_user != str(user_id):
        raise ValidationError("Payment does not belong to this user")
    if meta_course is not None and meta_course != str(course_id):
        raise ValidationError("Payment is for a different course")


async def confirm_payment_manually(
    db: AsyncSession,
    gateway: StripeGateway,
    payment_intent_id: str,
    course_id: int,
    user_id: int,
) -> PaymentOutcome:
    """
    Fallback when the webhook has not arrived (or never will).

    Raises:
        ExternalProviderError: Stripe lookup failed
        InvalidState: PaymentIntent has not succeeded
        ValidationError: PaymentIntent belongs to another user or course
        NotFound: User or course does not exist
    """
    if not payment_intent_id:
        raise ValidationError("Payment intent ID is required")

    intent = await gateway.retrieve_payment_intent(payment_intent_id)
    if not intent.succeeded:
        raise InvalidState(
            "Payment not succeeded",
            details={"status": intent.status},
        )

    _check_intent_owner(intent, user_id, course_id)

    event = PaymentEvent(
        transaction_id=intent.id,
        amount=intent.amount,
        user_id=user_id,
        course_id=course_id,
        currency=intent.currency,
    )
    return await apply_payment_success(db, event)


async def create_payment_intent(
    db: AsyncSession,
    gateway: StripeGateway,
    user_id: int,
    course_id: int,
) -> Dict[str, Any]:
    """
    Start checkout for a course.

    Returns:
        clientSecret, paymentIntentId, amount and a short course summary
    """
    course = await db.get(Course, course_id)
    if not course or not course.is_active:
        raise NotFound("Course not found", details={"course_id": course_id})

    if await is_enrolled(db, user_id, course_id):
        raise InvalidState("You already purchased this course")

    intent = await gateway.create_payment_intent(
        amount=course.price,
        metadata={"userId": str(user_id), "courseId": str(course_id)},
    )
    logger.info(f"PaymentIntent {intent.id} created: user={user_id} course={course_id}")

    return {
        "clientSecret": intent.client_secret,
        "paymentIntentId": intent.id,
        "amount": course.price,
        "course": {
            "id": course.id,
            "title": course.title,
            "description": course.description,
        },
    }
