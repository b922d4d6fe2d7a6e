"""
Payout batching.

Three ways commissions get paid:
- bulk payout: admin picks commission ids, every one still pending is paid
- manual payout: admin pays one agent up to an amount, whole commissions only
- payout request: agent asks, admin approves and later completes

Every status change is an UPDATE filtered on the expected current status, and
its row count is checked. Commissions are taken oldest first (created_at, id).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursehub.models import (
    AuditAction,
    Commission,
    CommissionStatus,
    Payment,
    Payout,
    PayoutMethod,
    PayoutRequest,
    PayoutRequestStatus,
    PayoutStatus,
    User,
    UserRole,
    payout_request_commissions,
)
from coursehub.models.base import utc_now
from coursehub.services.exceptions import (
    AmountExceedsAvailable,
    InvalidState,
    NoPendingCommissions,
    NotFound,
    ValidationError,
)
from coursehub.services.refunds import cancel_pending_commission
from coursehub.utils.audit import log_action
from coursehub.utils.money import to_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class PayoutDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    COMPLETE = "complete"


@dataclass
class BulkPayoutSummary:
    count: int
    total_amount: Decimal
    method: PayoutMethod
    processed_at: datetime
    commission_ids: List[int] = field(default_factory=list)


@dataclass
class ManualPayoutResult:
    payout: Payout
    requested_amount: Decimal
    commission_ids: List[int]
    remaining_pending: Decimal


def select_commissions_for_amount(
    commissions: Sequence,
    amount: Decimal,
) -> Tuple[list, Decimal]:
    """
    Greedy whole-commission selection.

    Walks commissions in the given order and takes each one while the running
    total stays within amount. Stops at the first commission that would
    overshoot; commissions are never split.

    Returns:
        (selected commissions, their total)
    """
    selected = []
    total = ZERO
    for commission in commissions:
        if total + commission.amount > amount:
            break
        selected.append(commission)
        total += commission.amount
    return selected, to_money(total)


def total_amount(commissions: Sequence) -> Decimal:
    return to_money(sum((c.amount for c in commissions), ZERO))


async def get_pending_commissions(db: AsyncSession, agent_id: int) -> List[Commission]:
    """Agent's pending commissions, oldest first."""
    result = await db.execute(
        select(Commission)
        .where(
            Commission.agent_id == agent_id,
            Commission.status == CommissionStatus.PENDING,
        )
        .order_by(Commission.created_at.asc(), Commission.id.asc())
    )
    return list(result.scalars().all())


async def mark_commissions_paid(
    db: AsyncSession,
    commissions: Sequence[Commission],
    method: PayoutMethod,
    paid_at: datetime,
    acting_admin_id: Optional[int],
    notes: Optional[str] = None,
    reference: Optional[str] = None,
    payout_id: Optional[int] = None,
) -> int:
    """
    pending -> paid for the given commissions in one UPDATE.

    Returns the number of rows that were still pending. Callers compare it to
    len(commissions) and abort on a mismatch.
    """
    ids = [c.id for c in commissions]
    if not ids:
        return 0

    result = await db.execute(
        update(Commission)
        .where(
            Commission.id.in_(ids),
            Commission.status == CommissionStatus.PENDING,
        )
        .values(
            status=CommissionStatus.PAID,
            paid_at=paid_at,
            payout_method=method,
            payout_notes=notes,
            payout_reference=reference,
            payout_id=payout_id,
            processed_by_id=acting_admin_id,
            processed_at=paid_at,
        )
    )

    await db.execute(
        update(Payment)
        .where(Payment.id.in_([c.payment_id for c in commissions]))
        .values(commission_status=CommissionStatus.PAID)
    )
    return result.rowcount


async def _get_agent(db: AsyncSession, agent_id: int) -> User:
    agent = await db.scalar(
        select(User)
        .options(selectinload(User.bank_details))
        .where(User.id == agent_id)
    )
    if not agent or agent.role != UserRole.AGENT:
        raise NotFound("Agent not found", details={"agent_id": agent_id})
    return agent


def _check_bank_details(agent: User, method: Optional[PayoutMethod] = None) -> None:
    bank = agent.bank_details
    if not bank or not bank.is_complete:
        raise InvalidState(
            "Agent has no bank details on file",
            details={"agent_id": agent.id},
        )
    if method == PayoutMethod.BANK_TRANSFER and not bank.is_verified:
        raise InvalidState(
            "Bank details must be verified for bank transfers",
            details={"agent_id": agent.id},
        )


def _positive_amount(amount) -> Decimal:
    try:
        value = to_money(amount)
    except (ArithmeticError, ValueError, TypeError):
        raise ValidationError("Invalid amount", details={"amount": str(amount)})
    if value <= 0:
        raise ValidationError("Amount must be greater than zero", details={"amount": str(value)})
    return value


async def process_bulk_payout(
    db: AsyncSession,
    commission_ids: Sequence[int],
    method: PayoutMethod,
    notes: Optional[str],
    acting_admin_id: int,
    ip_address: Optional[str] = None,
) -> BulkPayoutSummary:
    """
    Pay every listed commission that is still pending.

    Ids that are paid, cancelled or unknown are skipped. No Payout record is
    created and bank details are not checked.

    Raises:
        ValidationError: No ids given
        NoPendingCommissions: None of the ids is pending
        InvalidState: Some commission changed status concurrently
    """
    ids = sorted({int(i) for i in commission_ids or []})
    if not ids:
        raise ValidationError("Commission IDs are required")

    result = await db.execute(
        select(Commission)
        .where(
            Commission.id.in_(ids),
            Commission.status == CommissionStatus.PENDING,
        )
        .order_by(Commission.id)
    )
    pending = list(result.scalars().all())
    if not pending:
        raise NoPendingCommissions("No pending commissions found")

    paid_at = utc_now()
    total = total_amount(pending)

    async with db.begin_nested():
        updated = await mark_commissions_paid(
            db,
            pending,
            method=method,
            paid_at=paid_at,
            acting_admin_id=acting_admin_id,
            notes=notes,
        )
        if updated != len(pending):
            raise InvalidState(
                "Commissions changed status during payout, nothing was paid",
                details={"expected": len(pending), "updated": updated},
            )

        await log_action(
            db,
            acting_admin_id,
            AuditAction.BULK_PAYOUT,
            target_type="commission",
            action_metadata={
                "commission_ids": [c.id for c in pending],
                "total_amount": str(total),
                "method": method.value,
                "skipped_ids": sorted(set(ids) - {c.id for c in pending}),
            },
            ip_address=ip_address,
        )

    logger.info(
        f"Bulk payout by admin {acting_admin_id}: {len(pending)} commissions, "
        f"total {total} via {method.value}"
    )
    return BulkPayoutSummary(
        count=len(pending),
        total_amount=total,
        method=method,
        processed_at=paid_at,
        commission_ids=[c.id for c in pending],
    )


async def _create_payout(
    db: AsyncSession,
    agent_id: int,
    commissions: Sequence[Commission],
    method: PayoutMethod,
    acting_admin_id: int,
    notes: Optional[str],
    reference: Optional[str],
) -> Payout:
    """Completed Payout over the given pending commissions, all marked paid."""
    now = utc_now()
    total = total_amount(commissions)

    payout = Payout(
        agent_id=agent_id,
        amount=total,
        total_commissions_paid=total,
        status=PayoutStatus.COMPLETED,
        payment_method=method,
        payment_reference=reference,
        notes=notes,
        processed_by_id=acting_admin_id,
        processed_at=now,
        completed_at=now,
    )
    db.add(payout)
    await db.flush()

    updated = await mark_commissions_paid(
        db,
        commissions,
        method=method,
        paid_at=now,
        acting_admin_id=acting_admin_id,
        notes=notes,
        reference=reference,
        payout_id=payout.id,
    )
    if updated != len(commissions):
        raise InvalidState(
            "Commissions changed status during payout, nothing was paid",
            details={"expected": len(commissions), "updated": updated},
        )
    return payout


async def process_manual_payout(
    db: AsyncSession,
    agent_id: int,
    amount,
    method: PayoutMethod,
    notes: Optional[str],
    acting_admin_id: int,
    reference: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> ManualPayoutResult:
    """
    Pay one agent up to amount with whole pending commissions.

    The disbursed amount is the sum of the selected commissions and may be
    lower than requested.

    Raises:
        ValidationError: Amount not positive, or smaller than the oldest commission
        NotFound: Agent does not exist or is not an agent
        InvalidState: Bank details missing, or unverified for bank_transfer
        NoPendingCommissions: Agent has nothing pending
        AmountExceedsAvailable: Amount is above the pending total
    """
    requested = _positive_amount(amount)
    agent = await _get_agent(db, agent_id)
    _check_bank_details(agent, method)

    pending = await get_pending_commissions(db, agent.id)
    if not pending:
        raise NoPendingCommissions(
            "No pending commissions found",
            details={"agent_id": agent.id},
        )

    available = total_amount(pending)
    if requested > available:
        raise AmountExceedsAvailable(
            f"Requested amount exceeds available commission balance of {available}",
            details={"requested": str(requested), "available": str(available)},
        )

    selected, selected_total = select_commissions_for_amount(pending, requested)
    if not selected:
        raise ValidationError(
            "Requested amount does not cover any whole commission",
            details={"requested": str(requested), "oldest": str(pending[0].amount)},
        )

    async with db.begin_nested():
        payout = await _create_payout(
            db,
            agent.id,
            selected,
            method=method,
            acting_admin_id=acting_admin_id,
            notes=notes,
            reference=reference,
        )
        await log_action(
            db,
            acting_admin_id,
            AuditAction.MANUAL_PAYOUT,
            target_type="payout",
            target_id=payout.id,
            action_metadata={
                "agent_id": agent.id,
                "requested_amount": str(requested),
                "paid_amount": str(selected_total),
                "commission_ids": [c.id for c in selected],
                "method": method.value,
            },
            ip_address=ip_address,
        )

    logger.info(
        f"Manual payout {payout.id} to agent {agent.id}: {selected_total} "
        f"of {requested} requested, {len(selected)} commissions"
    )
    return ManualPayoutResult(
        payout=payout,
        requested_amount=requested,
        commission_ids=[c.id for c in selected],
        remaining_pending=to_money(available - selected_total),
    )


async def update_commission_status(
    db: AsyncSession,
    commission_id: int,
    new_status: CommissionStatus,
    acting_admin_id: int,
    method: Optional[PayoutMethod] = None,
    notes: Optional[str] = None,
    reference: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Commission:
    """
    Manual admin transition of one commission.

    Only pending -> paid and pending -> cancelled exist.
    """
    if new_status not in (CommissionStatus.PAID, CommissionStatus.CANCELLED):
        raise ValidationError(
            "Commission can only be marked paid or cancelled",
            details={"status": getattr(new_status, "value", new_status)},
        )

    commission = await db.get(Commission, commission_id)
    if not commission:
        raise NotFound("Commission not found", details={"commission_id": commission_id})

    previous = commission.status
    if previous != CommissionStatus.PENDING:
        raise InvalidState(
            f"Commission is already {previous.value}",
            details={"commission_id": commission.id, "status": previous.value},
        )

    async with db.begin_nested():
        if new_status == CommissionStatus.PAID:
            changed = await mark_commissions_paid(
                db,
                [commission],
                method=method or PayoutMethod.MANUAL,
                paid_at=utc_now(),
                acting_admin_id=acting_admin_id,
                notes=notes,
                reference=reference,
            ) == 1
        else:
            changed = await cancel_pending_commission(
                db, commission, notes or "Cancelled by admin", acting_admin_id
            )

        if not changed:
            raise InvalidState(
                "Commission changed status concurrently",
                details={"commission_id": commission.id},
            )

        await log_action(
            db,
            acting_admin_id,
            AuditAction.UPDATE_COMMISSION,
            target_type="commission",
            target_id=commission.id,
            action_metadata={
                "old_status": previous.value,
                "new_status": new_status.value,
                "amount": str(commission.amount),
            },
            ip_address=ip_address,
        )

    logger.info(f"Commission {commission.id}: {previous.value} -> {new_status.value}")
    return commission


async def _requested_commission_ids(db: AsyncSession, agent_id: int) -> set:
    """Commissions already tied to an open (pending/approved) request."""
    result = await db.execute(
        select(payout_request_commissions.c.commission_id)
        .join(
            PayoutRequest,
            PayoutRequest.id == payout_request_commissions.c.payout_request_id,
        )
        .where(
            PayoutRequest.agent_id == agent_id,
            PayoutRequest.status.in_(
                [PayoutRequestStatus.PENDING, PayoutRequestStatus.APPROVED]
            ),
        )
    )
    return set(result.scalars().all())


async def create_payout_request(
    db: AsyncSession,
    agent_id: int,
    amount,
    method: PayoutMethod = PayoutMethod.BANK_TRANSFER,
    notes: Optional[str] = None,
    commission_ids: Optional[Sequence[int]] = None,
    ip_address: Optional[str] = None,
) -> PayoutRequest:
    """
    Agent asks to be paid. Nothing is marked paid here.

    Candidate commissions are the agent's pending ones not already part of an
    open request: either the explicit commission_ids or, by default, the
    greedy oldest-first selection for amount. Only whole commissions are
    requested, so the stored amount is the selection total and bounds what
    completion can pay; explicit commission_ids must add up to amount exactly.
    """
    requested = _positive_amount(amount)

    user = await db.scalar(
        select(User).options(selectinload(User.bank_details)).where(User.id == agent_id)
    )
    if not user:
        raise NotFound("User not found", details={"user_id": agent_id})
    if user.role != UserRole.AGENT:
        raise InvalidState("Only agents can request payouts")
    _check_bank_details(user)

    already_requested = await _requested_commission_ids(db, user.id)
    pending = [
        c for c in await get_pending_commissions(db, user.id)
        if c.id not in already_requested
    ]
    if not pending:
        raise NoPendingCommissions("No pending commissions available for payout")

    available = total_amount(pending)
    if requested > available:
        raise AmountExceedsAvailable(
            f"Requested amount exceeds available commission balance of {available}",
            details={"requested": str(requested), "available": str(available)},
        )

    if commission_ids:
        wanted = {int(i) for i in commission_ids}
        selected = [c for c in pending if c.id in wanted]
        if len(selected) != len(wanted):
            raise ValidationError(
                "Some commissions are not pending commissions of this agent",
                details={"invalid_ids": sorted(wanted - {c.id for c in selected})},
            )
        if requested != total_amount(selected):
            raise ValidationError(
                "Requested amount must equal the total of the selected commissions",
                details={"requested": str(requested), "selected": str(total_amount(selected))},
            )
    else:
        selected, _ = select_commissions_for_amount(pending, requested)
        if not selected:
            raise ValidationError(
                "Requested amount does not cover any whole commission",
                details={"requested": str(requested), "oldest": str(pending[0].amount)},
            )

    payout_request = PayoutRequest(
        agent_id=user.id,
        amount=total_amount(selected),
        status=PayoutRequestStatus.PENDING,
        payment_method=method,
        notes=notes,
        commissions=selected,
    )
    db.add(payout_request)
    await db.flush()

    await log_action(
        db,
        user.id,
        AuditAction.CREATE_PAYOUT_REQUEST,
        target_type="payout_request",
        target_id=payout_request.id,
        action_metadata={
            "requested": str(requested),
            "amount": str(payout_request.amount),
            "commission_ids": [c.id for c in selected],
            "method": method.value,
        },
        ip_address=ip_address,
    )

    logger.info(
        f"Payout request {payout_request.id} by agent {user.id}: {payout_request.amount} "
        f"({len(selected)} commissions)"
    )
    return payout_request


async def _transition_request(
    db: AsyncSession,
    payout_request: PayoutRequest,
    expected: PayoutRequestStatus,
    **values,
) -> None:
    result = await db.execute(
        update(PayoutRequest)
        .where(
            PayoutRequest.id == payout_request.id,
            PayoutRequest.status == expected,
        )
        .values(**values)
    )
    if result.rowcount != 1:
        raise InvalidState(
            "Payout request changed status concurrently",
            details={"payout_request_id": payout_request.id},
        )


def _require_status(payout_request: PayoutRequest, expected: PayoutRequestStatus, action: str):
    if payout_request.status != expected:
        raise InvalidState(
            f"Cannot {action} a payout request that is {payout_request.status.value}",
            details={
                "payout_request_id": payout_request.id,
                "status": payout_request.status.value,
            },
        )


async def process_payout_request(
    db: AsyncSession,
    request_id: int,
    decision,
    acting_admin_id: int,
    admin_notes: Optional[str] = None,
    rejection_reason: Optional[str] = None,
    payout_reference: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> PayoutRequest:
    """
    Admin decision on a payout request.

    pending -> approved   (bank details required)
    pending -> rejected   (reason stored)
    approved -> completed (candidate commissions still pending are paid)
    """
    try:
        decision = PayoutDecision(decision)
    except ValueError:
        raise ValidationError("Decision must be approve, reject or complete")

    payout_request = await db.scalar(
        select(PayoutRequest)
        .options(
            selectinload(PayoutRequest.commissions),
            selectinload(PayoutRequest.agent).selectinload(User.bank_details),
        )
        .where(PayoutRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    if not payout_request:
        raise NotFound("Payout request not found", details={"payout_request_id": request_id})

    now = utc_now()
    metadata = {"agent_id": payout_request.agent_id, "amount": str(payout_request.amount)}

    async with db.begin_nested():
        if decision == PayoutDecision.APPROVE:
            _require_status(payout_request, PayoutRequestStatus.PENDING, "approve")
            _check_bank_details(payout_request.agent)
            await _transition_request(
                db,
                payout_request,
                PayoutRequestStatus.PENDING,
                status=PayoutRequestStatus.APPROVED,
                admin_notes=admin_notes,
                processed_by_id=acting_admin_id,
                processed_at=now,
            )
            action = AuditAction.APPROVE_PAYOUT_REQUEST

        elif decision == PayoutDecision.REJECT:
            _require_status(payout_request, PayoutRequestStatus.PENDING, "reject")
            reason = (rejection_reason or admin_notes or "").strip()
            if not reason:
                raise ValidationError("Rejection reason is required")
            await _transition_request(
                db,
                payout_request,
                PayoutRequestStatus.PENDING,
                status=PayoutRequestStatus.REJECTED,
                rejection_reason=reason,
                admin_notes=admin_notes,
                processed_by_id=acting_admin_id,
                processed_at=now,
            )
            action = AuditAction.REJECT_PAYOUT_REQUEST
            metadata["reason"] = reason

        else:
            _require_status(payout_request, PayoutRequestStatus.APPROVED, "complete")
            _check_bank_details(payout_request.agent, payout_request.payment_method)

            candidates = sorted(
                (c for c in payout_request.commissions if c.status == CommissionStatus.PENDING),
                key=lambda c: (c.created_at, c.id),
            )
            if not candidates:
                raise NoPendingCommissions(
                    "None of the requested commissions is still pending",
                    details={"payout_request_id": payout_request.id},
                )

            payout = await _create_payout(
                db,
                payout_request.agent_id,
                candidates,
                method=payout_request.payment_method,
                acting_admin_id=acting_admin_id,
                notes=admin_notes or payout_request.notes,
                reference=payout_reference,
            )
            await _transition_request(
                db,
                payout_request,
                PayoutRequestStatus.APPROVED,
                status=PayoutRequestStatus.COMPLETED,
                payout_id=payout.id,
                payout_reference=payout_reference,
                admin_notes=admin_notes or payout_request.admin_notes,
                processed_by_id=acting_admin_id,
                processed_at=now,
            )
            action = AuditAction.COMPLETE_PAYOUT_REQUEST
            metadata["payout_id"] = payout.id
            metadata["paid_amount"] = str(payout.amount)
            metadata["commission_ids"] = [c.id for c in candidates]

        await log_action(
            db,
            acting_admin_id,
            action,
            target_type="payout_request",
            target_id=payout_request.id,
            action_metadata=metadata,
            ip_address=ip_address,
        )

    logger.info(
        f"Payout request {payout_request.id} -> {payout_request.status.value} "
        f"by admin {acting_admin_id}"
    )
    return payout_request
