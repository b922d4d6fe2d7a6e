"""
Read-side rollups for dashboards.

Everything here is a plain SELECT. "Earned" means pending + paid: cancelled
commissions are reported separately and never counted as earnings.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursehub.models import (
    Commission,
    CommissionStatus,
    Payment,
    PaymentStatus,
    Payout,
    PayoutRequest,
    PayoutRequestStatus,
    PayoutStatus,
    User,
    UserRole,
)
from coursehub.services.exceptions import NotFound
from coursehub.utils.money import to_money

ZERO = Decimal("0.00")
EARNED_STATUSES = (CommissionStatus.PENDING, CommissionStatus.PAID)


def _money(value) -> Decimal:
    return to_money(value) if value is not None else ZERO


async def commission_status_totals(
    db: AsyncSession,
    agent_id: Optional[int] = None,
) -> Dict[str, Dict[str, Any]]:
    """Sum and count per commission status. Every status is present."""
    query = select(
        Commission.status,
        func.coalesce(func.sum(Commission.amount), 0),
        func.count(Commission.id),
    ).group_by(Commission.status)
    if agent_id is not None:
        query = query.where(Commission.agent_id == agent_id)

    totals = {s.value: {"amount": ZERO, "count": 0} for s in CommissionStatus}
    for status, amount, count in (await db.execute(query)).all():
        totals[status.value] = {"amount": _money(amount), "count": count}
    return totals


async def agent_commission_totals(db: AsyncSession, agent_id: int) -> Dict[str, Any]:
    """Total earned / pending / paid / cancelled amounts and counts for one agent."""
    totals = await commission_status_totals(db, agent_id)
    pending = totals[CommissionStatus.PENDING.value]
    paid = totals[CommissionStatus.PAID.value]
    cancelled = totals[CommissionStatus.CANCELLED.value]

    return {
        "total_commission": to_money(pending["amount"] + paid["amount"]),
        "pending_commission": pending["amount"],
        "paid_commission": paid["amount"],
        "cancelled_commission": cancelled["amount"],
        "total_count": pending["count"] + paid["count"] + cancelled["count"],
        "pending_count": pending["count"],
        "paid_count": paid["count"],
        "cancelled_count": cancelled["count"],
    }


def _year_month(column):
    return (
        func.extract("year", column).label("year"),
        func.extract("month", column).label("month"),
    )


async def monthly_commission_trend(
    db: AsyncSession,
    agent_id: Optional[int] = None,
    months: int = 12,
) -> List[Dict[str, Any]]:
    """Earned commission per calendar month, newest first."""
    year, month = _year_month(Commission.created_at)
    query = (
        select(
            year,
            month,
            func.coalesce(func.sum(Commission.amount), 0).label("total"),
            func.count(Commission.id).label("count"),
        )
        .where(Commission.status.in_(EARNED_STATUSES))
        .group_by(year, month)
        .order_by(year.desc(), month.desc())
        .limit(months)
    )
    if agent_id is not None:
        query = query.where(Commission.agent_id == agent_id)

    return [
        {
            "year": int(row.year),
            "month": int(row.month),
            "total_commission": _money(row.total),
            "count": row.count,
        }
        for row in (await db.execute(query)).all()
    ]


async def monthly_revenue(db: AsyncSession, months: int = 12) -> List[Dict[str, Any]]:
    """Completed payment revenue per calendar month, newest first."""
    year, month = _year_month(Payment.created_at)
    query = (
        select(
            year,
            month,
            func.coalesce(func.sum(Payment.amount), 0).label("total"),
            func.count(Payment.id).label("count"),
        )
        .where(Payment.status == PaymentStatus.COMPLETED)
        .group_by(year, month)
        .order_by(year.desc(), month.desc())
        .limit(months)
    )
    return [
        {
            "year": int(row.year),
            "month": int(row.month),
            "revenue": _money(row.total),
            "count": row.count,
        }
        for row in (await db.execute(query)).all()
    ]


async def payment_overview(db: AsyncSession) -> Dict[str, Any]:
    """Payment counts by status, revenue and referral share."""
    counts = {s.value: 0 for s in PaymentStatus}
    rows = await db.execute(
        select(Payment.status, func.count(Payment.id)).group_by(Payment.status)
    )
    for status, count in rows.all():
        counts[status.value] = count

    completed = Payment.status == PaymentStatus.COMPLETED
    revenue_row = (
        await db.execute(
            select(
                func.coalesce(func.sum(case((completed, Payment.amount), else_=0)), 0),
                func.count(case((and_(completed, Payment.referral_agent_id.is_not(None)), 1))),
                func.coalesce(
                    func.sum(
                        case(
                            (and_(completed, Payment.referral_agent_id.is_not(None)), Payment.amount),
                            else_=0,
                        )
                    ),
                    0,
                ),
            )
        )
    ).one()

    return {
        "total_payments": sum(counts.values()),
        "completed_payments": counts[PaymentStatus.COMPLETED.value],
        "pending_payments": counts[PaymentStatus.PENDING.value],
        "failed_payments": counts[PaymentStatus.FAILED.value],
        "refunded_payments": counts[PaymentStatus.REFUNDED.value],
        "total_revenue": _money(revenue_row[0]),
        "referral_payments": revenue_row[1],
        "referral_revenue": _money(revenue_row[2]),
        "monthly_revenue": await monthly_revenue(db),
    }


async def top_agents(db: AsyncSession, limit: int = 10) -> List[Dict[str, Any]]:
    """Agents ranked by earned commission."""
    total = func.coalesce(func.sum(Commission.amount), 0).label("total_commission")
    query = (
        select(
            User,
            total,
            func.count(Commission.id).label("commission_count"),
            func.count(distinct(Commission.referral_id)).label("referral_count"),
        )
        .join(Commission, Commission.agent_id == User.id)
        .where(Commission.status.in_(EARNED_STATUSES))
        .group_by(User.id)
        .order_by(total.desc(), User.id)
        .limit(limit)
    )

    return [
        {
            "agent_id": agent.id,
            "username": agent.username,
            "email": agent.email,
            "first_name": agent.first_name,
            "last_name": agent.last_name,
            "is_active_agent": agent.is_active_agent,
            "total_commission": _money(total_commission),
            "commission_count": commission_count,
            "referral_count": referral_count,
        }
        for agent, total_commission, commission_count, referral_count in (await db.execute(query)).all()
    ]


async def payout_summary(
    db: AsyncSession,
    agent_id: Optional[int] = None,
) -> Dict[str, Any]:
    query = select(
        Payout.status,
        func.coalesce(func.sum(Payout.amount), 0),
        func.count(Payout.id),
    ).group_by(Payout.status)
    if agent_id is not None:
        query = query.where(Payout.agent_id == agent_id)

    by_status = {s.value: {"amount": ZERO, "count": 0} for s in PayoutStatus}
    for status, amount, count in (await db.execute(query)).all():
        by_status[status.value] = {"amount": _money(amount), "count": count}

    return {
        "total_payouts": sum(v["count"] for v in by_status.values()),
        "total_paid_out": by_status[PayoutStatus.COMPLETED.value]["amount"],
        "by_status": by_status,
    }


async def payout_request_summary(db: AsyncSession) -> Dict[str, Any]:
    rows = await db.execute(
        select(
            PayoutRequest.status,
            func.coalesce(func.sum(PayoutRequest.amount), 0),
            func.count(PayoutRequest.id),
        ).group_by(PayoutRequest.status)
    )
    by_status = {s.value: {"amount": ZERO, "count": 0} for s in PayoutRequestStatus}
    for status, amount, count in rows.all():
        by_status[status.value] = {"amount": _money(amount), "count": count}
    return by_status


async def referral_stats(db: AsyncSession, agent_id: int) -> Dict[str, Any]:
    """Referred users, buyers among them and commission totals."""
    total_referred = await db.scalar(
        select(func.count(User.id)).where(User.referred_by_id == agent_id)
    )

    buyers = await db.execute(
        select(
            User,
            func.coalesce(func.sum(Commission.amount), 0).label("total"),
            func.count(Commission.id).label("count"),
        )
        .join(Commission, Commission.referral_id == User.id)
        .where(
            Commission.agent_id == agent_id,
            Commission.status.in_(EARNED_STATUSES),
        )
        .group_by(User.id)
        .order_by(func.sum(Commission.amount).desc())
    )

    year, month = _year_month(User.created_at)
    signups = await db.execute(
        select(year, month, func.count(User.id).label("count"))
        .where(User.referred_by_id == agent_id)
        .group_by(year, month)
        .order_by(year.desc(), month.desc())
        .limit(12)
    )

    return {
        "total_referrals": total_referred or 0,
        "referrals_with_purchases": [
            {
                "user_id": user.id,
                "username": user.username,
                "email": user.email,
                "first_name": user.first_name,
                "last_name": user.last_name,
                "total_commission": _money(total),
                "purchases": count,
            }
            for user, total, count in buyers.all()
        ],
        **await agent_commission_totals(db, agent_id),
        "monthly_signups": [
            {"year": int(r.year), "month": int(r.month), "count": r.count}
            for r in signups.all()
        ],
    }


async def agent_dashboard(db: AsyncSession, agent_id: int) -> Dict[str, Any]:
    """Everything the agent dashboard shows in one call."""
    agent = await db.get(User, agent_id)
    if not agent or agent.role != UserRole.AGENT:
        raise NotFound("Agent not found", details={"agent_id": agent_id})

    recent_referrals = (
        await db.execute(
            select(User)
            .where(User.referred_by_id == agent.id)
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(5)
        )
    ).scalars().all()

    recent_commissions = (
        await db.execute(
            select(Commission)
            .options(selectinload(Commission.referral), selectinload(Commission.payment))
            .where(Commission.agent_id == agent.id)
            .order_by(Commission.created_at.desc(), Commission.id.desc())
            .limit(5)
        )
    ).scalars().all()

    open_requests = (
        await db.execute(
            select(PayoutRequest)
            .where(
                PayoutRequest.agent_id == agent.id,
                PayoutRequest.status.in_(
                    [PayoutRequestStatus.PENDING, PayoutRequestStatus.APPROVED]
                ),
            )
            .order_by(PayoutRequest.created_at.desc())
        )
    ).scalars().all()

    return {
        "agent": {
            "id": agent.id,
            "username": agent.username,
            "first_name": agent.first_name,
            "last_name": agent.last_name,
            "referral_code": agent.referral_code,
            "is_active_agent": agent.is_active_agent,
            "commission_rate": agent.commission_rate,
            "total_referrals": agent.total_referrals,
            "total_commission": agent.total_commission,
        },
        "recent_referrals": [
            {
                "id": u.id,
                "username": u.username,
                "email": u.email,
                "first_name": u.first_name,
                "last_name": u.last_name,
                "created_at": u.created_at,
            }
            for u in recent_referrals
        ],
        "recent_commissions": [
            {
                "id": c.id,
                "amount": c.amount,
                "status": c.status.value,
                "referral": c.referral.username if c.referral else None,
                "payment_amount": c.payment.amount if c.payment else None,
                "transaction_id": c.payment.transaction_id if c.payment else None,
                "created_at": c.created_at,
            }
            for c in recent_commissions
        ],
        "stats": await agent_commission_totals(db, agent.id),
        "monthly_performance": await monthly_commission_trend(db, agent.id, months=6),
        "open_payout_requests": [
            {
                "id": r.id,
                "amount": r.amount,
                "status": r.status.value,
                "created_at": r.created_at,
            }
            for r in open_requests
        ],
    }


async def admin_overview(db: AsyncSession) -> Dict[str, Any]:
    """Admin dashboard: payments, commissions, agents and payouts."""
    agent_counts = (
        await db.execute(
            select(
                func.count(User.id),
                func.count(case((User.is_active_agent.is_(True), 1))),
            ).where(User.role == UserRole.AGENT)
        )
    ).one()

    return {
        "payments": await payment_overview(db),
        "commissions": await commission_status_totals(db),
        "agents": {
            "total": agent_counts[0],
            "active": agent_counts[1],
            "pending_approval": agent_counts[0] - agent_counts[1],
        },
        "payouts": await payout_summary(db),
        "payout_requests": await payout_request_summary(db),
        "top_agents": await top_agents(db, limit=5),
    }
