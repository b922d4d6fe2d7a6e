"""
Tests for referral commission calculation and creation.

Covers:
- calculate_commission_amount rounding
- Eligibility by role and approval
- compute_commission ledger side effects (payment mirror, agent counters, referral set)
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from conftest import make_user
from coursehub.models import (
    Commission,
    CommissionStatus,
    Payment,
    PaymentStatus,
    UserRole,
    agent_referrals,
)
from coursehub.services import commission as commission_service
from coursehub.services.commission import (
    calculate_commission_amount,
    compute_commission,
    create_commission_safely,
    is_commission_eligible,
)


async def _payment(db, user, course, transaction_id="pi_test", amount="100.00"):
    payment = Payment(
        user_id=user.id,
        course_id=course.id,
        amount=Decimal(amount),
        transaction_id=transaction_id,
        status=PaymentStatus.COMPLETED,
        referral_agent_id=user.referred_by_id,
    )
    db.add(payment)
    await db.flush()
    return payment


# ── calculate_commission_amount ─────────────────────────


class TestCalculateCommissionAmount:
    def test_ten_percent(self):
        assert calculate_commission_amount(Decimal("100.00"), Decimal("10")) == Decimal("10.00")

    def test_rounds_half_up_to_cents(self):
        # 19.99 * 12.5% = 2.49875
        assert calculate_commission_amount(Decimal("19.99"), Decimal("12.5")) == Decimal("2.50")

    def test_zero_rate(self):
        assert calculate_commission_amount(Decimal("49.00"), Decimal("0")) == Decimal("0.00")

    def test_full_rate(self):
        assert calculate_commission_amount(Decimal("49.00"), Decimal("100")) == Decimal("49.00")

    def test_result_is_decimal(self):
        assert isinstance(calculate_commission_amount(Decimal("1"), Decimal("3")), Decimal)


# ── is_commission_eligible ──────────────────────────────


class TestEligibility:
    def test_none_is_not_eligible(self):
        assert not is_commission_eligible(None)

    def test_regular_user_is_not_eligible(self):
        user = SimpleNamespace(role=UserRole.USER, is_active_agent=True)
        assert not is_commission_eligible(user)

    def test_unapproved_agent_eligible_by_default(self):
        agent = SimpleNamespace(role=UserRole.AGENT, is_active_agent=False)
        assert is_commission_eligible(agent, require_active=False)

    def test_unapproved_agent_rejected_when_approval_required(self):
        agent = SimpleNamespace(role=UserRole.AGENT, is_active_agent=False)
        assert not is_commission_eligible(agent, require_active=True)

    def test_approved_agent_eligible_when_approval_required(self):
        agent = SimpleNamespace(role=UserRole.AGENT, is_active_agent=True)
        assert is_commission_eligible(agent, require_active=True)


# ── compute_commission ──────────────────────────────────


class TestComputeCommission:
    @pytest.mark.asyncio
    async def test_creates_pending_commission(self, db_session, agent, referred_user, course):
        payment = await _payment(db_session, referred_user, course)

        commission = await compute_commission(db_session, payment, agent)

        assert commission is not None
        assert commission.status == CommissionStatus.PENDING
        assert commission.amount == Decimal("10.00")
        assert commission.original_amount == Decimal("100.00")
        assert commission.commission_rate == Decimal("10")
        assert commission.agent_id == agent.id
        assert commission.referral_id == referred_user.id
        assert commission.payment_id == payment.id

    @pytest.mark.asyncio
    async def test_mirrors_commission_on_payment(self, db_session, agent, referred_user, course):
        payment = await _payment(db_session, referred_user, course)

        await compute_commission(db_session, payment, agent)

        assert payment.commission_amount == Decimal("10.00")
        assert payment.commission_status == CommissionStatus.PENDING

    @pytest.mark.asyncio
    async def test_updates_agent_counters(self, db_session, agent, referred_user, course):
        payment = await _payment(db_session, referred_user, course)

        await compute_commission(db_session, payment, agent)

        assert agent.total_commission == Decimal("10.00")
        assert agent.total_referrals == 1

    @pytest.mark.asyncio
    async def test_second_purchase_does_not_grow_referrals(
        self, db_session, agent, referred_user, course, make_course
    ):
        other = await make_course("SQL", "50.00")
        first = await _payment(db_session, referred_user, course, "pi_1")
        second = await _payment(db_session, referred_user, other, "pi_2")

        await compute_commission(db_session, first, agent)
        await compute_commission(db_session, second, agent)

        referral_rows = await db_session.scalar(
            select(func.count()).select_from(agent_referrals)
        )
        assert referral_rows == 1
        assert agent.total_referrals == 1
        assert agent.total_commission == Decimal("15.00")

    @pytest.mark.asyncio
    async def test_rate_snapshot_survives_rate_change(
        self, db_session, agent, referred_user, course
    ):
        payment = await _payment(db_session, referred_user, course)
        commission = await compute_commission(db_session, payment, agent)

        agent.commission_rate = Decimal("25")
        await db_session.flush()

        assert commission.commission_rate == Decimal("10")
        assert commission.amount == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_no_referrer_no_commission(self, db_session, plain_user, course):
        payment = await _payment(db_session, plain_user, course)

        assert await compute_commission(db_session, payment, None) is None
        assert payment.commission_amount is None

    @pytest.mark.asyncio
    async def test_referrer_no_longer_agent(self, db_session, course):
        former = await make_user(db_session, "former_agent", role=UserRole.USER)
        buyer = await make_user(db_session, "buyer", referred_by_id=former.id)
        payment = await _payment(db_session, buyer, course)

        assert await compute_commission(db_session, payment, former) is None
        count = await db_session.scalar(select(func.count(Commission.id)))
        assert count == 0


# ── create_commission_safely ────────────────────────────


class TestCreateCommissionSafely:
    @pytest.mark.asyncio
    async def test_failure_is_returned_as_warning(
        self, db_session, agent, referred_user, course, monkeypatch
    ):
        payment = await _payment(db_session, referred_user, course)

        async def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(commission_service, "compute_commission", boom)

        commission, warning = await create_commission_safely(db_session, payment, agent.id)

        assert commission is None
        assert "ledger unavailable" in warning
        assert payment.status == PaymentStatus.COMPLETED
