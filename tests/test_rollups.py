"""
Tests for dashboard rollups.
"""

from decimal import Decimal

import pytest

from conftest import earn, make_user
from coursehub.models import CommissionStatus, UserRole
from coursehub.services.exceptions import NotFound
from coursehub.services.payment_processor import PaymentEvent, record_payment_failure
from coursehub.services.payouts import update_commission_status
from coursehub.services.rollups import (
    admin_overview,
    agent_commission_totals,
    agent_dashboard,
    commission_status_totals,
    monthly_commission_trend,
    payment_overview,
    referral_stats,
    top_agents,
)


@pytest.fixture
def mixed_ledger(db_session, admin, agent, referred_user, make_course):
    """10 pending, 10 paid and 5 cancelled for the agent."""
    async def _build():
        commissions = await earn(db_session, referred_user, make_course, ["100", "100", "50"])
        await update_commission_status(
            db_session, commissions[0].id, CommissionStatus.PAID, acting_admin_id=admin.id
        )
        await update_commission_status(
            db_session, commissions[2].id, CommissionStatus.CANCELLED, acting_admin_id=admin.id
        )
        return commissions

    return _build


# ── commission totals ───────────────────────────────────


class TestCommissionTotals:
    @pytest.mark.asyncio
    async def test_every_status_present(self, db_session):
        totals = await commission_status_totals(db_session)

        assert set(totals) == {"pending", "paid", "cancelled"}
        assert totals["pending"] == {"amount": Decimal("0.00"), "count": 0}

    @pytest.mark.asyncio
    async def test_cancelled_not_earned(self, db_session, agent, mixed_ledger):
        await mixed_ledger()

        totals = await agent_commission_totals(db_session, agent.id)

        assert totals["total_commission"] == Decimal("20.00")
        assert totals["pending_commission"] == Decimal("10.00")
        assert totals["paid_commission"] == Decimal("10.00")
        assert totals["cancelled_commission"] == Decimal("5.00")
        assert totals["total_count"] == 3
        assert totals["cancelled_count"] == 1
        # The cached counter agrees with the ledger
        assert agent.total_commission == totals["total_commission"]

    @pytest.mark.asyncio
    async def test_monthly_trend(self, db_session, agent, mixed_ledger):
        await mixed_ledger()

        trend = await monthly_commission_trend(db_session, agent.id)

        assert len(trend) == 1
        assert trend[0]["total_commission"] == Decimal("20.00")
        assert trend[0]["count"] == 2


# ── payments ────────────────────────────────────────────


class TestPaymentOverview:
    @pytest.mark.asyncio
    async def test_revenue_and_referral_share(
        self, db_session, agent, referred_user, plain_user, make_course
    ):
        await earn(db_session, referred_user, make_course, ["100"])
        await earn(db_session, plain_user, make_course, ["50"])
        await record_payment_failure(
            db_session,
            PaymentEvent(
                transaction_id="pi_declined",
                amount=Decimal("75"),
                user_id=plain_user.id,
                course_id=(await make_course("Declined", "75")).id,
            ),
        )

        overview = await payment_overview(db_session)

        assert overview["total_payments"] == 3
        assert overview["completed_payments"] == 2
        assert overview["failed_payments"] == 1
        assert overview["total_revenue"] == Decimal("150.00")
        assert overview["referral_payments"] == 1
        assert overview["referral_revenue"] == Decimal("100.00")
        assert overview["monthly_revenue"][0]["revenue"] == Decimal("150.00")


# ── agents ──────────────────────────────────────────────


class TestAgentRollups:
    @pytest.mark.asyncio
    async def test_top_agents_ranked(self, db_session, agent, referred_user, make_course):
        rival = await make_user(db_session, "rival", role=UserRole.AGENT)
        rival_buyer = await make_user(db_session, "rival_buyer", referred_by_id=rival.id)
        await earn(db_session, referred_user, make_course, ["100"])
        await earn(db_session, rival_buyer, make_course, ["300"])

        ranking = await top_agents(db_session)

        assert [row["agent_id"] for row in ranking] == [rival.id, agent.id]
        assert ranking[0]["total_commission"] == Decimal("30.00")
        assert ranking[1]["referral_count"] == 1

    @pytest.mark.asyncio
    async def test_referral_stats(self, db_session, agent, referred_user, make_course):
        await make_user(db_session, "browser", referred_by_id=agent.id)
        await earn(db_session, referred_user, make_course, ["100", "50"])

        stats = await referral_stats(db_session, agent.id)

        assert stats["total_referrals"] == 2
        assert len(stats["referrals_with_purchases"]) == 1
        buyer = stats["referrals_with_purchases"][0]
        assert buyer["username"] == "student"
        assert buyer["purchases"] == 2
        assert buyer["total_commission"] == Decimal("15.00")
        assert stats["monthly_signups"][0]["count"] == 2

    @pytest.mark.asyncio
    async def test_dashboard(self, db_session, agent, mixed_ledger):
        await mixed_ledger()

        dashboard = await agent_dashboard(db_session, agent.id)

        assert dashboard["agent"]["total_referrals"] == 1
        assert dashboard["stats"]["pending_commission"] == Decimal("10.00")
        assert len(dashboard["recent_commissions"]) == 3
        assert dashboard["recent_commissions"][0]["referral"] == "student"
        assert dashboard["recent_referrals"][0]["username"] == "student"
        assert dashboard["open_payout_requests"] == []

    @pytest.mark.asyncio
    async def test_dashboard_requires_agent(self, db_session, plain_user):
        with pytest.raises(NotFound):
            await agent_dashboard(db_session, plain_user.id)

    @pytest.mark.asyncio
    async def test_admin_overview(self, db_session, agent, mixed_ledger):
        await make_user(db_session, "applicant", role=UserRole.AGENT)
        await mixed_ledger()

        overview = await admin_overview(db_session)

        assert overview["agents"] == {"total": 2, "active": 1, "pending_approval": 1}
        assert overview["commissions"]["paid"]["amount"] == Decimal("10.00")
        assert overview["payments"]["completed_payments"] == 3
        assert overview["top_agents"][0]["agent_id"] == agent.id
