"""
Tests for the agent lifecycle: application, approval and bank details.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import add_bank_details
from coursehub.config import settings
from coursehub.models import AuditAction, AuditLog, UserRole
from coursehub.services.agents import (
    apply_as_agent,
    approve_agent,
    update_bank_details,
    verify_bank_details,
)
from coursehub.services.exceptions import InvalidState, NotFound, ValidationError


BANK = {
    "account_holder_name": "Agent Smith",
    "account_number": "DE89370400440532013000",
    "bank_name": "Deutsche Bank",
}


# ── apply_as_agent ──────────────────────────────────────


class TestApplyAsAgent:
    @pytest.mark.asyncio
    async def test_user_becomes_pending_agent(self, db_session, plain_user):
        user = await apply_as_agent(db_session, plain_user.id, first_name="Walk", last_name="In")

        assert user.role == UserRole.AGENT
        assert user.is_active_agent is False
        assert user.commission_rate == settings.default_commission_rate
        assert user.first_name == "Walk"

        log = await db_session.scalar(
            select(AuditLog).where(AuditLog.action == AuditAction.APPLY_AGENT)
        )
        assert log.target_id == plain_user.id

    @pytest.mark.asyncio
    async def test_agent_cannot_reapply(self, db_session, agent):
        with pytest.raises(InvalidState):
            await apply_as_agent(db_session, agent.id)

    @pytest.mark.asyncio
    async def test_admin_cannot_apply(self, db_session, admin):
        with pytest.raises(InvalidState):
            await apply_as_agent(db_session, admin.id)

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session):
        with pytest.raises(NotFound):
            await apply_as_agent(db_session, 404)


# ── approve_agent ───────────────────────────────────────


class TestApproveAgent:
    @pytest.mark.asyncio
    async def test_approve_with_rate(self, db_session, admin, plain_user):
        await apply_as_agent(db_session, plain_user.id)

        user = await approve_agent(
            db_session, plain_user.id, acting_admin_id=admin.id, commission_rate=Decimal("15")
        )

        assert user.is_active_agent is True
        assert user.agent_approved_at is not None
        assert user.commission_rate == Decimal("15")

    @pytest.mark.asyncio
    async def test_approve_keeps_rate_when_omitted(self, db_session, admin, plain_user):
        await apply_as_agent(db_session, plain_user.id)

        user = await approve_agent(db_session, plain_user.id, acting_admin_id=admin.id)

        assert user.commission_rate == settings.default_commission_rate

    @pytest.mark.asyncio
    async def test_already_approved(self, db_session, admin, agent):
        with pytest.raises(InvalidState):
            await approve_agent(db_session, agent.id, acting_admin_id=admin.id)

    @pytest.mark.asyncio
    async def test_not_an_agent(self, db_session, admin, plain_user):
        with pytest.raises(InvalidState):
            await approve_agent(db_session, plain_user.id, acting_admin_id=admin.id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rate", [Decimal("-1"), Decimal("100.01")])
    async def test_rate_out_of_range(self, db_session, admin, plain_user, rate):
        await apply_as_agent(db_session, plain_user.id)

        with pytest.raises(ValidationError):
            await approve_agent(
                db_session, plain_user.id, acting_admin_id=admin.id, commission_rate=rate
            )
        assert plain_user.is_active_agent is False


# ── bank details ────────────────────────────────────────


class TestBankDetails:
    @pytest.mark.asyncio
    async def test_create(self, db_session, agent):
        bank = await update_bank_details(db_session, agent.id, dict(BANK, swift_code="  "))

        assert bank.user_id == agent.id
        assert bank.is_complete
        assert bank.swift_code is None
        assert not bank.is_verified
        assert bank.masked_account_number().endswith("3000")

    @pytest.mark.asyncio
    async def test_edit_resets_verification(self, db_session, admin, agent):
        await update_bank_details(db_session, agent.id, BANK)
        verified = await verify_bank_details(
            db_session, agent.id, True, acting_admin_id=admin.id, notes="Checked statement"
        )
        assert verified.is_verified
        assert verified.verified_by_id == admin.id

        bank = await update_bank_details(
            db_session, agent.id, {"account_number": "GB29NWBK60161331926819"}
        )

        assert bank.is_verified is False
        assert bank.verified_at is None
        assert bank.verification_notes is None

    @pytest.mark.asyncio
    async def test_same_values_keep_verification(self, db_session, agent):
        bank = await add_bank_details(db_session, agent, verified=True)

        updated = await update_bank_details(
            db_session, agent.id, {"account_number": bank.account_number}
        )

        assert updated.is_verified is True

    @pytest.mark.asyncio
    async def test_only_agents(self, db_session, plain_user):
        with pytest.raises(InvalidState):
            await update_bank_details(db_session, plain_user.id, BANK)

    @pytest.mark.asyncio
    async def test_verify_requires_details(self, db_session, admin, agent):
        with pytest.raises(InvalidState):
            await verify_bank_details(db_session, agent.id, True, acting_admin_id=admin.id)

    @pytest.mark.asyncio
    async def test_verification_can_be_revoked(self, db_session, admin, verified_agent):
        bank = await verify_bank_details(
            db_session, verified_agent.id, False, acting_admin_id=admin.id, notes="Name mismatch"
        )

        assert bank.is_verified is False
        assert bank.verification_notes == "Name mismatch"

        log = await db_session.scalar(
            select(AuditLog).where(AuditLog.action == AuditAction.VERIFY_BANK_DETAILS)
        )
        assert log.action_metadata == {"is_verified": False}
