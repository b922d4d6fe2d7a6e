"""
HTTP-level tests: auth, webhook, error envelope and a few admin routes.

Requests go through the ASGI app with get_db bound to the test engine and the
Stripe gateway replaced by FakeGateway.
"""

import json
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from conftest import earn, intent_event, make_user
from coursehub.api import payments as payments_api
from coursehub.auth.jwt import create_access_token
from coursehub.db import get_db
from coursehub.main import app
from coursehub.models import Payment, PaymentStatus, UserRole
from coursehub.services.stripe_gateway import StripeGateway, get_stripe_gateway
from coursehub.utils.password import hash_password


@pytest_asyncio.fixture
async def client(session_factory, gateway, monkeypatch):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    confirmations = []

    async def record_confirmation(*args):
        confirmations.append(args)

    monkeypatch.setattr(payments_api, "purchase_confirmation_task", record_confirmation)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.confirmations = confirmations
        yield ac

    app.dependency_overrides.clear()


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}


async def _payment_count(db) -> int:
    return await db.scalar(select(func.count(Payment.id)))


# ── auth ────────────────────────────────────────────────


class TestAuthApi:
    @pytest.mark.asyncio
    async def test_login_by_username_and_email(self, client, db_session):
        user = await make_user(db_session, "alice")
        user.password_hash = hash_password("secret123")
        await db_session.commit()

        for login in ("alice", "alice@example.com"):
            response = await client.post(
                "/api/auth/login", json={"username": login, "password": "secret123"}
            )
            assert response.status_code == 200
            body = response.json()
            assert body["success"] is True
            assert body["role"] == "user"
            assert body["access_token"]
            assert "access_token" in response.cookies

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, db_session):
        user = await make_user(db_session, "alice")
        user.password_hash = hash_password("secret123")
        await db_session.commit()

        response = await client.post(
            "/api/auth/login", json={"username": "alice", "password": "nope"}
        )

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "message": "Invalid username or password",
            "error": None,
        }

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/payments")

        assert response.status_code == 401
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get(
            "/api/payments", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"


# ── webhook ─────────────────────────────────────────────


class TestWebhookApi:
    @pytest.mark.asyncio
    async def test_bad_signature_is_400(self, client, db_session, referred_user, course):
        await db_session.commit()
        body = intent_event(
            "payment_intent.succeeded", "pi_1", 10000, referred_user.id, course.id
        )

        response = await client.post(
            "/api/payments/webhook",
            content=json.dumps(body),
            headers={"Stripe-Signature": "forged"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "signature_verification_failed"
        assert await _payment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_body_not_utf8_is_400(self, client, db_session):
        await db_session.commit()
        app.dependency_overrides[get_stripe_gateway] = lambda: StripeGateway(
            api_key="sk_test", webhook_secret="whsec_test", currency="usd"
        )

        response = await client.post(
            "/api/payments/webhook",
            content=b"\xff\xfe{not utf8",
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "signature_verification_failed"
        assert await _payment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_succeeded_event_applies_payment_once(
        self, client, db_session, referred_user, course
    ):
        await db_session.commit()
        body = json.dumps(
            intent_event("payment_intent.succeeded", "pi_1", 10000, referred_user.id, course.id)
        )

        for _ in range(2):
            response = await client.post(
                "/api/payments/webhook", content=body, headers={"Stripe-Signature": "valid"}
            )
            assert response.status_code == 200
            assert response.json() == {"received": True}

        payment = await db_session.scalar(select(Payment))
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.amount == Decimal("100.00")
        assert payment.commission_amount == Decimal("10.00")
        # Receipt email is queued for the first delivery only
        assert client.confirmations == [(referred_user.id, course.id, payment.id)]

    @pytest.mark.asyncio
    async def test_unknown_user_still_acknowledged(self, client, db_session, course):
        await db_session.commit()
        body = intent_event("payment_intent.succeeded", "pi_1", 10000, 404, course.id)

        response = await client.post(
            "/api/payments/webhook",
            content=json.dumps(body),
            headers={"Stripe-Signature": "valid"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert await _payment_count(db_session) == 0
        assert client.confirmations == []


# ── payments ────────────────────────────────────────────


class TestPaymentsApi:
    @pytest.mark.asyncio
    async def test_create_payment_intent(self, client, db_session, plain_user, course, gateway):
        await db_session.commit()

        response = await client.post(
            "/api/payments/create-payment-intent",
            json={"course_id": course.id},
            headers=auth(plain_user),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        intent = gateway.intents[data["paymentIntentId"]]
        assert intent.metadata["userId"] == str(plain_user.id)
        assert intent.metadata["courseId"] == str(course.id)

    @pytest.mark.asyncio
    async def test_unknown_payment_is_404_envelope(self, client, db_session, plain_user):
        await db_session.commit()

        response = await client.get("/api/payments/999", headers=auth(plain_user))

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "not_found"
        assert body["error"]["details"] == {"payment_id": 999}

    @pytest.mark.asyncio
    async def test_other_users_payment_hidden(
        self, client, db_session, referred_user, plain_user, make_course
    ):
        await earn(db_session, referred_user, make_course, ["100"])
        payment = await db_session.scalar(select(Payment))
        await db_session.commit()

        response = await client.get(f"/api/payments/{payment.id}", headers=auth(plain_user))
        assert response.status_code == 404

        response = await client.get(f"/api/payments/{payment.id}", headers=auth(referred_user))
        assert response.status_code == 200
        assert response.json()["data"]["transaction_id"] == payment.transaction_id

    @pytest.mark.asyncio
    async def test_validation_error_envelope(self, client, db_session, plain_user):
        await db_session.commit()

        response = await client.post(
            "/api/payments/create-payment-intent",
            json={"course_id": "abc"},
            headers=auth(plain_user),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_refund_requires_admin(self, client, db_session, referred_user, make_course):
        await earn(db_session, referred_user, make_course, ["100"])
        payment = await db_session.scalar(select(Payment))
        await db_session.commit()

        response = await client.post(
            "/api/payments/refund",
            json={"payment_id": payment.id, "reason": "changed my mind"},
            headers=auth(referred_user),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_refund(self, client, db_session, admin, referred_user, make_course, gateway):
        (commission,) = await earn(db_session, referred_user, make_course, ["100"])
        payment = await db_session.scalar(select(Payment))
        await db_session.commit()

        response = await client.post(
            "/api/payments/refund",
            json={"payment_id": payment.id, "reason": "Duplicate purchase"},
            headers=auth(admin),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["payment"]["status"] == "refunded"
        assert data["cancelled_commission_id"] == commission.id
        assert gateway.refunds == [payment.transaction_id]


# ── referrals and admin ─────────────────────────────────


class TestReferralAndAdminApi:
    @pytest.mark.asyncio
    async def test_agent_dashboard(self, client, db_session, agent, referred_user, make_course):
        await earn(db_session, referred_user, make_course, ["100"])
        await db_session.commit()

        response = await client.get("/api/referrals/dashboard", headers=auth(agent))

        assert response.status_code == 200
        stats = response.json()["data"]["stats"]
        assert stats["pending_count"] == 1

    @pytest.mark.asyncio
    async def test_dashboard_requires_agent(self, client, db_session, plain_user):
        await db_session.commit()

        response = await client.get("/api/referrals/dashboard", headers=auth(plain_user))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_manual_payout(
        self, client, db_session, admin, verified_agent, referred_user, make_course
    ):
        commissions = await earn(db_session, referred_user, make_course, ["100", "100", "50"])
        await db_session.commit()

        response = await client.post(
            "/api/admin/commissions/payout",
            json={"agent_id": verified_agent.id, "amount": "15"},
            headers=auth(admin),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["commission_ids"] == [commissions[0].id]
        assert Decimal(data["payout"]["amount"]) == Decimal("10.00")
        assert Decimal(data["remaining_pending"]) == Decimal("15.00")

    @pytest.mark.asyncio
    async def test_manual_payout_over_balance(
        self, client, db_session, admin, verified_agent, referred_user, make_course
    ):
        await earn(db_session, referred_user, make_course, ["100"])
        await db_session.commit()

        response = await client.post(
            "/api/admin/commissions/payout",
            json={"agent_id": verified_agent.id, "amount": "50"},
            headers=auth(admin),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "amount_exceeds_available"

    @pytest.mark.asyncio
    async def test_admin_routes_reject_agents(self, client, db_session, agent):
        await db_session.commit()

        response = await client.get("/api/admin/dashboard", headers=auth(agent))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_ledger_reconcile(self, client, db_session, admin):
        await make_user(db_session, "drifted", role=UserRole.AGENT, total_commission=Decimal("5"))
        await db_session.commit()

        response = await client.post("/api/admin/ledger/reconcile", headers=auth(admin))

        assert response.status_code == 200
        corrections = response.json()["data"]["corrections"]
        assert corrections[0]["total_commission"] == {"old": "5.00", "new": "0.00"}


# ── misc ────────────────────────────────────────────────


class TestHealthApi:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "coursehub"}

    @pytest.mark.asyncio
    async def test_unknown_route_uses_envelope(self, client):
        response = await client.get("/api/nope")

        assert response.status_code == 404
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_live(self, client):
        response = await client.get("/api/health/live")

        assert response.json() == {"status": "alive"}
