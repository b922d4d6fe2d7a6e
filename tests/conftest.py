"""
Pytest configuration and fixtures.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

import json
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from coursehub.models import BankDetails, Base, Course, User, UserRole
from coursehub.services.exceptions import (
    ExternalProviderError,
    SignatureVerificationFailed,
)
from coursehub.services.payment_processor import PaymentEvent, apply_payment_success
from coursehub.services.stripe_gateway import PaymentIntentInfo, RefundInfo


# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


# ── Domain fixtures ─────────────────────────────────────


async def make_user(
    db: AsyncSession,
    username: str,
    role: UserRole = UserRole.USER,
    **fields,
) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash="not-a-real-hash",
        role=role,
        **fields,
    )
    db.add(user)
    await db.flush()
    return user


async def add_bank_details(db: AsyncSession, user: User, verified: bool = True) -> BankDetails:
    bank = BankDetails(
        user_id=user.id,
        account_holder_name=user.username,
        account_number="000123456789",
        bank_name="Test Bank",
        is_verified=verified,
    )
    db.add(bank)
    await db.flush()
    return bank


@pytest_asyncio.fixture
async def admin(db_session):
    return await make_user(db_session, "admin", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def agent(db_session):
    """Approved agent earning 10%."""
    return await make_user(
        db_session,
        "agent",
        role=UserRole.AGENT,
        is_active_agent=True,
        commission_rate=Decimal("10"),
    )


@pytest_asyncio.fixture
async def verified_agent(db_session, agent):
    await add_bank_details(db_session, agent, verified=True)
    return agent


@pytest_asyncio.fixture
async def referred_user(db_session, agent):
    return await make_user(db_session, "student", referred_by_id=agent.id)


@pytest_asyncio.fixture
async def plain_user(db_session):
    return await make_user(db_session, "walkin")


@pytest_asyncio.fixture
async def course(db_session):
    course = Course(title="Async Python", price=Decimal("100.00"), is_active=True)
    db_session.add(course)
    await db_session.flush()
    return course


@pytest_asyncio.fixture
async def make_course(db_session):
    async def _make(title: str, price: str) -> Course:
        course = Course(title=title, price=Decimal(price), is_active=True)
        db_session.add(course)
        await db_session.flush()
        return course

    return _make


async def earn(db: AsyncSession, buyer: User, make_course, prices: List[str]) -> list:
    """One purchase per price by buyer; returns the commissions oldest first."""
    commissions = []
    for i, price in enumerate(prices):
        course = await make_course(f"Course {i}", price)
        outcome = await apply_payment_success(
            db,
            PaymentEvent(
                transaction_id=f"pi_{buyer.id}_{i}",
                amount=Decimal(price),
                user_id=buyer.id,
                course_id=course.id,
            ),
        )
        commissions.append(outcome.commission)
    return commissions


# ── Stripe double ───────────────────────────────────────


class FakeGateway:
    """In-memory stand-in for StripeGateway."""

    def __init__(self):
        self.intents: Dict[str, PaymentIntentInfo] = {}
        self.refunds: List[str] = []
        self.fail_refunds = False

    def add_intent(
        self,
        intent_id: str,
        amount: str,
        user_id: int,
        course_id: int,
        status: str = "succeeded",
    ) -> PaymentIntentInfo:
        intent = PaymentIntentInfo(
            id=intent_id,
            status=status,
            amount=Decimal(amount),
            currency="usd",
            client_secret=f"{intent_id}_secret",
            metadata={"userId": str(user_id), "courseId": str(course_id)},
        )
        self.intents[intent_id] = intent
        return intent

    async def create_payment_intent(self, amount, metadata) -> PaymentIntentInfo:
        intent_id = f"pi_{len(self.intents) + 1}"
        intent = PaymentIntentInfo(
            id=intent_id,
            status="requires_payment_method",
            amount=amount,
            currency="usd",
            client_secret=f"{intent_id}_secret",
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        return intent

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentInfo:
        if payment_intent_id not in self.intents:
            raise ExternalProviderError("No such payment_intent")
        return self.intents[payment_intent_id]

    async def create_refund(self, payment_intent_id: str, reason: str) -> RefundInfo:
        if self.fail_refunds:
            raise ExternalProviderError("Payment provider error: refund declined")
        self.refunds.append(payment_intent_id)
        return RefundInfo(id=f"re_{len(self.refunds)}", status="succeeded")

    def construct_event(self, payload, signature: Optional[str]) -> dict:
        if signature != "valid":
            raise SignatureVerificationFailed("Invalid webhook signature")
        return json.loads(payload)


@pytest.fixture
def gateway():
    return FakeGateway()


def intent_event(
    event_type: str,
    intent_id: str,
    amount_cents: int,
    user_id,
    course_id,
) -> dict:
    """Webhook event body as Stripe sends it."""
    return {
        "id": f"evt_{intent_id}",
        "type": event_type,
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "amount": amount_cents,
                "currency": "usd",
                "metadata": {"userId": str(user_id), "courseId": str(course_id)},
            }
        },
    }
