"""
Seed test data for local Coursehub testing.

Usage:
    python scripts/seed_test_data.py

Or with custom DATABASE_URL:
    DATABASE_URL="postgresql://..." python scripts/seed_test_data.py

This script creates:
- A small course catalog
- An approved agent with verified bank details
- A student referred by that agent
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select

from coursehub.db import get_db_context
from coursehub.models import BankDetails, Course, User, UserRole
from coursehub.models.base import utc_now
from coursehub.utils.password import hash_password

TEST_COURSES = [
    {"title": "Python for Data Analysis", "price": Decimal("49.00")},
    {"title": "Async Web Services with FastAPI", "price": Decimal("79.00")},
    {"title": "SQL Fundamentals", "price": Decimal("29.99")},
]

TEST_PASSWORD = "test1234"


async def get_or_create_user(db, username: str, **fields) -> User:
    user = await db.scalar(select(User).where(User.username == username))
    if user:
        print(f"  = user {username} already exists")
        return user

    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        **fields,
    )
    db.add(user)
    await db.flush()
    print(f"  + user {username} ({user.role.value})")
    return user


async def seed():
    async with get_db_context() as db:
        print("Courses:")
        for data in TEST_COURSES:
            exists = await db.scalar(select(Course).where(Course.title == data["title"]))
            if exists:
                print(f"  = {data['title']}")
                continue
            db.add(Course(title=data["title"], price=data["price"], is_active=True))
            print(f"  + {data['title']} ({data['price']})")

        print("Users:")
        agent = await get_or_create_user(
            db,
            "agent_demo",
            first_name="Demo",
            last_name="Agent",
            role=UserRole.AGENT,
            is_active_agent=True,
            agent_approved_at=utc_now(),
            commission_rate=Decimal("10"),
        )
        if not await db.scalar(select(BankDetails).where(BankDetails.user_id == agent.id)):
            db.add(
                BankDetails(
                    user_id=agent.id,
                    account_holder_name="Demo Agent",
                    account_number="000123456789",
                    bank_name="Demo Bank",
                    is_verified=True,
                    verified_at=utc_now(),
                )
            )

        await get_or_create_user(
            db,
            "student_demo",
            role=UserRole.USER,
            referred_by_id=agent.id,
        )

    print(f"\nDone. Test users log in with password '{TEST_PASSWORD}'.")
    print(f"Referral code of agent_demo: {agent.referral_code}")


if __name__ == "__main__":
    asyncio.run(seed())
