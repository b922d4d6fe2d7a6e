"""
User model for authentication, referrals and agent accounts.
"""

import secrets
import string
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursehub.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from coursehub.models.course import Course, CoursePurchase


class UserRole(str, Enum):
    """User roles for access control."""
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"


REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code() -> str:
    """Generate a short referral code (6 upper-case characters)."""
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(6))


# Courses the user has access to. Composite key gives set semantics.
enrollments = Table(
    "enrollments",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("course_id", ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
)

# Purchasers an agent has earned commission from.
agent_referrals = Table(
    "agent_referrals",
    Base.metadata,
    Column("agent_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("referral_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base, TimestampMixin):
    """
    User account model.

    - user: buys courses
    - agent: refers buyers and earns commission on their purchases
    - admin: manages payouts, refunds and agents

    total_referrals / total_commission are denormalized counters kept next to
    the commission ledger. They can be rebuilt with
    services.reconciliation.reconcile_agent_totals.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_users_commission_rate_range",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    first_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    last_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    role: Mapped[UserRole] = mapped_column(
        SQLAlchemyEnum(
            UserRole,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=UserRole.USER,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Referral program
    referral_code: Mapped[str] = mapped_column(
        String(16),
        unique=True,
        index=True,
        nullable=False,
        default=generate_referral_code,
    )
    referred_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Referrer, set once at registration",
    )
    is_active_agent: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Agent application approved by an admin",
    )
    agent_approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # Percentage, e.g. 10 = 10% of the payment amount
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("10"),
        server_default="10",
    )
    total_referrals: Mapped[int] = mapped_column(
        Integer,
        default=0,
        server_default="0",
        nullable=False,
    )
    total_commission: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        server_default="0",
        nullable=False,
    )

    # Relationships
    referred_by: Mapped[Optional["User"]] = relationship(
        "User",
        remote_side="User.id",
        foreign_keys=[referred_by_id],
    )
    bank_details: Mapped[Optional["BankDetails"]] = relationship(
        "BankDetails",
        back_populates="user",
        uselist=False,
        foreign_keys="BankDetails.user_id",
        cascade="all, delete-orphan",
    )
    enrolled_courses: Mapped[List["Course"]] = relationship(
        "Course",
        secondary=enrollments,
    )
    purchases: Mapped[List["CoursePurchase"]] = relationship(
        "CoursePurchase",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    referrals: Mapped[List["User"]] = relationship(
        "User",
        secondary=agent_referrals,
        primaryjoin=lambda: User.id == agent_referrals.c.agent_id,
        secondaryjoin=lambda: User.id == agent_referrals.c.referral_id,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role={self.role})>"


class BankDetails(Base, TimestampMixin):
    """Agent bank account used for commission payouts."""

    __tablename__ = "bank_details"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    account_holder_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    account_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    bank_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    routing_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    swift_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    iban: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    verification_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    verified_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="bank_details",
        foreign_keys=[user_id],
    )

    @property
    def is_complete(self) -> bool:
        """Account number and bank name are the minimum needed to pay out."""
        return bool(self.account_number and self.bank_name)

    def masked_account_number(self) -> Optional[str]:
        if not self.account_number:
            return None
        return "*" * max(len(self.account_number) - 4, 0) + self.account_number[-4:]

    def __repr__(self) -> str:
        return f"<BankDetails(user_id={self.user_id}, verified={self.is_verified})>"
