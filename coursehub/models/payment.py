"""
Payment model: one row per attempted course purchase.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursehub.models.base import BaseModel

if TYPE_CHECKING:
    from coursehub.models.commission import Commission
    from coursehub.models.course import Course
    from coursehub.models.user import User


class PaymentStatus(str, Enum):
    """Payment lifecycle."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class CommissionStatus(str, Enum):
    """Commission lifecycle. paid and cancelled are terminal."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class Payment(BaseModel):
    """
    Course payment.

    transaction_id is the provider charge id (Stripe PaymentIntent id) and is
    unique: it is the only thing deciding whether a charge was already applied.
    commission_amount / commission_status mirror the linked Commission.
    """

    __tablename__ = "payments"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        default="usd",
        server_default="usd",
        nullable=False,
    )
    payment_method: Mapped[str] = mapped_column(
        String(30),
        default="stripe",
        server_default="stripe",
        nullable=False,
    )
    transaction_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    status: Mapped[PaymentStatus] = mapped_column(
        SQLAlchemyEnum(
            PaymentStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    referral_agent_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        index=True,
        comment="Purchaser's referrer captured when the payment was processed",
    )
    commission_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    commission_status: Mapped[Optional[CommissionStatus]] = mapped_column(
        SQLAlchemyEnum(
            CommissionStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=True,
    )

    # Refunds
    refund_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    refund_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    refunded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])
    course: Mapped["Course"] = relationship("Course")
    referral_agent: Mapped[Optional["User"]] = relationship(
        "User",
        foreign_keys=[referral_agent_id],
    )
    commissions: Mapped[list["Commission"]] = relationship(
        "Commission",
        back_populates="payment",
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, transaction_id='{self.transaction_id}', "
            f"status={self.status})>"
        )
