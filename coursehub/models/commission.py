"""
Commission ledger model.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursehub.models.base import BaseModel
from coursehub.models.payment import CommissionStatus

if TYPE_CHECKING:
    from coursehub.models.payment import Payment
    from coursehub.models.payout import Payout
    from coursehub.models.user import User


class PayoutMethod(str, Enum):
    """How an agent is paid."""
    BANK_TRANSFER = "bank_transfer"
    STRIPE_PAYOUT = "stripe_payout"
    PAYPAL = "paypal"
    MANUAL = "manual"


class Commission(BaseModel):
    """
    Commission earned by an agent on a referred purchase.

    agent / referral / payment / original_amount never change after creation.
    Status moves pending -> paid or pending -> cancelled, never back.
    """

    __tablename__ = "commissions"
    __table_args__ = (
        UniqueConstraint("payment_id", "agent_id", name="uq_commission_payment_agent"),
    )

    agent_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    referral_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    original_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Payment amount the commission was computed from",
    )
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        comment="Agent rate (percent) at the time the commission was created",
    )
    status: Mapped[CommissionStatus] = mapped_column(
        SQLAlchemyEnum(
            CommissionStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=CommissionStatus.PENDING,
        nullable=False,
        index=True,
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Payout tracking
    payout_method: Mapped[Optional[PayoutMethod]] = mapped_column(
        SQLAlchemyEnum(
            PayoutMethod,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=True,
    )
    payout_reference: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    payout_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    payout_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payouts.id"),
        nullable=True,
        index=True,
    )

    # Admin tracking
    processed_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    agent: Mapped["User"] = relationship("User", foreign_keys=[agent_id])
    referral: Mapped["User"] = relationship("User", foreign_keys=[referral_id])
    payment: Mapped["Payment"] = relationship("Payment", back_populates="commissions")
    payout: Mapped[Optional["Payout"]] = relationship("Payout", back_populates="commissions")

    @property
    def is_terminal(self) -> bool:
        return self.status in (CommissionStatus.PAID, CommissionStatus.CANCELLED)

    def __repr__(self) -> str:
        return (
            f"<Commission(id={self.id}, agent_id={self.agent_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
