"""
Payout batches and agent payout requests.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Table, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursehub.models.base import Base, BaseModel
from coursehub.models.commission import PayoutMethod

if TYPE_CHECKING:
    from coursehub.models.commission import Commission
    from coursehub.models.user import User


class PayoutStatus(str, Enum):
    """Status of an admin payout batch."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PayoutRequestStatus(str, Enum):
    """
    Agent payout request lifecycle.

    pending -> approved -> completed
    pending -> rejected
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class Payout(BaseModel):
    """
    One disbursement to one agent.

    The commissions it covers point back to it through Commission.payout_id,
    so the commission set and the back-link are the same column.
    """

    __tablename__ = "payouts"

    agent_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Amount actually disbursed",
    )
    total_commissions_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    status: Mapped[PayoutStatus] = mapped_column(
        SQLAlchemyEnum(
            PayoutStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PayoutStatus.PENDING,
        nullable=False,
        index=True,
    )
    payment_method: Mapped[PayoutMethod] = mapped_column(
        SQLAlchemyEnum(
            PayoutMethod,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PayoutMethod.MANUAL,
        nullable=False,
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    agent: Mapped["User"] = relationship("User", foreign_keys=[agent_id])
    commissions: Mapped[List["Commission"]] = relationship(
        "Commission",
        back_populates="payout",
    )

    def __repr__(self) -> str:
        return f"<Payout(id={self.id}, agent_id={self.agent_id}, amount={self.amount})>"


payout_request_commissions = Table(
    "payout_request_commissions",
    Base.metadata,
    Column(
        "payout_request_id",
        ForeignKey("payout_requests.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "commission_id",
        ForeignKey("commissions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class PayoutRequest(BaseModel):
    """Agent-initiated request to cash out pending commissions."""

    __tablename__ = "payout_requests"

    agent_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    status: Mapped[PayoutRequestStatus] = mapped_column(
        SQLAlchemyEnum(
            PayoutRequestStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PayoutRequestStatus.PENDING,
        nullable=False,
        index=True,
    )
    payment_method: Mapped[PayoutMethod] = mapped_column(
        SQLAlchemyEnum(
            PayoutMethod,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PayoutMethod.BANK_TRANSFER,
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payout_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    processed_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    payout_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payouts.id"),
        nullable=True,
    )

    # Relationships
    agent: Mapped["User"] = relationship("User", foreign_keys=[agent_id])
    commissions: Mapped[List["Commission"]] = relationship(
        "Commission",
        secondary=payout_request_commissions,
    )
    payout: Mapped[Optional["Payout"]] = relationship("Payout")

    def __repr__(self) -> str:
        return (
            f"<PayoutRequest(id={self.id}, agent_id={self.agent_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
