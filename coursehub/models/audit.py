"""
AuditLog model for tracking ledger mutations by admins and agents.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, func
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursehub.models.base import Base, utc_now

if TYPE_CHECKING:
    from coursehub.models.user import User


class AuditAction(str, Enum):
    """Types of auditable actions."""
    LOGIN = "login"
    LOGOUT = "logout"
    REFUND_PAYMENT = "refund_payment"
    UPDATE_COMMISSION = "update_commission"
    BULK_PAYOUT = "bulk_payout"
    MANUAL_PAYOUT = "manual_payout"
    CREATE_PAYOUT_REQUEST = "create_payout_request"
    APPROVE_PAYOUT_REQUEST = "approve_payout_request"
    REJECT_PAYOUT_REQUEST = "reject_payout_request"
    COMPLETE_PAYOUT_REQUEST = "complete_payout_request"
    APPLY_AGENT = "apply_agent"
    APPROVE_AGENT = "approve_agent"
    UPDATE_BANK_DETAILS = "update_bank_details"
    VERIFY_BANK_DETAILS = "verify_bank_details"
    RECONCILE_LEDGER = "reconcile_ledger"


class AuditLog(Base):
    """
    Audit log for money-moving and agent-management actions.

    Every payout, refund and manual status change is recorded here
    with the acting user.
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        index=True,
        comment="Acting user, None for system jobs",
    )
    action: Mapped[AuditAction] = mapped_column(
        SQLAlchemyEnum(
            AuditAction,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        index=True,
    )
    target_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Type of entity affected (payment, commission, payout, user)",
    )
    target_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="ID of the affected entity",
    )
    action_metadata: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        comment="Additional context about the action",
    )
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),
        nullable=True,
        comment="IPv4 or IPv6 address",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    # Relationships
    user: Mapped[Optional["User"]] = relationship("User")

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action})>"
