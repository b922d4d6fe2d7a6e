"""
Database models for Coursehub.

All models are exported here for convenient imports:
    from coursehub.models import User, Payment, Commission, etc.
"""

from coursehub.models.audit import AuditAction, AuditLog
from coursehub.models.base import Base, BaseModel, TimestampMixin
from coursehub.models.commission import Commission, PayoutMethod
from coursehub.models.course import Course, CoursePurchase
from coursehub.models.payment import CommissionStatus, Payment, PaymentStatus
from coursehub.models.payout import (
    Payout,
    PayoutRequest,
    PayoutRequestStatus,
    PayoutStatus,
    payout_request_commissions,
)
from coursehub.models.user import BankDetails, User, UserRole, agent_referrals, enrollments

__all__ = [
    # Base
    "Base",
    "BaseModel",
    "TimestampMixin",
    # User
    "User",
    "UserRole",
    "BankDetails",
    "enrollments",
    "agent_referrals",
    # Course
    "Course",
    "CoursePurchase",
    # Payment
    "Payment",
    "PaymentStatus",
    # Commission
    "Commission",
    "CommissionStatus",
    "PayoutMethod",
    # Payout
    "Payout",
    "PayoutStatus",
    "PayoutRequest",
    "PayoutRequestStatus",
    "payout_request_commissions",
    # Audit
    "AuditLog",
    "AuditAction",
]
