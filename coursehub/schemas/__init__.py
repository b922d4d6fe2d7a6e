"""Pydantic schemas for request/response validation."""

from coursehub.schemas.auth import LoginRequest, LoginResponse
from coursehub.schemas.commission import (
    BulkPayoutRequest,
    BulkPayoutResponse,
    CommissionResponse,
    CommissionStatusUpdate,
    ManualPayoutRequest,
    ManualPayoutResponse,
    PayoutResponse,
)
from coursehub.schemas.common import ApiResponse, ErrorResponse, Pagination, ok
from coursehub.schemas.payment import (
    CreatePaymentIntentRequest,
    ManualConfirmRequest,
    PaymentProcessedResponse,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
)
from coursehub.schemas.payout import (
    PayoutRequestCreate,
    PayoutRequestProcess,
    PayoutRequestResponse,
)
from coursehub.schemas.user import (
    AgentApplyRequest,
    AgentApproveRequest,
    BankDetailsResponse,
    BankDetailsUpdate,
    BankVerificationRequest,
    UserResponse,
)

__all__ = [
    # Common
    "ApiResponse",
    "ErrorResponse",
    "Pagination",
    "ok",
    # Auth
    "LoginRequest",
    "LoginResponse",
    # Payment
    "CreatePaymentIntentRequest",
    "ManualConfirmRequest",
    "RefundRequest",
    "PaymentResponse",
    "PaymentProcessedResponse",
    "RefundResponse",
    # Commission / payout
    "CommissionResponse",
    "CommissionStatusUpdate",
    "BulkPayoutRequest",
    "BulkPayoutResponse",
    "ManualPayoutRequest",
    "ManualPayoutResponse",
    "PayoutResponse",
    "PayoutRequestCreate",
    "PayoutRequestProcess",
    "PayoutRequestResponse",
    # User
    "UserResponse",
    "AgentApplyRequest",
    "AgentApproveRequest",
    "BankDetailsUpdate",
    "BankDetailsResponse",
    "BankVerificationRequest",
]
