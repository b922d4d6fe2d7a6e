"""Payment schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from coursehub.models import CommissionStatus, PaymentStatus


class CreatePaymentIntentRequest(BaseModel):
    course_id: int


class ManualConfirmRequest(BaseModel):
    """Client-side confirmation after Stripe.js reports success."""

    payment_intent_id: str = Field(..., min_length=1, max_length=255)
    course_id: int


class RefundRequest(BaseModel):
    payment_id: int
    reason: str = Field(..., max_length=1000)


class PaymentResponse(BaseModel):
    """Payment as shown to its owner and admins."""

    id: int
    user_id: int
    course_id: int
    amount: Decimal
    currency: str
    payment_method: str
    transaction_id: str
    status: PaymentStatus
    referral_agent_id: Optional[int]
    commission_amount: Optional[Decimal]
    commission_status: Optional[CommissionStatus]
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentProcessedResponse(BaseModel):
    """Result of applying a payment (manual confirmation)."""

    result: str
    payment: Optional[PaymentResponse] = None
    commission_id: Optional[int] = None
    warnings: List[str] = Field(default_factory=list)


class RefundResponse(BaseModel):
    refund_id: str
    refund_status: str
    payment: PaymentResponse
    cancelled_commission_id: Optional[int] = None
