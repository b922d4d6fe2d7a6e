"""Commission and admin payout schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from coursehub.models import CommissionStatus, PayoutMethod, PayoutStatus


class CommissionResponse(BaseModel):
    id: int
    agent_id: int
    referral_id: int
    payment_id: int
    amount: Decimal
    original_amount: Decimal
    commission_rate: Decimal
    status: CommissionStatus
    paid_at: Optional[datetime]
    payout_method: Optional[PayoutMethod]
    payout_reference: Optional[str]
    payout_notes: Optional[str]
    payout_id: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class CommissionStatusUpdate(BaseModel):
    """Manual admin transition: paid or cancelled."""

    status: CommissionStatus
    payout_method: Optional[PayoutMethod] = None
    payout_reference: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)


class BulkPayoutRequest(BaseModel):
    commission_ids: List[int]
    payout_method: PayoutMethod = PayoutMethod.BANK_TRANSFER
    notes: Optional[str] = Field(None, max_length=1000)


class BulkPayoutResponse(BaseModel):
    count: int
    total_amount: Decimal
    method: PayoutMethod
    processed_at: datetime
    commission_ids: List[int]


class ManualPayoutRequest(BaseModel):
    agent_id: int
    amount: Decimal
    payout_method: PayoutMethod = PayoutMethod.BANK_TRANSFER
    payout_reference: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)


class PayoutResponse(BaseModel):
    id: int
    agent_id: int
    amount: Decimal
    total_commissions_paid: Decimal
    status: PayoutStatus
    payment_method: PayoutMethod
    payment_reference: Optional[str]
    notes: Optional[str]
    processed_by_id: Optional[int]
    processed_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class ManualPayoutResponse(BaseModel):
    payout: PayoutResponse
    requested_amount: Decimal
    commission_ids: List[int]
    remaining_pending: Decimal
