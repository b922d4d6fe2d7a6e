"""Agent payout request schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from coursehub.models import PayoutMethod, PayoutRequest, PayoutRequestStatus
from coursehub.services.payouts import PayoutDecision


class PayoutRequestCreate(BaseModel):
    amount: Decimal
    payment_method: PayoutMethod = PayoutMethod.BANK_TRANSFER
    notes: Optional[str] = Field(None, max_length=1000)
    # Specific commissions to cash out; oldest-first selection when omitted
    commission_ids: Optional[List[int]] = None


class PayoutRequestProcess(BaseModel):
    decision: PayoutDecision
    admin_notes: Optional[str] = Field(None, max_length=1000)
    rejection_reason: Optional[str] = Field(None, max_length=1000)
    payout_reference: Optional[str] = Field(None, max_length=255)


class PayoutRequestResponse(BaseModel):
    id: int
    agent_id: int
    amount: Decimal
    status: PayoutRequestStatus
    payment_method: PayoutMethod
    notes: Optional[str]
    admin_notes: Optional[str]
    rejection_reason: Optional[str]
    payout_reference: Optional[str]
    processed_by_id: Optional[int]
    processed_at: Optional[datetime]
    payout_id: Optional[int]
    commission_ids: List[int] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_model(cls, payout_request: PayoutRequest) -> "PayoutRequestResponse":
        """Needs payout_request.commissions loaded."""
        return cls(
            id=payout_request.id,
            agent_id=payout_request.agent_id,
            amount=payout_request.amount,
            status=payout_request.status,
            payment_method=payout_request.payment_method,
            notes=payout_request.notes,
            admin_notes=payout_request.admin_notes,
            rejection_reason=payout_request.rejection_reason,
            payout_reference=payout_request.payout_reference,
            processed_by_id=payout_request.processed_by_id,
            processed_at=payout_request.processed_at,
            payout_id=payout_request.payout_id,
            commission_ids=[c.id for c in payout_request.commissions],
            created_at=payout_request.created_at,
        )
