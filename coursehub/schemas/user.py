"""User, agent and bank details schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from coursehub.models import BankDetails, UserRole


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    role: UserRole
    referral_code: str
    referred_by_id: Optional[int]
    is_active_agent: bool
    agent_approved_at: Optional[datetime]
    commission_rate: Decimal
    total_referrals: int
    total_commission: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class AgentApplyRequest(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class AgentApproveRequest(BaseModel):
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class BankDetailsUpdate(BaseModel):
    """Only the fields sent are changed."""

    account_holder_name: Optional[str] = Field(None, max_length=200)
    account_number: Optional[str] = Field(None, max_length=64)
    bank_name: Optional[str] = Field(None, max_length=200)
    routing_number: Optional[str] = Field(None, max_length=64)
    swift_code: Optional[str] = Field(None, max_length=32)
    iban: Optional[str] = Field(None, max_length=64)


class BankVerificationRequest(BaseModel):
    is_verified: bool
    notes: Optional[str] = Field(None, max_length=1000)


class BankDetailsResponse(BaseModel):
    """Bank details with the account number masked."""

    user_id: int
    account_holder_name: Optional[str]
    account_number: Optional[str]
    bank_name: Optional[str]
    routing_number: Optional[str]
    swift_code: Optional[str]
    iban: Optional[str]
    is_verified: bool
    verification_notes: Optional[str]
    verified_at: Optional[datetime]

    @classmethod
    def from_model(cls, bank: BankDetails) -> "BankDetailsResponse":
        return cls(
            user_id=bank.user_id,
            account_holder_name=bank.account_holder_name,
            account_number=bank.masked_account_number(),
            bank_name=bank.bank_name,
            routing_number=bank.routing_number,
            swift_code=bank.swift_code,
            iban=bank.iban,
            is_verified=bank.is_verified,
            verification_notes=bank.verification_notes,
            verified_at=bank.verified_at,
        )
