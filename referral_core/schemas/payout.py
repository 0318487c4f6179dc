"""Pydantic schemas for payout requests and settlement."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from referral_core.schemas.base import BaseResponseSchema, BaseCreateSchema


class SettlementOutcome(str, Enum):
    PAID = "paid"
    REJECTED = "rejected"
    FAILED = "failed"


class PayoutRequest(BaseCreateSchema):
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class PayoutCreatedResponse(BaseModel):
    payout_id: UUID
    payout_number: str
    status: str
    amount: Decimal


class PayoutSettleRequest(BaseCreateSchema):
    outcome: SettlementOutcome
    transaction_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PayoutResponse(BaseResponseSchema):
    id: UUID
    payout_number: str
    referrer_kind: str
    referrer_id: UUID
    amount: Decimal
    payout_method: str
    bank_account_number: Optional[str] = None
    bank_ifsc: Optional[str] = None
    bank_name: Optional[str] = None
    upi_id: Optional[str] = None
    status: str
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None
    processed_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    created_at: datetime


class PayoutListResponse(BaseModel):
    items: List[PayoutResponse]
    total: int
    page: int
    page_size: int
