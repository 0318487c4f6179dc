"""Pydantic schemas for commission balances, tiers and liabilities."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from referral_core.schemas.base import BaseResponseSchema, BaseCreateSchema


class CommissionSummaryResponse(BaseModel):
    """A referrer's balances plus the rate they currently earn."""
    referrer_id: UUID
    referrer_kind: str
    tier: Optional[str] = None
    rate: Decimal
    pending_amount: Decimal
    available_amount: Decimal
    reserved_amount: Decimal
    paid_amount: Decimal
    total_earned: Decimal
    liability_amount: Decimal
    min_payout_amount: Decimal
    can_request_payout: bool


class MatureRequest(BaseCreateSchema):
    """
    Without an amount, every converted referral of the referrer with pending
    commission is matured. With an amount, exactly that much moves from
    pending to available.
    """
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)


class MatureResponse(BaseModel):
    matured_referrals: int
    commission: CommissionSummaryResponse


class TierRateResponse(BaseModel):
    tier: str
    applies_to: str
    rate: Decimal
    min_conversions: Optional[int] = None


class LiabilityResponse(BaseResponseSchema):
    id: UUID
    account_id: UUID
    referral_id: Optional[UUID] = None
    order_id: Optional[UUID] = None
    amount: Decimal
    status: str
    notes: Optional[str] = None
    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime


class LiabilityListResponse(BaseModel):
    items: List[LiabilityResponse]
    total: int
    page: int
    page_size: int


class LiabilityResolveRequest(BaseCreateSchema):
    notes: Optional[str] = None
