"""Pydantic schemas for referral attribution."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from referral_core.schemas.base import BaseResponseSchema, BaseCreateSchema


class ReferralAttributeRequest(BaseCreateSchema):
    """Sent by the signup flow once the new account exists."""
    new_user_id: UUID
    referral_code: Optional[str] = Field(None, max_length=64)


class ReferralAttributeResponse(BaseModel):
    referral_id: Optional[UUID] = None


class ReferralResponse(BaseResponseSchema):
    id: UUID
    referrer_kind: str
    referrer_id: UUID
    referred_user_id: UUID
    referral_code: str
    status: str
    expires_at: datetime
    order_id: Optional[UUID] = None
    order_amount: Optional[Decimal] = None
    commission_rate: Optional[Decimal] = None
    commission_amount: Optional[Decimal] = None
    commission_status: Optional[str] = None
    converted_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    matured_at: Optional[datetime] = None
    reversed_at: Optional[datetime] = None
    created_at: datetime


class ReferralStatsResponse(BaseModel):
    total_referrals: int
    pending_referrals: int
    converted_referrals: int
    expired_referrals: int
    conversion_rate: float
    commission_pending: Decimal
    commission_matured: Decimal
    commission_reversed: Decimal


class ReferralListResponse(BaseModel):
    items: List[ReferralResponse]
    total: int
    page: int
    page_size: int
    stats: Optional[ReferralStatsResponse] = None


class ExpireSweepResponse(BaseModel):
    expired: int
