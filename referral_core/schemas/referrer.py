"""
Pydantic schemas for referrers: regular users and influencers.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator

from referral_core.models.referrer import InfluencerStatus, InfluencerTier, PayoutMethod
from referral_core.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
UPI_PATTERN = re.compile(r"^[\w.\-]{2,256}@[a-zA-Z]{2,64}$")


# ============================================================================
# Registration
# ============================================================================

class ReferralUserCreate(BaseCreateSchema):
    """Enroll a storefront account in the referral program."""
    user_id: UUID
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, max_length=200)


class InfluencerCreate(BaseCreateSchema):
    """Influencer application. user_id defaults to the caller."""
    user_id: Optional[UUID] = None
    name: str = Field(..., min_length=2, max_length=200)
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.]+$")
    phone: Optional[str] = Field(None, max_length=15)


# ============================================================================
# Updates
# ============================================================================

class InfluencerUpdate(BaseUpdateSchema):
    """Admin review of an influencer."""
    status: Optional[InfluencerStatus] = None
    tier: Optional[InfluencerTier] = None
    kyc_verified: Optional[bool] = None
    rejection_reason: Optional[str] = None


class KYCUpdate(BaseUpdateSchema):
    verified: bool


class PayoutDetailsUpdate(BaseUpdateSchema):
    preferred_payout_method: PayoutMethod
    bank_account_holder_name: Optional[str] = Field(None, max_length=200)
    bank_account_number: Optional[str] = Field(None, min_length=6, max_length=20, pattern=r"^\d+$")
    bank_ifsc: Optional[str] = None
    bank_name: Optional[str] = Field(None, max_length=100)
    upi_id: Optional[str] = None

    @field_validator('bank_ifsc')
    @classmethod
    def validate_ifsc(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        if not IFSC_PATTERN.match(v):
            raise ValueError("Invalid IFSC code")
        return v

    @field_validator('upi_id')
    @classmethod
    def validate_upi(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not UPI_PATTERN.match(v):
            raise ValueError("Invalid UPI id")
        return v

    @model_validator(mode='after')
    def check_method_details(self):
        if self.preferred_payout_method == PayoutMethod.BANK:
            if not (self.bank_account_number and self.bank_ifsc):
                raise ValueError("Bank payouts need an account number and IFSC")
        elif not self.upi_id:
            raise ValueError("UPI payouts need a UPI id")
        return self


# ============================================================================
# Responses
# ============================================================================

class ReferrerResponse(BaseResponseSchema):
    id: UUID
    kind: str
    referral_code: str
    name: Optional[str] = None
    email: Optional[str] = None
    tier: Optional[str] = None
    status: Optional[str] = None
    username: Optional[str] = None
    kyc_verified: bool
    preferred_payout_method: str
    bank_account_masked: Optional[str] = None
    bank_ifsc: Optional[str] = None
    upi_id: Optional[str] = None
    total_referrals: int
    converted_referrals: int
    total_sales: Decimal
    created_at: datetime

    @model_validator(mode='before')
    @classmethod
    def from_referrer(cls, data):
        if isinstance(data, dict):
            return data
        number = getattr(data, "bank_account_number", None)
        return {
            "id": data.id,
            "kind": data.kind.value,
            "referral_code": data.referral_code,
            "name": data.name,
            "email": data.email,
            "tier": data.tier,
            "status": getattr(data, "status", None),
            "username": getattr(data, "username", None),
            "kyc_verified": data.kyc_verified,
            "preferred_payout_method": data.preferred_payout_method,
            "bank_account_masked": f"XXXX{number[-4:]}" if number else None,
            "bank_ifsc": data.bank_ifsc,
            "upi_id": data.upi_id,
            "total_referrals": data.total_referrals,
            "converted_referrals": data.converted_referrals,
            "total_sales": data.total_sales,
            "created_at": data.created_at,
        }


class InfluencerListResponse(BaseModel):
    items: List[ReferrerResponse]
    total: int
    page: int
    page_size: int
