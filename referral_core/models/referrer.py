"""Referrer models for the storefront referral program.

Two kinds of account own a referral code and earn commission:

- Regular users: any registered customer, always on the base commission rate.
- Influencers: approved affiliates, paid by tier (bronze ... diamond).

Both are addressed through the ReferrerRef tagged value so callers never
compare kind strings by hand.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from sqlalchemy import String, Boolean, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from referral_core.database import Base
from referral_core.db_types import UUIDType, MoneyType


# ==================== ENUMS (stored as VARCHAR) ====================

class ReferrerKind(str, Enum):
    """Which table a referrer lives in."""
    USER = "user"
    INFLUENCER = "influencer"


class InfluencerTier(str, Enum):
    """Influencer commission tiers, lowest first."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"


class InfluencerStatus(str, Enum):
    """Influencer application status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class PayoutMethod(str, Enum):
    """Disbursement method."""
    BANK = "bank"
    UPI = "upi"


@dataclass(frozen=True)
class ReferrerRef:
    """Tagged reference to a referrer: (kind, id)."""
    kind: ReferrerKind
    id: uuid.UUID

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


# ==================== MODELS ====================

class ReferrerProfileMixin:
    """Columns shared by every referrer: code, payout profile, stats."""

    referral_code: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
        comment="Upper-case code shared with friends"
    )

    # KYC
    kyc_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    kyc_verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Disbursement details
    preferred_payout_method: Mapped[str] = mapped_column(
        String(20),
        default=PayoutMethod.BANK.value,
        nullable=False,
        comment="bank, upi"
    )
    bank_account_holder_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    bank_ifsc: Mapped[Optional[str]] = mapped_column(String(11), nullable=True)
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    upi_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Performance Metrics (denormalized for quick access)
    total_referrals: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    converted_referrals: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_sales: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )


class ReferralUser(ReferrerProfileMixin, Base):
    """
    A registered storefront customer enrolled in the referral program.

    The id is the identity service's user id; the profile is created when the
    account signs up.
    """
    __tablename__ = "referral_users"

    kind = ReferrerKind.USER

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    @property
    def ref(self) -> ReferrerRef:
        return ReferrerRef(ReferrerKind.USER, self.id)

    @property
    def tier(self) -> Optional[str]:
        return None

    def owned_by(self, user_id: uuid.UUID) -> bool:
        return self.id == user_id

    def __repr__(self) -> str:
        return f"<ReferralUser(id={self.id}, code={self.referral_code})>"


class Influencer(ReferrerProfileMixin, Base):
    """
    Influencer / affiliate account.

    Applies, gets approved by an admin, and earns commission by tier.
    """
    __tablename__ = "influencers"

    kind = ReferrerKind.INFLUENCER

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    # Login identity of the influencer
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        unique=True,
        nullable=False,
        index=True
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    tier: Mapped[str] = mapped_column(
        String(20),
        default=InfluencerTier.BRONZE.value,
        nullable=False,
        comment="bronze, silver, gold, platinum, diamond"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=InfluencerStatus.PENDING.value,
        nullable=False,
        comment="pending, approved, rejected, blocked"
    )

    # Review audit
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def ref(self) -> ReferrerRef:
        return ReferrerRef(ReferrerKind.INFLUENCER, self.id)

    @property
    def can_refer(self) -> bool:
        return self.status not in (InfluencerStatus.REJECTED.value, InfluencerStatus.BLOCKED.value)

    def owned_by(self, user_id: uuid.UUID) -> bool:
        return self.user_id == user_id

    def __repr__(self) -> str:
        return f"<Influencer(username={self.username}, tier={self.tier}, status={self.status})>"


Referrer = Union[ReferralUser, Influencer]

REFERRER_MODELS = {
    ReferrerKind.USER: ReferralUser,
    ReferrerKind.INFLUENCER: Influencer,
}
