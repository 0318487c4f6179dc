"""Referral attribution records."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from referral_core.database import Base
from referral_core.db_types import UUIDType, MoneyType
from referral_core.models.referrer import ReferrerKind, ReferrerRef


class ReferralStatus(str, Enum):
    """Attribution lifecycle."""
    PENDING = "pending"        # Signed up, no qualifying order yet
    CONVERTED = "converted"    # First qualifying order delivered
    EXPIRED = "expired"        # Window elapsed without conversion


class ReferralCommissionStatus(str, Enum):
    """Where the commission of a converted referral currently sits."""
    PENDING = "pending"        # Credited to the pending bucket
    MATURED = "matured"        # Moved to the available bucket
    REVERSED = "reversed"      # Order cancelled/refunded, commission debited


class Referral(Base):
    """
    One attribution edge: referrer -> referred signup -> first order.

    A referred account is attributed at most once (unique referred_user_id)
    and a referral links at most one order.
    """
    __tablename__ = "referrals"
    __table_args__ = (
        Index('ix_referrals_referrer', 'referrer_kind', 'referrer_id'),
        Index('ix_referrals_status_expires', 'status', 'expires_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    # Referrer
    referrer_kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="user, influencer"
    )
    referrer_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)

    # Referred signup
    referred_user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        unique=True,
        nullable=False,
        index=True
    )
    referral_code: Mapped[str] = mapped_column(String(32), nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(20),
        default=ReferralStatus.PENDING.value,
        nullable=False,
        comment="pending, converted, expired"
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Conversion
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, unique=True, nullable=True)
    order_amount: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Percentage applied at conversion"
    )
    commission_amount: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    commission_status: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="pending, matured, reversed"
    )

    # Status History
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    matured_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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

    @property
    def referrer(self) -> ReferrerRef:
        return ReferrerRef(ReferrerKind(self.referrer_kind), self.referrer_id)

    @property
    def is_terminal(self) -> bool:
        return self.status != ReferralStatus.PENDING.value

    def __repr__(self) -> str:
        return f"<Referral(code={self.referral_code}, referred={self.referred_user_id}, status={self.status})>"
