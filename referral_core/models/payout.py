"""Payout request records."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from referral_core.database import Base
from referral_core.db_types import UUIDType, MoneyType
from referral_core.models.referrer import ReferrerKind, ReferrerRef


class PayoutStatus(str, Enum):
    """Payout request status."""
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"
    FAILED = "failed"


OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING.value, PayoutStatus.APPROVED.value)


class Payout(Base):
    """
    Withdrawal request against a commission account.

    The amount is reserved on the account when the request is created and
    the disbursement details are snapshotted at that moment. Kept forever as
    an audit trail.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        Index('ix_payouts_status', 'status'),
        Index('ix_payouts_referrer', 'referrer_kind', 'referrer_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    payout_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        comment="Human readable reference"
    )

    referrer_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    referrer_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("commission_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Disbursement snapshot
    payout_method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="bank, upi"
    )
    bank_account_holder_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    bank_ifsc: Mapped[Optional[str]] = mapped_column(String(11), nullable=True)
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    upi_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=PayoutStatus.PENDING.value,
        nullable=False,
        comment="pending, approved, paid, rejected, failed"
    )

    # Processing Details
    transaction_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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
    def is_open(self) -> bool:
        return self.status in OPEN_PAYOUT_STATUSES

    def __repr__(self) -> str:
        return f"<Payout(number={self.payout_number}, amount={self.amount}, status={self.status})>"
