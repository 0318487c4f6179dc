"""Commission account and liability models.

The account holds a referrer's running balances. Its counters are written only
by CommissionLedger (services/ledger_service.py).
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from referral_core.database import Base
from referral_core.db_types import UUIDType, MoneyType
from referral_core.models.referrer import ReferrerKind, ReferrerRef


class LiabilityStatus(str, Enum):
    """Reconciliation state of a clawback shortfall."""
    OPEN = "open"
    RESOLVED = "resolved"


class CommissionAccount(Base):
    """
    Balance buckets for one referrer.

    Money enters through pending_amount only and then moves
    pending -> available -> reserved -> paid (or reserved -> available when a
    payout is rejected). Invariant:

        total_earned == pending + available + reserved + paid
    """
    __tablename__ = "commission_accounts"
    __table_args__ = (
        UniqueConstraint("referrer_kind", "referrer_id", name="uq_commission_account_referrer"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    referrer_kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="user, influencer"
    )
    referrer_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)

    pending_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="Credited, not yet withdrawable"
    )
    available_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="Withdrawable"
    )
    reserved_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="Held by open payout requests"
    )
    paid_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="Cumulative disbursed"
    )
    total_earned: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="Cumulative credited, net of reversals"
    )
    liability_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="Reversals that could not be recovered (already paid out)"
    )

    # Bumped by every ledger mutation
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

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
    def is_balanced(self) -> bool:
        """Check the conservation invariant."""
        return self.total_earned == (
            self.pending_amount
            + self.available_amount
            + self.reserved_amount
            + self.paid_amount
        )

    def __repr__(self) -> str:
        return (
            f"<CommissionAccount(referrer={self.referrer_kind}:{self.referrer_id}, "
            f"pending={self.pending_amount}, available={self.available_amount}, "
            f"reserved={self.reserved_amount}, paid={self.paid_amount})>"
        )


class CommissionLiability(Base):
    """
    Flagged shortfall from a reversal that hit already-paid commission.

    Needs manual reconciliation; never returned as an error to a caller.
    """
    __tablename__ = "commission_liabilities"
    __table_args__ = (
        Index('ix_commission_liabilities_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("commission_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    referral_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=LiabilityStatus.OPEN.value,
        nullable=False,
        comment="open, resolved"
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    resolved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<CommissionLiability(account={self.account_id}, amount={self.amount}, status={self.status})>"
