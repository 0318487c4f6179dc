"""
Commission Ledger

The only code allowed to write CommissionAccount balances.

Each operation is one guarded UPDATE on a single account row: the WHERE
clause carries the precondition (e.g. ``pending_amount >= :amount``), so two
concurrent requests against the same account can never both pass a check
that only one of them should. Reversal needs to split an amount across two
buckets, so it reads the row FOR UPDATE and writes back with a compare-and-set
on ``version``.

Ledger methods never commit; they run inside the caller's transaction.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.core.exceptions import (
    CommissionError,
    InvalidAmount,
    InsufficientPending,
    InsufficientBalance,
    ReservationMismatch,
)
from referral_core.models.commission import CommissionAccount, CommissionLiability, LiabilityStatus
from referral_core.models.referrer import ReferrerRef
from referral_core.services.commission_calculator import round_money


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# Compare-and-set attempts for reverse() before giving up
MAX_CAS_ATTEMPTS = 5


@dataclass
class ReversalResult:
    """How a reversal was funded."""
    from_pending: Decimal
    from_available: Decimal
    shortfall: Decimal
    liability: Optional[CommissionLiability] = None

    @property
    def recovered(self) -> Decimal:
        return self.from_pending + self.from_available


class CommissionLedger:
    """Atomic balance operations on commission accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # Accounts
    # ========================================================================

    async def get_account(self, ref: ReferrerRef) -> Optional[CommissionAccount]:
        result = await self.db.execute(
            select(CommissionAccount)
            .where(
                CommissionAccount.referrer_kind == ref.kind.value,
                CommissionAccount.referrer_id == ref.id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def open_account(self, ref: ReferrerRef) -> CommissionAccount:
        """Get the referrer's account, creating a zeroed one if missing."""
        account = await self.get_account(ref)
        if account:
            return account

        account = CommissionAccount(
            id=uuid.uuid4(),
            referrer_kind=ref.kind.value,
            referrer_id=ref.id,
            pending_amount=ZERO,
            available_amount=ZERO,
            reserved_amount=ZERO,
            paid_amount=ZERO,
            total_earned=ZERO,
            liability_amount=ZERO,
            version=0,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(account)
        except IntegrityError:
            # Opened concurrently by another request
            logger.info(f"Commission account for {ref} already exists")
            return await self.get_account(ref)

        logger.info(f"Opened commission account {account.id} for {ref}")
        return account

    async def _reload(self, account_id: uuid.UUID, for_update: bool = False) -> CommissionAccount:
        query = (
            select(CommissionAccount)
            .where(CommissionAccount.id == account_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one()

    async def _apply(
        self,
        account: CommissionAccount,
        values: dict,
        guard=None,
        error: Optional[CommissionError] = None,
    ) -> CommissionAccount:
        """Run one guarded UPDATE and return the refreshed row."""
        stmt = update(CommissionAccount).where(CommissionAccount.id == account.id)
        if guard is not None:
            stmt = stmt.where(guard)
        stmt = stmt.values(
            **values,
            version=CommissionAccount.version + 1,
            updated_at=datetime.now(timezone.utc),
        ).execution_options(synchronize_session=False)

        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            raise error or CommissionError(f"Commission account {account.id} not found")
        return await self._reload(account.id)

    @staticmethod
    def _check_amount(amount, allow_zero: bool = False) -> Decimal:
        try:
            amount = round_money(Decimal(str(amount)))
        except ArithmeticError:
            raise InvalidAmount(f"Invalid amount: {amount}")
        if amount < 0 or (amount == 0 and not allow_zero):
            raise InvalidAmount(f"Amount must be positive, got {amount}")
        return amount

    # ========================================================================
    # Operations
    # ========================================================================

    async def credit(self, account: CommissionAccount, amount) -> CommissionAccount:
        """Add newly earned commission to pending and total_earned."""
        amount = self._check_amount(amount, allow_zero=True)
        account = await self._apply(account, {
            "pending_amount": CommissionAccount.pending_amount + amount,
            "total_earned": CommissionAccount.total_earned + amount,
        })
        logger.info(f"Credited {amount} to account {account.id} (pending={account.pending_amount})")
        return account

    async def mature(self, account: CommissionAccount, amount) -> CommissionAccount:
        """Move pending commission to available. Never clamps."""
        amount = self._check_amount(amount)
        account = await self._apply(
            account,
            {
                "pending_amount": CommissionAccount.pending_amount - amount,
                "available_amount": CommissionAccount.available_amount + amount,
            },
            guard=CommissionAccount.pending_amount >= amount,
            error=InsufficientPending(
                f"Cannot mature {amount}: exceeds pending balance",
                {"account_id": str(account.id), "amount": str(amount)},
            ),
        )
        logger.info(f"Matured {amount} on account {account.id} (available={account.available_amount})")
        return account

    async def mature_up_to(self, account: CommissionAccount, amount) -> Decimal:
        """
        Move up to ``amount`` from pending to available and return what moved.

        Used when a referral comes due after part of its commission already
        left pending (manual maturity, or an earlier reversal that drew on
        pending). The remainder is not an error: that money is accounted for.
        """
        amount = self._check_amount(amount)

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            current = await self._reload(account.id, for_update=True)
            moved = min(current.pending_amount, amount)
            if moved <= 0:
                return ZERO

            stmt = (
                update(CommissionAccount)
                .where(
                    CommissionAccount.id == current.id,
                    CommissionAccount.version == current.version,
                )
                .values(
                    pending_amount=CommissionAccount.pending_amount - moved,
                    available_amount=CommissionAccount.available_amount + moved,
                    version=CommissionAccount.version + 1,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            if result.rowcount == 1:
                logger.info(f"Matured {moved} of {amount} on account {current.id}")
                return moved
            logger.warning(f"Concurrent update on account {current.id}, retrying maturity ({attempt})")

        raise CommissionError(
            f"Could not mature {amount} on account {account.id}: too much contention"
        )

    async def reserve_for_payout(self, account: CommissionAccount, amount) -> CommissionAccount:
        """Hold available commission for a new payout request."""
        amount = self._check_amount(amount)
        account = await self._apply(
            account,
            {
                "available_amount": CommissionAccount.available_amount - amount,
                "reserved_amount": CommissionAccount.reserved_amount + amount,
            },
            guard=CommissionAccount.available_amount >= amount,
            error=InsufficientBalance(
                "Insufficient available balance",
                {"account_id": str(account.id), "amount": str(amount)},
            ),
        )
        logger.info(f"Reserved {amount} on account {account.id} (available={account.available_amount})")
        return account

    async def settle_payout(self, account: CommissionAccount, amount) -> CommissionAccount:
        """A reserved payout was disbursed."""
        amount = self._check_amount(amount)
        account = await self._apply(
            account,
            {
                "reserved_amount": CommissionAccount.reserved_amount - amount,
                "paid_amount": CommissionAccount.paid_amount + amount,
            },
            guard=CommissionAccount.reserved_amount >= amount,
            error=ReservationMismatch(
                f"Cannot settle {amount}: exceeds reserved balance",
                {"account_id": str(account.id), "amount": str(amount)},
            ),
        )
        logger.info(f"Settled {amount} on account {account.id} (paid={account.paid_amount})")
        return account

    async def release_reservation(self, account: CommissionAccount, amount) -> CommissionAccount:
        """A reserved payout was rejected or failed; return it to available."""
        amount = self._check_amount(amount)
        account = await self._apply(
            account,
            {
                "reserved_amount": CommissionAccount.reserved_amount - amount,
                "available_amount": CommissionAccount.available_amount + amount,
            },
            guard=CommissionAccount.reserved_amount >= amount,
            error=ReservationMismatch(
                f"Cannot release {amount}: exceeds reserved balance",
                {"account_id": str(account.id), "amount": str(amount)},
            ),
        )
        logger.info(f"Released {amount} on account {account.id} (available={account.available_amount})")
        return account

    async def reverse(
        self,
        account: CommissionAccount,
        amount,
        referral_id: Optional[uuid.UUID] = None,
        order_id: Optional[uuid.UUID] = None,
        prefer_available: bool = False,
    ) -> ReversalResult:
        """
        Take back commission for a cancelled/refunded order.

        Debits pending first, then available. With ``prefer_available`` (the
        commission had already matured) the order is swapped so other
        referrals' pending commission stays in place. Whatever is left
        (already paid out or reserved for a payout) is recorded as an open
        liability on the account instead of driving a balance negative.
        """
        amount = self._check_amount(amount)

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            current = await self._reload(account.id, for_update=True)

            if prefer_available:
                from_available = min(current.available_amount, amount)
                from_pending = min(current.pending_amount, amount - from_available)
            else:
                from_pending = min(current.pending_amount, amount)
                from_available = min(current.available_amount, amount - from_pending)
            shortfall = amount - from_pending - from_available

            stmt = (
                update(CommissionAccount)
                .where(
                    CommissionAccount.id == current.id,
                    CommissionAccount.version == current.version,
                )
                .values(
                    pending_amount=CommissionAccount.pending_amount - from_pending,
                    available_amount=CommissionAccount.available_amount - from_available,
                    total_earned=CommissionAccount.total_earned - (from_pending + from_available),
                    liability_amount=CommissionAccount.liability_amount + shortfall,
                    version=CommissionAccount.version + 1,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            if result.rowcount == 1:
                break
            logger.warning(f"Concurrent update on account {current.id}, retrying reversal ({attempt})")
        else:
            raise CommissionError(
                f"Could not reverse {amount} on account {account.id}: too much contention"
            )

        reversal = ReversalResult(
            from_pending=from_pending,
            from_available=from_available,
            shortfall=shortfall,
        )

        if shortfall > 0:
            liability = CommissionLiability(
                id=uuid.uuid4(),
                account_id=current.id,
                referral_id=referral_id,
                order_id=order_id,
                amount=shortfall,
                status=LiabilityStatus.OPEN.value,
                notes="Reversal exceeded pending and available balance",
            )
            self.db.add(liability)
            await self.db.flush()
            reversal.liability = liability
            logger.warning(
                f"Reversal shortfall of {shortfall} on account {current.id} "
                f"(order {order_id}) flagged for reconciliation"
            )

        await self._reload(current.id)
        logger.info(
            f"Reversed {amount} on account {current.id}: "
            f"pending={from_pending}, available={from_available}, shortfall={shortfall}"
        )
        return reversal

    async def clear_liability(self, account: CommissionAccount, amount) -> CommissionAccount:
        """An open liability was reconciled outside the ledger."""
        amount = self._check_amount(amount)
        account = await self._apply(
            account,
            {"liability_amount": CommissionAccount.liability_amount - amount},
            guard=CommissionAccount.liability_amount >= amount,
            error=CommissionError(
                f"Cannot clear {amount}: exceeds outstanding liability",
                {"account_id": str(account.id), "amount": str(amount)},
            ),
        )
        logger.info(f"Cleared liability {amount} on account {account.id} (outstanding={account.liability_amount})")
        return account
