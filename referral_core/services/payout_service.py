"""
Payout Service

Validates payout requests and records their settlement.

Requesting a payout reserves the amount on the commission account at once,
so open requests can never add up to more than was available. Settlement
moves the reservation to paid, or back to available when the payout is
rejected or fails.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config import CommissionConfig
from referral_core.core.exceptions import (
    BelowMinimum,
    InsufficientBalance,
    VerificationRequired,
    PayoutDetailsMissing,
    PayoutNotFound,
)
from referral_core.models.payout import Payout, PayoutStatus, OPEN_PAYOUT_STATUSES
from referral_core.models.referrer import PayoutMethod, Referrer, ReferrerKind, ReferrerRef, REFERRER_MODELS
from referral_core.services.commission_calculator import round_money
from referral_core.services.ledger_service import CommissionLedger
from referral_core.services.notification_service import NotificationService


logger = logging.getLogger(__name__)

SETTLEMENT_OUTCOMES = (
    PayoutStatus.PAID.value,
    PayoutStatus.REJECTED.value,
    PayoutStatus.FAILED.value,
)


def generate_payout_number(now: datetime) -> str:
    """PAY + date + random suffix, e.g. PAY20261017A1B2C3."""
    return f"PAY{now.strftime('%Y%m%d')}{uuid.uuid4().hex[:6].upper()}"


class PayoutService:
    """Service for payout requests and settlement."""

    def __init__(
        self,
        db: AsyncSession,
        config: CommissionConfig,
        notifier: Optional[NotificationService] = None
    ):
        self.db = db
        self.config = config
        self.notifier = notifier
        self.ledger = CommissionLedger(db)

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_payout(self, payout_id: uuid.UUID) -> Payout:
        result = await self.db.execute(
            select(Payout)
            .where(Payout.id == payout_id)
            .execution_options(populate_existing=True)
        )
        payout = result.scalar_one_or_none()
        if not payout:
            raise PayoutNotFound(f"Payout {payout_id} not found")
        return payout

    async def list_payouts(
        self,
        status: Optional[str] = None,
        referrer: Optional[ReferrerRef] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Payout], int]:
        """List payouts with filters and pagination."""
        filters = []
        if status:
            filters.append(Payout.status == status)
        if referrer:
            filters.append(Payout.referrer_kind == referrer.kind.value)
            filters.append(Payout.referrer_id == referrer.id)

        query = select(Payout)
        count_query = select(func.count(Payout.id))
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        total = (await self.db.execute(count_query)).scalar()

        query = query.order_by(Payout.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)

        return list(result.scalars().all()), total

    async def open_payout_total(self, referrer: ReferrerRef) -> Decimal:
        """Sum of pending and approved payouts for a referrer."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(Payout.amount), 0)).where(
                Payout.referrer_kind == referrer.kind.value,
                Payout.referrer_id == referrer.id,
                Payout.status.in_(OPEN_PAYOUT_STATUSES),
            )
        )
        return round_money(Decimal(str(result.scalar())))

    # ========================================================================
    # Request
    # ========================================================================

    async def request_payout(self, referrer: Referrer, amount) -> Payout:
        """
        Create a pending payout for a referrer.

        Checks, in order: minimum amount, available balance, KYC, payout
        details. The balance check is repeated by the guarded reservation,
        so a request that loses a race with another still gets
        InsufficientBalance rather than overdrawing the account.
        """
        amount = round_money(Decimal(str(amount)))

        if amount < self.config.min_payout_amount:
            raise BelowMinimum(
                f"Minimum payout amount is {self.config.min_payout_amount}",
                {"amount": str(amount), "minimum": str(self.config.min_payout_amount)},
            )

        account = await self.ledger.open_account(referrer.ref)
        if amount > account.available_amount:
            raise InsufficientBalance(
                "Insufficient available balance",
                {"amount": str(amount), "available": str(account.available_amount)},
            )

        if self.config.kyc_required and not referrer.kyc_verified:
            raise VerificationRequired("KYC verification is required before requesting a payout")

        method = referrer.preferred_payout_method or PayoutMethod.BANK.value
        if method == PayoutMethod.UPI.value:
            has_details = bool(referrer.upi_id)
        else:
            has_details = bool(referrer.bank_account_number and referrer.bank_ifsc)
        if not has_details:
            raise PayoutDetailsMissing(f"No {method} details on file for payouts")

        try:
            await self.ledger.reserve_for_payout(account, amount)

            now = datetime.now(timezone.utc)
            payout = Payout(
                id=uuid.uuid4(),
                payout_number=generate_payout_number(now),
                referrer_kind=referrer.kind.value,
                referrer_id=referrer.id,
                account_id=account.id,
                amount=amount,
                status=PayoutStatus.PENDING.value,
                # Disbursement snapshot
                payout_method=method,
                bank_account_holder_name=referrer.bank_account_holder_name,
                bank_account_number=referrer.bank_account_number,
                bank_ifsc=referrer.bank_ifsc,
                bank_name=referrer.bank_name,
                upi_id=referrer.upi_id,
                created_at=now,
                updated_at=now,
            )
            self.db.add(payout)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Payout {payout.payout_number} requested by {referrer.ref} for {amount}")

        if self.notifier:
            await self.notifier.payout_requested(referrer, payout)

        return payout

    # ========================================================================
    # Admin actions
    # ========================================================================

    async def approve(self, payout_id: uuid.UUID, processed_by: Optional[uuid.UUID] = None) -> Payout:
        """Mark a pending payout as approved for disbursement. Moves no money."""
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(Payout)
            .where(Payout.id == payout_id, Payout.status == PayoutStatus.PENDING.value)
            .values(
                status=PayoutStatus.APPROVED.value,
                approved_at=now,
                processed_by=processed_by,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        payout = await self.get_payout(payout_id)
        if result.rowcount == 1:
            logger.info(f"Payout {payout.payout_number} approved")
        else:
            logger.info(f"Payout {payout.payout_number} is {payout.status}, approve ignored")
        return payout

    async def settle(
        self,
        payout_id: uuid.UUID,
        outcome: str,
        processed_by: Optional[uuid.UUID] = None,
        transaction_reference: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Payout:
        """
        Record the result of a disbursement.

        paid moves the reservation to paid; rejected or failed returns it to
        available. Settling a payout that is already terminal changes nothing.
        """
        outcome = PayoutStatus(outcome).value
        if outcome not in SETTLEMENT_OUTCOMES:
            raise ValueError(f"Invalid settlement outcome '{outcome}'")

        payout = await self.get_payout(payout_id)
        if not payout.is_open:
            logger.info(f"Payout {payout.payout_number} already {payout.status}, settle ignored")
            return payout

        now = datetime.now(timezone.utc)
        try:
            result = await self.db.execute(
                update(Payout)
                .where(Payout.id == payout_id, Payout.status.in_(OPEN_PAYOUT_STATUSES))
                .values(
                    status=outcome,
                    processed_by=processed_by,
                    processed_at=now,
                    transaction_reference=transaction_reference,
                    notes=notes,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # Settled concurrently
                return await self.get_payout(payout_id)

            account = await self.ledger.open_account(payout.referrer)
            if outcome == PayoutStatus.PAID.value:
                await self.ledger.settle_payout(account, payout.amount)
            else:
                await self.ledger.release_reservation(account, payout.amount)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        payout = await self.get_payout(payout_id)
        logger.info(f"Payout {payout.payout_number} settled as {outcome}")

        if self.notifier:
            model = REFERRER_MODELS[ReferrerKind(payout.referrer_kind)]
            referrer = await self.db.get(model, payout.referrer_id)
            if referrer:
                await self.notifier.payout_settled(referrer, payout)

        return payout
