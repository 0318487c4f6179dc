"""
Referral Attribution Service

Handles the referral lifecycle:
- Attribution at signup (one-shot per referred account)
- Conversion on the first delivered order, crediting commission
- Reversal when that order is cancelled or refunded
- Maturity of pending commission after the return window

Every status change is a compare-and-set UPDATE that only applies when the
referral is still in the expected state, so duplicate order events and
concurrent expiry sweeps are harmless no-ops.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, List, Tuple, Dict

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config import CommissionConfig
from referral_core.core.exceptions import CommissionError
from referral_core.models.referral import Referral, ReferralStatus, ReferralCommissionStatus
from referral_core.models.referrer import (
    Influencer,
    InfluencerTier,
    ReferrerKind,
    ReferrerRef,
    REFERRER_MODELS,
)
from referral_core.services.commission_calculator import CommissionCalculator, round_money
from referral_core.services.ledger_service import CommissionLedger, ReversalResult
from referral_core.services.notification_service import NotificationService
from referral_core.services.referral_code_service import ReferralCodeService, normalize_code


logger = logging.getLogger(__name__)

TIER_ORDER = [tier.value for tier in InfluencerTier]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReferralService:
    """Service for referral attribution and commission crediting."""

    def __init__(
        self,
        db: AsyncSession,
        config: CommissionConfig,
        notifier: Optional[NotificationService] = None
    ):
        self.db = db
        self.config = config
        self.notifier = notifier
        self.codes = ReferralCodeService(db, config)
        self.calculator = CommissionCalculator(config)
        self.ledger = CommissionLedger(db)

    # ========================================================================
    # Lookup
    # ========================================================================

    async def get_referral(self, referral_id: uuid.UUID) -> Optional[Referral]:
        return await self._reload(referral_id)

    async def get_referral_for_user(self, referred_user_id: uuid.UUID) -> Optional[Referral]:
        result = await self.db.execute(
            select(Referral)
            .where(Referral.referred_user_id == referred_user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_referral_for_order(self, order_id: uuid.UUID) -> Optional[Referral]:
        result = await self.db.execute(
            select(Referral)
            .where(Referral.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _reload(self, referral_id: uuid.UUID) -> Optional[Referral]:
        result = await self.db.execute(
            select(Referral)
            .where(Referral.id == referral_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_referrals(
        self,
        status: Optional[str] = None,
        referrer: Optional[ReferrerRef] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Referral], int]:
        """List referrals with filters and pagination."""
        filters = []
        if status:
            filters.append(Referral.status == status)
        if referrer:
            filters.append(Referral.referrer_kind == referrer.kind.value)
            filters.append(Referral.referrer_id == referrer.id)

        query = select(Referral)
        count_query = select(func.count(Referral.id))
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        total = (await self.db.execute(count_query)).scalar()

        query = query.order_by(Referral.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)

        return list(result.scalars().all()), total

    async def get_stats(self) -> Dict:
        """Program-wide referral numbers."""
        result = await self.db.execute(
            select(Referral.status, func.count(Referral.id)).group_by(Referral.status)
        )
        by_status = {status: count for status, count in result.all()}

        result = await self.db.execute(
            select(Referral.commission_status, func.coalesce(func.sum(Referral.commission_amount), 0))
            .where(Referral.commission_status.is_not(None))
            .group_by(Referral.commission_status)
        )
        commission = {status: round_money(Decimal(str(total))) for status, total in result.all()}

        total = sum(by_status.values())
        converted = by_status.get(ReferralStatus.CONVERTED.value, 0)
        return {
            "total_referrals": total,
            "pending_referrals": by_status.get(ReferralStatus.PENDING.value, 0),
            "converted_referrals": converted,
            "expired_referrals": by_status.get(ReferralStatus.EXPIRED.value, 0),
            "conversion_rate": round(converted / total * 100, 2) if total else 0.0,
            "commission_pending": commission.get(ReferralCommissionStatus.PENDING.value, Decimal("0.00")),
            "commission_matured": commission.get(ReferralCommissionStatus.MATURED.value, Decimal("0.00")),
            "commission_reversed": commission.get(ReferralCommissionStatus.REVERSED.value, Decimal("0.00")),
        }

    # ========================================================================
    # Attribution
    # ========================================================================

    async def attribute(
        self,
        new_user_id: uuid.UUID,
        referral_code: Optional[str],
        now: Optional[datetime] = None
    ) -> Optional[Referral]:
        """
        Link a new signup to the owner of the code they entered.

        Returns None instead of raising for anything wrong with the code:
        registration must never fail because of it.
        """
        code = normalize_code(referral_code)
        if not code:
            return None

        if not self.config.referral_enabled:
            logger.info("Referral program disabled, ignoring referral code")
            return None

        referrer = await self.codes.resolve(code)
        if not referrer:
            logger.info(f"Referral code {code} did not resolve, signup {new_user_id} not attributed")
            return None

        if referrer.owned_by(new_user_id):
            logger.warning(f"User {new_user_id} tried to use their own referral code {code}")
            return None

        if await self.get_referral_for_user(new_user_id):
            logger.info(f"User {new_user_id} is already attributed")
            return None

        now = now or utcnow()
        referral = Referral(
            id=uuid.uuid4(),
            referrer_kind=referrer.kind.value,
            referrer_id=referrer.id,
            referred_user_id=new_user_id,
            referral_code=code,
            status=ReferralStatus.PENDING.value,
            expires_at=now + timedelta(days=self.config.referral_validity_days),
            created_at=now,
            updated_at=now,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(referral)
        except IntegrityError:
            logger.info(f"User {new_user_id} was attributed concurrently")
            return None

        model = REFERRER_MODELS[referrer.kind]
        await self.db.execute(
            update(model)
            .where(model.id == referrer.id)
            .values(total_referrals=model.total_referrals + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        logger.info(f"Attributed user {new_user_id} to {referrer.ref} via {code}")
        return referral

    # ========================================================================
    # Conversion
    # ========================================================================

    async def convert(
        self,
        referral: Referral,
        order_id: uuid.UUID,
        order_total: Decimal,
        now: Optional[datetime] = None
    ) -> Referral:
        """
        Convert a pending referral on its first delivered order.

        Only a pending referral whose expiry has not passed converts (a
        referral expiring exactly now still does). Any other state is a no-op
        returning the referral as stored, so a repeated delivery event can
        never credit twice.
        """
        now = now or utcnow()
        order_total = round_money(Decimal(str(order_total)))

        if referral.status != ReferralStatus.PENDING.value:
            logger.info(f"Referral {referral.id} already {referral.status}, ignoring order {order_id}")
            return referral

        if order_total < self.config.referral_min_order_amount:
            logger.info(
                f"Order {order_id} total {order_total} below referral minimum "
                f"{self.config.referral_min_order_amount}, referral {referral.id} stays pending"
            )
            return referral

        model = REFERRER_MODELS[ReferrerKind(referral.referrer_kind)]
        referrer = await self.db.get(model, referral.referrer_id)
        if not referrer:
            logger.error(f"Referrer {referral.referrer} of referral {referral.id} no longer exists")
            return referral

        rate = self.calculator.rate_for(referrer)
        amount = self.calculator.compute(referrer, order_total)

        result = await self.db.execute(
            update(Referral)
            .where(
                Referral.id == referral.id,
                Referral.status == ReferralStatus.PENDING.value,
                Referral.expires_at >= now,
            )
            .values(
                status=ReferralStatus.CONVERTED.value,
                order_id=order_id,
                order_amount=order_total,
                commission_rate=rate,
                commission_amount=amount,
                commission_status=ReferralCommissionStatus.PENDING.value,
                converted_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Expired, or converted by a concurrent delivery event
            current = await self._reload(referral.id)
            logger.info(f"Referral {referral.id} not convertible (now {current.status}), ignoring order {order_id}")
            return current

        account = await self.ledger.open_account(referrer.ref)
        await self.ledger.credit(account, amount)

        await self.db.execute(
            update(model)
            .where(model.id == referrer.id)
            .values(
                converted_referrals=model.converted_referrals + 1,
                total_sales=model.total_sales + order_total,
            )
            .execution_options(synchronize_session=False)
        )
        if isinstance(referrer, Influencer):
            await self._check_tier_upgrade(referrer.id)

        await self.db.commit()

        referral = await self._reload(referral.id)
        logger.info(
            f"Referral {referral.id} converted by order {order_id}: "
            f"{amount} ({rate}%) credited to {referrer.ref}"
        )

        if self.notifier:
            await self.notifier.commission_credited(referrer, amount, order_total, self.config.maturity_days)

        return referral

    async def _check_tier_upgrade(self, influencer_id: uuid.UUID) -> Optional[str]:
        """Move an influencer up to the tier their conversions reached. Never downgrades."""
        result = await self.db.execute(
            select(Influencer)
            .where(Influencer.id == influencer_id)
            .execution_options(populate_existing=True)
        )
        influencer = result.scalar_one()

        reached = self.calculator.tier_for_conversions(influencer.converted_referrals)
        current = influencer.tier if influencer.tier in TIER_ORDER else InfluencerTier.BRONZE.value
        if TIER_ORDER.index(reached) <= TIER_ORDER.index(current):
            return None

        influencer.tier = reached
        await self.db.flush()
        logger.info(f"Influencer {influencer.username} upgraded from {current} to {reached}")
        return reached

    # ========================================================================
    # Reversal
    # ========================================================================

    async def reverse_for_order(
        self,
        order_id: uuid.UUID,
        now: Optional[datetime] = None
    ) -> Optional[ReversalResult]:
        """
        Take back the commission of a cancelled or refunded order.

        Returns None when the order converted no referral or its commission
        was already reversed.
        """
        now = now or utcnow()

        referral = await self.get_referral_for_order(order_id)
        if not referral:
            return None
        was_matured = referral.commission_status == ReferralCommissionStatus.MATURED.value

        result = await self.db.execute(
            update(Referral)
            .where(
                Referral.id == referral.id,
                Referral.commission_status.in_([
                    ReferralCommissionStatus.PENDING.value,
                    ReferralCommissionStatus.MATURED.value,
                ]),
            )
            .values(
                commission_status=ReferralCommissionStatus.REVERSED.value,
                reversed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(f"Commission for order {order_id} already reversed")
            return None

        amount = referral.commission_amount or Decimal("0.00")
        reversal = ReversalResult(Decimal("0.00"), Decimal("0.00"), Decimal("0.00"))
        if amount > 0:
            account = await self.ledger.open_account(referral.referrer)
            reversal = await self.ledger.reverse(
                account, amount, referral.id, order_id,
                prefer_available=was_matured,
            )

        model = REFERRER_MODELS[ReferrerKind(referral.referrer_kind)]
        await self.db.execute(
            update(model)
            .where(model.id == referral.referrer_id)
            .values(total_sales=model.total_sales - (referral.order_amount or 0))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        logger.info(f"Reversed commission {amount} of referral {referral.id} for order {order_id}")

        if reversal.liability and self.notifier:
            await self.notifier.liability_flagged(reversal.liability)

        return reversal

    # ========================================================================
    # Maturity
    # ========================================================================

    async def mature_due(
        self,
        now: Optional[datetime] = None,
        referrer: Optional[ReferrerRef] = None,
        ignore_window: bool = False
    ) -> int:
        """
        Make commission withdrawable once the return window has passed.

        Each referral is matured in its own savepoint. Commission that already
        left pending (matured by hand, or drawn by a reversal) is not moved
        twice; the referral is still marked matured.
        """
        now = now or utcnow()
        filters = [Referral.commission_status == ReferralCommissionStatus.PENDING.value]
        if not ignore_window:
            filters.append(Referral.converted_at <= now - timedelta(days=self.config.maturity_days))
        if referrer:
            filters.append(Referral.referrer_kind == referrer.kind.value)
            filters.append(Referral.referrer_id == referrer.id)

        result = await self.db.execute(
            select(Referral).where(and_(*filters)).order_by(Referral.converted_at)
        )
        due = [
            (referral.id, referral.referrer, referral.commission_amount or Decimal("0.00"))
            for referral in result.scalars().all()
        ]

        matured = 0
        for referral_id, ref, amount in due:
            try:
                async with self.db.begin_nested():
                    claimed = await self.db.execute(
                        update(Referral)
                        .where(
                            Referral.id == referral_id,
                            Referral.commission_status == ReferralCommissionStatus.PENDING.value,
                        )
                        .values(
                            commission_status=ReferralCommissionStatus.MATURED.value,
                            matured_at=now,
                            updated_at=now,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if claimed.rowcount != 1:
                        continue

                    if amount > 0:
                        account = await self.ledger.open_account(ref)
                        moved = await self.ledger.mature_up_to(account, amount)
                        if moved < amount:
                            logger.warning(
                                f"Referral {referral_id}: only {moved} of {amount} was still pending, "
                                f"the rest had already left pending"
                            )
                    matured += 1
            except CommissionError as e:
                logger.error(f"Could not mature referral {referral_id}: {e.message}")

        await self.db.commit()
        if matured:
            logger.info(f"Matured commission on {matured} referrals")
        return matured
