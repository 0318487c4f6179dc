"""
Referrer Service

Registration of regular users and influencers into the referral program,
admin review of influencers, KYC and payout details.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config import CommissionConfig
from referral_core.core.exceptions import ReferrerNotFound
from referral_core.models.referrer import (
    ReferralUser,
    Influencer,
    InfluencerStatus,
    InfluencerTier,
    PayoutMethod,
    Referrer,
    ReferrerRef,
    REFERRER_MODELS,
)
from referral_core.services.ledger_service import CommissionLedger
from referral_core.services.referral_code_service import ReferralCodeService


logger = logging.getLogger(__name__)

PAYOUT_DETAIL_FIELDS = (
    "preferred_payout_method",
    "bank_account_holder_name",
    "bank_account_number",
    "bank_ifsc",
    "bank_name",
    "upi_id",
)


class ReferrerService:
    """Service for referrer accounts."""

    def __init__(self, db: AsyncSession, config: CommissionConfig):
        self.db = db
        self.config = config
        self.codes = ReferralCodeService(db, config)
        self.ledger = CommissionLedger(db)

    # ========================================================================
    # Lookup
    # ========================================================================

    async def get_referrer(self, referrer_id: uuid.UUID) -> Optional[Referrer]:
        """Find a referrer by id; regular users take precedence."""
        user = await self.db.get(ReferralUser, referrer_id)
        if user:
            return user
        return await self.db.get(Influencer, referrer_id)

    async def require_referrer(self, referrer_id: uuid.UUID) -> Referrer:
        referrer = await self.get_referrer(referrer_id)
        if not referrer:
            raise ReferrerNotFound(f"Referrer {referrer_id} not found")
        return referrer

    async def load(self, ref: ReferrerRef) -> Optional[Referrer]:
        return await self.db.get(REFERRER_MODELS[ref.kind], ref.id)

    async def get_influencer_by_user(self, user_id: uuid.UUID) -> Optional[Influencer]:
        result = await self.db.execute(
            select(Influencer).where(Influencer.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_influencers(
        self,
        status: Optional[str] = None,
        tier: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Influencer], int]:
        """List influencers with filters and pagination."""
        filters = []
        if status:
            filters.append(Influencer.status == status)
        if tier:
            filters.append(Influencer.tier == tier)
        if search:
            filters.append(or_(
                Influencer.name.ilike(f"%{search}%"),
                Influencer.username.ilike(f"%{search}%"),
                Influencer.email.ilike(f"%{search}%"),
                Influencer.referral_code.ilike(f"%{search}%"),
            ))

        query = select(Influencer)
        count_query = select(func.count(Influencer.id))
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        total = (await self.db.execute(count_query)).scalar()

        query = query.order_by(Influencer.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)

        return list(result.scalars().all()), total

    # ========================================================================
    # Registration
    # ========================================================================

    async def register_user(
        self,
        user_id: uuid.UUID,
        email: Optional[str] = None,
        name: Optional[str] = None
    ) -> ReferralUser:
        """
        Enroll a storefront account: referral code plus a zeroed commission
        account. Registering the same user twice returns the existing profile.
        """
        existing = await self.db.get(ReferralUser, user_id)
        if existing:
            return existing

        user = ReferralUser(id=user_id, email=email, name=name)
        await self.codes.assign(user, user_id)
        await self.ledger.open_account(user.ref)
        await self.db.commit()

        logger.info(f"Registered referral user {user_id} with code {user.referral_code}")
        return user

    async def register_influencer(
        self,
        user_id: uuid.UUID,
        name: str,
        email: str,
        username: str,
        phone: Optional[str] = None
    ) -> Influencer:
        """Record an influencer application. Starts pending on the bronze tier."""
        if await self.get_influencer_by_user(user_id):
            raise ValueError("This account already has an influencer profile")

        username = username.strip().lower()
        taken = await self.db.execute(
            select(Influencer.id).where(Influencer.username == username)
        )
        if taken.scalar_one_or_none():
            raise ValueError(f"Username {username} is already taken")

        influencer = Influencer(
            id=uuid.uuid4(),
            user_id=user_id,
            name=name,
            email=email,
            phone=phone,
            username=username,
            tier=InfluencerTier.BRONZE.value,
            status=InfluencerStatus.PENDING.value,
        )
        await self.codes.assign(influencer, influencer.id)
        await self.ledger.open_account(influencer.ref)
        await self.db.commit()

        logger.info(f"Registered influencer {username} with code {influencer.referral_code}")
        return influencer

    # ========================================================================
    # Admin
    # ========================================================================

    async def update_influencer(
        self,
        influencer_id: uuid.UUID,
        data: Dict[str, Any],
        admin_id: Optional[uuid.UUID] = None
    ) -> Influencer:
        """Review an influencer: status, tier, KYC."""
        influencer = await self.db.get(Influencer, influencer_id)
        if not influencer:
            raise ReferrerNotFound(f"Influencer {influencer_id} not found")

        now = datetime.now(timezone.utc)

        status = data.get("status")
        if status and status != influencer.status:
            influencer.status = status
            if status == InfluencerStatus.APPROVED.value:
                influencer.approved_at = now
                influencer.approved_by = admin_id
                influencer.rejected_at = None
                influencer.rejection_reason = None
            elif status == InfluencerStatus.REJECTED.value:
                influencer.rejected_at = now
                influencer.rejection_reason = data.get("rejection_reason")
            logger.info(f"Influencer {influencer.username} is now {status}")

        if data.get("tier"):
            tier = data["tier"].lower()
            if tier not in self.config.tier_rates:
                raise ValueError(f"Unknown tier '{tier}'")
            influencer.tier = tier

        if data.get("kyc_verified") is not None:
            self._set_kyc(influencer, data["kyc_verified"], now)

        await self.db.commit()
        return influencer

    async def set_kyc(self, referrer_id: uuid.UUID, verified: bool) -> Referrer:
        referrer = await self.require_referrer(referrer_id)
        self._set_kyc(referrer, verified, datetime.now(timezone.utc))
        await self.db.commit()
        return referrer

    @staticmethod
    def _set_kyc(referrer: Referrer, verified: bool, now: datetime) -> None:
        referrer.kyc_verified = verified
        referrer.kyc_verified_at = now if verified else None
        logger.info(f"KYC for {referrer.ref} set to {verified}")

    async def update_payout_details(self, referrer: Referrer, data: Dict[str, Any]) -> Referrer:
        """Save disbursement details used by future payout requests."""
        for field in PAYOUT_DETAIL_FIELDS:
            if field in data:
                value = data[field]
                if isinstance(value, PayoutMethod):
                    value = value.value
                setattr(referrer, field, value)

        await self.db.commit()
        logger.info(f"Updated payout details for {referrer.ref}")
        return referrer
