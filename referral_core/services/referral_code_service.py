"""
Referral Code Registry

Codes are the configured prefix plus six hex characters taken from the owner
id, e.g. SHRIBALAJIABC123. They are deterministic, so a collision is only
possible when two owner ids share a suffix; on conflict a salted variant is
tried. The unique constraint on referral_code decides in the end.
"""
import hashlib
import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config import CommissionConfig
from referral_core.core.exceptions import ReferralCodeUnavailable
from referral_core.models.referrer import ReferralUser, Influencer, Referrer


logger = logging.getLogger(__name__)

SUFFIX_LENGTH = 6


def normalize_code(code: Optional[str]) -> str:
    """Trim and upper-case a user supplied code."""
    return (code or "").strip().upper()


class ReferralCodeService:
    """Generates and resolves referral codes across both referrer tables."""

    def __init__(self, db: AsyncSession, config: CommissionConfig):
        self.db = db
        self.config = config

    # ========================================================================
    # Generation
    # ========================================================================

    def candidate(self, owner_id: uuid.UUID, salt: int = 0) -> str:
        """Code for an owner; salt 0 is the plain variant."""
        if salt == 0:
            suffix = uuid.UUID(str(owner_id)).hex[-SUFFIX_LENGTH:]
        else:
            digest = hashlib.sha256(f"{owner_id}:{salt}".encode()).hexdigest()
            suffix = digest[-SUFFIX_LENGTH:]
        return f"{self.config.code_prefix}{suffix}".upper()

    async def is_taken(self, code: str) -> bool:
        for model in (ReferralUser, Influencer):
            result = await self.db.execute(
                select(model.id).where(model.referral_code == code)
            )
            if result.scalar_one_or_none():
                return True
        return False

    async def generate(self, owner_id: uuid.UUID) -> str:
        """First unused code variant for an owner."""
        for salt in range(self.config.code_max_attempts):
            code = self.candidate(owner_id, salt)
            if not await self.is_taken(code):
                return code
            logger.info(f"Referral code {code} taken, trying salted variant {salt + 1}")

        raise ReferralCodeUnavailable(
            f"Could not generate a unique referral code for {owner_id}",
            {"owner_id": str(owner_id)},
        )

    async def assign(
        self,
        referrer: Referrer,
        owner_id: uuid.UUID,
    ) -> Referrer:
        """
        Give a new referrer a code and insert it.

        The insert runs inside a savepoint; if another request grabbed the
        same code in the meantime the unique constraint rejects it and the
        next variant is tried.
        """
        for salt in range(self.config.code_max_attempts):
            code = self.candidate(owner_id, salt)
            if await self.is_taken(code):
                continue

            referrer.referral_code = code
            try:
                async with self.db.begin_nested():
                    self.db.add(referrer)
            except IntegrityError:
                logger.warning(f"Referral code {code} claimed concurrently, retrying")
                continue

            logger.info(f"Assigned referral code {code} to {referrer.kind.value} {referrer.id}")
            return referrer

        raise ReferralCodeUnavailable(
            f"Could not generate a unique referral code for {owner_id}",
            {"owner_id": str(owner_id)},
        )

    # ========================================================================
    # Resolution
    # ========================================================================

    async def resolve(self, code: Optional[str]) -> Optional[Referrer]:
        """
        Find the referrer owning a code.

        Regular users are searched first, so a user wins if a code ever
        exists in both tables. Rejected or blocked influencers don't resolve.
        """
        code = normalize_code(code)
        if not code:
            return None

        result = await self.db.execute(
            select(ReferralUser).where(ReferralUser.referral_code == code)
        )
        user = result.scalar_one_or_none()
        if user:
            return user

        result = await self.db.execute(
            select(Influencer).where(Influencer.referral_code == code)
        )
        influencer = result.scalar_one_or_none()
        if influencer and influencer.can_refer:
            return influencer

        return None
