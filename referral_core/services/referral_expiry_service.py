"""Expire referrals whose attribution window passed without a conversion."""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config import CommissionConfig
from referral_core.models.referral import Referral, ReferralStatus


logger = logging.getLogger(__name__)


class ReferralExpiryService:
    """Periodic sweep of stale pending referrals. Moves no money."""

    def __init__(self, db: AsyncSession, config: CommissionConfig):
        self.db = db
        self.config = config

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Mark pending referrals with ``expires_at < now`` as expired.

        The status predicate makes this safe against a concurrent convert:
        whichever UPDATE lands first wins and the other matches nothing.
        """
        now = now or datetime.now(timezone.utc)

        result = await self.db.execute(
            update(Referral)
            .where(
                Referral.status == ReferralStatus.PENDING.value,
                Referral.expires_at < now,
            )
            .values(
                status=ReferralStatus.EXPIRED.value,
                expired_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        expired = result.rowcount or 0
        if expired:
            logger.info(f"Expired {expired} stale referrals")
        return expired
