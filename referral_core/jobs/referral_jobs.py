"""
Referral Program Jobs

Background jobs for the referral lifecycle:
- Expiring referrals whose attribution window passed
- Maturing commission once the return window is over
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any

from referral_core.config import get_commission_config
from referral_core.database import get_db_session
from referral_core.services.referral_expiry_service import ReferralExpiryService
from referral_core.services.referral_service import ReferralService

logger = logging.getLogger(__name__)


async def expire_stale_referrals() -> Dict[str, Any]:
    """
    Expire pending referrals past their expiry.

    Runs every REFERRAL_EXPIRY_INTERVAL_MINUTES. A referral converted in the
    meantime is left alone by the status check in the sweep.
    """
    logger.info("Starting referral expiry sweep...")
    start_time = datetime.now(timezone.utc)

    async with get_db_session() as session:
        expired = await ReferralExpiryService(session, get_commission_config()).sweep(start_time)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(f"Referral expiry sweep completed in {duration:.2f}s: {expired} expired")
    return {"expired": expired, "duration_seconds": duration}


async def mature_commissions() -> Dict[str, Any]:
    """
    Move commission past the return window from pending to available.

    Runs every COMMISSION_MATURITY_INTERVAL_MINUTES.
    """
    logger.info("Starting commission maturity run...")
    start_time = datetime.now(timezone.utc)

    async with get_db_session() as session:
        matured = await ReferralService(session, get_commission_config()).mature_due(start_time)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(f"Commission maturity run completed in {duration:.2f}s: {matured} referrals matured")
    return {"matured": matured, "duration_seconds": duration}
