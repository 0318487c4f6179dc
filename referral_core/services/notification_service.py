"""
Referral program notifications.

Events are emitted after the financial change has committed. Delivery is
best effort: every failure is logged and swallowed, never propagated back
into the request that triggered it.
"""
import asyncio
import logging
from enum import Enum
from typing import Optional, Any

from referral_core.services.email_service import EmailService, get_email_service


logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Referral program events."""
    COMMISSION_CREDITED = "commission_credited"
    PAYOUT_REQUESTED = "payout_requested"
    PAYOUT_SETTLED = "payout_settled"
    LIABILITY_FLAGGED = "liability_flagged"


class NotificationService:
    """Turns program events into emails."""

    def __init__(
        self,
        email_service: Optional[EmailService] = None,
        enabled: bool = True,
        admin_email: str = "",
    ):
        self.email = email_service or get_email_service()
        self.enabled = enabled
        self.admin_email = admin_email

    async def notify(self, event: NotificationType, to_email: Optional[str], **data: Any) -> bool:
        """Send one event. Returns False instead of raising on any failure."""
        if not self.enabled:
            return False
        if not to_email:
            logger.info(f"[NOTIFICATION] {event.value} skipped, no recipient")
            return False

        sender = {
            NotificationType.COMMISSION_CREDITED: self.email.send_commission_credited_email,
            NotificationType.PAYOUT_REQUESTED: self.email.send_payout_requested_email,
            NotificationType.PAYOUT_SETTLED: self.email.send_payout_settled_email,
            NotificationType.LIABILITY_FLAGGED: self.email.send_liability_alert_email,
        }[event]

        logger.info(f"[NOTIFICATION] EMAIL {event.value} to {to_email}")
        try:
            # smtplib blocks
            return await asyncio.to_thread(sender, to_email, **data)
        except Exception as e:
            logger.error(f"Failed to send {event.value} notification to {to_email}: {e}")
            return False

    async def commission_credited(self, referrer, amount, order_amount, maturity_days: int) -> bool:
        return await self.notify(
            NotificationType.COMMISSION_CREDITED,
            referrer.email,
            referrer_name=referrer.name or "there",
            amount=amount,
            order_amount=order_amount,
            maturity_days=maturity_days,
        )

    async def payout_requested(self, referrer, payout) -> bool:
        return await self.notify(
            NotificationType.PAYOUT_REQUESTED,
            referrer.email,
            referrer_name=referrer.name or "there",
            payout_number=payout.payout_number,
            amount=payout.amount,
        )

    async def payout_settled(self, referrer, payout) -> bool:
        return await self.notify(
            NotificationType.PAYOUT_SETTLED,
            referrer.email,
            referrer_name=referrer.name or "there",
            payout_number=payout.payout_number,
            amount=payout.amount,
            status=payout.status,
            transaction_reference=payout.transaction_reference,
        )

    async def liability_flagged(self, liability) -> bool:
        return await self.notify(
            NotificationType.LIABILITY_FLAGGED,
            self.admin_email,
            account_id=str(liability.account_id),
            amount=liability.amount,
            order_id=str(liability.order_id) if liability.order_id else None,
        )


def get_notification_service() -> NotificationService:
    """Get configured notification service instance."""
    from referral_core.config import settings

    return NotificationService(
        email_service=get_email_service(),
        enabled=settings.NOTIFICATIONS_ENABLED,
        admin_email=settings.REFERRAL_ADMIN_EMAIL,
    )
