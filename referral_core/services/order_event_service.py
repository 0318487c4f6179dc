"""
Order status hook.

The order system calls this on every status transition. Only two kinds of
transition matter to the referral program:

- delivered: the customer's first qualifying order converts their referral
- cancelled / refunded: commission earned on that order is reversed

Everything else is ignored.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config import CommissionConfig
from referral_core.models.referral import ReferralStatus
from referral_core.services.notification_service import NotificationService
from referral_core.services.referral_service import ReferralService


logger = logging.getLogger(__name__)


class OrderEventOutcome(str, Enum):
    IGNORED = "ignored"
    NOT_REFERRED = "not_referred"
    CONVERTED = "converted"
    NOT_CONVERTED = "not_converted"
    REVERSED = "reversed"
    NOTHING_TO_REVERSE = "nothing_to_reverse"


CONVERSION_STATUSES = {"delivered"}
REVERSAL_STATUSES = {"cancelled", "refunded"}


@dataclass
class OrderEventResult:
    outcome: OrderEventOutcome
    referral_id: Optional[uuid.UUID] = None
    commission_amount: Optional[Decimal] = None
    shortfall: Optional[Decimal] = None


class OrderEventService:
    """Routes order status transitions to the referral lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        config: CommissionConfig,
        notifier: Optional[NotificationService] = None
    ):
        self.referrals = ReferralService(db, config, notifier)

    async def handle(
        self,
        order_id: uuid.UUID,
        customer_id: uuid.UUID,
        status: str,
        order_total: Decimal,
        now: Optional[datetime] = None
    ) -> OrderEventResult:
        status = (status or "").strip().lower()

        if status in CONVERSION_STATUSES:
            return await self._delivered(order_id, customer_id, order_total, now)
        if status in REVERSAL_STATUSES:
            return await self._reversed(order_id, now)

        return OrderEventResult(OrderEventOutcome.IGNORED)

    async def _delivered(self, order_id, customer_id, order_total, now) -> OrderEventResult:
        referral = await self.referrals.get_referral_for_user(customer_id)
        if not referral:
            return OrderEventResult(OrderEventOutcome.NOT_REFERRED)

        referral = await self.referrals.convert(referral, order_id, order_total, now)

        if referral.status == ReferralStatus.CONVERTED.value and referral.order_id == order_id:
            return OrderEventResult(
                OrderEventOutcome.CONVERTED,
                referral_id=referral.id,
                commission_amount=referral.commission_amount,
            )
        return OrderEventResult(OrderEventOutcome.NOT_CONVERTED, referral_id=referral.id)

    async def _reversed(self, order_id, now) -> OrderEventResult:
        reversal = await self.referrals.reverse_for_order(order_id, now)
        if reversal is None:
            return OrderEventResult(OrderEventOutcome.NOTHING_TO_REVERSE)

        logger.info(f"Order {order_id} reversal recovered {reversal.recovered}, shortfall {reversal.shortfall}")
        return OrderEventResult(
            OrderEventOutcome.REVERSED,
            commission_amount=reversal.recovered + reversal.shortfall,
            shortfall=reversal.shortfall,
        )
