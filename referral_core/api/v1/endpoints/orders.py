"""Order status hook consumed by the referral program."""
from fastapi import APIRouter

from referral_core.api.deps import DB, Config, Notifier, InternalPrincipal
from referral_core.schemas.order import OrderStatusEvent, OrderEventResponse
from referral_core.services.order_event_service import OrderEventService


router = APIRouter()


@router.post("/status-events", response_model=OrderEventResponse)
async def order_status_event(
    event: OrderStatusEvent,
    db: DB,
    config: Config,
    notifier: Notifier,
    principal: InternalPrincipal,
):
    """
    Receive an order status transition.

    delivered converts the customer's referral, cancelled/refunded reverses
    its commission; any other status is acknowledged and ignored. Safe to
    deliver more than once.
    """
    service = OrderEventService(db, config, notifier)
    result = await service.handle(
        order_id=event.order_id,
        customer_id=event.customer_id,
        status=event.status,
        order_total=event.order_total,
    )
    return OrderEventResponse(
        outcome=result.outcome.value,
        referral_id=result.referral_id,
        commission_amount=result.commission_amount,
        shortfall=result.shortfall,
    )
