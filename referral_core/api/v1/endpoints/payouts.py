"""API endpoints for payout administration."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from referral_core.api.deps import DB, Config, Notifier, CurrentPrincipal, AdminPrincipal, ensure_owner_or_admin
from referral_core.api.errors import commission_http_error
from referral_core.core.exceptions import CommissionError, ReferrerNotFound
from referral_core.models.payout import PayoutStatus
from referral_core.schemas.payout import PayoutResponse, PayoutListResponse, PayoutSettleRequest
from referral_core.services.payout_service import PayoutService
from referral_core.services.referrer_service import ReferrerService


router = APIRouter()


@router.get("", response_model=PayoutListResponse)
async def list_payouts(
    db: DB,
    config: Config,
    admin: AdminPrincipal,
    status: Optional[PayoutStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """List payout requests, e.g. the pending queue (admin)."""
    payouts, total = await PayoutService(db, config).list_payouts(
        status=status.value if status else None,
        page=page,
        page_size=page_size,
    )
    return PayoutListResponse(
        items=[PayoutResponse.model_validate(p) for p in payouts],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{payout_id}", response_model=PayoutResponse)
async def get_payout(
    payout_id: UUID,
    db: DB,
    config: Config,
    principal: CurrentPrincipal,
):
    try:
        payout = await PayoutService(db, config).get_payout(payout_id)
        referrer = await ReferrerService(db, config).load(payout.referrer)
        if not referrer:
            raise ReferrerNotFound(f"Referrer of payout {payout_id} not found")
    except CommissionError as e:
        raise commission_http_error(e)

    ensure_owner_or_admin(principal, referrer)
    return PayoutResponse.model_validate(payout)


@router.post("/{payout_id}/approve", response_model=PayoutResponse)
async def approve_payout(
    payout_id: UUID,
    db: DB,
    config: Config,
    admin: AdminPrincipal,
):
    """Approve a pending payout for disbursement (admin)."""
    try:
        payout = await PayoutService(db, config).approve(payout_id, processed_by=admin.user_id)
    except CommissionError as e:
        raise commission_http_error(e)
    return PayoutResponse.model_validate(payout)


@router.post("/{payout_id}/settle", response_model=PayoutResponse)
async def settle_payout(
    payout_id: UUID,
    data: PayoutSettleRequest,
    db: DB,
    config: Config,
    notifier: Notifier,
    admin: AdminPrincipal,
):
    """
    Record the disbursement outcome (admin).

    paid, rejected or failed. Settling an already settled payout returns it
    unchanged.
    """
    service = PayoutService(db, config, notifier)
    try:
        payout = await service.settle(
            payout_id,
            data.outcome.value,
            processed_by=admin.user_id,
            transaction_reference=data.transaction_reference,
            notes=data.notes,
        )
    except CommissionError as e:
        raise commission_http_error(e)
    return PayoutResponse.model_validate(payout)
