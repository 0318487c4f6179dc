"""API endpoints for referral attribution and program administration."""
from typing import Optional

from fastapi import APIRouter, Query

from referral_core.api.deps import DB, Config, InternalPrincipal, AdminPrincipal
from referral_core.models.referral import ReferralStatus
from referral_core.schemas.referral import (
    ReferralAttributeRequest,
    ReferralAttributeResponse,
    ReferralResponse,
    ReferralListResponse,
    ReferralStatsResponse,
    ExpireSweepResponse,
)
from referral_core.services.referral_service import ReferralService
from referral_core.services.referral_expiry_service import ReferralExpiryService


router = APIRouter()


@router.post("/attribute", response_model=ReferralAttributeResponse)
async def attribute_referral(
    data: ReferralAttributeRequest,
    db: DB,
    config: Config,
    principal: InternalPrincipal,
):
    """
    Attribute a new signup to a referral code.

    Called by the signup flow. An empty, unknown or own code is not an
    error: the response simply carries no referral id.
    """
    service = ReferralService(db, config)
    referral = await service.attribute(data.new_user_id, data.referral_code)
    return ReferralAttributeResponse(referral_id=referral.id if referral else None)


@router.get("", response_model=ReferralListResponse)
async def list_referrals(
    db: DB,
    config: Config,
    admin: AdminPrincipal,
    status: Optional[ReferralStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """List all referrals with program statistics (admin)."""
    service = ReferralService(db, config)
    referrals, total = await service.list_referrals(
        status=status.value if status else None,
        page=page,
        page_size=page_size,
    )
    stats = await service.get_stats()

    return ReferralListResponse(
        items=[ReferralResponse.model_validate(r) for r in referrals],
        total=total,
        page=page,
        page_size=page_size,
        stats=ReferralStatsResponse(**stats),
    )


@router.post("/expire", response_model=ExpireSweepResponse)
async def expire_referrals(
    db: DB,
    config: Config,
    admin: AdminPrincipal,
):
    """Run the expiry sweep now instead of waiting for the scheduler (admin)."""
    expired = await ReferralExpiryService(db, config).sweep()
    return ExpireSweepResponse(expired=expired)
