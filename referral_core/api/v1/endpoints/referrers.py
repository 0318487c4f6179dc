"""API endpoints for referrers: registration, balances and payout requests."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, status, Query

from referral_core.api.deps import (
    DB,
    Config,
    Notifier,
    CurrentPrincipal,
    AdminPrincipal,
    InternalPrincipal,
    ROLE_USER,
    ensure_owner_or_admin,
)
from referral_core.api.errors import commission_http_error
from referral_core.config import CommissionConfig
from referral_core.core.exceptions import CommissionError
from referral_core.models.commission import CommissionAccount
from referral_core.models.payout import PayoutStatus
from referral_core.models.referral import ReferralStatus
from referral_core.models.referrer import InfluencerStatus, Referrer
from referral_core.schemas.commission import (
    CommissionSummaryResponse,
    MatureRequest,
    MatureResponse,
)
from referral_core.schemas.payout import (
    PayoutRequest,
    PayoutCreatedResponse,
    PayoutResponse,
    PayoutListResponse,
)
from referral_core.schemas.referral import ReferralResponse, ReferralListResponse
from referral_core.schemas.referrer import (
    ReferralUserCreate,
    InfluencerCreate,
    InfluencerUpdate,
    InfluencerListResponse,
    KYCUpdate,
    PayoutDetailsUpdate,
    ReferrerResponse,
)
from referral_core.services.commission_calculator import CommissionCalculator
from referral_core.services.ledger_service import CommissionLedger
from referral_core.services.payout_service import PayoutService
from referral_core.services.referral_service import ReferralService
from referral_core.services.referrer_service import ReferrerService


router = APIRouter()


def build_commission_summary(
    referrer: Referrer,
    account: CommissionAccount,
    config: CommissionConfig
) -> CommissionSummaryResponse:
    return CommissionSummaryResponse(
        referrer_id=referrer.id,
        referrer_kind=referrer.kind.value,
        tier=referrer.tier,
        rate=CommissionCalculator(config).rate_for(referrer),
        pending_amount=account.pending_amount,
        available_amount=account.available_amount,
        reserved_amount=account.reserved_amount,
        paid_amount=account.paid_amount,
        total_earned=account.total_earned,
        liability_amount=account.liability_amount,
        min_payout_amount=config.min_payout_amount,
        can_request_payout=(
            account.available_amount >= config.min_payout_amount
            and (referrer.kyc_verified or not config.kyc_required)
        ),
    )


async def get_referrer_or_404(service: ReferrerService, referrer_id: UUID) -> Referrer:
    try:
        return await service.require_referrer(referrer_id)
    except CommissionError as e:
        raise commission_http_error(e)


# ==================== Registration ====================

@router.post("/users", response_model=ReferrerResponse, status_code=status.HTTP_201_CREATED)
async def register_referral_user(
    data: ReferralUserCreate,
    db: DB,
    config: Config,
    principal: InternalPrincipal,
):
    """Enroll a storefront account: issues its referral code (internal)."""
    service = ReferrerService(db, config)
    try:
        user = await service.register_user(data.user_id, email=data.email, name=data.name)
    except CommissionError as e:
        raise commission_http_error(e)
    return ReferrerResponse.model_validate(user)


@router.post("/influencers", response_model=ReferrerResponse, status_code=status.HTTP_201_CREATED)
async def register_influencer(
    data: InfluencerCreate,
    db: DB,
    config: Config,
    principal: CurrentPrincipal,
):
    """Apply to the influencer program. Starts pending review."""
    user_id = data.user_id or principal.user_id
    if principal.role == ROLE_USER and user_id != principal.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot apply on behalf of another account"
        )

    service = ReferrerService(db, config)
    try:
        influencer = await service.register_influencer(
            user_id=user_id,
            name=data.name,
            email=data.email,
            username=data.username,
            phone=data.phone,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except CommissionError as e:
        raise commission_http_error(e)
    return ReferrerResponse.model_validate(influencer)


@router.get("/influencers", response_model=InfluencerListResponse)
async def list_influencers(
    db: DB,
    config: Config,
    admin: AdminPrincipal,
    status: Optional[InfluencerStatus] = None,
    tier: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """List influencers (admin)."""
    influencers, total = await ReferrerService(db, config).list_influencers(
        status=status.value if status else None,
        tier=tier,
        search=search,
        page=page,
        page_size=page_size,
    )
    return InfluencerListResponse(
        items=[ReferrerResponse.model_validate(i) for i in influencers],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.patch("/influencers/{influencer_id}", response_model=ReferrerResponse)
async def update_influencer(
    influencer_id: UUID,
    data: InfluencerUpdate,
    db: DB,
    config: Config,
    admin: AdminPrincipal,
):
    """Approve, reject, block or re-tier an influencer (admin)."""
    service = ReferrerService(db, config)
    try:
        influencer = await service.update_influencer(
            influencer_id,
            data.model_dump(exclude_unset=True, mode="json"),
            admin_id=admin.user_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except CommissionError as e:
        raise commission_http_error(e)
    return ReferrerResponse.model_validate(influencer)


# ==================== Profile ====================

@router.get("/{referrer_id}", response_model=ReferrerResponse)
async def get_referrer(
    referrer_id: UUID,
    db: DB,
    config: Config,
    principal: CurrentPrincipal,
):
    referrer = await get_referrer_or_404(ReferrerService(db, config), referrer_id)
    ensure_owner_or_admin(principal, referrer)
    return ReferrerResponse.model_validate(referrer)


@router.put("/{referrer_id}/payout-details", response_model=ReferrerResponse)
async def update_payout_details(
    referrer_id: UUID,
    data: PayoutDetailsUpdate,
    db: DB,
    config: Config,
    principal: CurrentPrincipal,
):
    """Save the bank account or UPI id payouts are sent to."""
    service = ReferrerService(db, config)
    referrer = await get_referrer_or_404(service, referrer_id)
    ensure_owner_or_admin(principal, referrer)

    referrer = await service.update_payout_details(referrer, data.model_dump(mode="json"))
    return ReferrerResponse.model_validate(referrer)


@router.post("/{referrer_id}/kyc", response_model=ReferrerResponse)
async def set_kyc(
    referrer_id: UUID,
    data: KYCUpdate,
    db: DB,
    config: Config,
    admin: AdminPrincipal,
):
    """Record the outcome of identity verification (admin)."""
    try:
        referrer = await ReferrerService(db, config).set_kyc(referrer_id, data.verified)
    except CommissionError as e:
        raise commission_http_error(e)
    return ReferrerResponse.model_validate(referrer)


# ==================== Commission ====================

@router.get("/{referrer_id}/commission", response_model=CommissionSummaryResponse)
async def get_commission(
    referrer_id: UUID,
    db: DB,
    config: Config,
    principal: CurrentPrincipal,
):
    """Balances and current commission rate of a referrer."""
    referrer = await get_referrer_or_404(ReferrerService(db, config), referrer_id)
    ensure_owner_or_admin(principal, referrer)

    account = await CommissionLedger(db).open_account(referrer.ref)
    return build_commission_summary(referrer, account, config)


@router.post("/{referrer_id}/commission/mature", response_model=MatureResponse)
async def mature_commission(
    referrer_id: UUID,
    data: MatureRequest,
    db: DB,
    config: Config,
    admin: AdminPrincipal,
):
    """
    Make pending commission withdrawable now (admin).

    Without an amount all of the referrer's pending referral commission is
    matured regardless of the return window.
    """
    referrer = await get_referrer_or_404(ReferrerService(db, config), referrer_id)
    ledger = CommissionLedger(db)

    try:
        if data.amount is not None:
            account = await ledger.open_account(referrer.ref)
            await ledger.mature(account, data.amount)
            await db.commit()
            matured = 0
        else:
            matured = await ReferralService(db, config).mature_due(
                referrer=referrer.ref,
                ignore_window=True,
            )
    except CommissionError as e:
        await db.rollback()
        raise commission_http_error(e)

    account = await ledger.open_account(referrer.ref)
    return MatureResponse(
        matured_referrals=matured,
        commission=build_commission_summary(referrer, account, config),
    )


@router.get("/{referrer_id}/referrals", response_model=ReferralListResponse)
async def list_referrer_referrals(
    referrer_id: UUID,
    db: DB,
    config: Config,
    principal: CurrentPrincipal,
    status: Optional[ReferralStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    referrer = await get_referrer_or_404(ReferrerService(db, config), referrer_id)
    ensure_owner_or_admin(principal, referrer)

    referrals, total = await ReferralService(db, config).list_referrals(
        status=status.value if status else None,
        referrer=referrer.ref,
        page=page,
        page_size=page_size,
    )
    return ReferralListResponse(
        items=[ReferralResponse.model_validate(r) for r in referrals],
        total=total,
        page=page,
        page_size=page_size,
    )


# ==================== Payouts ====================

@router.post("/{referrer_id}/payouts", response_model=PayoutCreatedResponse, status_code=status.HTTP_201_CREATED)
async def request_payout(
    referrer_id: UUID,
    data: PayoutRequest,
    db: DB,
    config: Config,
    notifier: Notifier,
    principal: CurrentPrincipal,
):
    """
    Request a withdrawal of available commission.

    Rejections carry one of BelowMinimum, InsufficientBalance,
    VerificationRequired or PayoutDetailsMissing.
    """
    service = ReferrerService(db, config)
    referrer = await get_referrer_or_404(service, referrer_id)
    ensure_owner_or_admin(principal, referrer)

    try:
        payout = await PayoutService(db, config, notifier).request_payout(referrer, data.amount)
    except CommissionError as e:
        raise commission_http_error(e)

    return PayoutCreatedResponse(
        payout_id=payout.id,
        payout_number=payout.payout_number,
        status=payout.status,
        amount=payout.amount,
    )


@router.get("/{referrer_id}/payouts", response_model=PayoutListResponse)
async def list_referrer_payouts(
    referrer_id: UUID,
    db: DB,
    config: Config,
    principal: CurrentPrincipal,
    status: Optional[PayoutStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    referrer = await get_referrer_or_404(ReferrerService(db, config), referrer_id)
    ensure_owner_or_admin(principal, referrer)

    payouts, total = await PayoutService(db, config).list_payouts(
        status=status.value if status else None,
        referrer=referrer.ref,
        page=page,
        page_size=page_size,
    )
    return PayoutListResponse(
        items=[PayoutResponse.model_validate(p) for p in payouts],
        total=total,
        page=page,
        page_size=page_size,
    )
