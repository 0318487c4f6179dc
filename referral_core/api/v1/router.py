from fastapi import APIRouter

from referral_core.api.v1.endpoints import (
    referrals,
    orders,
    referrers,
    payouts,
    liabilities,
    commission,
)


api_router = APIRouter(prefix="/api/v1")


# ==================== Referral Attribution ====================
api_router.include_router(
    referrals.router,
    prefix="/referrals",
    tags=["Referrals"]
)

# ==================== Order Hook ====================
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Order Events"]
)

# ==================== Referrers & Commission ====================
api_router.include_router(
    referrers.router,
    prefix="/referrers",
    tags=["Referrers"]
)

api_router.include_router(
    commission.router,
    prefix="/commission",
    tags=["Commission"]
)

# ==================== Payouts ====================
api_router.include_router(
    payouts.router,
    prefix="/payouts",
    tags=["Payouts"]
)

api_router.include_router(
    liabilities.router,
    prefix="/liabilities",
    tags=["Liabilities"]
)
