"""Commission program information."""
from typing import List

from fastapi import APIRouter

from referral_core.api.deps import Config
from referral_core.schemas.commission import TierRateResponse
from referral_core.services.commission_calculator import CommissionCalculator


router = APIRouter()


@router.get("/tiers", response_model=List[TierRateResponse])
async def get_tier_rates(config: Config):
    """Commission rate per tier and the conversions needed to reach it."""
    return [TierRateResponse(**row) for row in CommissionCalculator(config).rate_table()]
