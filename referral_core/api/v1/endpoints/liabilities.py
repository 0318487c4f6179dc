"""API endpoints for reconciling commission shortfalls."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from referral_core.api.deps import DB, AdminPrincipal
from referral_core.api.errors import commission_http_error
from referral_core.core.exceptions import CommissionError
from referral_core.models.commission import LiabilityStatus
from referral_core.schemas.commission import (
    LiabilityResponse,
    LiabilityListResponse,
    LiabilityResolveRequest,
)
from referral_core.services.liability_service import LiabilityService


router = APIRouter()


@router.get("", response_model=LiabilityListResponse)
async def list_liabilities(
    db: DB,
    admin: AdminPrincipal,
    status: Optional[LiabilityStatus] = None,
    account_id: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    liabilities, total = await LiabilityService(db).list_liabilities(
        status=status.value if status else None,
        account_id=account_id,
        page=page,
        page_size=page_size,
    )
    return LiabilityListResponse(
        items=[LiabilityResponse.model_validate(item) for item in liabilities],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/{liability_id}/resolve", response_model=LiabilityResponse)
async def resolve_liability(
    liability_id: UUID,
    data: LiabilityResolveRequest,
    db: DB,
    admin: AdminPrincipal,
):
    """Mark a shortfall as reconciled outside the system (admin)."""
    try:
        liability = await LiabilityService(db).resolve(
            liability_id,
            resolved_by=admin.user_id,
            notes=data.notes,
        )
    except CommissionError as e:
        raise commission_http_error(e)
    return LiabilityResponse.model_validate(liability)
