from fastapi import HTTPException, status

from referral_core.core.exceptions import (
    CommissionError,
    InsufficientPending,
    ReservationMismatch,
    ReferrerNotFound,
    PayoutNotFound,
    LiabilityNotFound,
)


NOT_FOUND = (ReferrerNotFound, PayoutNotFound, LiabilityNotFound)
CONFLICT = (InsufficientPending, ReservationMismatch)


def commission_http_error(e: CommissionError) -> HTTPException:
    """Map a commission error to an HTTP error carrying its code."""
    if isinstance(e, NOT_FOUND):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, CONFLICT):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    return HTTPException(
        status_code=status_code,
        detail={"error": e.code, "message": e.message, "details": e.details or None},
    )
