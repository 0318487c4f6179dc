"""
Commission engine exceptions.

Every error carries a stable ``code`` that endpoints return to callers so
they can tell a validation failure from a balance/state precondition.
"""
from typing import Dict, Optional


class CommissionError(Exception):
    """Base exception for referral/commission errors."""
    code = "commission_error"

    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# ==================== Validation ====================

class InvalidAmount(CommissionError, ValueError):
    """Amount is negative, zero where not allowed, or malformed."""
    code = "InvalidAmount"


class BelowMinimum(CommissionError):
    """Payout amount is below the configured minimum."""
    code = "BelowMinimum"


# ==================== State preconditions ====================

class InsufficientPending(CommissionError):
    """Tried to mature more than is pending. Upstream logic error."""
    code = "InsufficientPending"


class InsufficientBalance(CommissionError):
    """Payout larger than the available balance."""
    code = "InsufficientBalance"


class VerificationRequired(CommissionError):
    """Referrer has not completed KYC."""
    code = "VerificationRequired"


class PayoutDetailsMissing(CommissionError):
    """No bank account or UPI id on file for the payout method."""
    code = "PayoutDetailsMissing"


class ReservationMismatch(CommissionError):
    """Settling or releasing more than the account has reserved."""
    code = "ReservationMismatch"


# ==================== Lookups ====================

class ReferrerNotFound(CommissionError):
    code = "ReferrerNotFound"


class PayoutNotFound(CommissionError):
    code = "PayoutNotFound"


class LiabilityNotFound(CommissionError):
    code = "LiabilityNotFound"


class ReferralCodeUnavailable(CommissionError):
    """No unique referral code could be generated for an owner."""
    code = "ReferralCodeUnavailable"
