# Services module
from referral_core.services.commission_calculator import CommissionCalculator
from referral_core.services.ledger_service import CommissionLedger
from referral_core.services.referral_code_service import ReferralCodeService
from referral_core.services.referral_service import ReferralService
from referral_core.services.referral_expiry_service import ReferralExpiryService
from referral_core.services.payout_service import PayoutService
from referral_core.services.referrer_service import ReferrerService
from referral_core.services.liability_service import LiabilityService
from referral_core.services.order_event_service import OrderEventService

# Notifications
from referral_core.services.notification_service import NotificationService

__all__ = [
    "CommissionCalculator",
    "CommissionLedger",
    "ReferralCodeService",
    "ReferralService",
    "ReferralExpiryService",
    "PayoutService",
    "ReferrerService",
    "LiabilityService",
    "OrderEventService",
    # Notifications
    "NotificationService",
]
