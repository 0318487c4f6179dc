"""Attribution at signup and conversion on the first delivered order."""
import uuid
from datetime import timedelta
from decimal import Decimal

from referral_core.config import CommissionConfig
from referral_core.models.referral import ReferralStatus, ReferralCommissionStatus
from referral_core.services.notification_service import NotificationType
from referral_core.services.referral_service import ReferralService

from tests.conftest import NOW, get_account, refresh


# ==================== ATTRIBUTION ====================


async def test_signup_with_code_creates_pending_referral(referrals, referrer):
    new_user = uuid.uuid4()

    referral = await referrals.attribute(new_user, "shribalajiabc123", now=NOW)

    assert referral is not None
    assert referral.status == ReferralStatus.PENDING.value
    assert referral.referrer_id == referrer.id
    assert referral.referral_code == "SHRIBALAJIABC123"
    assert referral.expires_at == NOW + timedelta(days=30)

    await refresh(referrals.db, referrer)
    assert referrer.total_referrals == 1


async def test_attribution_is_one_shot(referrals, referrer, influencer):
    new_user = uuid.uuid4()
    first = await referrals.attribute(new_user, referrer.referral_code, now=NOW)

    second = await referrals.attribute(new_user, influencer.referral_code, now=NOW)

    assert second is None
    stored = await referrals.get_referral_for_user(new_user)
    assert stored.id == first.id
    assert stored.referrer_id == referrer.id


async def test_self_referral_is_ignored(referrals, referrer):
    assert await referrals.attribute(referrer.id, referrer.referral_code, now=NOW) is None
    assert await referrals.get_referral_for_user(referrer.id) is None


async def test_influencer_cannot_refer_own_login(referrals, influencer):
    assert await referrals.attribute(influencer.user_id, influencer.referral_code, now=NOW) is None


async def test_blank_or_unknown_code_is_ignored(referrals, referrer):
    assert await referrals.attribute(uuid.uuid4(), None) is None
    assert await referrals.attribute(uuid.uuid4(), "   ") is None
    assert await referrals.attribute(uuid.uuid4(), "SHRIBALAJI000000") is None


async def test_disabled_program_ignores_codes(db, referrer):
    service = ReferralService(db, CommissionConfig(referral_enabled=False))
    assert await service.attribute(uuid.uuid4(), referrer.referral_code) is None


# ==================== CONVERSION ====================


async def test_first_delivered_order_converts_and_credits(referrals, referrer, notifier):
    referral = await referrals.attribute(uuid.uuid4(), "SHRIBALAJIABC123", now=NOW)
    order_id = uuid.uuid4()

    referral = await referrals.convert(referral, order_id, Decimal("1000"), now=NOW + timedelta(days=3))

    assert referral.status == ReferralStatus.CONVERTED.value
    assert referral.order_id == order_id
    assert referral.commission_amount == Decimal("50.00")
    assert referral.commission_rate == Decimal("5.00")
    assert referral.commission_status == ReferralCommissionStatus.PENDING.value

    account = await get_account(referrals.db, referrer.ref)
    assert account.pending_amount == Decimal("50.00")
    assert account.total_earned == Decimal("50.00")
    assert account.available_amount == Decimal("0.00")

    await refresh(referrals.db, referrer)
    assert referrer.converted_referrals == 1
    assert referrer.total_sales == Decimal("1000.00")

    assert notifier.events() == [NotificationType.COMMISSION_CREDITED]


async def test_repeated_delivery_does_not_credit_twice(referrals, referrer):
    referral = await referrals.attribute(uuid.uuid4(), referrer.referral_code, now=NOW)
    order_id = uuid.uuid4()

    await referrals.convert(referral, order_id, Decimal("1000"), now=NOW + timedelta(days=1))
    again = await referrals.convert(referral, order_id, Decimal("1000"), now=NOW + timedelta(days=1))
    other = await referrals.convert(referral, uuid.uuid4(), Decimal("4000"), now=NOW + timedelta(days=2))

    assert again.order_id == order_id
    assert other.order_id == order_id
    account = await get_account(referrals.db, referrer.ref)
    assert account.pending_amount == Decimal("50.00")


async def test_referral_expiring_exactly_now_still_converts(referrals, referrer):
    referral = await referrals.attribute(uuid.uuid4(), referrer.referral_code, now=NOW)

    referral = await referrals.convert(referral, uuid.uuid4(), Decimal("200"), now=NOW + timedelta(days=30))

    assert referral.status == ReferralStatus.CONVERTED.value
    assert referral.commission_amount == Decimal("10.00")


async def test_overdue_referral_does_not_convert(referrals, referrer):
    referral = await referrals.attribute(uuid.uuid4(), referrer.referral_code, now=NOW)

    referral = await referrals.convert(referral, uuid.uuid4(), Decimal("200"), now=NOW + timedelta(days=31))

    assert referral.status == ReferralStatus.PENDING.value
    assert referral.commission_amount is None
    account = await get_account(referrals.db, referrer.ref)
    assert account.total_earned == Decimal("0.00")


async def test_order_below_minimum_leaves_referral_pending(db, referrer):
    service = ReferralService(db, CommissionConfig(referral_min_order_amount=Decimal("499")))
    referral = await service.attribute(uuid.uuid4(), referrer.referral_code, now=NOW)

    referral = await service.convert(referral, uuid.uuid4(), Decimal("498.99"), now=NOW + timedelta(days=1))
    assert referral.status == ReferralStatus.PENDING.value

    referral = await service.convert(referral, uuid.uuid4(), Decimal("499"), now=NOW + timedelta(days=2))
    assert referral.status == ReferralStatus.CONVERTED.value


async def test_influencer_earns_tier_rate(referrals, referrers, influencer):
    await referrers.update_influencer(influencer.id, {"tier": "gold"})
    referral = await referrals.attribute(uuid.uuid4(), influencer.referral_code, now=NOW)

    referral = await referrals.convert(referral, uuid.uuid4(), Decimal("1000"), now=NOW + timedelta(days=1))

    assert referral.commission_amount == Decimal("70.00")
    account = await get_account(referrals.db, influencer.ref)
    assert account.pending_amount == Decimal("70.00")


async def test_influencer_is_upgraded_when_threshold_reached(db, referrers, influencer):
    config = CommissionConfig(tier_thresholds={"bronze": 0, "silver": 2, "gold": 15, "platinum": 30, "diamond": 50})
    service = ReferralService(db, config)

    for _ in range(2):
        referral = await service.attribute(uuid.uuid4(), influencer.referral_code, now=NOW)
        await service.convert(referral, uuid.uuid4(), Decimal("100"), now=NOW + timedelta(days=1))

    await refresh(db, influencer)
    assert influencer.converted_referrals == 2
    assert influencer.tier == "silver"


async def test_referral_stats(referrals, referrer):
    converted = await referrals.attribute(uuid.uuid4(), referrer.referral_code, now=NOW)
    await referrals.attribute(uuid.uuid4(), referrer.referral_code, now=NOW)
    await referrals.convert(converted, uuid.uuid4(), Decimal("1000"), now=NOW + timedelta(days=1))

    stats = await referrals.get_stats()

    assert stats["total_referrals"] == 2
    assert stats["converted_referrals"] == 1
    assert stats["pending_referrals"] == 1
    assert stats["conversion_rate"] == 50.0
    assert stats["commission_pending"] == Decimal("50.00")
