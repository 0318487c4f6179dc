"""Order status hook: conversion, reversal and commission maturity."""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from referral_core.models.commission import LiabilityStatus
from referral_core.models.referral import ReferralStatus, ReferralCommissionStatus
from referral_core.services.liability_service import LiabilityService
from referral_core.services.notification_service import NotificationType
from referral_core.services.order_event_service import OrderEventOutcome, OrderEventService
from referral_core.services.payout_service import PayoutService

from tests.conftest import NOW, convert_new_signup, get_account, refresh


@pytest.fixture
def orders(db, config, notifier):
    return OrderEventService(db, config, notifier)


# ==================== ROUTING ====================


async def test_delivered_order_converts_referral(orders, referrals, referrer):
    customer = uuid.uuid4()
    await referrals.attribute(customer, referrer.referral_code, now=NOW)
    order_id = uuid.uuid4()

    result = await orders.handle(order_id, customer, "DELIVERED", Decimal("1000"), now=NOW + timedelta(days=2))

    assert result.outcome == OrderEventOutcome.CONVERTED
    assert result.commission_amount == Decimal("50.00")


async def test_second_delivered_order_does_not_convert(orders, referrals, referrer):
    customer = uuid.uuid4()
    await referrals.attribute(customer, referrer.referral_code, now=NOW)
    await orders.handle(uuid.uuid4(), customer, "delivered", Decimal("1000"), now=NOW + timedelta(days=2))

    result = await orders.handle(uuid.uuid4(), customer, "delivered", Decimal("3000"), now=NOW + timedelta(days=5))

    assert result.outcome == OrderEventOutcome.NOT_CONVERTED
    account = await get_account(referrals.db, referrer.ref)
    assert account.pending_amount == Decimal("50.00")


async def test_unreferred_customer(orders):
    result = await orders.handle(uuid.uuid4(), uuid.uuid4(), "delivered", Decimal("100"))
    assert result.outcome == OrderEventOutcome.NOT_REFERRED


@pytest.mark.parametrize("status", ["placed", "shipped", "out_for_delivery", ""])
async def test_other_statuses_are_ignored(orders, status):
    result = await orders.handle(uuid.uuid4(), uuid.uuid4(), status, Decimal("100"))
    assert result.outcome == OrderEventOutcome.IGNORED


async def test_cancel_of_unreferred_order(orders):
    result = await orders.handle(uuid.uuid4(), uuid.uuid4(), "cancelled", Decimal("100"))
    assert result.outcome == OrderEventOutcome.NOTHING_TO_REVERSE


# ==================== REVERSAL ====================


async def test_refund_before_maturity_reverses_pending(orders, referrals, referrer):
    referral, order_id = await convert_new_signup(referrals, referrer.referral_code, Decimal("1000"))

    result = await orders.handle(order_id, referral.referred_user_id, "refunded", Decimal("1000"))

    assert result.outcome == OrderEventOutcome.REVERSED
    assert result.commission_amount == Decimal("50.00")
    assert result.shortfall == Decimal("0.00")

    account = await get_account(referrals.db, referrer.ref)
    assert account.pending_amount == Decimal("0.00")
    assert account.total_earned == Decimal("0.00")
    assert account.liability_amount == Decimal("0.00")

    referral = await referrals.get_referral(referral.id)
    assert referral.status == ReferralStatus.CONVERTED.value
    assert referral.commission_status == ReferralCommissionStatus.REVERSED.value

    await refresh(referrals.db, referrer)
    assert referrer.total_sales == Decimal("0.00")
    assert referrer.converted_referrals == 1


async def test_repeated_cancel_is_a_no_op(orders, referrals, referrer):
    referral, order_id = await convert_new_signup(referrals, referrer.referral_code, Decimal("1000"))
    await orders.handle(order_id, referral.referred_user_id, "cancelled", Decimal("1000"))

    result = await orders.handle(order_id, referral.referred_user_id, "refunded", Decimal("1000"))

    assert result.outcome == OrderEventOutcome.NOTHING_TO_REVERSE
    account = await get_account(referrals.db, referrer.ref)
    assert account.total_earned == Decimal("0.00")


async def test_refund_after_payout_flags_liability(db, config, orders, referrals, referrers, referrer, notifier):
    await referrers.set_kyc(referrer.id, True)
    await referrers.update_payout_details(referrer, {"preferred_payout_method": "upi", "upi_id": "asha@upi"})

    referral, order_id = await convert_new_signup(referrals, referrer.referral_code, Decimal("10000"))
    assert await referrals.mature_due(now=NOW + timedelta(days=9)) == 1

    payouts = PayoutService(db, config)
    payout = await payouts.request_payout(referrer, Decimal("500"))
    await payouts.settle(payout.id, "paid")

    result = await orders.handle(order_id, referral.referred_user_id, "refunded", Decimal("10000"))

    assert result.outcome == OrderEventOutcome.REVERSED
    assert result.shortfall == Decimal("500.00")

    account = await get_account(db, referrer.ref)
    assert account.paid_amount == Decimal("500.00")
    assert account.available_amount == Decimal("0.00")
    assert account.liability_amount == Decimal("500.00")
    assert account.total_earned == Decimal("500.00")
    assert account.is_balanced
    assert NotificationType.LIABILITY_FLAGGED in notifier.events()

    liabilities, total = await LiabilityService(db).list_liabilities(status=LiabilityStatus.OPEN.value)
    assert total == 1
    assert liabilities[0].order_id == order_id

    resolved = await LiabilityService(db).resolve(liabilities[0].id, notes="Recovered by bank transfer")
    assert resolved.status == LiabilityStatus.RESOLVED.value
    account = await get_account(db, referrer.ref)
    assert account.liability_amount == Decimal("0.00")

    again = await LiabilityService(db).resolve(liabilities[0].id)
    assert again.status == LiabilityStatus.RESOLVED.value


# ==================== MATURITY ====================


async def test_commission_matures_after_return_window(referrals, referrer):
    referral, _ = await convert_new_signup(referrals, referrer.referral_code, Decimal("1000"))
    converted_at = NOW + timedelta(days=1)

    assert await referrals.mature_due(now=converted_at + timedelta(days=6)) == 0
    assert await referrals.mature_due(now=converted_at + timedelta(days=7)) == 1
    assert await referrals.mature_due(now=converted_at + timedelta(days=8)) == 0

    account = await get_account(referrals.db, referrer.ref)
    assert account.pending_amount == Decimal("0.00")
    assert account.available_amount == Decimal("50.00")

    referral = await referrals.get_referral(referral.id)
    assert referral.commission_status == ReferralCommissionStatus.MATURED.value


async def test_reversed_commission_never_matures(orders, referrals, referrer):
    referral, order_id = await convert_new_signup(referrals, referrer.referral_code, Decimal("1000"))
    await orders.handle(order_id, referral.referred_user_id, "cancelled", Decimal("1000"))

    assert await referrals.mature_due(now=NOW + timedelta(days=30)) == 0


async def test_mature_due_for_one_referrer_ignoring_window(referrals, referrer, influencer):
    await convert_new_signup(referrals, referrer.referral_code, Decimal("1000"))
    await convert_new_signup(referrals, influencer.referral_code, Decimal("1000"))

    matured = await referrals.mature_due(now=NOW + timedelta(days=2), referrer=influencer.ref, ignore_window=True)

    assert matured == 1
    assert (await get_account(referrals.db, influencer.ref)).available_amount == Decimal("50.00")
    assert (await get_account(referrals.db, referrer.ref)).available_amount == Decimal("0.00")


async def test_refund_of_matured_commission_leaves_other_pending_alone(referrals, referrer):
    first, first_order = await convert_new_signup(referrals, referrer.referral_code, Decimal("1000"))
    assert await referrals.mature_due(now=NOW + timedelta(days=9)) == 1

    second, _ = await convert_new_signup(
        referrals, referrer.referral_code, Decimal("600"), now=NOW + timedelta(days=10)
    )
    reversal = await referrals.reverse_for_order(first_order, now=NOW + timedelta(days=12))

    assert reversal.from_available == Decimal("50.00")
    assert reversal.from_pending == Decimal("0.00")
    account = await get_account(referrals.db, referrer.ref)
    assert account.pending_amount == Decimal("30.00")
    assert account.available_amount == Decimal("0.00")

    assert await referrals.mature_due(now=NOW + timedelta(days=30)) == 1

    second = await referrals.get_referral(second.id)
    assert second.commission_status == ReferralCommissionStatus.MATURED.value
    account = await get_account(referrals.db, referrer.ref)
    assert account.pending_amount == Decimal("0.00")
    assert account.available_amount == Decimal("30.00")
    assert account.total_earned == Decimal("30.00")
    assert account.is_balanced


async def test_commission_matured_by_hand_still_settles_referral(referrals, ledger, referrer):
    referral, _ = await convert_new_signup(referrals, referrer.referral_code, Decimal("1000"))
    account = await ledger.open_account(referrer.ref)
    await ledger.mature(account, Decimal("50"))
    await referrals.db.commit()

    assert await referrals.mature_due(now=NOW + timedelta(days=30)) == 1
    assert await referrals.mature_due(now=NOW + timedelta(days=60)) == 0

    referral = await referrals.get_referral(referral.id)
    assert referral.commission_status == ReferralCommissionStatus.MATURED.value
    account = await get_account(referrals.db, referrer.ref)
    assert account.pending_amount == Decimal("0.00")
    assert account.available_amount == Decimal("50.00")
    assert account.is_balanced
