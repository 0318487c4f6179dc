"""Commission ledger balance moves and their preconditions."""
from decimal import Decimal

import pytest
import pytest_asyncio

from referral_core.core.exceptions import (
    InvalidAmount,
    InsufficientPending,
    InsufficientBalance,
    ReservationMismatch,
)
from referral_core.models.commission import LiabilityStatus


@pytest_asyncio.fixture
async def account(ledger, referrer):
    return await ledger.open_account(referrer.ref)


async def test_open_account_is_idempotent(ledger, referrer, account):
    again = await ledger.open_account(referrer.ref)
    assert again.id == account.id


async def test_credit_goes_to_pending(ledger, account):
    account = await ledger.credit(account, Decimal("50"))

    assert account.pending_amount == Decimal("50.00")
    assert account.total_earned == Decimal("50.00")
    assert account.is_balanced


async def test_every_move_bumps_version(ledger, account):
    start = account.version
    account = await ledger.credit(account, Decimal("10"))
    account = await ledger.mature(account, Decimal("10"))
    assert account.version == start + 2


async def test_full_cycle_keeps_balance(ledger, account):
    account = await ledger.credit(account, Decimal("800"))
    account = await ledger.mature(account, Decimal("700"))
    account = await ledger.reserve_for_payout(account, Decimal("600"))
    assert account.is_balanced

    account = await ledger.settle_payout(account, Decimal("500"))
    account = await ledger.release_reservation(account, Decimal("100"))

    assert account.pending_amount == Decimal("100.00")
    assert account.available_amount == Decimal("200.00")
    assert account.reserved_amount == Decimal("0.00")
    assert account.paid_amount == Decimal("500.00")
    assert account.total_earned == Decimal("800.00")
    assert account.is_balanced


async def test_mature_more_than_pending_fails_without_change(ledger, account):
    account = await ledger.credit(account, Decimal("30"))

    with pytest.raises(InsufficientPending):
        await ledger.mature(account, Decimal("30.01"))

    account = await ledger.get_account(account.referrer)
    assert account.pending_amount == Decimal("30.00")
    assert account.available_amount == Decimal("0.00")


async def test_reserve_more_than_available_fails(ledger, account):
    account = await ledger.credit(account, Decimal("300"))
    account = await ledger.mature(account, Decimal("300"))

    with pytest.raises(InsufficientBalance):
        await ledger.reserve_for_payout(account, Decimal("500"))


async def test_settle_more_than_reserved_fails(ledger, account):
    account = await ledger.credit(account, Decimal("100"))
    account = await ledger.mature(account, Decimal("100"))
    account = await ledger.reserve_for_payout(account, Decimal("100"))

    with pytest.raises(ReservationMismatch):
        await ledger.settle_payout(account, Decimal("150"))
    with pytest.raises(ReservationMismatch):
        await ledger.release_reservation(account, Decimal("150"))


@pytest.mark.parametrize("amount", [Decimal("-1"), Decimal("0"), "abc"])
async def test_invalid_amounts_rejected(ledger, account, amount):
    with pytest.raises(InvalidAmount):
        await ledger.mature(account, amount)


async def test_zero_credit_is_allowed(ledger, account):
    account = await ledger.credit(account, Decimal("0"))
    assert account.total_earned == Decimal("0.00")


async def test_reverse_takes_pending_first(ledger, account):
    account = await ledger.credit(account, Decimal("100"))
    account = await ledger.mature(account, Decimal("60"))

    reversal = await ledger.reverse(account, Decimal("70"))

    assert reversal.from_pending == Decimal("40.00")
    assert reversal.from_available == Decimal("30.00")
    assert reversal.shortfall == Decimal("0.00")
    assert reversal.liability is None

    account = await ledger.get_account(account.referrer)
    assert account.pending_amount == Decimal("0.00")
    assert account.available_amount == Decimal("30.00")
    assert account.total_earned == Decimal("30.00")
    assert account.is_balanced


async def test_reverse_after_payout_records_liability(ledger, account):
    account = await ledger.credit(account, Decimal("50"))
    account = await ledger.mature(account, Decimal("50"))
    account = await ledger.reserve_for_payout(account, Decimal("50"))
    account = await ledger.settle_payout(account, Decimal("50"))

    reversal = await ledger.reverse(account, Decimal("50"))

    assert reversal.recovered == Decimal("0.00")
    assert reversal.shortfall == Decimal("50.00")
    assert reversal.liability.amount == Decimal("50.00")
    assert reversal.liability.status == LiabilityStatus.OPEN.value

    account = await ledger.get_account(account.referrer)
    assert account.paid_amount == Decimal("50.00")
    assert account.liability_amount == Decimal("50.00")
    assert account.available_amount == Decimal("0.00")
    assert account.is_balanced


async def test_clear_liability(ledger, account):
    account = await ledger.credit(account, Decimal("20"))
    await ledger.reverse(account, Decimal("20"))
    account = await ledger.get_account(account.referrer)
    assert account.liability_amount == Decimal("0.00")

    account = await ledger.credit(account, Decimal("20"))
    account = await ledger.mature(account, Decimal("20"))
    account = await ledger.reserve_for_payout(account, Decimal("20"))
    await ledger.reverse(account, Decimal("20"))

    account = await ledger.clear_liability(account, Decimal("20"))
    assert account.liability_amount == Decimal("0.00")


async def test_reverse_of_matured_commission_takes_available_first(ledger, account):
    account = await ledger.credit(account, Decimal("100"))
    account = await ledger.mature(account, Decimal("60"))

    reversal = await ledger.reverse(account, Decimal("70"), prefer_available=True)

    assert reversal.from_available == Decimal("60.00")
    assert reversal.from_pending == Decimal("10.00")
    account = await ledger.get_account(account.referrer)
    assert account.pending_amount == Decimal("30.00")
    assert account.available_amount == Decimal("0.00")
    assert account.is_balanced


async def test_mature_up_to_moves_only_what_is_pending(ledger, account):
    account = await ledger.credit(account, Decimal("30"))

    assert await ledger.mature_up_to(account, Decimal("50")) == Decimal("30.00")
    assert await ledger.mature_up_to(account, Decimal("50")) == Decimal("0.00")

    account = await ledger.get_account(account.referrer)
    assert account.pending_amount == Decimal("0.00")
    assert account.available_amount == Decimal("30.00")
