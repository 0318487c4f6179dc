"""End-to-end flows through the HTTP API."""
import uuid
from decimal import Decimal

import pytest_asyncio

from tests.conftest import token_for


REFERRER_ID = uuid.UUID("00000000-0000-4000-8000-000000abc123")
API = "/api/v1"


@pytest_asyncio.fixture
async def enrolled(client, service_headers):
    response = await client.post(
        f"{API}/referrers/users",
        json={"user_id": str(REFERRER_ID), "email": "asha@example.com", "name": "Asha"},
        headers=service_headers,
    )
    assert response.status_code == 201
    return response.json()


async def refer_and_deliver(client, service_headers, order_total: str):
    customer = uuid.uuid4()
    response = await client.post(
        f"{API}/referrals/attribute",
        json={"new_user_id": str(customer), "referral_code": "shribalajiabc123"},
        headers=service_headers,
    )
    assert response.status_code == 200
    assert response.json()["referral_id"] is not None

    order_id = uuid.uuid4()
    response = await client.post(
        f"{API}/orders/status-events",
        json={
            "order_id": str(order_id),
            "customer_id": str(customer),
            "status": "Delivered",
            "order_total": order_total,
        },
        headers=service_headers,
    )
    assert response.status_code == 200
    return customer, order_id, response.json()


# ==================== AUTH ====================


async def test_missing_token_is_rejected(client):
    response = await client.get(f"{API}/referrals")
    assert response.status_code in (401, 403)


async def test_invalid_token_is_rejected(client):
    response = await client.get(f"{API}/referrals", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


async def test_internal_hooks_refuse_regular_users(client):
    response = await client.post(
        f"{API}/referrals/attribute",
        json={"new_user_id": str(uuid.uuid4()), "referral_code": "X"},
        headers=token_for(uuid.uuid4()),
    )
    assert response.status_code == 403


async def test_referrer_data_is_private(client, enrolled):
    response = await client.get(f"{API}/referrers/{REFERRER_ID}/commission", headers=token_for(uuid.uuid4()))
    assert response.status_code == 403

    response = await client.get(f"{API}/referrers/{REFERRER_ID}/commission", headers=token_for(REFERRER_ID))
    assert response.status_code == 200


async def test_unknown_referrer(client, admin_headers):
    response = await client.get(f"{API}/referrers/{uuid.uuid4()}", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "ReferrerNotFound"


# ==================== FLOWS ====================


async def test_enrolment_issues_code(enrolled):
    assert enrolled["referral_code"] == "SHRIBALAJIABC123"
    assert enrolled["kind"] == "user"
    assert enrolled["kyc_verified"] is False


async def test_delivered_order_credits_pending_commission(client, service_headers, enrolled):
    _, _, result = await refer_and_deliver(client, service_headers, "1000.00")

    assert result["outcome"] == "converted"
    assert Decimal(result["commission_amount"]) == Decimal("50.00")

    response = await client.get(f"{API}/referrers/{REFERRER_ID}/commission", headers=token_for(REFERRER_ID))
    summary = response.json()
    assert Decimal(summary["pending_amount"]) == Decimal("50.00")
    assert Decimal(summary["available_amount"]) == Decimal("0.00")
    assert Decimal(summary["rate"]) == Decimal("5")
    assert summary["can_request_payout"] is False


async def test_payout_flow(client, service_headers, admin_headers, enrolled):
    owner = token_for(REFERRER_ID)
    await refer_and_deliver(client, service_headers, "10000.00")

    response = await client.post(f"{API}/referrers/{REFERRER_ID}/commission/mature", json={}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["matured_referrals"] == 1
    assert Decimal(response.json()["commission"]["available_amount"]) == Decimal("500.00")

    # KYC first
    response = await client.post(f"{API}/referrers/{REFERRER_ID}/payouts", json={"amount": "500"}, headers=owner)
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "VerificationRequired"

    response = await client.post(f"{API}/referrers/{REFERRER_ID}/kyc", json={"verified": True}, headers=admin_headers)
    assert response.status_code == 200

    response = await client.put(
        f"{API}/referrers/{REFERRER_ID}/payout-details",
        json={"preferred_payout_method": "upi", "upi_id": "asha@okaxis"},
        headers=owner,
    )
    assert response.status_code == 200

    response = await client.post(f"{API}/referrers/{REFERRER_ID}/payouts", json={"amount": "500"}, headers=owner)
    assert response.status_code == 201
    payout = response.json()
    assert payout["status"] == "pending"

    response = await client.post(f"{API}/payouts/{payout['payout_id']}/approve", headers=admin_headers)
    assert response.json()["status"] == "approved"

    response = await client.post(
        f"{API}/payouts/{payout['payout_id']}/settle",
        json={"outcome": "paid", "transaction_reference": "UTR0001"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "paid"

    response = await client.get(f"{API}/referrers/{REFERRER_ID}/commission", headers=owner)
    summary = response.json()
    assert Decimal(summary["paid_amount"]) == Decimal("500.00")
    assert Decimal(summary["reserved_amount"]) == Decimal("0.00")
    assert Decimal(summary["available_amount"]) == Decimal("0.00")

    response = await client.get(f"{API}/referrers/{REFERRER_ID}/payouts", headers=owner)
    assert response.json()["total"] == 1


async def test_payout_larger_than_available(client, service_headers, admin_headers, enrolled):
    await refer_and_deliver(client, service_headers, "6000.00")
    await client.post(f"{API}/referrers/{REFERRER_ID}/commission/mature", json={}, headers=admin_headers)

    response = await client.post(
        f"{API}/referrers/{REFERRER_ID}/payouts",
        json={"amount": "500"},
        headers=token_for(REFERRER_ID),
    )

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "InsufficientBalance"


async def test_refund_after_payout_creates_liability(client, service_headers, admin_headers, enrolled):
    owner = token_for(REFERRER_ID)
    customer, order_id, _ = await refer_and_deliver(client, service_headers, "10000.00")
    await client.post(f"{API}/referrers/{REFERRER_ID}/commission/mature", json={}, headers=admin_headers)
    await client.post(f"{API}/referrers/{REFERRER_ID}/kyc", json={"verified": True}, headers=admin_headers)
    await client.put(
        f"{API}/referrers/{REFERRER_ID}/payout-details",
        json={"preferred_payout_method": "upi", "upi_id": "asha@okaxis"},
        headers=owner,
    )
    payout = (await client.post(f"{API}/referrers/{REFERRER_ID}/payouts", json={"amount": "500"}, headers=owner)).json()
    await client.post(f"{API}/payouts/{payout['payout_id']}/settle", json={"outcome": "paid"}, headers=admin_headers)

    response = await client.post(
        f"{API}/orders/status-events",
        json={"order_id": str(order_id), "customer_id": str(customer), "status": "refunded", "order_total": "10000"},
        headers=service_headers,
    )
    assert response.json()["outcome"] == "reversed"
    assert Decimal(response.json()["shortfall"]) == Decimal("500.00")

    response = await client.get(f"{API}/liabilities", params={"status": "open"}, headers=admin_headers)
    liabilities = response.json()
    assert liabilities["total"] == 1

    liability_id = liabilities["items"][0]["id"]
    response = await client.post(f"{API}/liabilities/{liability_id}/resolve", json={"notes": "Recovered"}, headers=admin_headers)
    assert response.json()["status"] == "resolved"

    response = await client.get(f"{API}/referrers/{REFERRER_ID}/commission", headers=owner)
    assert Decimal(response.json()["liability_amount"]) == Decimal("0.00")


async def test_influencer_application_and_review(client, admin_headers):
    login = uuid.uuid4()
    response = await client.post(
        f"{API}/referrers/influencers",
        json={"name": "Priya Styles", "email": "priya@example.com", "username": "PriyaStyles"},
        headers=token_for(login),
    )
    assert response.status_code == 201
    influencer = response.json()
    assert influencer["status"] == "pending"
    assert influencer["tier"] == "bronze"
    assert influencer["username"] == "priyastyles"

    response = await client.patch(
        f"{API}/referrers/influencers/{influencer['id']}",
        json={"status": "approved", "tier": "gold"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    response = await client.get(f"{API}/referrers/{influencer['id']}/commission", headers=token_for(login))
    assert Decimal(response.json()["rate"]) == Decimal("7")

    response = await client.get(f"{API}/referrers/influencers", params={"status": "approved"}, headers=admin_headers)
    assert response.json()["total"] == 1


async def test_tier_table_is_public(client):
    response = await client.get(f"{API}/commission/tiers")

    assert response.status_code == 200
    assert [row["tier"] for row in response.json()] == ["base", "bronze", "silver", "gold", "platinum", "diamond"]


async def test_admin_referral_listing_with_stats(client, service_headers, admin_headers, enrolled):
    await refer_and_deliver(client, service_headers, "1000.00")

    response = await client.get(f"{API}/referrals", headers=admin_headers)

    body = response.json()
    assert body["total"] == 1
    assert body["stats"]["converted_referrals"] == 1
