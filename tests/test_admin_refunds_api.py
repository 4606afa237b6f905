"""Tests for the admin refund review endpoints."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import stripe
from httpx import AsyncClient

from api.deps import get_payment_gateway
from app.models import RefundRequestStatus
from main import app

BASE_URL = "/api/v1/admin/refund-requests"


def override_gateway(**kwargs) -> MagicMock:
    gateway = MagicMock()
    gateway.create_refund = AsyncMock(**kwargs)
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    return gateway


class TestRefundListing:
    """Tests for listing refund requests."""

    async def test_list_filters_by_processing(
        self, client: AsyncClient, admin_headers: dict, create_refund
    ):
        await create_refund()
        processing = await create_refund(
            status=RefundRequestStatus.PROCESSING, approved_amount=Decimal("20.00")
        )

        response = await client.get(BASE_URL, params={"status": "processing"}, headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert [item["id"] for item in data["data"]] == [processing.id]
        assert data["data"][0]["status"] == "processing"

    async def test_search_by_reference(
        self, client: AsyncClient, admin_headers: dict, create_refund
    ):
        target = await create_refund()
        await create_refund()

        response = await client.get(
            BASE_URL, params={"search": target.reference.lower()}, headers=admin_headers
        )

        assert [item["id"] for item in response.json()["data"]] == [target.id]

    async def test_stats_include_processing(
        self, client: AsyncClient, admin_headers: dict, create_refund
    ):
        await create_refund(status=RefundRequestStatus.PROCESSING, approved_amount=Decimal("20.00"))
        await create_refund(status=RefundRequestStatus.APPROVED, approved_amount=Decimal("5.00"))

        response = await client.get(f"{BASE_URL}/stats", headers=admin_headers)

        stats = response.json()["data"]
        assert stats["by_status"]["processing"] == 1
        assert Decimal(stats["total_approved_amount"]) == Decimal("25.00")


class TestRefundActions:
    """Tests for refund status changes over HTTP."""

    async def test_generic_status_update(
        self, client: AsyncClient, admin_headers: dict, create_refund
    ):
        item = await create_refund()
        response = await client.patch(
            f"{BASE_URL}/{item.id}/status",
            json={"status": "approved", "approved_amount": "60.00"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "approved"
        assert Decimal(data["approved_amount"]) == Decimal("60.00")

    async def test_generic_status_update_requires_status(
        self, client: AsyncClient, admin_headers: dict, create_refund
    ):
        item = await create_refund()
        response = await client.patch(f"{BASE_URL}/{item.id}/status", json={}, headers=admin_headers)

        assert response.status_code == 400
        assert "status" in response.json()["data"]["errors"]

    async def test_process_then_complete(
        self, client: AsyncClient, admin_headers: dict, create_refund
    ):
        item = await create_refund(status=RefundRequestStatus.APPROVED, approved_amount=Decimal("30.00"))

        processing = await client.patch(
            f"{BASE_URL}/{item.id}/process", json={"admin_notes": "Sent to finance"}, headers=admin_headers
        )
        assert processing.status_code == 200
        assert processing.json()["data"]["status"] == "processing"

        completed = await client.patch(
            f"{BASE_URL}/{item.id}/complete",
            json={"refund_reference": "BANK-1"},
            headers=admin_headers,
        )
        assert completed.status_code == 200
        assert completed.json()["data"]["status"] == "completed"

    async def test_reject_after_approval_is_conflict(
        self, client: AsyncClient, admin_headers: dict, create_refund
    ):
        item = await create_refund(status=RefundRequestStatus.APPROVED, approved_amount=Decimal("30.00"))
        response = await client.patch(
            f"{BASE_URL}/{item.id}/reject",
            json={"rejection_reason": "Changed decision after review"},
            headers=admin_headers,
        )
        assert response.status_code == 409


class TestStripeRefund:
    """Tests for the Stripe payout endpoint."""

    async def test_stripe_refund_completes_request(
        self, client: AsyncClient, admin_headers: dict, create_refund
    ):
        gateway = override_gateway(
            return_value={"id": "re_456", "status": "succeeded", "amount": 3000}
        )
        item = await create_refund(
            status=RefundRequestStatus.APPROVED,
            approved_amount=Decimal("30.00"),
            net_refund_amount=Decimal("30.00"),
        )

        response = await client.post(f"{BASE_URL}/{item.id}/stripe-refund", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "completed"
        assert data["refund_reference"] == "re_456"
        gateway.create_refund.assert_awaited_once()

    async def test_stripe_failure_is_opaque_500(
        self, client: AsyncClient, admin_headers: dict, create_refund
    ):
        override_gateway(side_effect=stripe.StripeError("secret internal detail"))
        item = await create_refund(status=RefundRequestStatus.APPROVED, approved_amount=Decimal("30.00"))

        response = await client.post(f"{BASE_URL}/{item.id}/stripe-refund", headers=admin_headers)

        assert response.status_code == 500
        body = response.json()
        assert body["error_code"] == "STORAGE_FAILURE"
        assert "secret internal detail" not in body["message"]

        detail = await client.get(f"{BASE_URL}/{item.id}", headers=admin_headers)
        assert detail.json()["data"]["status"] == "processing"
