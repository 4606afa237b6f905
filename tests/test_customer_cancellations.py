"""Tests for the customer cancellation endpoints."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from httpx import AsyncClient

from app.models import CancellationStatus
from app.utils.security import create_access_token


def url(booking_id: int) -> str:
    return f"/api/v1/bookings/{booking_id}/cancellation-request"


class TestRequestCancellation:
    """Tests for opening a cancellation request."""

    async def test_create(self, client: AsyncClient, customer_headers: dict, test_booking):
        response = await client.post(
            url(test_booking.id),
            json={"reason": "I can no longer travel to the match", "customer_notes": "Sorry"},
            headers=customer_headers,
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "pending"
        assert data["reference"].startswith("CAN-")
        assert Decimal(data["requested_amount"]) == Decimal("100.00")
        assert data["booking"]["cancellation_status"] == "requested"

    async def test_short_reason_is_400(
        self, client: AsyncClient, customer_headers: dict, test_booking
    ):
        response = await client.post(
            url(test_booking.id), json={"reason": "nope"}, headers=customer_headers
        )

        assert response.status_code == 400
        assert "reason" in response.json()["data"]["errors"]

    async def test_missing_reason_is_400(
        self, client: AsyncClient, customer_headers: dict, test_booking
    ):
        response = await client.post(url(test_booking.id), json={}, headers=customer_headers)
        assert response.status_code == 400

    async def test_duplicate_is_conflict(
        self, client: AsyncClient, customer_headers: dict, test_booking
    ):
        body = {"reason": "I can no longer travel to the match"}
        await client.post(url(test_booking.id), json=body, headers=customer_headers)

        response = await client.post(url(test_booking.id), json=body, headers=customer_headers)

        assert response.status_code == 409

    async def test_past_event_is_400(
        self, client: AsyncClient, customer_headers: dict, create_booking
    ):
        booking = await create_booking(event_date=datetime.now(timezone.utc) - timedelta(days=1))
        response = await client.post(
            url(booking.id),
            json={"reason": "I can no longer travel to the match"},
            headers=customer_headers,
        )

        assert response.status_code == 400
        assert "booking" in response.json()["data"]["errors"]

    async def test_unknown_booking_is_404(self, client: AsyncClient, customer_headers: dict):
        response = await client.post(
            url(999), json={"reason": "I can no longer travel to the match"}, headers=customer_headers
        )
        assert response.status_code == 404


class TestCustomerAccess:
    """Tests for ownership and role checks."""

    async def test_other_customer_is_forbidden(
        self, client: AsyncClient, other_customer, test_booking
    ):
        token = create_access_token(other_customer.id, "customer")
        response = await client.post(
            url(test_booking.id),
            json={"reason": "I can no longer travel to the match"},
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"

    async def test_admin_token_is_forbidden(
        self, client: AsyncClient, admin_headers: dict, test_booking
    ):
        response = await client.get(url(test_booking.id), headers=admin_headers)
        assert response.status_code == 403

    async def test_requires_token(self, client: AsyncClient, test_booking):
        response = await client.get(url(test_booking.id))
        assert response.status_code == 401


class TestViewAndWithdraw:
    """Tests for reading and withdrawing a request."""

    async def test_get_latest(
        self, client: AsyncClient, customer_headers: dict, create_cancellation, test_booking
    ):
        item = await create_cancellation()
        response = await client.get(url(test_booking.id), headers=customer_headers)

        assert response.status_code == 200
        assert response.json()["data"]["id"] == item.id

    async def test_get_without_request_is_404(
        self, client: AsyncClient, customer_headers: dict, test_booking
    ):
        response = await client.get(url(test_booking.id), headers=customer_headers)
        assert response.status_code == 404

    async def test_withdraw(self, client: AsyncClient, customer_headers: dict, test_booking):
        await client.post(
            url(test_booking.id),
            json={"reason": "I can no longer travel to the match"},
            headers=customer_headers,
        )

        response = await client.delete(url(test_booking.id), headers=customer_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "rejected"
        assert data["rejection_reason"] == "Withdrawn by customer"
        assert data["booking"]["cancellation_status"] == "none"

    async def test_withdraw_after_approval_is_conflict(
        self, client: AsyncClient, customer_headers: dict, create_cancellation, test_booking
    ):
        await create_cancellation(
            status=CancellationStatus.APPROVED, approved_amount=Decimal("100.00")
        )
        response = await client.delete(url(test_booking.id), headers=customer_headers)
        assert response.status_code == 409

    async def test_withdraw_without_request_is_404(
        self, client: AsyncClient, customer_headers: dict, test_booking
    ):
        response = await client.delete(url(test_booking.id), headers=customer_headers)
        assert response.status_code == 404
