"""Cancellation request workflow and customer-side intake."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from app.models.booking import BookingStatus
from app.models.cancellation import CancellationRefundStatus, CancellationStatus
from app.models.review_request import as_utc
from app.repositories.request_repository import CancellationRequestRepository
from app.services.request_validation import (
    CANCELLATION_TRANSITIONS,
    MAX_ADMIN_NOTES_LENGTH,
    MAX_REJECTION_REASON_LENGTH,
    MIN_REJECTION_REASON_LENGTH,
)
from app.services.workflow import (
    ErrorKind,
    ReviewWorkflowService,
    StorageError,
    WorkflowResult,
)
from core.config import config
from core.logging import get_logger

logger = get_logger(__name__)


def calculate_policy_refund(
    amount_paid: Decimal, event_date: Optional[datetime], now: datetime
) -> Decimal:
    """Refund owed under the cancellation policy.

    Full refund when the event is at least CANCELLATION_FULL_REFUND_DAYS away,
    CANCELLATION_PARTIAL_REFUND_PERCENT when at least
    CANCELLATION_PARTIAL_REFUND_DAYS away, nothing otherwise. Bookings without
    an event date are refunded in full.
    """
    if event_date is None:
        return amount_paid

    days_until_event = (as_utc(event_date) - as_utc(now)).days
    if days_until_event >= config.CANCELLATION_FULL_REFUND_DAYS:
        return amount_paid
    if days_until_event >= config.CANCELLATION_PARTIAL_REFUND_DAYS:
        share = Decimal(config.CANCELLATION_PARTIAL_REFUND_PERCENT) / Decimal(100)
        return (amount_paid * share).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return Decimal("0.00")


class CancellationWorkflowService(ReviewWorkflowService):
    """Admin review of cancellation requests plus the customer's own actions."""

    entity_type = "cancellation_request"
    transitions = CANCELLATION_TRANSITIONS
    repository: CancellationRequestRepository

    def _default_approved_amount(self, item: Any) -> Decimal:
        booking = item.booking
        policy_amount = calculate_policy_refund(
            booking.total_amount, booking.event_date, self.clock()
        )
        return min(policy_amount, item.requested_amount)

    def _approve_extra(self, item: Any, amount: Decimal) -> Dict[str, Any]:
        refund_status = (
            CancellationRefundStatus.PENDING
            if amount > 0
            else CancellationRefundStatus.NOT_APPLICABLE
        )
        return {"extra": {"refund_status": refund_status}}

    def _complete_extra(self, item: Any, refund_reference: Optional[str]) -> Dict[str, Any]:
        if refund_reference:
            return {"extra": {"refund_status": CancellationRefundStatus.PROCESSED}}
        return {}

    # ------------------------------------------------------------------
    # Customer side
    # ------------------------------------------------------------------

    async def _load_own_booking(self, booking_id: int, customer_id: int):
        """Return (booking, None) or (None, failure result)."""
        booking = await self._storage(self.repository.get_booking(booking_id), "load booking")
        if booking is None:
            return None, WorkflowResult.err(
                ErrorKind.NOT_FOUND, f"Booking {booking_id} not found"
            )
        if booking.customer_id != customer_id:
            logger.warning(
                f"Customer {customer_id} tried to access cancellation of booking {booking_id}"
            )
            return None, WorkflowResult.err(
                ErrorKind.AUTHORIZATION_DENIED,
                "You don't have permission to access this booking",
            )
        return booking, None

    async def request_cancellation(
        self,
        booking_id: int,
        customer_id: Optional[int],
        reason: Optional[str],
        notes: Optional[str] = None,
    ) -> WorkflowResult:
        """Open a pending cancellation request for the customer's own booking.

        The requested amount is the booking total; the policy amount is only
        worked out when an admin approves.
        """
        if not customer_id:
            return WorkflowResult.err(
                ErrorKind.AUTHORIZATION_DENIED, "An authenticated customer is required"
            )

        reason = (reason or "").strip()
        errors: Dict[str, str] = {}
        if len(reason) < MIN_REJECTION_REASON_LENGTH:
            errors["reason"] = (
                f"Reason must be at least {MIN_REJECTION_REASON_LENGTH} characters"
            )
        elif len(reason) > MAX_REJECTION_REASON_LENGTH:
            errors["reason"] = (
                f"Reason must not exceed {MAX_REJECTION_REASON_LENGTH} characters"
            )
        if notes and len(notes) > MAX_ADMIN_NOTES_LENGTH:
            errors["customer_notes"] = (
                f"Notes must not exceed {MAX_ADMIN_NOTES_LENGTH} characters"
            )
        if errors:
            return WorkflowResult.err(ErrorKind.VALIDATION, "Validation failed", errors)

        now = self.clock()
        try:
            booking, failure = await self._load_own_booking(booking_id, customer_id)
            if failure is not None:
                return failure

            if booking.status == BookingStatus.CANCELLED:
                return WorkflowResult.err(
                    ErrorKind.INVALID_TRANSITION, "Booking is already cancelled"
                )
            if booking.event_date is not None and as_utc(booking.event_date) <= as_utc(now):
                return WorkflowResult.err(
                    ErrorKind.VALIDATION,
                    "Validation failed",
                    {"booking": "Cannot cancel a booking for an event that has already taken place"},
                )
            if booking.total_amount <= 0:
                return WorkflowResult.err(
                    ErrorKind.VALIDATION,
                    "Validation failed",
                    {"booking": "Nothing was paid for this booking"},
                )

            active = await self._storage(
                self.repository.get_active_for_booking(booking_id), "load active request"
            )
            if active is not None:
                return WorkflowResult.err(
                    ErrorKind.INVALID_TRANSITION,
                    f"Booking already has an active cancellation request ({active.reference})",
                )

            created = await self._storage(
                self.repository.create_for_booking(
                    booking_id,
                    reference=self.repository.model.generate_reference(now),
                    customer_id=customer_id,
                    requested_amount=booking.total_amount,
                    reason=reason,
                    customer_notes=notes,
                    status=CancellationStatus.PENDING,
                    requested_at=now,
                ),
                "create",
            )
            item = await self._storage(self.repository.get_by_id(created.id), "reload")
        except StorageError:
            return self._storage_failure()

        logger.info(
            f"Customer {customer_id} requested cancellation {item.reference} "
            f"for booking {booking_id}"
        )
        return WorkflowResult.ok(item)

    async def withdraw_cancellation(
        self, booking_id: int, customer_id: Optional[int]
    ) -> WorkflowResult:
        """Withdraw the customer's own pending request.

        The request is closed as rejected with a fixed reason rather than
        deleted.
        """
        if not customer_id:
            return WorkflowResult.err(
                ErrorKind.AUTHORIZATION_DENIED, "An authenticated customer is required"
            )

        try:
            booking, failure = await self._load_own_booking(booking_id, customer_id)
            if failure is not None:
                return failure

            active = await self._storage(
                self.repository.get_active_for_booking(booking_id), "load active request"
            )
            if active is None:
                return WorkflowResult.err(
                    ErrorKind.NOT_FOUND,
                    f"No active cancellation request for booking {booking_id}",
                )
            if self._status(active) != CancellationStatus.PENDING.value:
                return WorkflowResult.err(
                    ErrorKind.INVALID_TRANSITION,
                    "Only pending cancellation requests can be withdrawn",
                )

            withdrawn = await self._storage(
                self.repository.withdraw(active.id, self.clock()), "withdraw"
            )
            if not withdrawn:
                return WorkflowResult.err(
                    ErrorKind.INVALID_TRANSITION,
                    f"Cancellation request {active.id} is no longer pending",
                )
            item = await self._storage(self.repository.get_by_id(active.id), "reload")
        except StorageError:
            return self._storage_failure()

        logger.info(f"Customer {customer_id} withdrew cancellation request {item.reference}")
        return WorkflowResult.ok(item)

    async def get_cancellation_for_booking(
        self, booking_id: int, customer_id: Optional[int]
    ) -> WorkflowResult:
        """Latest cancellation request of the customer's booking."""
        if not customer_id:
            return WorkflowResult.err(
                ErrorKind.AUTHORIZATION_DENIED, "An authenticated customer is required"
            )

        try:
            booking, failure = await self._load_own_booking(booking_id, customer_id)
            if failure is not None:
                return failure
            item = await self._storage(
                self.repository.get_latest_for_booking(booking_id), "load latest request"
            )
        except StorageError:
            return self._storage_failure()

        if item is None:
            return WorkflowResult.err(
                ErrorKind.NOT_FOUND, f"No cancellation request for booking {booking_id}"
            )
        return WorkflowResult.ok(item)
