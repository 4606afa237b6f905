"""Refund request workflow, including payout through Stripe."""

from decimal import Decimal
from typing import Optional

import stripe

from app.repositories.request_repository import RefundRequestRepository
from app.services.request_validation import REFUND_TRANSITIONS, validate_status_transition
from app.services.stripe_service import StripeService
from app.services.workflow import (
    AuditSink,
    Clock,
    ErrorKind,
    ReviewWorkflowService,
    StorageError,
    WorkflowResult,
)
from core.logging import get_logger

logger = get_logger(__name__)


class RefundWorkflowService(ReviewWorkflowService):
    """Admin review of refund requests.

    Adds a ``processing`` step between approval and completion for refunds
    that are paid out through the payment gateway.
    """

    entity_type = "refund_request"
    transitions = REFUND_TRANSITIONS
    repository: RefundRequestRepository

    def __init__(
        self,
        repository: RefundRequestRepository,
        audit_sink: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        timeout: Optional[float] = None,
        payment_gateway=StripeService,
    ):
        super().__init__(repository, audit_sink=audit_sink, clock=clock, timeout=timeout)
        self.payment_gateway = payment_gateway

    async def start_processing(
        self, request_id: int, admin_id: Optional[int], notes: Optional[str] = None
    ) -> WorkflowResult:
        """approved -> processing."""
        notes_error = self._notes_error(notes)
        if notes_error:
            return WorkflowResult.err(ErrorKind.VALIDATION, "Validation failed", notes_error)

        return await self._transition(
            request_id,
            admin_id,
            "processing",
            action="process_refund_request",
            changes=lambda item: {"notes": notes},
        )

    async def issue_gateway_refund(
        self, request_id: int, admin_id: Optional[int]
    ) -> WorkflowResult:
        """Pay out an approved refund through Stripe and complete it.

        The request is moved to processing before Stripe is called, so a
        second payout attempt loses the race instead of paying twice. If
        Stripe fails the request stays in processing for manual follow-up.
        """
        if not admin_id:
            return WorkflowResult.err(
                ErrorKind.AUTHORIZATION_DENIED, "An authenticated admin is required"
            )

        try:
            item = await self._storage(self.repository.get_by_id(request_id), "load")
        except StorageError:
            return self._storage_failure()
        if item is None:
            return self._not_found(request_id)

        errors = validate_status_transition(self._status(item), "processing", self.transitions)
        if errors:
            return WorkflowResult.err(
                ErrorKind.INVALID_TRANSITION, errors[0], {"status": errors[0]}
            )

        payment_intent_id = item.booking.stripe_payment_intent_id if item.booking else None
        if not payment_intent_id:
            return WorkflowResult.err(
                ErrorKind.VALIDATION,
                "Validation failed",
                {"booking": "Booking has no Stripe payment to refund"},
            )

        amount = item.net_refund_amount
        if amount is None:
            amount = item.approved_amount if item.approved_amount is not None else item.requested_amount
        if amount <= Decimal("0"):
            return WorkflowResult.err(
                ErrorKind.VALIDATION,
                "Validation failed",
                {"approved_amount": "Nothing left to refund after the processing fee"},
            )

        moved = await self.start_processing(request_id, admin_id)
        if moved.is_err:
            return moved

        try:
            refund = await self.payment_gateway.create_refund(
                payment_intent_id,
                amount_cents=StripeService.to_cents(amount),
                metadata={"refund_request_id": str(request_id), "reference": item.reference},
                idempotency_key=f"refund-request-{request_id}",
            )
        except stripe.StripeError as e:
            logger.error(
                f"Stripe refund failed for refund request {request_id}, left in processing: {e}"
            )
            return WorkflowResult.err(
                ErrorKind.STORAGE_FAILURE,
                "The payment provider could not process the refund. Please try again later.",
            )

        logger.info(
            f"Refund request {request_id} paid out as {refund['id']} ({refund['amount']} cents)"
        )
        return await self.complete(request_id, admin_id, refund_reference=refund["id"])
