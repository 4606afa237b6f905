"""Customer API endpoints for cancelling their own bookings."""

from fastapi import APIRouter, Depends, status

from api.deps import get_cancellation_service, get_current_customer
from api.responses import unwrap
from app.models.customer import Customer
from app.schemas.review_request import (
    ApiResponse,
    CancellationCreate,
    CancellationRequestResponse,
)
from app.services.cancellation_service import CancellationWorkflowService
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/bookings", tags=["Cancellations"])


@router.post(
    "/{booking_id}/cancellation-request",
    response_model=ApiResponse[CancellationRequestResponse],
    status_code=status.HTTP_201_CREATED,
)
async def request_cancellation(
    booking_id: int,
    body: CancellationCreate,
    service: CancellationWorkflowService = Depends(get_cancellation_service),
    current_customer: Customer = Depends(get_current_customer),
) -> ApiResponse[CancellationRequestResponse]:
    """Ask for a booking to be cancelled.

    The request waits for admin review; the refund is decided on approval.
    """
    logger.info(f"Cancellation requested for booking {booking_id} by customer: {current_customer.id}")
    item = unwrap(
        await service.request_cancellation(
            booking_id, current_customer.id, body.reason, notes=body.customer_notes
        )
    )
    return ApiResponse[CancellationRequestResponse](
        message="Cancellation request submitted",
        data=CancellationRequestResponse.model_validate(item),
    )


@router.get(
    "/{booking_id}/cancellation-request",
    response_model=ApiResponse[CancellationRequestResponse],
)
async def get_cancellation_request(
    booking_id: int,
    service: CancellationWorkflowService = Depends(get_cancellation_service),
    current_customer: Customer = Depends(get_current_customer),
) -> ApiResponse[CancellationRequestResponse]:
    item = unwrap(await service.get_cancellation_for_booking(booking_id, current_customer.id))
    return ApiResponse[CancellationRequestResponse](
        message="Cancellation request retrieved successfully",
        data=CancellationRequestResponse.model_validate(item),
    )


@router.delete(
    "/{booking_id}/cancellation-request",
    response_model=ApiResponse[CancellationRequestResponse],
)
async def withdraw_cancellation_request(
    booking_id: int,
    service: CancellationWorkflowService = Depends(get_cancellation_service),
    current_customer: Customer = Depends(get_current_customer),
) -> ApiResponse[CancellationRequestResponse]:
    """Withdraw a pending request. The record is kept, closed as rejected."""
    logger.info(f"Cancellation withdrawn for booking {booking_id} by customer: {current_customer.id}")
    item = unwrap(await service.withdraw_cancellation(booking_id, current_customer.id))
    return ApiResponse[CancellationRequestResponse](
        message="Cancellation request withdrawn",
        data=CancellationRequestResponse.model_validate(item),
    )
