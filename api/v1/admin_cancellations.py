"""Admin API endpoints for reviewing booking cancellation requests."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.deps import get_cancellation_service, get_current_admin
from api.responses import unwrap
from app.models.admin_user import AdminUser
from app.schemas.review_request import (
    ApiListResponse,
    ApiResponse,
    ApproveRequest,
    CancellationRequestResponse,
    CompleteRequest,
    Pagination,
    RejectRequest,
    RequestStatistics,
)
from app.services.cancellation_service import CancellationWorkflowService
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/cancellation-requests", tags=["Admin Cancellations"])


@router.get("", response_model=ApiListResponse[CancellationRequestResponse])
async def list_cancellation_requests(
    search: Optional[str] = Query(None, description="Customer name, email or reference"),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    refund_status: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_from: Optional[str] = Query(None, description="Alias of start_date"),
    date_to: Optional[str] = Query(None, description="Alias of end_date"),
    page: Optional[str] = Query("1"),
    per_page: Optional[str] = Query(None),
    service: CancellationWorkflowService = Depends(get_cancellation_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiListResponse[CancellationRequestResponse]:
    """List cancellation requests, newest first.

    Unknown status/priority values are ignored; malformed dates are a 400.
    """
    logger.info(f"Listing cancellation requests for admin: {current_admin.id}")

    raw_filters = {
        "search": search,
        "status": status,
        "priority": priority,
        "refund_status": refund_status,
        "start_date": start_date,
        "end_date": end_date,
        "date_from": date_from,
        "date_to": date_to,
    }
    listing = unwrap(await service.list(raw_filters, page, per_page))

    return ApiListResponse[CancellationRequestResponse](
        message="Cancellation requests retrieved successfully",
        data=[CancellationRequestResponse.model_validate(item) for item in listing["items"]],
        pagination=Pagination.build(listing["total"], listing["page"], listing["per_page"]),
    )


@router.get("/stats", response_model=ApiResponse[RequestStatistics])
async def get_cancellation_statistics(
    service: CancellationWorkflowService = Depends(get_cancellation_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[RequestStatistics]:
    """Counts by status and priority, approved total and stale pending requests."""
    stats = unwrap(await service.get_statistics())
    return ApiResponse[RequestStatistics](
        message="Cancellation statistics retrieved successfully",
        data=RequestStatistics(**stats),
    )


@router.get("/{request_id}", response_model=ApiResponse[CancellationRequestResponse])
async def get_cancellation_request(
    request_id: int,
    service: CancellationWorkflowService = Depends(get_cancellation_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[CancellationRequestResponse]:
    item = unwrap(await service.get_by_id(request_id))
    return ApiResponse[CancellationRequestResponse](
        message="Cancellation request retrieved successfully",
        data=CancellationRequestResponse.model_validate(item),
    )


@router.patch("/{request_id}/approve", response_model=ApiResponse[CancellationRequestResponse])
async def approve_cancellation_request(
    request_id: int,
    body: ApproveRequest,
    service: CancellationWorkflowService = Depends(get_cancellation_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[CancellationRequestResponse]:
    """Approve a pending cancellation.

    Without ``approved_amount`` the refund follows the cancellation policy
    for the booking's event date.
    """
    logger.info(f"Approving cancellation request {request_id} by admin: {current_admin.id}")

    item = unwrap(
        await service.approve(
            request_id,
            current_admin.id,
            approved_amount=body.approved_amount,
            notes=body.admin_notes,
        )
    )
    return ApiResponse[CancellationRequestResponse](
        message="Cancellation request approved",
        data=CancellationRequestResponse.model_validate(item),
    )


@router.patch("/{request_id}/reject", response_model=ApiResponse[CancellationRequestResponse])
async def reject_cancellation_request(
    request_id: int,
    body: RejectRequest,
    service: CancellationWorkflowService = Depends(get_cancellation_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[CancellationRequestResponse]:
    logger.info(f"Rejecting cancellation request {request_id} by admin: {current_admin.id}")

    if body.rejection_reason:
        result = await service.reject(
            request_id, current_admin.id, body.rejection_reason, notes=body.admin_notes
        )
    else:
        result = await service.reject(request_id, current_admin.id, body.admin_notes)

    return ApiResponse[CancellationRequestResponse](
        message="Cancellation request rejected",
        data=CancellationRequestResponse.model_validate(unwrap(result)),
    )


@router.patch("/{request_id}/complete", response_model=ApiResponse[CancellationRequestResponse])
async def complete_cancellation_request(
    request_id: int,
    body: CompleteRequest,
    service: CancellationWorkflowService = Depends(get_cancellation_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[CancellationRequestResponse]:
    """Complete an approved cancellation; the booking is marked cancelled."""
    logger.info(f"Completing cancellation request {request_id} by admin: {current_admin.id}")

    item = unwrap(
        await service.complete(
            request_id,
            current_admin.id,
            refund_reference=body.refund_reference,
            notes=body.admin_notes,
        )
    )
    return ApiResponse[CancellationRequestResponse](
        message="Cancellation request completed",
        data=CancellationRequestResponse.model_validate(item),
    )
