"""Admin API endpoints for reviewing and paying out refund requests."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.deps import get_current_admin, get_refund_service
from api.responses import unwrap
from app.models.admin_user import AdminUser
from app.schemas.review_request import (
    ApiListResponse,
    ApiResponse,
    ApproveRequest,
    CompleteRequest,
    Pagination,
    ProcessRequest,
    RefundRequestResponse,
    RejectRequest,
    RequestStatistics,
    StatusUpdateRequest,
)
from app.services.refund_service import RefundWorkflowService
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/refund-requests", tags=["Admin Refunds"])


def _envelope(message: str, item) -> ApiResponse[RefundRequestResponse]:
    return ApiResponse[RefundRequestResponse](
        message=message,
        data=RefundRequestResponse.model_validate(item),
    )


@router.get("", response_model=ApiListResponse[RefundRequestResponse])
async def list_refund_requests(
    search: Optional[str] = Query(None, description="Customer name, email or reference"),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_from: Optional[str] = Query(None, description="Alias of start_date"),
    date_to: Optional[str] = Query(None, description="Alias of end_date"),
    page: Optional[str] = Query("1"),
    per_page: Optional[str] = Query(None),
    service: RefundWorkflowService = Depends(get_refund_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiListResponse[RefundRequestResponse]:
    """List refund requests, newest first."""
    logger.info(f"Listing refund requests for admin: {current_admin.id}")

    raw_filters = {
        "search": search,
        "status": status,
        "priority": priority,
        "start_date": start_date,
        "end_date": end_date,
        "date_from": date_from,
        "date_to": date_to,
    }
    listing = unwrap(await service.list(raw_filters, page, per_page))

    return ApiListResponse[RefundRequestResponse](
        message="Refund requests retrieved successfully",
        data=[RefundRequestResponse.model_validate(item) for item in listing["items"]],
        pagination=Pagination.build(listing["total"], listing["page"], listing["per_page"]),
    )


@router.get("/stats", response_model=ApiResponse[RequestStatistics])
async def get_refund_statistics(
    service: RefundWorkflowService = Depends(get_refund_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[RequestStatistics]:
    stats = unwrap(await service.get_statistics())
    return ApiResponse[RequestStatistics](
        message="Refund statistics retrieved successfully",
        data=RequestStatistics(**stats),
    )


@router.get("/{request_id}", response_model=ApiResponse[RefundRequestResponse])
async def get_refund_request(
    request_id: int,
    service: RefundWorkflowService = Depends(get_refund_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[RefundRequestResponse]:
    item = unwrap(await service.get_by_id(request_id))
    return _envelope("Refund request retrieved successfully", item)


@router.patch("/{request_id}/status", response_model=ApiResponse[RefundRequestResponse])
async def update_refund_request_status(
    request_id: int,
    body: StatusUpdateRequest,
    service: RefundWorkflowService = Depends(get_refund_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[RefundRequestResponse]:
    """Generic status change used by the admin table's status dropdown."""
    logger.info(
        f"Updating refund request {request_id} to '{body.status}' by admin: {current_admin.id}"
    )
    item = unwrap(
        await service.update_status(request_id, current_admin.id, body.model_dump())
    )
    return _envelope("Refund request status updated", item)


@router.patch("/{request_id}/approve", response_model=ApiResponse[RefundRequestResponse])
async def approve_refund_request(
    request_id: int,
    body: ApproveRequest,
    service: RefundWorkflowService = Depends(get_refund_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[RefundRequestResponse]:
    """Approve a pending refund; without an amount the full requested amount is granted."""
    logger.info(f"Approving refund request {request_id} by admin: {current_admin.id}")
    item = unwrap(
        await service.approve(
            request_id,
            current_admin.id,
            approved_amount=body.approved_amount,
            notes=body.admin_notes,
        )
    )
    return _envelope("Refund request approved", item)


@router.patch("/{request_id}/reject", response_model=ApiResponse[RefundRequestResponse])
async def reject_refund_request(
    request_id: int,
    body: RejectRequest,
    service: RefundWorkflowService = Depends(get_refund_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[RefundRequestResponse]:
    logger.info(f"Rejecting refund request {request_id} by admin: {current_admin.id}")

    if body.rejection_reason:
        result = await service.reject(
            request_id, current_admin.id, body.rejection_reason, notes=body.admin_notes
        )
    else:
        result = await service.reject(request_id, current_admin.id, body.admin_notes)

    return _envelope("Refund request rejected", unwrap(result))


@router.patch("/{request_id}/process", response_model=ApiResponse[RefundRequestResponse])
async def process_refund_request(
    request_id: int,
    body: ProcessRequest,
    service: RefundWorkflowService = Depends(get_refund_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[RefundRequestResponse]:
    """Mark an approved refund as being paid out outside the gateway bridge."""
    logger.info(f"Processing refund request {request_id} by admin: {current_admin.id}")
    item = unwrap(
        await service.start_processing(request_id, current_admin.id, notes=body.admin_notes)
    )
    return _envelope("Refund request is processing", item)


@router.patch("/{request_id}/complete", response_model=ApiResponse[RefundRequestResponse])
async def complete_refund_request(
    request_id: int,
    body: CompleteRequest,
    service: RefundWorkflowService = Depends(get_refund_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[RefundRequestResponse]:
    logger.info(f"Completing refund request {request_id} by admin: {current_admin.id}")
    item = unwrap(
        await service.complete(
            request_id,
            current_admin.id,
            refund_reference=body.refund_reference,
            notes=body.admin_notes,
        )
    )
    return _envelope("Refund request completed", item)


@router.post("/{request_id}/stripe-refund", response_model=ApiResponse[RefundRequestResponse])
async def issue_stripe_refund(
    request_id: int,
    service: RefundWorkflowService = Depends(get_refund_service),
    current_admin: AdminUser = Depends(get_current_admin),
) -> ApiResponse[RefundRequestResponse]:
    """Pay out an approved refund through Stripe and complete it.

    If Stripe fails the request stays in ``processing`` and a 500 is returned.
    """
    logger.info(f"Issuing Stripe refund for request {request_id} by admin: {current_admin.id}")
    item = unwrap(await service.issue_gateway_refund(request_id, current_admin.id))
    return _envelope("Refund issued through Stripe", item)
