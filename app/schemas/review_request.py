"""Schemas for cancellation and refund request review."""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import Field

from app.models.booking import BookingCancellationStatus, BookingStatus
from app.models.cancellation import CancellationRefundStatus, CancellationStatus
from app.models.refund import RefundRequestStatus
from app.models.review_request import RequestPriority
from app.schemas.base import BaseSchema

T = TypeVar("T")


# ============== Request Bodies ==============


class ApproveRequest(BaseSchema):
    """Approve a pending request. No amount means the default for the kind."""

    approved_amount: Optional[Decimal] = None
    admin_notes: Optional[str] = None


class RejectRequest(BaseSchema):
    """Reject a pending request. ``admin_notes`` is used when no reason is given."""

    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None


class ProcessRequest(BaseSchema):
    admin_notes: Optional[str] = None


class CompleteRequest(BaseSchema):
    refund_reference: Optional[str] = Field(None, max_length=255)
    admin_notes: Optional[str] = None


class StatusUpdateRequest(BaseSchema):
    """Generic status change; the target status picks which fields apply."""

    status: Optional[str] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    approved_amount: Optional[Decimal] = None
    refund_reference: Optional[str] = Field(None, max_length=255)


class CancellationCreate(BaseSchema):
    """Customer request to cancel a booking."""

    reason: str
    customer_notes: Optional[str] = None


# ============== Nested Summaries ==============


class CustomerSummary(BaseSchema):
    id: int
    email: str
    first_name: str
    last_name: Optional[str] = None
    full_name: str


class BookingSummary(BaseSchema):
    id: int
    booking_reference: str
    event_name: str
    event_date: Optional[datetime] = None
    total_amount: Decimal
    currency: str
    status: BookingStatus
    cancellation_status: BookingCancellationStatus


class AdminSummary(BaseSchema):
    id: int
    name: str
    email: str


# ============== Responses ==============


class ReviewRequestResponse(BaseSchema):
    """Fields shared by both request kinds."""

    id: int
    reference: str
    customer_id: int
    booking_id: int
    priority: RequestPriority

    requested_amount: Decimal
    approved_amount: Optional[Decimal] = None
    processing_fee: Decimal
    net_refund_amount: Optional[Decimal] = None

    reason: str
    customer_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    refund_reference: Optional[str] = None

    requested_at: datetime
    reviewed_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    customer: Optional[CustomerSummary] = None
    booking: Optional[BookingSummary] = None
    reviewer: Optional[AdminSummary] = None
    processor: Optional[AdminSummary] = None


class CancellationRequestResponse(ReviewRequestResponse):
    status: CancellationStatus
    refund_status: Optional[CancellationRefundStatus] = None


class RefundRequestResponse(ReviewRequestResponse):
    status: RefundRequestStatus


class RequestStatistics(BaseSchema):
    total: int
    by_status: Dict[str, int]
    by_priority: Dict[str, int]
    total_approved_amount: Decimal
    stale_pending: int


class Pagination(BaseSchema):
    total: int
    page: int
    per_page: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, total: int, page: int, per_page: int) -> "Pagination":
        total_pages = (total + per_page - 1) // per_page if total else 0
        return cls(
            total=total,
            page=page,
            per_page=per_page,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class ApiResponse(BaseSchema, Generic[T]):
    """Success envelope: ``{"success": true, "message": ..., "data": ...}``."""

    success: bool = True
    message: str
    data: T


class ApiListResponse(BaseSchema, Generic[T]):
    success: bool = True
    message: str
    data: List[T]
    pagination: Pagination
