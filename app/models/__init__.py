from app.models.activity_log import AdminActivityLog
from app.models.admin_user import AdminRole, AdminUser
from app.models.booking import Booking, BookingCancellationStatus, BookingStatus
from app.models.cancellation import (
    CancellationRefundStatus,
    CancellationRequest,
    CancellationStatus,
)
from app.models.customer import Customer
from app.models.refund import RefundRequest, RefundRequestStatus
from app.models.review_request import RequestPriority, ReviewRequestMixin

__all__ = [
    # Accounts
    "AdminUser",
    "AdminRole",
    "Customer",
    # Booking
    "Booking",
    "BookingStatus",
    "BookingCancellationStatus",
    # Review requests
    "ReviewRequestMixin",
    "RequestPriority",
    "CancellationRequest",
    "CancellationStatus",
    "CancellationRefundStatus",
    "RefundRequest",
    "RefundRequestStatus",
    # Audit
    "AdminActivityLog",
]
