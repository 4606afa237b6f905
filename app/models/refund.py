"""Refund requests raised against paid bookings."""

import enum

from sqlalchemy import CheckConstraint, Enum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.review_request import ReviewRequestMixin
from core.db import Base, TimestampMixin


class RefundRequestStatus(str, enum.Enum):
    """Review status of a refund request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"  # Handed to the payment gateway
    COMPLETED = "completed"


class RefundRequest(Base, ReviewRequestMixin, TimestampMixin):
    """Refund request reviewed by an admin and paid out through Stripe."""

    __tablename__ = "refund_requests"
    __table_args__ = (
        CheckConstraint("requested_amount > 0", name="requested_amount_positive"),
        CheckConstraint(
            "approved_amount IS NULL OR approved_amount <= requested_amount",
            name="approved_within_requested",
        ),
    )

    REFERENCE_PREFIX = "REF"

    status: Mapped[RefundRequestStatus] = mapped_column(
        Enum(RefundRequestStatus, values_callable=lambda x: [e.value for e in x]),
        default=RefundRequestStatus.PENDING,
        nullable=False,
        index=True,
    )
