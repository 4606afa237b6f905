"""Customer requests to cancel a booking."""

import enum
from typing import Optional

from sqlalchemy import CheckConstraint, Enum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.review_request import ReviewRequestMixin
from core.db import Base, TimestampMixin


class CancellationStatus(str, enum.Enum):
    """Review status of a cancellation request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class CancellationRefundStatus(str, enum.Enum):
    """Whether money is owed back for an approved cancellation."""

    NOT_APPLICABLE = "not_applicable"
    PENDING = "pending"
    PROCESSED = "processed"


class CancellationRequest(Base, ReviewRequestMixin, TimestampMixin):
    """Cancellation request reviewed by an admin."""

    __tablename__ = "cancellation_requests"
    __table_args__ = (
        CheckConstraint("requested_amount > 0", name="requested_amount_positive"),
        CheckConstraint(
            "approved_amount IS NULL OR approved_amount <= requested_amount",
            name="approved_within_requested",
        ),
    )

    REFERENCE_PREFIX = "CAN"

    status: Mapped[CancellationStatus] = mapped_column(
        Enum(CancellationStatus, values_callable=lambda x: [e.value for e in x]),
        default=CancellationStatus.PENDING,
        nullable=False,
        index=True,
    )
    refund_status: Mapped[Optional[CancellationRefundStatus]] = mapped_column(
        Enum(CancellationRefundStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=True,
    )
