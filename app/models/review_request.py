"""Columns shared by every request that goes through admin review."""

import enum
import secrets
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

if TYPE_CHECKING:
    from app.models.admin_user import AdminUser
    from app.models.booking import Booking
    from app.models.customer import Customer


class RequestPriority(str, enum.Enum):
    """Informational priority, never consulted by transition rules."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReviewRequestMixin:
    """Identity, amounts, actors and timestamps of a reviewable request.

    Concrete models add ``status`` with their own enum and a
    ``REFERENCE_PREFIX`` used by :meth:`generate_reference`.
    """

    REFERENCE_PREFIX = "REQ"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reference: Mapped[str] = mapped_column(
        String(40), nullable=False, unique=True
    )

    # Amounts
    requested_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    approved_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )
    processing_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0.00"), nullable=False
    )
    net_refund_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )

    priority: Mapped[RequestPriority] = mapped_column(
        Enum(RequestPriority, values_callable=lambda x: [e.value for e in x]),
        default=RequestPriority.NORMAL,
        nullable=False,
        index=True,
    )

    # Free text
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refund_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Timeline
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @declared_attr
    def customer_id(cls) -> Mapped[int]:
        return mapped_column(
            Integer, ForeignKey("customers.id"), nullable=False, index=True
        )

    @declared_attr
    def booking_id(cls) -> Mapped[int]:
        return mapped_column(
            Integer, ForeignKey("bookings.id"), nullable=False, index=True
        )

    @declared_attr
    def reviewed_by(cls) -> Mapped[Optional[int]]:
        return mapped_column(Integer, ForeignKey("admin_users.id"), nullable=True)

    @declared_attr
    def processed_by(cls) -> Mapped[Optional[int]]:
        return mapped_column(Integer, ForeignKey("admin_users.id"), nullable=True)

    @declared_attr
    def customer(cls) -> Mapped["Customer"]:
        return relationship("Customer")

    @declared_attr
    def booking(cls) -> Mapped["Booking"]:
        return relationship("Booking")

    @declared_attr
    def reviewer(cls) -> Mapped[Optional["AdminUser"]]:
        return relationship("AdminUser", foreign_keys=f"{cls.__name__}.reviewed_by")

    @declared_attr
    def processor(cls) -> Mapped[Optional["AdminUser"]]:
        return relationship("AdminUser", foreign_keys=f"{cls.__name__}.processed_by")

    @classmethod
    def generate_reference(cls, now: Optional[datetime] = None) -> str:
        """Build a reference like ``REF-2026-17608000001234``."""
        now = now or utcnow()
        suffix = f"{secrets.randbelow(10000):04d}"
        return f"{cls.REFERENCE_PREFIX}-{now.year}-{int(now.timestamp())}{suffix}"
