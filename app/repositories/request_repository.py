"""Storage for cancellation and refund requests.

Status changes are conditional writes: the UPDATE only matches while the row
still holds the status the caller read, so two admins racing on the same
request cannot both win.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from sqlalchemy import Date, case, func, literal, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.models.booking import Booking, BookingCancellationStatus, BookingStatus
from app.models.cancellation import CancellationRequest, CancellationStatus
from app.models.customer import Customer
from app.models.refund import RefundRequest, RefundRequestStatus
from app.models.review_request import RequestPriority
from core.logging import get_logger

logger = get_logger(__name__)

WITHDRAWN_REASON = "Withdrawn by customer"


class ReviewRequestRepository:
    """Queries and conditional writes shared by both request kinds."""

    model: Type[Any]
    status_enum: Type[Any]
    # Statuses whose approved_amount counts towards the approved total
    approved_statuses: Sequence[str] = ("approved", "completed")
    reviewed_statuses: Sequence[str] = ("approved", "rejected")
    processed_statuses: Sequence[str] = ("completed",)

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session

    def _base_query(self):
        return select(self.model).options(
            selectinload(self.model.customer),
            selectinload(self.model.booking),
            selectinload(self.model.reviewer),
            selectinload(self.model.processor),
        )

    def _apply_filters(self, stmt, filters: Dict[str, Any]):
        model = self.model

        if filters.get("status"):
            stmt = stmt.where(model.status == self.status_enum(filters["status"]))

        if filters.get("priority"):
            stmt = stmt.where(model.priority == RequestPriority(filters["priority"]))

        if filters.get("start_date"):
            stmt = stmt.where(func.date(model.requested_at, type_=Date) >= filters["start_date"])

        if filters.get("end_date"):
            stmt = stmt.where(func.date(model.requested_at, type_=Date) <= filters["end_date"])

        if filters.get("search"):
            term = f"%{filters['search']}%"
            full_name = Customer.first_name + " " + func.coalesce(Customer.last_name, "")
            stmt = stmt.where(
                or_(
                    full_name.ilike(term),
                    Customer.email.ilike(term),
                    model.reference.ilike(term),
                    Booking.booking_reference.ilike(term),
                )
            )

        return stmt

    async def get_all(
        self, filters: Dict[str, Any], page: int, per_page: int
    ) -> Tuple[List[Any], int]:
        """Page of requests matching ``filters``, newest first, plus the total count.

        ``filters`` must already be validated; pagination must already be
        clamped.
        """
        model = self.model
        stmt = (
            self._base_query()
            .join(Customer, Customer.id == model.customer_id)
            .join(Booking, Booking.id == model.booking_id)
        )
        stmt = self._apply_filters(stmt, filters)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.db_session.execute(count_stmt)).scalar() or 0

        stmt = (
            stmt.order_by(model.requested_at.desc(), model.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.db_session.execute(stmt)
        return list(result.scalars().all()), total

    async def get_by_id(self, id: int) -> Optional[Any]:
        """Load one request with customer, booking and admin relations.

        Always re-reads the row so a status written by another session is seen.
        """
        stmt = (
            self._base_query()
            .where(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self.db_session.execute(stmt)
        return result.scalars().first()

    async def create(self, **fields: Any) -> Any:
        """Insert a new request and commit."""
        item = self.model(**fields)
        self.db_session.add(item)
        try:
            await self.db_session.commit()
        except Exception:
            await self.db_session.rollback()
            raise
        logger.info(f"Created {self.model.__tablename__} row {item.id} ({item.reference})")
        return item

    async def update_status(
        self,
        id: int,
        expected_status: str,
        new_status: str,
        admin_id: Optional[int],
        now: datetime,
        notes: Optional[str] = None,
        rejection_reason: Optional[str] = None,
        approved_amount: Optional[Decimal] = None,
        refund_reference: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Move a request from ``expected_status`` to ``new_status`` atomically.

        Returns False without touching anything when the row no longer holds
        ``expected_status`` (or does not exist). Related rows updated by
        :meth:`_after_status_change` commit in the same transaction.
        """
        model = self.model
        values = self._status_values(
            new_status,
            admin_id,
            now,
            notes=notes,
            rejection_reason=rejection_reason,
            approved_amount=approved_amount,
            refund_reference=refund_reference,
            extra=extra,
        )
        if approved_amount is not None:
            # net = max(0, approved - processing_fee)
            values["net_refund_amount"] = case(
                (model.processing_fee >= approved_amount, literal(Decimal("0.00"))),
                else_=literal(approved_amount) - model.processing_fee,
            )

        stmt = (
            update(model)
            .where(model.id == id, model.status == self.status_enum(expected_status))
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db_session.execute(stmt)
            if result.rowcount != 1:
                await self.db_session.rollback()
                logger.info(
                    f"{model.__tablename__} {id}: expected status '{expected_status}' "
                    f"no longer current, '{new_status}' not applied"
                )
                return False

            await self._after_status_change(id, new_status, now)
            await self.db_session.commit()
        except Exception:
            await self.db_session.rollback()
            raise

        return True

    def _status_values(
        self,
        new_status: str,
        admin_id: Optional[int],
        now: datetime,
        notes: Optional[str] = None,
        rejection_reason: Optional[str] = None,
        approved_amount: Optional[Decimal] = None,
        refund_reference: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Column values written by a status change, except net_refund_amount."""
        values: Dict[str, Any] = {"status": self.status_enum(new_status)}

        if new_status in self.reviewed_statuses:
            values["reviewed_by"] = admin_id
            values["reviewed_at"] = now
        if new_status in self.processed_statuses:
            values["processed_by"] = admin_id
            values["processed_at"] = now
        if notes is not None:
            values["admin_notes"] = notes
        if rejection_reason is not None:
            values["rejection_reason"] = rejection_reason
        if approved_amount is not None:
            values["approved_amount"] = approved_amount
        if refund_reference is not None:
            values["refund_reference"] = refund_reference
        if extra:
            values.update(extra)
        return values

    def mark_applied(
        self,
        item: Any,
        new_status: str,
        admin_id: Optional[int],
        now: datetime,
        **changes: Any,
    ) -> Any:
        """Copy a committed status change onto an already loaded row.

        Used when the row cannot be read back after the write. Values are set
        as committed state, so nothing is flushed again.
        """
        values = self._status_values(new_status, admin_id, now, **changes)
        approved_amount = changes.get("approved_amount")
        if approved_amount is not None:
            fee = item.processing_fee or Decimal("0.00")
            values["net_refund_amount"] = max(Decimal("0.00"), approved_amount - fee)

        for key, value in values.items():
            set_committed_value(item, key, value)
        return item

    async def _after_status_change(self, id: int, new_status: str, now: datetime) -> None:
        """Hook for writes that must commit together with a status change."""

    async def get_statistics(self, stale_after_days: int, now: datetime) -> Dict[str, Any]:
        """Counts by status and priority, approved total and stale pending count."""
        model = self.model

        by_status = {s.value: 0 for s in self.status_enum}
        rows = await self.db_session.execute(
            select(model.status, func.count(model.id)).group_by(model.status)
        )
        for status, count in rows.all():
            by_status[getattr(status, "value", status)] = count

        by_priority = {p.value: 0 for p in RequestPriority}
        rows = await self.db_session.execute(
            select(model.priority, func.count(model.id)).group_by(model.priority)
        )
        for priority, count in rows.all():
            by_priority[getattr(priority, "value", priority)] = count

        approved_total = (
            await self.db_session.execute(
                select(func.coalesce(func.sum(model.approved_amount), 0)).where(
                    model.status.in_(
                        [self.status_enum(s) for s in self.approved_statuses]
                    ),
                    model.approved_amount.is_not(None),
                )
            )
        ).scalar()

        stale_cutoff = now - timedelta(days=stale_after_days)
        stale_pending = (
            await self.db_session.execute(
                select(func.count(model.id)).where(
                    model.status == self.status_enum("pending"),
                    model.requested_at < stale_cutoff,
                )
            )
        ).scalar() or 0

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_priority": by_priority,
            "total_approved_amount": Decimal(str(approved_total or 0)).quantize(
                Decimal("0.01")
            ),
            "stale_pending": stale_pending,
        }


class CancellationRequestRepository(ReviewRequestRepository):
    """Cancellation requests; status changes are mirrored onto the booking."""

    model = CancellationRequest
    status_enum = CancellationStatus

    BOOKING_STATUS_FOR = {
        "approved": BookingCancellationStatus.APPROVED,
        "rejected": BookingCancellationStatus.DECLINED,
        "completed": BookingCancellationStatus.CANCELLED,
    }

    def _apply_filters(self, stmt, filters: Dict[str, Any]):
        stmt = super()._apply_filters(stmt, filters)
        if filters.get("refund_status"):
            stmt = stmt.where(CancellationRequest.refund_status == filters["refund_status"])
        return stmt

    async def _after_status_change(self, id: int, new_status: str, now: datetime) -> None:
        booking_status = self.BOOKING_STATUS_FOR.get(new_status)
        if booking_status is None:
            return
        await self._set_booking_status(id, booking_status, now)

    async def _set_booking_status(
        self, id: int, cancellation_status: BookingCancellationStatus, now: datetime
    ) -> None:
        values: Dict[str, Any] = {"cancellation_status": cancellation_status}
        if cancellation_status == BookingCancellationStatus.CANCELLED:
            values["status"] = BookingStatus.CANCELLED
            values["cancelled_at"] = now

        booking_id = (
            select(CancellationRequest.booking_id)
            .where(CancellationRequest.id == id)
            .scalar_subquery()
        )
        await self.db_session.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )

    async def get_booking(self, booking_id: int) -> Optional[Booking]:
        """Load a booking fresh from the database."""
        result = await self.db_session.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_active_for_booking(self, booking_id: int) -> Optional[CancellationRequest]:
        """The pending or approved cancellation for a booking, if any."""
        stmt = (
            self._base_query()
            .where(
                CancellationRequest.booking_id == booking_id,
                CancellationRequest.status.in_(
                    [CancellationStatus.PENDING, CancellationStatus.APPROVED]
                ),
            )
            .order_by(CancellationRequest.requested_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db_session.execute(stmt)
        return result.scalars().first()

    async def get_latest_for_booking(self, booking_id: int) -> Optional[CancellationRequest]:
        stmt = (
            self._base_query()
            .where(CancellationRequest.booking_id == booking_id)
            .order_by(CancellationRequest.requested_at.desc(), CancellationRequest.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db_session.execute(stmt)
        return result.scalars().first()

    async def create_for_booking(self, booking_id: int, **fields: Any) -> CancellationRequest:
        """Insert a cancellation request and flag the booking in one commit."""
        item = CancellationRequest(booking_id=booking_id, **fields)
        self.db_session.add(item)
        try:
            await self.db_session.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(cancellation_status=BookingCancellationStatus.REQUESTED)
                .execution_options(synchronize_session="fetch")
            )
            await self.db_session.commit()
        except Exception:
            await self.db_session.rollback()
            raise
        logger.info(f"Created cancellation request {item.id} ({item.reference})")
        return item

    async def withdraw(self, id: int, now: datetime) -> bool:
        """Close a pending request on the customer's behalf.

        The row is kept as ``rejected`` with a fixed reason so it stays in the
        audit trail; the booking goes back to no cancellation.
        """
        stmt = (
            update(CancellationRequest)
            .where(
                CancellationRequest.id == id,
                CancellationRequest.status == CancellationStatus.PENDING,
            )
            .values(
                status=CancellationStatus.REJECTED,
                rejection_reason=WITHDRAWN_REASON,
                reviewed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db_session.execute(stmt)
            if result.rowcount != 1:
                await self.db_session.rollback()
                return False
            await self._set_booking_status(id, BookingCancellationStatus.NONE, now)
            await self.db_session.commit()
        except Exception:
            await self.db_session.rollback()
            raise
        return True


class RefundRequestRepository(ReviewRequestRepository):
    """Refund requests."""

    model = RefundRequest
    status_enum = RefundRequestStatus
    approved_statuses = ("approved", "processing", "completed")
