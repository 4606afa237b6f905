"""Shared review workflow for cancellation and refund requests.

Every public operation returns a :class:`WorkflowResult` instead of raising;
the HTTP layer decides how each :class:`ErrorKind` is presented. Audit events
are handed to an injected sink only after the status change has committed.
"""

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.models.review_request import utcnow
from app.repositories.request_repository import ReviewRequestRepository
from app.services.request_validation import (
    MAX_ADMIN_NOTES_LENGTH,
    MAX_APPROVED_AMOUNT,
    clamp_pagination,
    parse_amount,
    validate_filters,
    validate_rejection_reason,
    validate_status_transition,
    validate_status_update_payload,
)
from core.config import config
from core.logging import get_logger

logger = get_logger(__name__)


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    VALIDATION = "validation"
    STORAGE_FAILURE = "storage_failure"
    AUTHORIZATION_DENIED = "authorization_denied"


@dataclass(frozen=True)
class WorkflowError:
    kind: ErrorKind
    message: str
    fields: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkflowResult:
    """Either ``data`` (success) or ``error`` (failure), never both."""

    data: Any = None
    error: Optional[WorkflowError] = None

    @classmethod
    def ok(cls, data: Any = None) -> "WorkflowResult":
        return cls(data=data)

    @classmethod
    def err(
        cls,
        kind: ErrorKind,
        message: str,
        fields: Optional[Dict[str, str]] = None,
    ) -> "WorkflowResult":
        return cls(error=WorkflowError(kind=kind, message=message, fields=fields or {}))

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def is_err(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class AuditEvent:
    """One admin action, emitted after the change it describes has committed."""

    admin_id: int
    action: str
    request_kind: str
    request_id: int
    before: str
    after: str
    occurred_at: datetime
    details: Dict[str, Any] = field(default_factory=dict)


AuditSink = Callable[[AuditEvent], None]
Clock = Callable[[], datetime]


class StorageError(Exception):
    """A storage call failed or ran past its deadline."""


class ReviewWorkflowService:
    """Status transitions with business rules for one request kind.

    Args:
        repository: Storage for this request kind
        audit_sink: Receives an AuditEvent after each committed change
        clock: Returns the current UTC time
        timeout: Upper bound in seconds for each storage call
    """

    entity_type = "review_request"
    transitions: Mapping[str, FrozenSet[str]] = {}

    def __init__(
        self,
        repository: ReviewRequestRepository,
        audit_sink: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        timeout: Optional[float] = None,
    ):
        self.repository = repository
        self.audit_sink = audit_sink
        self.clock = clock or utcnow
        self.timeout = timeout if timeout is not None else config.DATABASE_OPERATION_TIMEOUT_SECONDS

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _storage(self, awaitable: Awaitable[Any], operation: str) -> Any:
        """Await a repository call under the storage deadline."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"{self.entity_type} {operation} timed out after {self.timeout}s")
            raise StorageError(operation)
        except SQLAlchemyError as e:
            logger.error(f"{self.entity_type} {operation} failed: {e}")
            raise StorageError(operation) from e

    def _storage_failure(self) -> WorkflowResult:
        return WorkflowResult.err(
            ErrorKind.STORAGE_FAILURE,
            "The request could not be completed. Please try again later.",
        )

    def _emit(self, event: AuditEvent) -> None:
        """Deliver an audit event; a failing sink never undoes the change."""
        if self.audit_sink is None:
            return
        try:
            self.audit_sink(event)
        except Exception as e:
            logger.warning(
                f"Audit sink failed for {event.action} on "
                f"{event.request_kind} {event.request_id}: {e}"
            )

    def _not_found(self, request_id: int) -> WorkflowResult:
        return WorkflowResult.err(
            ErrorKind.NOT_FOUND,
            f"{self.entity_type.replace('_', ' ').capitalize()} {request_id} not found",
        )

    @staticmethod
    def _status(item: Any) -> str:
        return getattr(item.status, "value", item.status)

    async def _transition(
        self,
        request_id: int,
        admin_id: Optional[int],
        target: str,
        action: str,
        check: Optional[Callable[[Any], Dict[str, str]]] = None,
        changes: Optional[Callable[[Any], Dict[str, Any]]] = None,
        details: Optional[Callable[[Any], Dict[str, Any]]] = None,
    ) -> WorkflowResult:
        """Load, check and conditionally write one status change.

        Args:
            check: Returns field errors for the loaded request
            changes: Returns keyword arguments for ``repository.update_status``
            details: Returns extra audit details for the loaded request
        """
        if not admin_id:
            return WorkflowResult.err(
                ErrorKind.AUTHORIZATION_DENIED, "An authenticated admin is required"
            )

        try:
            item = await self._storage(self.repository.get_by_id(request_id), "load")
            if item is None:
                return self._not_found(request_id)

            current = self._status(item)
            errors = validate_status_transition(current, target, self.transitions)
            if errors:
                logger.warning(f"{self.entity_type} {request_id}: {errors[0]}")
                return WorkflowResult.err(
                    ErrorKind.INVALID_TRANSITION, errors[0], {"status": errors[0]}
                )

            if check is not None:
                field_errors = check(item)
                if field_errors:
                    logger.warning(
                        f"{self.entity_type} {request_id}: {target} refused, {field_errors}"
                    )
                    return WorkflowResult.err(
                        ErrorKind.VALIDATION, "Validation failed", field_errors
                    )

            update_kwargs = changes(item) if changes is not None else {}
            audit_details = details(item) if details is not None else {}

            now = self.clock()
            applied = await self._storage(
                self.repository.update_status(
                    request_id,
                    expected_status=current,
                    new_status=target,
                    admin_id=admin_id,
                    now=now,
                    **update_kwargs,
                ),
                action,
            )
            if not applied:
                logger.warning(
                    f"{self.entity_type} {request_id}: lost race moving {current} -> {target}"
                )
                return WorkflowResult.err(
                    ErrorKind.INVALID_TRANSITION,
                    f"{self.entity_type.replace('_', ' ').capitalize()} {request_id} "
                    f"is no longer '{current}'",
                )
        except StorageError:
            return self._storage_failure()

        # Committed from here on; a failed read-back must not turn this into a failure
        logger.info(
            f"{self.entity_type} {request_id}: {current} -> {target} by admin {admin_id}"
        )
        self._emit(
            AuditEvent(
                admin_id=admin_id,
                action=action,
                request_kind=self.entity_type,
                request_id=request_id,
                before=current,
                after=target,
                occurred_at=now,
                details=audit_details,
            )
        )

        try:
            updated = await self._storage(self.repository.get_by_id(request_id), "reload")
        except StorageError:
            updated = None
        if updated is None:
            logger.warning(
                f"{self.entity_type} {request_id}: {target} committed but could not be "
                f"read back, returning the written values"
            )
            updated = self.repository.mark_applied(
                item, target, admin_id, now, **update_kwargs
            )
        return WorkflowResult.ok(updated)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(
        self, raw_filters: Mapping[str, Any], page: Any = 1, per_page: Any = None
    ) -> WorkflowResult:
        """Validated, paginated listing. Data is ``{"items", "total", "page", "per_page"}``."""
        filters, errors = validate_filters(raw_filters, tuple(self.transitions))
        if errors:
            return WorkflowResult.err(ErrorKind.VALIDATION, "Invalid filters", errors)

        page, per_page = clamp_pagination(
            page,
            per_page if per_page is not None else config.DEFAULT_PAGE_SIZE,
            default_per_page=config.DEFAULT_PAGE_SIZE,
            max_per_page=config.MAX_PAGE_SIZE,
        )
        try:
            items, total = await self._storage(
                self.repository.get_all(filters, page, per_page), "list"
            )
        except StorageError:
            return self._storage_failure()

        return WorkflowResult.ok(
            {"items": items, "total": total, "page": page, "per_page": per_page}
        )

    async def get_by_id(self, request_id: int) -> WorkflowResult:
        try:
            item = await self._storage(self.repository.get_by_id(request_id), "load")
        except StorageError:
            return self._storage_failure()
        if item is None:
            return self._not_found(request_id)
        return WorkflowResult.ok(item)

    async def get_statistics(self) -> WorkflowResult:
        try:
            stats = await self._storage(
                self.repository.get_statistics(
                    stale_after_days=config.REQUEST_STALE_AFTER_DAYS, now=self.clock()
                ),
                "statistics",
            )
        except StorageError:
            return self._storage_failure()
        return WorkflowResult.ok(stats)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _default_approved_amount(self, item: Any) -> Decimal:
        """Amount granted when the admin does not name one."""
        return item.requested_amount

    async def approve(
        self,
        request_id: int,
        admin_id: Optional[int],
        approved_amount: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> WorkflowResult:
        """pending -> approved.

        An explicit ``approved_amount`` must lie within ``[0, requested_amount]``.
        Without one, :meth:`_default_approved_amount` decides.
        """
        notes_error = self._notes_error(notes)
        if notes_error:
            return WorkflowResult.err(ErrorKind.VALIDATION, "Validation failed", notes_error)

        def check(item: Any) -> Dict[str, str]:
            if approved_amount is None:
                return {}
            if approved_amount < 0:
                return {"approved_amount": "Approved amount cannot be negative"}
            if approved_amount > MAX_APPROVED_AMOUNT:
                return {"approved_amount": "Approved amount exceeds maximum allowed value"}
            if approved_amount > item.requested_amount:
                return {
                    "approved_amount": (
                        f"Approved amount cannot exceed requested amount "
                        f"({item.requested_amount})"
                    )
                }
            return {}

        def changes(item: Any) -> Dict[str, Any]:
            amount = approved_amount
            if amount is None:
                amount = self._default_approved_amount(item)
            return {
                "approved_amount": amount,
                "notes": notes,
                **self._approve_extra(item, amount),
            }

        return await self._transition(
            request_id,
            admin_id,
            "approved",
            action=f"approve_{self.entity_type}",
            check=check,
            changes=changes,
            details=lambda item: {"approved_amount": str(changes(item)["approved_amount"])},
        )

    def _approve_extra(self, item: Any, amount: Decimal) -> Dict[str, Any]:
        return {}

    async def reject(
        self,
        request_id: int,
        admin_id: Optional[int],
        reason: Optional[str],
        notes: Optional[str] = None,
    ) -> WorkflowResult:
        """pending -> rejected. ``reason`` must be at least 10 characters."""
        errors = validate_rejection_reason(reason)
        errors.update(self._notes_error(notes))
        if errors:
            return WorkflowResult.err(ErrorKind.VALIDATION, "Validation failed", errors)

        reason = reason.strip()
        return await self._transition(
            request_id,
            admin_id,
            "rejected",
            action=f"reject_{self.entity_type}",
            changes=lambda item: {"rejection_reason": reason, "notes": notes},
            details=lambda item: {"rejection_reason": reason},
        )

    async def complete(
        self,
        request_id: int,
        admin_id: Optional[int],
        refund_reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> WorkflowResult:
        """Mark a request completed; existing admin notes are kept and appended to."""
        notes_error = self._notes_error(notes)
        if notes_error:
            return WorkflowResult.err(ErrorKind.VALIDATION, "Validation failed", notes_error)

        def changes(item: Any) -> Dict[str, Any]:
            merged = item.admin_notes
            if notes:
                merged = f"{item.admin_notes}\n\n{notes}" if item.admin_notes else notes
            return {
                "refund_reference": refund_reference,
                "notes": merged,
                **self._complete_extra(item, refund_reference),
            }

        return await self._transition(
            request_id,
            admin_id,
            "completed",
            action=f"complete_{self.entity_type}",
            changes=changes,
            details=lambda item: {"refund_reference": refund_reference},
        )

    def _complete_extra(self, item: Any, refund_reference: Optional[str]) -> Dict[str, Any]:
        return {}

    async def update_status(
        self, request_id: int, admin_id: Optional[int], body: Mapping[str, Any]
    ) -> WorkflowResult:
        """Apply a generic ``{"status": ..., ...}`` body by dispatching to the named operation."""
        errors = validate_status_update_payload(body, tuple(self.transitions))
        if errors:
            return WorkflowResult.err(ErrorKind.VALIDATION, "Validation failed", errors)

        status = body["status"]
        notes = body.get("admin_notes")

        if status == "approved":
            return await self.approve(
                request_id, admin_id, parse_amount(body.get("approved_amount")), notes
            )
        if status == "rejected":
            if body.get("rejection_reason"):
                return await self.reject(request_id, admin_id, body["rejection_reason"], notes)
            return await self.reject(request_id, admin_id, notes)
        if status == "completed":
            return await self.complete(
                request_id, admin_id, body.get("refund_reference"), notes
            )

        return await self._transition(
            request_id,
            admin_id,
            status,
            action=f"update_{self.entity_type}_status",
            changes=lambda item: {"notes": notes},
        )

    @staticmethod
    def _notes_error(notes: Optional[str]) -> Dict[str, str]:
        if notes and len(notes) > MAX_ADMIN_NOTES_LENGTH:
            return {
                "admin_notes": f"Admin notes must not exceed {MAX_ADMIN_NOTES_LENGTH} characters"
            }
        return {}
