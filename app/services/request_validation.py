"""Input and transition checks for review requests.

Everything here is pure: functions take plain values and return errors keyed
by field name. Nothing touches the database.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from app.models.cancellation import CancellationRefundStatus, CancellationStatus
from app.models.refund import RefundRequestStatus
from app.models.review_request import RequestPriority

MIN_REJECTION_REASON_LENGTH = 10
MAX_REJECTION_REASON_LENGTH = 1000
MAX_ADMIN_NOTES_LENGTH = 2000
MAX_SEARCH_LENGTH = 100
MAX_APPROVED_AMOUNT = Decimal("999999.99")

CANCELLATION_STATUSES: Tuple[str, ...] = tuple(s.value for s in CancellationStatus)
REFUND_STATUSES: Tuple[str, ...] = tuple(s.value for s in RefundRequestStatus)
PRIORITIES: Tuple[str, ...] = tuple(p.value for p in RequestPriority)
CANCELLATION_REFUND_STATUSES: Tuple[str, ...] = tuple(
    s.value for s in CancellationRefundStatus
)

# Directed workflow graphs. Terminal statuses map to an empty set.
CANCELLATION_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"approved", "rejected"}),
    "approved": frozenset({"completed"}),
    "rejected": frozenset(),
    "completed": frozenset(),
}

REFUND_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"approved", "rejected"}),
    "approved": frozenset({"processing", "completed"}),
    "processing": frozenset({"completed"}),
    "rejected": frozenset(),
    "completed": frozenset(),
}

FILTER_KEYS = (
    "search",
    "status",
    "priority",
    "start_date",
    "end_date",
    "refund_status",
    "date_from",
    "date_to",
)

# Aliases accepted from the admin UI, applied before the canonical keys
DATE_FILTER_ALIASES = (
    ("date_from", "start_date"),
    ("start_date", "start_date"),
    ("date_to", "end_date"),
    ("end_date", "end_date"),
)


def parse_calendar_date(value: Any) -> Optional[date]:
    """Parse a strict ``YYYY-MM-DD`` value, returning None if it is not one."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None
    # strptime accepts "2026-1-5"; insist on the zero-padded form
    if parsed.isoformat() != value.strip():
        return None
    return parsed


def parse_amount(value: Any) -> Optional[Decimal]:
    """Coerce a JSON number or numeric string to Decimal, None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def clamp_pagination(
    page: Any,
    per_page: Any,
    default_per_page: int = 20,
    max_per_page: int = 100,
) -> Tuple[int, int]:
    """Force page >= 1 and 1 <= per_page <= max_per_page."""
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        per_page = int(per_page)
    except (TypeError, ValueError):
        per_page = default_per_page
    return max(1, page), min(max(1, per_page), max_per_page)


def validate_filters(
    raw: Mapping[str, Any],
    statuses: Sequence[str] = CANCELLATION_STATUSES,
) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Reduce raw query parameters to a safe filter set.

    Unknown keys are dropped. Status, priority and refund_status values that
    are not members of their enumeration are dropped rather than rejected.
    Dates must be calendar dates; a bad date is a field error.

    Returns:
        (filters, errors) where ``filters`` holds ``search``, ``status``,
        ``priority``, ``refund_status``, ``start_date`` and ``end_date``
        (as ``date`` objects) when present.
    """
    filters: Dict[str, Any] = {}
    errors: Dict[str, str] = {}
    raw = {k: v for k, v in raw.items() if k in FILTER_KEYS and v not in (None, "")}

    if "search" in raw:
        search = str(raw["search"]).strip()
        if len(search) > MAX_SEARCH_LENGTH:
            errors["search"] = (
                f"Search term must not exceed {MAX_SEARCH_LENGTH} characters"
            )
        elif search:
            filters["search"] = search

    if raw.get("status") in statuses:
        filters["status"] = raw["status"]

    if raw.get("priority") in PRIORITIES:
        filters["priority"] = raw["priority"]

    if raw.get("refund_status") in CANCELLATION_REFUND_STATUSES:
        filters["refund_status"] = raw["refund_status"]

    for source, target in DATE_FILTER_ALIASES:
        if source not in raw:
            continue
        parsed = parse_calendar_date(raw[source])
        if parsed is None:
            errors[source] = f"Invalid {source.replace('_', ' ')} format. Use YYYY-MM-DD"
        else:
            filters[target] = parsed

    if (
        "start_date" in filters
        and "end_date" in filters
        and filters["start_date"] > filters["end_date"]
    ):
        errors["date_range"] = "Start date must be before or equal to end date"

    return filters, errors


def validate_status_transition(
    current: str,
    requested: str,
    transitions: Mapping[str, FrozenSet[str]] = CANCELLATION_TRANSITIONS,
) -> List[str]:
    """Check one edge of the workflow graph.

    Same-state moves and anything out of a terminal status are illegal.
    """
    if current not in transitions:
        return [f"Invalid current status: {current}"]

    allowed = transitions[current]
    if requested in allowed:
        return []

    allowed_text = ", ".join(sorted(allowed)) if allowed else "none (terminal status)"
    return [
        f"Cannot transition from '{current}' to '{requested}'. "
        f"Allowed transitions: {allowed_text}"
    ]


def validate_rejection_reason(reason: Any) -> Dict[str, str]:
    if reason is not None and not isinstance(reason, str):
        return {"rejection_reason": "Rejection reason must be text"}
    text = (reason or "").strip()
    if len(text) < MIN_REJECTION_REASON_LENGTH:
        return {
            "rejection_reason": (
                f"Rejection reason must be at least {MIN_REJECTION_REASON_LENGTH} characters"
            )
        }
    if len(text) > MAX_REJECTION_REASON_LENGTH:
        return {
            "rejection_reason": (
                f"Rejection reason must not exceed {MAX_REJECTION_REASON_LENGTH} characters"
            )
        }
    return {}


def validate_status_update_payload(
    body: Mapping[str, Any],
    statuses: Sequence[str] = CANCELLATION_STATUSES,
) -> Dict[str, str]:
    """Validate a generic ``{"status": ...}`` update body.

    The upper bound of ``approved_amount`` depends on the stored request, so
    the workflow service checks it again once the request is loaded.
    """
    errors: Dict[str, str] = {}
    status = body.get("status")

    if not status:
        errors["status"] = "Status is required"
    elif status not in statuses:
        errors["status"] = (
            "Invalid status value. Allowed values: " + ", ".join(statuses)
        )

    admin_notes = body.get("admin_notes")
    if admin_notes and len(str(admin_notes)) > MAX_ADMIN_NOTES_LENGTH:
        errors["admin_notes"] = (
            f"Admin notes must not exceed {MAX_ADMIN_NOTES_LENGTH} characters"
        )

    if status == "rejected":
        reason = body.get("rejection_reason") or body.get("admin_notes")
        errors.update(validate_rejection_reason(reason))

    if status == "approved" and body.get("approved_amount") is not None:
        amount = parse_amount(body["approved_amount"])
        if amount is None or amount < 0:
            errors["approved_amount"] = "Approved amount must be a positive number"
        elif amount > MAX_APPROVED_AMOUNT:
            errors["approved_amount"] = "Approved amount exceeds maximum allowed value"

    return errors
