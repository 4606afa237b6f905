"""Tests for filter, transition and payload validation."""

from datetime import date
from decimal import Decimal

from app.services.request_validation import (
    CANCELLATION_STATUSES,
    CANCELLATION_TRANSITIONS,
    REFUND_STATUSES,
    REFUND_TRANSITIONS,
    clamp_pagination,
    parse_amount,
    validate_filters,
    validate_status_transition,
    validate_status_update_payload,
)


class TestValidateFilters:
    """Tests for list filter sanitisation."""

    def test_unknown_keys_are_dropped(self):
        filters, errors = validate_filters({"status": "pending", "order_by": "id; drop table"})
        assert filters == {"status": "pending"}
        assert errors == {}

    def test_invalid_enum_values_are_dropped(self):
        filters, errors = validate_filters(
            {"status": "bogus", "priority": "urgent", "refund_status": "paid"}
        )
        assert filters == {}
        assert errors == {}

    def test_status_allow_list_depends_on_kind(self):
        filters, _ = validate_filters({"status": "processing"}, CANCELLATION_STATUSES)
        assert "status" not in filters

        filters, _ = validate_filters({"status": "processing"}, REFUND_STATUSES)
        assert filters["status"] == "processing"

    def test_search_is_trimmed(self):
        filters, errors = validate_filters({"search": "  jane  "})
        assert filters == {"search": "jane"}
        assert errors == {}

    def test_blank_search_is_dropped(self):
        filters, errors = validate_filters({"search": "   "})
        assert filters == {}
        assert errors == {}

    def test_long_search_is_an_error(self):
        _, errors = validate_filters({"search": "x" * 101})
        assert "search" in errors

    def test_dates_are_parsed(self):
        filters, errors = validate_filters(
            {"start_date": "2026-01-01", "end_date": "2026-01-31"}
        )
        assert errors == {}
        assert filters["start_date"] == date(2026, 1, 1)
        assert filters["end_date"] == date(2026, 1, 31)

    def test_date_aliases_map_to_canonical_keys(self):
        filters, errors = validate_filters({"date_from": "2026-02-01", "date_to": "2026-02-28"})
        assert errors == {}
        assert filters == {"start_date": date(2026, 2, 1), "end_date": date(2026, 2, 28)}

    def test_invalid_calendar_date_is_a_field_error(self):
        filters, errors = validate_filters({"start_date": "2026-02-30"})
        assert "start_date" in errors
        assert "start_date" not in filters

    def test_unpadded_date_is_rejected(self):
        _, errors = validate_filters({"end_date": "2026-1-5"})
        assert "end_date" in errors

    def test_start_after_end_is_a_range_error(self):
        _, errors = validate_filters({"start_date": "2026-03-02", "end_date": "2026-03-01"})
        assert "date_range" in errors


class TestValidateStatusTransition:
    """Tests for the workflow graphs."""

    def test_legal_cancellation_edges(self):
        assert validate_status_transition("pending", "approved") == []
        assert validate_status_transition("pending", "rejected") == []
        assert validate_status_transition("approved", "completed") == []

    def test_illegal_edge_names_the_pair(self):
        errors = validate_status_transition("approved", "rejected")
        assert len(errors) == 1
        assert "'approved'" in errors[0]
        assert "'rejected'" in errors[0]

    def test_same_state_is_illegal(self):
        assert validate_status_transition("pending", "pending") != []

    def test_nothing_returns_to_pending(self):
        for status in CANCELLATION_STATUSES:
            if status != "pending":
                assert validate_status_transition(status, "pending") != []

    def test_terminal_statuses_have_no_exits(self):
        for terminal in ("rejected", "completed"):
            for target in CANCELLATION_STATUSES:
                assert validate_status_transition(terminal, target) != []
        errors = validate_status_transition("completed", "approved")
        assert "terminal" in errors[0]

    def test_unknown_current_status(self):
        errors = validate_status_transition("archived", "approved")
        assert errors == ["Invalid current status: archived"]

    def test_refund_graph_has_processing_step(self):
        assert validate_status_transition("approved", "processing", REFUND_TRANSITIONS) == []
        assert validate_status_transition("processing", "completed", REFUND_TRANSITIONS) == []
        assert validate_status_transition("approved", "completed", REFUND_TRANSITIONS) == []
        assert validate_status_transition("pending", "processing", REFUND_TRANSITIONS) != []
        assert validate_status_transition("processing", "rejected", REFUND_TRANSITIONS) != []

    def test_cancellation_graph_has_no_processing(self):
        assert "processing" not in CANCELLATION_TRANSITIONS
        assert validate_status_transition("approved", "processing") != []


class TestValidateStatusUpdatePayload:
    """Tests for generic status update bodies."""

    def test_status_is_required(self):
        errors = validate_status_update_payload({})
        assert errors["status"] == "Status is required"

    def test_status_must_be_member(self):
        errors = validate_status_update_payload({"status": "archived"})
        assert "status" in errors

    def test_reject_needs_ten_character_reason(self):
        errors = validate_status_update_payload({"status": "rejected", "rejection_reason": "no"})
        assert "rejection_reason" in errors

    def test_reject_accepts_admin_notes_as_reason(self):
        errors = validate_status_update_payload(
            {"status": "rejected", "admin_notes": "Outside of the refund window"}
        )
        assert errors == {}

    def test_reason_length_counts_stripped_text(self):
        errors = validate_status_update_payload(
            {"status": "rejected", "rejection_reason": "   short   "}
        )
        assert "rejection_reason" in errors

    def test_non_text_rejection_reason(self):
        errors = validate_status_update_payload(
            {"status": "rejected", "rejection_reason": 12345678901}
        )
        assert errors == {"rejection_reason": "Rejection reason must be text"}

    def test_non_text_admin_notes_as_reason(self):
        errors = validate_status_update_payload(
            {"status": "rejected", "admin_notes": ["Outside of the refund window"]}
        )
        assert "rejection_reason" in errors

    def test_overlong_rejection_reason(self):
        errors = validate_status_update_payload(
            {"status": "rejected", "rejection_reason": "x" * 1001}
        )
        assert "rejection_reason" in errors

    def test_overlong_admin_notes(self):
        errors = validate_status_update_payload({"status": "approved", "admin_notes": "x" * 2001})
        assert "admin_notes" in errors

    def test_negative_amount(self):
        errors = validate_status_update_payload({"status": "approved", "approved_amount": -1})
        assert "approved_amount" in errors

    def test_non_numeric_amount(self):
        errors = validate_status_update_payload({"status": "approved", "approved_amount": "lots"})
        assert "approved_amount" in errors

    def test_amount_above_maximum(self):
        errors = validate_status_update_payload(
            {"status": "approved", "approved_amount": "1000000.00"}
        )
        assert "approved_amount" in errors

    def test_valid_approval(self):
        errors = validate_status_update_payload({"status": "approved", "approved_amount": "80.00"})
        assert errors == {}

    def test_refund_statuses(self):
        errors = validate_status_update_payload({"status": "processing"}, REFUND_STATUSES)
        assert errors == {}


class TestHelpers:
    """Tests for pagination and amount parsing."""

    def test_clamp_pagination(self):
        assert clamp_pagination(0, 500) == (1, 100)
        assert clamp_pagination(-3, 0) == (1, 1)
        assert clamp_pagination("2", "10") == (2, 10)
        assert clamp_pagination("abc", "xyz") == (1, 20)

    def test_parse_amount(self):
        assert parse_amount("12.50") == Decimal("12.50")
        assert parse_amount(3) == Decimal("3")
        assert parse_amount("NaN") is None
        assert parse_amount(True) is None
        assert parse_amount(None) is None
