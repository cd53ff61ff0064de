"""
Payload normaliser tests.

Covers camelCase key handling, boolean/number/date coercion and enum
validation messages.
"""

from datetime import date, datetime, timezone

import pytest

from app.core.exceptions import ValidationError
from app.models.workspace import WORKSPACE_TASK_PRIORITIES
from app.services.helpers.normalizers import (
    coerce_datetime,
    ensure_enum,
    normalize_keys,
    normalize_numeric,
    optional_string,
    parse_boolean,
    parse_date_value,
    parse_number,
    require_string,
    snake_case,
)


# ── Keys & strings ───────────────────────────────────────────────────────


def test_snake_case():
    assert snake_case("plannedAmount") == "planned_amount"
    assert snake_case("planned_amount") == "planned_amount"
    assert snake_case("nextMilestoneDueAt") == "next_milestone_due_at"


def test_normalize_keys_is_shallow():
    result = normalize_keys({"dueDate": "x", "metadata": {"innerKey": 1}})
    assert result == {"due_date": "x", "metadata": {"innerKey": 1}}


def test_normalize_keys_none_and_non_dict():
    assert normalize_keys(None) == {}
    with pytest.raises(ValidationError):
        normalize_keys(["not", "a", "dict"])


def test_require_string_trims_and_rejects_blank():
    assert require_string("  Logo  ", "title") == "Logo"
    with pytest.raises(ValidationError, match="title is required"):
        require_string("   ", "title")
    with pytest.raises(ValidationError):
        require_string(None, "title")


def test_optional_string():
    assert optional_string("  ") is None
    assert optional_string(None) is None
    assert optional_string(" x ") == "x"


# ── Booleans ─────────────────────────────────────────────────────────────


@pytest.mark.parametrize("raw,expected", [
    (True, True), ("true", True), ("TRUE", True), ("1", True), (1, True), ("yes", True),
    (False, False), ("false", False), ("0", False), (0, False), ("No", False),
])
def test_parse_boolean_accepted_values(raw, expected):
    assert parse_boolean(raw, "billable") is expected


def test_parse_boolean_rejects_other_strings():
    with pytest.raises(ValidationError, match="billable must be a boolean value"):
        parse_boolean("maybe", "billable")


# ── Numbers ──────────────────────────────────────────────────────────────


def test_parse_number_basic():
    assert parse_number("12.5", "amount") == 12.5
    assert parse_number(None, "amount") is None
    assert parse_number("", "amount") is None


def test_parse_number_rejects_null_when_required():
    with pytest.raises(ValidationError):
        parse_number(None, "amount", allow_null=False)


def test_parse_number_rejects_non_numeric_and_non_finite():
    with pytest.raises(ValidationError, match="amount must be a number"):
        parse_number("abc", "amount")
    with pytest.raises(ValidationError):
        parse_number("inf", "amount")


def test_parse_number_bounds():
    assert parse_number(0, "progress", min_value=0, max_value=100) == 0
    assert parse_number(100, "progress", min_value=0, max_value=100) == 100
    with pytest.raises(ValidationError):
        parse_number(-1, "progress", min_value=0)
    with pytest.raises(ValidationError):
        parse_number(101, "progress", max_value=100)


def test_parse_number_integer():
    assert parse_number("30", "duration", integer=True) == 30
    with pytest.raises(ValidationError, match="whole number"):
        parse_number(30.5, "duration", integer=True)


def test_normalize_numeric_coerces_fields():
    record = {"hours": "2.5", "label": "x", "bad": "n/a"}
    normalize_numeric(record, ("hours", "bad"))
    assert record == {"hours": 2.5, "label": "x", "bad": None}


# ── Dates ────────────────────────────────────────────────────────────────


def test_coerce_datetime_iso_with_z():
    dt = coerce_datetime("2024-05-01T10:00:00Z")
    assert dt == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_coerce_datetime_naive_treated_as_utc():
    dt = coerce_datetime(datetime(2024, 5, 1, 10, 0))
    assert dt.tzinfo is not None
    assert dt.utcoffset().total_seconds() == 0


def test_coerce_datetime_epoch_millis():
    assert coerce_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)


def test_coerce_datetime_garbage():
    assert coerce_datetime("next tuesday") is None


def test_parse_date_value_date_only():
    assert parse_date_value("2024-05-01", "entry_date", date_only=True) == date(2024, 5, 1)


def test_parse_date_value_invalid():
    with pytest.raises(ValidationError, match="due_date must be a valid date"):
        parse_date_value("soon", "due_date")


def test_parse_date_value_required():
    with pytest.raises(ValidationError):
        parse_date_value(None, "scheduled_at", allow_null=False)


# ── Enums ────────────────────────────────────────────────────────────────


def test_ensure_enum_case_insensitive():
    assert ensure_enum("HIGH", WORKSPACE_TASK_PRIORITIES, "priority") == "high"


def test_ensure_enum_message_lists_allowed_values():
    with pytest.raises(ValidationError) as exc:
        ensure_enum("urgent", WORKSPACE_TASK_PRIORITIES, "priority")
    assert str(exc.value) == "priority must be one of: low, medium, high, critical."


def test_ensure_enum_default_and_null():
    assert ensure_enum(None, WORKSPACE_TASK_PRIORITIES, "priority", default="medium") == "medium"
    assert ensure_enum(None, WORKSPACE_TASK_PRIORITIES, "priority", allow_null=True) is None
    with pytest.raises(ValidationError):
        ensure_enum(None, WORKSPACE_TASK_PRIORITIES, "priority")
