"""
Payload normalisation helpers shared by the workspace registry and the
company orders service.

Every helper distinguishes a missing key from an explicit ``None``:
callers only invoke a helper for keys present in the payload, and the
helper decides whether ``None``/``""`` is acceptable.

All helpers raise ``ValidationError``; none of them touch the database.
"""

import math
import re
from datetime import date, datetime, timezone

from app.core.exceptions import ValidationError

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

_TRUE_VALUES = frozenset({"true", "1", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "no"})


def snake_case(key: str) -> str:
    """plannedAmount → planned_amount; already-snake keys pass through."""
    return _CAMEL_RE.sub("_", key).lower()


def normalize_keys(payload) -> dict:
    """Return a shallow copy of *payload* with camelCase keys in snake_case.

    Nested values (metadata bags, lists) are left untouched.
    """
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return {snake_case(str(k)): v for k, v in payload.items()}


def require_string(value, field, allow_empty=False) -> str:
    if value is None:
        raise ValidationError(f"{field} is required.", details={field: "required"})
    trimmed = str(value).strip()
    if not allow_empty and not trimmed:
        raise ValidationError(f"{field} is required.", details={field: "required"})
    return trimmed


def optional_string(value):
    """Trimmed string, or None for null/blank input."""
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def parse_number(value, field="value", allow_null=True, min_value=None, max_value=None, integer=False):
    """Coerce to a finite number within optional [min_value, max_value] bounds."""
    if value is None or value == "":
        if allow_null:
            return None
        raise ValidationError(f"{field} must be a number.", details={field: "required"})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number.", details={field: "not_a_number"}) from None
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a number.", details={field: "not_a_number"})
    if min_value is not None and number < min_value:
        raise ValidationError(f"{field} must be >= {min_value}.", details={field: "below_minimum"})
    if max_value is not None and number > max_value:
        raise ValidationError(f"{field} must be <= {max_value}.", details={field: "above_maximum"})
    if integer:
        if not number.is_integer():
            raise ValidationError(f"{field} must be a whole number.", details={field: "not_integer"})
        return int(number)
    return number


def parse_boolean(value, field="value"):
    """Accept real booleans plus true/1/yes and false/0/no (any case)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValidationError(f"{field} must be a boolean value.", details={field: "not_boolean"})


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are treated as UTC; aware ones are converted to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def coerce_datetime(value):
    """Best-effort parse to an aware UTC datetime; None when unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def parse_date_value(value, field="date", allow_null=True, date_only=False):
    """Parse a full datetime or date-only value.

    ``date_only=True`` returns a ``date`` (the UTC calendar day).
    """
    if value is None or value == "":
        if allow_null:
            return None
        raise ValidationError(f"{field} is required.", details={field: "required"})
    parsed = coerce_datetime(value)
    if parsed is None:
        raise ValidationError(f"{field} must be a valid date.", details={field: "invalid_date"})
    if date_only:
        return parsed.date()
    return parsed


def ensure_enum(value, allowed, field, allow_null=False, default=None):
    """Case-insensitive membership check returning the canonical spelling.

    The error message names the allowed set.
    """
    if value is None:
        if allow_null:
            return None
        if default is not None:
            return default
        raise ValidationError(f"{field} is required.", details={field: "required"})
    normalized = str(value).strip().lower()
    for entry in allowed:
        if entry.lower() == normalized:
            return entry
    raise ValidationError(
        f"{field} must be one of: {', '.join(allowed)}.",
        details={field: list(allowed)},
    )


def list_or_none(value):
    """JSON list columns: lists pass through, None stays None, scalars are kept as-is."""
    if isinstance(value, list):
        return value
    return value if value is not None else None


def normalize_numeric(record, fields):
    """Coerce the named keys of a serialised record to float (non-finite → None)."""
    if not record:
        return record
    for field in fields:
        if record.get(field) is not None:
            try:
                parsed = float(record[field])
            except (TypeError, ValueError):
                parsed = None
            record[field] = parsed if parsed is not None and math.isfinite(parsed) else None
    return record
