"""Type-aware comparison operators.

Operators are looked up by field type, so an operator that makes no sense for
a type (``gt`` on a boolean) simply does not exist for it. Both sides of a
comparison are normalized through the field type before the operator runs.
"""

import numbers
import operator
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable

from .model import FieldType


class Uncomparable(ValueError):
    """Value cannot be normalized to the field type."""


# Operators whose value is a list of candidates
LIST_OPERATORS = frozenset({"in", "not_in"})

# Operators whose value is an inclusive [low, high] pair
RANGE_OPERATORS = frozenset({"between"})

# Operators whose value is a regular expression
PATTERN_OPERATORS = frozenset({"matches_regex"})

# Operators that test list-valued context values by membership
_MEMBERSHIP_ON_LISTS = frozenset({"contains", "not_contains"})

_COLLECTIONS = (list, tuple, set, frozenset)


def normalize_string(value: Any, case_sensitive: bool = True) -> str:
    if isinstance(value, (dict,) + _COLLECTIONS):
        raise Uncomparable(f"Expected a scalar, got {type(value).__name__}")
    text = value if isinstance(value, str) else str(value)
    return text if case_sensitive else text.casefold()


def normalize_number(value: Any) -> float:
    if isinstance(value, bool):
        raise Uncomparable("Booleans are not numbers")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, (numbers.Real, Decimal)):
        try:
            return float(value)
        except (OverflowError, ValueError):
            raise Uncomparable(f"Not a finite number: {value!r}")
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise Uncomparable(f"Not a number: {value!r}")
    raise Uncomparable(f"Not a number: {value!r}")


def normalize_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise Uncomparable(f"Not a boolean: {value!r}")


def normalize_date(value: Any) -> datetime:
    """Normalize to an aware datetime so dates compare as instants.

    Naive values are taken as UTC, date-only values as midnight UTC and
    numbers as epoch seconds.
    """
    if isinstance(value, bool):
        raise Uncomparable("Booleans are not dates")
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, (numbers.Real, Decimal)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise Uncomparable(f"Timestamp out of range: {value!r}")
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            raise Uncomparable(f"Not an ISO-8601 date: {value!r}")
    else:
        raise Uncomparable(f"Not a date: {value!r}")

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def normalize(field_type: FieldType, value: Any, case_sensitive: bool = True) -> Any:
    """Normalize a single value for comparison under ``field_type``."""
    if field_type is FieldType.NUMBER:
        return normalize_number(value)
    if field_type is FieldType.DATE:
        return normalize_date(value)
    if field_type is FieldType.BOOLEAN:
        return normalize_boolean(value)
    if field_type is FieldType.ENUM:
        return normalize_string(value)
    return normalize_string(value, case_sensitive)


def normalize_range(field_type: FieldType, value: Any) -> tuple[Any, Any]:
    """Normalize a ``[low, high]`` pair; both bounds are inclusive."""
    if not isinstance(value, _COLLECTIONS) or len(value) != 2:
        raise Uncomparable("A range needs exactly two values: [low, high]")
    low, high = (normalize(field_type, v) for v in value)
    if low > high:
        raise Uncomparable(f"Range is empty: {value[0]!r} > {value[1]!r}")
    return low, high


def compile_pattern(value: Any, case_sensitive: bool = True) -> re.Pattern:
    if not isinstance(value, str):
        raise Uncomparable(f"A pattern must be a string, got {type(value).__name__}")
    try:
        return re.compile(value, 0 if case_sensitive else re.IGNORECASE)
    except re.error as e:
        raise Uncomparable(f"Invalid pattern {value!r}: {e}")


_EQUALITY: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
}

_ORDERING: dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "between": lambda a, b: b[0] <= a <= b[1],
}

_MEMBERSHIP: dict[str, Callable[[Any, Any], bool]] = {
    "in": lambda a, b: a in b,
    "not_in": lambda a, b: a not in b,
}

OPERATORS: dict[FieldType, dict[str, Callable[[Any, Any], bool]]] = {
    FieldType.STRING: {
        **_EQUALITY,
        **_MEMBERSHIP,
        # Substring for text, membership for list-valued context values
        "contains": lambda a, b: b in a,
        "not_contains": lambda a, b: b not in a,
        "starts_with": lambda a, b: a.startswith(b),
        "ends_with": lambda a, b: a.endswith(b),
        "matches_regex": lambda a, b: b.search(a) is not None,
    },
    FieldType.ENUM: {**_EQUALITY, **_MEMBERSHIP},
    FieldType.NUMBER: {**_EQUALITY, **_ORDERING},
    FieldType.DATE: {**_EQUALITY, **_ORDERING},
    FieldType.BOOLEAN: dict(_EQUALITY),
}

# What a field gets when its definition names no operators. Everything else
# in OPERATORS is opt-in per field.
DEFAULT_OPERATORS: dict[FieldType, frozenset[str]] = {
    FieldType.STRING: frozenset({"eq", "ne", "in", "not_in", "contains"}),
    FieldType.ENUM: frozenset({"eq", "ne", "in", "not_in"}),
    FieldType.NUMBER: frozenset({"eq", "ne", "gt", "gte", "lt", "lte"}),
    FieldType.DATE: frozenset({"eq", "ne", "gt", "gte", "lt", "lte"}),
    FieldType.BOOLEAN: frozenset({"eq", "ne"}),
}


def supports(field_type: FieldType, op_name: str) -> bool:
    """Check whether an operator exists for a field type."""
    return op_name in OPERATORS[field_type]


def normalize_expected(
    field_type: FieldType,
    op_name: str,
    expected: Any,
    case_sensitive: bool = True,
) -> Any:
    """Normalize a leaf value into the shape ``op_name`` takes."""
    if op_name in PATTERN_OPERATORS:
        return compile_pattern(expected, case_sensitive)
    if op_name in RANGE_OPERATORS:
        return normalize_range(field_type, expected)
    if op_name in LIST_OPERATORS:
        if not isinstance(expected, _COLLECTIONS):
            raise Uncomparable(f"Operator {op_name!r} needs a list value")
        return tuple(normalize(field_type, v, case_sensitive) for v in expected)
    return normalize(field_type, expected, case_sensitive)


def compare(
    field_type: FieldType,
    op_name: str,
    actual: Any,
    expected: Any,
    case_sensitive: bool = True,
) -> bool:
    """
    Apply ``op_name`` to a resolved context value and a leaf value.

    Raises:
        Uncomparable: if the operator does not exist for the type or either
            side cannot be normalized.
    """
    func = OPERATORS[field_type].get(op_name)
    if func is None:
        raise Uncomparable(f"Operator {op_name!r} not defined for {field_type.value}")

    expected = normalize_expected(field_type, op_name, expected, case_sensitive)

    if op_name in PATTERN_OPERATORS:
        # Case folding is done by the compiled pattern's flags
        actual = normalize_string(actual)
    elif op_name in _MEMBERSHIP_ON_LISTS and isinstance(actual, _COLLECTIONS):
        actual = tuple(normalize(field_type, v, case_sensitive) for v in actual)
    else:
        actual = normalize(field_type, actual, case_sensitive)

    return func(actual, expected)
