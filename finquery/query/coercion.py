"""
Value coercion helpers.

Spreadsheet cells arrive as loosely-typed scalars (mostly strings). Every
comparison the executor makes goes through these helpers so that numeric
coercion, loose equality and truthiness behave the same in filters, sorting
and aggregation.
"""

import math
import re
from typing import Any

_DECIMAL = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_PREFIXED_INT = re.compile(r"^0(?:[xX][0-9a-fA-F]+|[bB][01]+|[oO][0-7]+)$")
_INFINITY = re.compile(r"^([+-]?)Infinity$")


def is_numeral(text: str) -> bool:
    """True when the trimmed text is a complete numeral `coerce_to_number` reads."""
    stripped = text.strip()
    return bool(
        _DECIMAL.match(stripped) or _PREFIXED_INT.match(stripped) or _INFINITY.match(stripped)
    )


def coerce_to_number(value: Any) -> float | None:
    """
    Convert a cell value to a number.

    None and blank strings count as 0, booleans as 1/0. Strings must be a
    complete numeral once trimmed. Returns None when no number can be read,
    including NaN.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
        return None if math.isnan(number) else number
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return 0.0
    if _DECIMAL.match(text):
        return float(text)
    if _PREFIXED_INT.match(text):
        return float(int(text, 0))
    match = _INFINITY.match(text)
    if match:
        return -math.inf if match.group(1) == "-" else math.inf
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """
    Type-coercing equality.

    None only equals None. Two strings compare exactly; any other scalar
    pairing compares numerically after coercion, and a failed coercion is
    never equal.
    """
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if not _is_scalar(left) or not _is_scalar(right):
        return left == right

    left_number = coerce_to_number(left)
    right_number = coerce_to_number(right)
    if left_number is None or right_number is None:
        return False
    return left_number == right_number


def is_truthy(value: Any) -> bool:
    """False for None, False, 0, NaN and the empty string."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def to_text(value: Any) -> str:
    """Display form of a cell used for substring matching and text ordering."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)


def normalize_number(value: float) -> int | float:
    """Report integral results as int (300.0 -> 300)."""
    if math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))
