"""
Common Utilities
================

Shared value helpers for field coercion and table encoding.

Covers:
- Truthiness of loosely-typed document values
- Lenient numeric parsing and 2-decimal rounding
- Instant parsing (epoch millis, strings, native dates) and ISO-8601 output
- JSON pointer compilation and lookup
"""

import json
import math
import re
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

import pandas as pd

Pointer = Tuple[str, ...]

# Leading numeric prefix, e.g. "3.14abc" -> "3.14", "  -1e3" -> "-1e3"
_FLOAT_PREFIX = re.compile(
    r"^\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))"
)
_TWO_PLACES = Decimal("0.01")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# =========================================
# TRUTHINESS
# =========================================

def is_number(value: Any) -> bool:
    """True for int/float/Decimal values; booleans are not numbers."""
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def is_primitive(value: Any) -> bool:
    """True for bare string, boolean and number values."""
    return isinstance(value, (str, bool)) or is_number(value)


def is_falsy(value: Any) -> bool:
    """
    Falsiness of a document value.

    None, False, zero, NaN and the empty string are falsy. Containers are
    truthy even when empty: an empty map is still a value.
    """
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value == ""
    if is_number(value):
        if isinstance(value, float) and math.isnan(value):
            return True
        if isinstance(value, Decimal) and value.is_nan():
            return True
        return value == 0
    return False


# =========================================
# NUMBERS
# =========================================

def parse_float(value: str) -> Optional[float]:
    """
    Parse the leading numeric prefix of a string.

    Returns None when the string does not start with a number.
    """
    match = _FLOAT_PREFIX.match(value)
    if not match:
        return None
    text = match.group(1).replace("Infinity", "inf")
    return float(text)


def parse_decimal(value: str) -> Optional[Decimal]:
    """Like parse_float, but keeps every digit of the prefix."""
    match = _FLOAT_PREFIX.match(value)
    if not match or "Infinity" in match.group(1):
        return None
    try:
        return Decimal(match.group(1))
    except InvalidOperation:
        return None


def is_finite_number(value: Any) -> bool:
    if not is_number(value):
        return False
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, Decimal):
        return value.is_finite()
    return True


def safe_float(value: Any) -> Any:
    """
    Round a number to at most 2 decimal places.

    Integers and integral floats are returned untouched. Rounding is
    half-up on the exact binary value of the float.
    """
    if value is None or not is_finite_number(value):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return value
        return value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    if value.is_integer():
        return value
    return float(Decimal(value).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def parse_numeric(value: Any) -> Optional[float]:
    """
    Parse numeric value from a formatted string ("1,200", "$35").

    Args:
        value: Value to parse

    Returns:
        Float or None
    """
    if value is None or isinstance(value, bool):
        return None
    if is_number(value):
        return float(value)
    if not isinstance(value, str) or value.strip() == "":
        return None

    try:
        value_str = value.replace(',', '').replace('$', '').replace(' ', '')
        return float(value_str)
    except (ValueError, TypeError):
        return None


def parse_boolean(value: Any) -> Optional[bool]:
    """
    Parse boolean from various representations.

    Args:
        value: Value to parse

    Returns:
        Boolean or None
    """
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (list, dict)):
        return None

    value_str = str(value).upper().strip()

    if value_str in ('TRUE', '1', 'YES', 'Y', 'T'):
        return True
    elif value_str in ('FALSE', '0', 'NO', 'N', 'F'):
        return False
    return None


def clean_string(value: Any) -> Optional[str]:
    """
    Clean and normalize a string value.

    Args:
        value: Value to clean

    Returns:
        Cleaned string or None
    """
    if value is None or isinstance(value, (list, dict)):
        return None

    value_str = str(value).strip()

    if value_str == '':
        return None

    # Normalize whitespace
    value_str = re.sub(r'\s+', ' ', value_str)

    return value_str


# =========================================
# INSTANTS
# =========================================

def to_timestamp(value: Any) -> Optional[pd.Timestamp]:
    """
    Convert a document value to an aware UTC timestamp.

    Numbers are epoch milliseconds. Strings are parsed leniently, naive
    ones are read as UTC. datetime, date and pandas Timestamp values are
    taken as-is. Anything else, or any parse failure, gives None.
    """
    try:
        if isinstance(value, bool):
            return None
        if isinstance(value, (datetime, date)):
            ts = pd.Timestamp(value)
        elif is_number(value):
            if not is_finite_number(value):
                return None
            ts = pd.to_datetime(float(value), unit="ms", utc=True)
        elif isinstance(value, str):
            ts = pd.to_datetime(value.strip(), utc=True)
        else:
            return None
    except (ValueError, TypeError, OverflowError):
        return None

    if ts is pd.NaT or pd.isna(ts):
        return None
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def to_iso_instant(ts: pd.Timestamp) -> str:
    """Format as YYYY-MM-DDTHH:MM:SS.mmmZ (millisecond precision, UTC)."""
    ts = ts.tz_convert("UTC") if ts.tzinfo else ts
    return f"{ts.strftime('%Y-%m-%dT%H:%M:%S')}.{ts.microsecond // 1000:03d}Z"


def json_default(value: Any) -> Any:
    """json.dumps fallback for dates, decimals and sets found in documents."""
    if isinstance(value, datetime):
        ts = to_timestamp(value)
        return to_iso_instant(ts) if ts is not None else value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json_text(value: Any) -> str:
    """Compact JSON serialization."""
    return json.dumps(value, separators=(",", ":"), default=json_default)


# =========================================
# JSON POINTERS
# =========================================

def compile_pointer(pointer: str) -> Pointer:
    """
    Compile a JSON pointer ("/nested/field") into its reference tokens.

    A missing leading slash is tolerated ("nested/field").
    """
    if pointer in ("", "/"):
        return ()
    if not pointer.startswith("/"):
        pointer = "/" + pointer
    return tuple(
        token.replace("~1", "/").replace("~0", "~")
        for token in pointer[1:].split("/")
    )


def resolve_pointer(data: Any, tokens: Pointer) -> Tuple[bool, Any]:
    """
    Walk compiled pointer tokens through nested maps and lists.

    Returns:
        (found, value) - found is False when any step is missing
    """
    current = data
    for token in tokens:
        if isinstance(current, dict):
            if token not in current:
                return False, None
            current = current[token]
        elif isinstance(current, list):
            if not token.isdigit() or int(token) >= len(current):
                return False, None
            current = current[int(token)]
        else:
            return False, None
    return True, current


def get_pointer(data: Any, tokens: Pointer) -> Any:
    return resolve_pointer(data, tokens)[1]


def merge_documents(*docs: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Shallow merge, later documents win; None entries are skipped."""
    merged: Dict[str, Any] = {}
    for doc in docs:
        if doc:
            merged.update(doc)
    return merged
