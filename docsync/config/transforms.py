"""
Transform Registry
==================

Named value transforms that collection configs reference by name.

A field's "method" names a registered transform; it is looked up once
when the config is loaded and applied per value during coercion.

Usage:
    @register_transform("cents_to_units")
    def cents_to_units(value):
        return value / 100 if isinstance(value, (int, float)) else value
"""

import json
from typing import Any, Callable, Dict, List

from docsync.processing.utils import (
    clean_string as _clean_string,
    is_number,
    parse_boolean,
    parse_numeric,
    to_json_text,
)

TransformFn = Callable[[Any], Any]

_REGISTRY: Dict[str, TransformFn] = {}


def register_transform(name: str) -> Callable[[TransformFn], TransformFn]:
    """Register a transform under a name (decorator). Re-registering replaces."""
    def decorator(fn: TransformFn) -> TransformFn:
        _REGISTRY[name] = fn
        return fn
    return decorator


def get_transform(name: str) -> TransformFn:
    """Look up a transform; raises KeyError for unknown names."""
    return _REGISTRY[name]


def registered_transforms() -> List[str]:
    return sorted(_REGISTRY)


# =========================================
# BUILT-INS
# =========================================

@register_transform("trim")
def trim(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


@register_transform("lowercase")
def lowercase(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


@register_transform("uppercase")
def uppercase(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


@register_transform("clean_string")
def clean_string(value: Any) -> Any:
    return _clean_string(value)


@register_transform("to_string")
def to_string(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return to_json_text(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@register_transform("to_number")
def to_number(value: Any) -> Any:
    return parse_numeric(value)


@register_transform("to_boolean")
def to_boolean(value: Any) -> Any:
    return parse_boolean(value)


@register_transform("first")
def first(value: Any) -> Any:
    """First element of a list, the value itself otherwise."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


@register_transform("length")
def length(value: Any) -> Any:
    if isinstance(value, (list, dict, str)):
        return len(value)
    return None


@register_transform("from_seconds")
def from_seconds(value: Any) -> Any:
    """Epoch seconds to epoch milliseconds."""
    return value * 1000 if is_number(value) else value


@register_transform("from_firestore_timestamp")
def from_firestore_timestamp(value: Any) -> Any:
    """Serialized {_seconds, _nanoseconds} (or {seconds, nanos}) map to epoch milliseconds."""
    if not isinstance(value, dict):
        return value
    seconds = value.get("_seconds", value.get("seconds"))
    nanos = value.get("_nanoseconds", value.get("nanos", 0)) or 0
    if not is_number(seconds) or not is_number(nanos):
        return value
    return int(seconds) * 1000 + int(nanos) // 1_000_000


@register_transform("json_parse")
def json_parse(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return None
