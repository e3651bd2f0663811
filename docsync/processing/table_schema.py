"""
Table Value Encoding
====================

How coerced values are laid out in the tracker log and the main table.

Tracker log (text-friendly, aggregated column by column):
- ARRAY    -> comma-delimited text, empty array -> null
- JSON     -> JSON text (as produced by coercion)
- REPEATED -> JSON text
- others   -> as coerced

Main table (native):
- ARRAY    -> list, elements cast by the field's arrayType
- JSON / REPEATED -> parsed value
- others   -> as aggregated
"""

import json
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import pandas as pd

from docsync.config.collection_config import CollectionConfig, FieldDefinition, FieldType
from docsync.models import ChangeRecord, ChangeType
from docsync.processing.utils import to_json_text

TRACKER_COLUMNS = ("changeType", "timestamp", "documentId")


def is_missing(value: Any) -> bool:
    """None, NaN and NaT (pandas fills absent cells with these)."""
    if value is None:
        return True
    if isinstance(value, (list, dict, tuple, set)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _element_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return to_json_text(value)
    return str(value)


def _cast_element(text: str, array_type: Optional[str]) -> Any:
    text = text.strip()
    try:
        if array_type == FieldType.INT64:
            return int(float(text))
        if array_type in (FieldType.NUMERIC, FieldType.FLOAT64):
            return float(text)
        if array_type in FieldType.BIG_NUMBERS:
            return Decimal(text)
    except (ValueError, InvalidOperation):
        return None
    if array_type == FieldType.BOOL:
        return text.lower() == "true"
    return text


# =========================================
# TRACKER LOG
# =========================================

def encode_tracker_value(field: FieldDefinition, value: Any) -> Any:
    if is_missing(value):
        return None
    if field.type == FieldType.ARRAY:
        items = value if isinstance(value, list) else [value]
        return ",".join(_element_text(item) for item in items) if items else None
    if field.type == FieldType.REPEATED:
        return value if isinstance(value, str) else to_json_text(value)
    return value


def tracker_row(record: ChangeRecord, config: CollectionConfig) -> Dict[str, Any]:
    """Flat tracker log row for a change record."""
    row: Dict[str, Any] = {
        "changeType": record.change_type.value,
        "timestamp": record.timestamp,
        "documentId": record.document_id,
    }
    for field in config.fields:
        value = None if record.change_type == ChangeType.DELETED else record.values.get(field.name)
        row[field.name] = encode_tracker_value(field, value)
    return row


# =========================================
# MAIN TABLE
# =========================================

def decode_value(field: FieldDefinition, value: Any) -> Any:
    """Tracker (or coerced) value -> main table value."""
    if is_missing(value):
        return None
    if field.type == FieldType.ARRAY:
        if isinstance(value, list):
            items = [_element_text(item) for item in value]
        else:
            items = str(value).split(",")
        cast: List[Any] = [_cast_element(item, field.array_type) for item in items]
        return [item for item in cast if item is not None and item != ""]
    if field.type in (FieldType.JSON, FieldType.REPEATED) and isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def main_row(values: Dict[str, Any], config: CollectionConfig) -> Dict[str, Any]:
    """Main table row from a coerced record or an aggregate."""
    row: Dict[str, Any] = {"documentId": values["documentId"]}
    for field in config.fields:
        row[field.name] = decode_value(field, values.get(field.name))
    return row
