"""
Field Coercion Engine
=====================

Converts an arbitrary (nested, loosely typed) document into a flat record
of typed column values under a collection's field definitions.

Core Logic:
1. Build the output document id (optionally parentId-prefixed)
2. If the collection has a transform webhook, replace the document with
   the webhook's answer (failure aborts the whole record)
3. For each field: read the raw value (accessor pointer or top-level key),
   apply the field transform, coerce by semantic type
4. A failing field becomes null; it never aborts the record
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from docsync.config.collection_config import CollectionConfig, FieldDefinition, FieldType
from docsync.ingestion.connectors.transform_webhook import TransformWebhookClient
from docsync.processing.utils import (
    is_falsy,
    is_finite_number,
    is_primitive,
    parse_decimal,
    parse_float,
    resolve_pointer,
    safe_float,
    to_iso_instant,
    to_json_text,
    to_timestamp,
)

logger = logging.getLogger(__name__)


def build_document_id(document_id: str, data: Dict[str, Any], config: CollectionConfig) -> str:
    """Output document id: "<parentId>-<documentId>" when the config asks for it."""
    parent_id = data.get("parentId")
    if config.include_parent_id_in_document_id and not is_falsy(parent_id):
        return f"{parent_id}-{document_id}"
    return document_id


class FieldCoercionEngine:
    """
    Typed column values from raw documents.

    Usage:
        engine = FieldCoercionEngine(TransformWebhookClient(timeout=30))
        record = engine.coerce({"email": "a@b.com"}, "doc1", config)
        # {"documentId": "doc1", "email": "a@b.com"}
    """

    def __init__(self, webhook: Optional[TransformWebhookClient] = None):
        self.webhook = webhook or TransformWebhookClient()
        self._coercers: Dict[str, Callable[[FieldDefinition, Any], Any]] = {}
        for field_type in FieldType.NUMBERS:
            self._coercers[field_type] = self._coerce_number
        for field_type in FieldType.BIG_NUMBERS:
            self._coercers[field_type] = self._coerce_big_number
        for field_type in FieldType.INSTANTS:
            self._coercers[field_type] = self._coerce_timestamp
        self._coercers.update({
            FieldType.ARRAY: self._coerce_array,
            FieldType.DATE: self._coerce_date,
            FieldType.BOOL: self._coerce_bool,
            FieldType.STRING: self._coerce_string,
            FieldType.JSON: self._coerce_json,
            FieldType.REPEATED: self._coerce_repeated,
        })

    def coerce(
        self,
        data: Optional[Dict[str, Any]],
        document_id: str,
        config: CollectionConfig
    ) -> Dict[str, Any]:
        """
        Coerce one document.

        Args:
            data: Raw document body (may carry a merged-in parentId)
            document_id: Document id in the document store
            config: Owning collection configuration

        Returns:
            {"documentId": ..., <field name>: <typed value>, ...}

        Raises:
            TransformWebhookError: only when the transform webhook fails
        """
        data = dict(data or {})
        output_id = build_document_id(document_id, data, config)

        if config.transform_url:
            data = self.webhook.transform(config.transform_url, output_id, data)

        record: Dict[str, Any] = {"documentId": output_id}
        for field in config.fields:
            record[field.name] = self.coerce_field(field, field.read(data), output_id)
        return record

    def coerce_field(self, field: FieldDefinition, value: Any, document_id: str = "") -> Any:
        """Coerce a single raw value; any failure yields None."""
        try:
            return self._coercers[field.type](field, value)
        except Exception as e:
            logger.warning(
                f"Field '{field.name}' coerced to null: {e}",
                extra={"document_id": document_id, "field": field.name, "field_type": field.type}
            )
            return None

    # =========================================
    # PER-TYPE COERCION
    # =========================================

    @staticmethod
    def _apply(field: FieldDefinition, value: Any) -> Any:
        return field.transform(value) if field.transform else value

    def _coerce_number(self, field: FieldDefinition, value: Any) -> Any:
        value = self._apply(field, value)
        if isinstance(value, str):
            value = parse_float(value)
        if not is_finite_number(value):
            return None
        if isinstance(value, Decimal):
            value = float(value)
        return safe_float(value)

    def _coerce_big_number(self, field: FieldDefinition, value: Any) -> Any:
        value = self._apply(field, value)
        if isinstance(value, str):
            value = parse_decimal(value)
        if not is_finite_number(value):
            return None
        return value

    def _coerce_array(self, field: FieldDefinition, value: Any) -> List[Any]:
        if isinstance(value, list):
            items = value
        elif is_falsy(value):
            items = []
        else:
            items = [value]

        result: List[Any] = []
        for item in items:
            if field.formatter_tokens is not None and isinstance(item, dict):
                found, extracted = resolve_pointer(item, field.formatter_tokens)
                if found:
                    item = extracted
            item = self._apply(field, item)
            if isinstance(item, list):
                result.extend(item)
            else:
                result.append(item)

        return [item for item in result if not is_falsy(item)]

    def _coerce_timestamp(self, field: FieldDefinition, value: Any) -> Optional[str]:
        value = self._apply(field, value)
        if is_falsy(value):
            return None
        ts = to_timestamp(value)
        return to_iso_instant(ts) if ts is not None else None

    def _coerce_date(self, field: FieldDefinition, value: Any) -> Optional[str]:
        instant = self._coerce_timestamp(field, value)
        return instant[:10] if instant else None

    def _coerce_bool(self, field: FieldDefinition, value: Any) -> bool:
        return not is_falsy(self._apply(field, value))

    def _coerce_string(self, field: FieldDefinition, value: Any) -> Optional[str]:
        value = self._apply(field, value)
        return value if isinstance(value, str) else None

    def _coerce_json(self, field: FieldDefinition, value: Any) -> Optional[str]:
        value = self._apply(field, value)
        # Only composite values are valid JSON columns
        if not isinstance(value, (dict, list)):
            return None
        return to_json_text(value)

    def _coerce_repeated(self, field: FieldDefinition, value: Any) -> Any:
        # Passed through as-is, without the field transform
        return None if is_primitive(value) else value
