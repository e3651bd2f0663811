"""
Collection Configuration
========================

Loads, validates and compiles the declarative collection configurations.

Features:
- Single JSON document ({collections: [...]}) or a directory of JSON files
- Root-level default* keys overriding the built-in defaults
- Per-collection validation; invalid collections are logged and skipped
- Compiled path patterns, JSON-pointer accessors and transform callables
- Immutable result (frozen dataclasses, tuples), built once per process
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from docsync.config.paths import PathPattern
from docsync.config.transforms import TransformFn, get_transform
from docsync.errors import ConfigValidationError
from docsync.processing.utils import Pointer, compile_pointer, resolve_pointer

logger = logging.getLogger(__name__)

DEFAULT_DATASET_ID = "firestore_sync"
DEFAULT_DATASET_LOCATION = "eu"
DEFAULT_SCHEDULE = "0 0 * * *"
DEFAULT_TIME_ZONE = "UTC"
TRACKER_SUFFIX = "_tracker"


class FieldType:
    """Semantic column types."""
    STRING = "STRING"
    NUMERIC = "NUMERIC"
    FLOAT64 = "FLOAT64"
    INT64 = "INT64"
    BIGNUMERIC = "BIGNUMERIC"
    BIGDECIMAL = "BIGDECIMAL"
    BOOL = "BOOL"
    TIMESTAMP = "TIMESTAMP"
    DATETIME = "DATETIME"
    DATE = "DATE"
    ARRAY = "ARRAY"
    JSON = "JSON"
    REPEATED = "REPEATED"

    NUMBERS = frozenset({NUMERIC, FLOAT64, INT64})
    BIG_NUMBERS = frozenset({BIGNUMERIC, BIGDECIMAL})
    INSTANTS = frozenset({TIMESTAMP, DATETIME})
    ALL = frozenset({
        STRING, NUMERIC, FLOAT64, INT64, BIGNUMERIC, BIGDECIMAL, BOOL,
        TIMESTAMP, DATETIME, DATE, ARRAY, JSON, REPEATED,
    })
    # Element types allowed for ARRAY fields
    SCALARS = frozenset({
        STRING, NUMERIC, FLOAT64, INT64, BIGNUMERIC, BIGDECIMAL, BOOL,
        TIMESTAMP, DATETIME, DATE,
    })


# Table columns plus the per-document counts consolidation aggregates; fields may not reuse them
RESERVED_COLUMNS = frozenset({"documentId", "changeType", "timestamp", "createdCount", "deletedCount"})


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    type: str
    accessor: Optional[str] = None
    formater: Optional[str] = None
    method: Optional[str] = None
    array_type: Optional[str] = None
    accessor_tokens: Optional[Pointer] = field(default=None, repr=False)
    formatter_tokens: Optional[Pointer] = field(default=None, repr=False)
    transform: Optional[TransformFn] = field(default=None, repr=False, compare=False)

    def read(self, data: Dict[str, Any]) -> Any:
        """Raw value of this field in a document (None when missing)."""
        if self.accessor_tokens is None:
            return data.get(self.name)
        return resolve_pointer(data, self.accessor_tokens)[1]


@dataclass(frozen=True)
class CollectionConfig:
    id: str
    collection_paths: Tuple[str, ...]
    table_id: str
    fields: Tuple[FieldDefinition, ...]
    dataset_id: str = DEFAULT_DATASET_ID
    dataset_location: str = DEFAULT_DATASET_LOCATION
    collection_group: Optional[str] = None
    backfill: bool = True
    include_parent_id_in_document_id: bool = False
    transform_url: Optional[str] = None
    schedule: str = DEFAULT_SCHEDULE
    time_zone: str = DEFAULT_TIME_ZONE
    path_patterns: Tuple[PathPattern, ...] = field(default=(), repr=False)

    @property
    def tracker_table_id(self) -> str:
        return self.table_id + TRACKER_SUFFIX

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


@dataclass(frozen=True)
class SyncConfiguration:
    """All valid collections of one load, plus the ones that were rejected."""
    collections: Tuple[CollectionConfig, ...]
    errors: Tuple[ConfigValidationError, ...] = ()

    def get(self, config_id: str) -> Optional[CollectionConfig]:
        for config in self.collections:
            if config.id == config_id:
                return config
        return None


# =========================================
# COMPILATION
# =========================================

def _compile_pointer(value: Any, label: str, config_id: Optional[str]) -> Optional[Pointer]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigValidationError(f"{label} must be a string", config_id=config_id)
    return compile_pointer(value)


def parse_field_definition(raw: Dict[str, Any], config_id: Optional[str] = None) -> FieldDefinition:
    """Validate and compile a single field definition."""
    if not isinstance(raw, dict):
        raise ConfigValidationError("Field definition must be an object", config_id=config_id)

    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise ConfigValidationError("Field is missing 'name'", config_id=config_id)
    if name in RESERVED_COLUMNS:
        raise ConfigValidationError(f"Field name '{name}' is reserved", config_id=config_id)

    field_type = str(raw.get("type", "")).upper()
    if field_type not in FieldType.ALL:
        raise ConfigValidationError(
            f"Field '{name}' has unsupported type '{raw.get('type')}'", config_id=config_id
        )

    array_type = raw.get("arrayType")
    if array_type is not None:
        array_type = str(array_type).upper()
        if array_type not in FieldType.SCALARS:
            raise ConfigValidationError(
                f"Field '{name}' has unsupported arrayType '{raw.get('arrayType')}'",
                config_id=config_id,
            )

    method = raw.get("method")
    transform = None
    if method is not None:
        try:
            transform = get_transform(method)
        except (KeyError, TypeError):
            raise ConfigValidationError(
                f"Field '{name}' references unknown transform '{method}'", config_id=config_id
            )

    return FieldDefinition(
        name=name,
        type=field_type,
        accessor=raw.get("accessor"),
        formater=raw.get("formater"),
        method=method,
        array_type=array_type,
        accessor_tokens=_compile_pointer(raw.get("accessor"), f"Field '{name}' accessor", config_id),
        formatter_tokens=_compile_pointer(raw.get("formater"), f"Field '{name}' formater", config_id),
        transform=transform,
    )


def parse_collection_config(
    raw: Dict[str, Any],
    defaults: Optional[Dict[str, Any]] = None,
    source: Optional[str] = None
) -> CollectionConfig:
    """
    Validate and compile one collection configuration.

    Args:
        raw: Collection object as found in the JSON file
        defaults: Root-level overrides (defaultDatasetId, ...)
        source: File the object came from, for error messages

    Returns:
        Compiled CollectionConfig

    Raises:
        ConfigValidationError: on any missing or invalid value
    """
    defaults = defaults or {}
    if not isinstance(raw, dict):
        raise ConfigValidationError("Collection config must be an object", source=source)

    config_id = raw.get("id")
    if not config_id or not isinstance(config_id, str):
        raise ConfigValidationError("Missing 'id'", source=source)

    paths = raw.get("collectionPaths")
    if isinstance(paths, str):
        paths = [paths]
    if not paths or not isinstance(paths, list):
        raise ConfigValidationError("Missing 'collectionPaths'", config_id, source)
    try:
        patterns = tuple(PathPattern.compile(p) for p in paths)
    except (ValueError, AttributeError) as exc:
        raise ConfigValidationError(f"Invalid collection path: {exc}", config_id, source) from exc

    table_id = raw.get("tableId")
    if not table_id or not isinstance(table_id, str):
        raise ConfigValidationError("Missing 'tableId'", config_id, source)

    raw_fields = raw.get("fields")
    if not raw_fields or not isinstance(raw_fields, list):
        raise ConfigValidationError("Missing 'fields'", config_id, source)

    fields = []
    seen = set()
    for raw_field in raw_fields:
        definition = parse_field_definition(raw_field, config_id)
        if definition.name in seen:
            raise ConfigValidationError(f"Duplicate field name '{definition.name}'", config_id, source)
        seen.add(definition.name)
        fields.append(definition)

    return CollectionConfig(
        id=config_id,
        collection_paths=tuple(p.raw for p in patterns),
        table_id=table_id,
        fields=tuple(fields),
        dataset_id=raw.get("datasetId") or defaults.get("defaultDatasetId") or DEFAULT_DATASET_ID,
        dataset_location=(
            raw.get("datasetLocation")
            or defaults.get("defaultDatasetLocation")
            or DEFAULT_DATASET_LOCATION
        ),
        collection_group=raw.get("collectionGroup") or None,
        backfill=bool(raw.get("backfill", True)),
        include_parent_id_in_document_id=bool(raw.get("includeParentIdInDocumentId", False)),
        transform_url=raw.get("transformUrl") or None,
        schedule=raw.get("schedule") or defaults.get("defaultSchedule") or DEFAULT_SCHEDULE,
        time_zone=raw.get("timeZone") or defaults.get("defaultTimeZone") or DEFAULT_TIME_ZONE,
        path_patterns=patterns,
    )


# =========================================
# LOADING
# =========================================

def _read_json(path: Path) -> Any:
    with open(path, 'r') as f:
        return json.load(f)


def _collection_entries(document: Any, source: str) -> Tuple[List[Any], Dict[str, Any]]:
    """Split a loaded JSON document into (collection objects, root defaults)."""
    if isinstance(document, list):
        return document, {}
    if isinstance(document, dict) and "collections" in document:
        defaults = {k: v for k, v in document.items() if k.startswith("default")}
        return list(document.get("collections") or []), defaults
    if isinstance(document, dict):
        return [document], {}
    raise ConfigValidationError("Configuration must be an object or a list", source=source)


def load_sync_configuration(path: Union[str, Path]) -> SyncConfiguration:
    """
    Load every collection configuration found at a path.

    Args:
        path: JSON file, or directory of *.json files (sorted by name)

    Returns:
        SyncConfiguration with the valid collections and the rejections
    """
    path = Path(path)
    files = sorted(path.glob("*.json")) if path.is_dir() else [path]

    collections: List[CollectionConfig] = []
    errors: List[ConfigValidationError] = []
    seen_ids = set()

    for file_path in files:
        source = str(file_path)
        try:
            entries, defaults = _collection_entries(_read_json(file_path), source)
        except ConfigValidationError as exc:
            logger.error(f"✗ {exc}", extra={"source": source})
            errors.append(exc)
            continue
        except (OSError, ValueError) as exc:
            error = ConfigValidationError(f"Cannot read configuration: {exc}", source=source)
            logger.error(f"✗ {error}", extra={"source": source})
            errors.append(error)
            continue

        for raw in entries:
            try:
                config = parse_collection_config(raw, defaults, source)
                if config.id in seen_ids:
                    raise ConfigValidationError("Duplicate collection id", config.id, source)
            except ConfigValidationError as exc:
                logger.error(
                    f"✗ Skipping collection: {exc}",
                    extra={"config_id": exc.config_id, "source": source}
                )
                errors.append(exc)
                continue

            seen_ids.add(config.id)
            collections.append(config)
            logger.info(f"✓ Loaded collection config '{config.id}' -> {config.dataset_id}.{config.table_id}")

    logger.info(f"Loaded {len(collections)} collection config(s), {len(errors)} rejected")
    return SyncConfiguration(collections=tuple(collections), errors=tuple(errors))
