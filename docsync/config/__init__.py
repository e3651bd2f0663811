"""Collection configurations, path resolution, transforms and process settings."""

from .collection_config import (
    CollectionConfig,
    FieldDefinition,
    FieldType,
    SyncConfiguration,
    load_sync_configuration,
    parse_collection_config,
)
from .resolver import ConfigResolver, ResolvedPath
from .settings import SyncSettings, load_settings
from .transforms import register_transform

__all__ = [
    "CollectionConfig",
    "FieldDefinition",
    "FieldType",
    "SyncConfiguration",
    "load_sync_configuration",
    "parse_collection_config",
    "ConfigResolver",
    "ResolvedPath",
    "SyncSettings",
    "load_settings",
    "register_transform",
]
