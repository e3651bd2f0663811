"""
Process Settings
================

Runtime settings for one DocSync process: warehouse URL, checkpoint
location, timeouts and batch sizes.

Loaded from an optional JSON file; environment variables win over the file.
"""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from docsync.errors import ConfigValidationError

logger = logging.getLogger(__name__)

ENV_OVERRIDES = {
    "DOCSYNC_DATABASE_URL": "database_url",
    "DOCSYNC_INSTANCE_ID": "instance_id",
    "DOCSYNC_CHECKPOINT_DIR": "checkpoint_dir",
    "DOCSYNC_LOG_LEVEL": "log_level",
}


@dataclass(frozen=True)
class SyncSettings:
    instance_id: str = "docsync"
    database_url: Optional[str] = None
    checkpoint_dir: str = "./checkpoints"
    transform_timeout_seconds: float = 30.0
    backfill_page_size: int = 500
    backfill_workers: int = 16
    tracker_retention_days: int = 30
    log_level: str = "INFO"
    log_json: bool = True

    def __post_init__(self):
        if self.backfill_page_size < 1:
            raise ConfigValidationError("backfill_page_size must be positive")
        if self.backfill_workers < 1:
            raise ConfigValidationError("backfill_workers must be positive")
        if self.transform_timeout_seconds <= 0:
            raise ConfigValidationError("transform_timeout_seconds must be positive")

    @property
    def page_workers(self) -> int:
        """Concurrency bound within a backfill page."""
        return min(self.backfill_workers, self.backfill_page_size)


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None
) -> SyncSettings:
    """
    Load settings.

    Args:
        path: Optional JSON settings file
        env: Environment mapping (defaults to os.environ)

    Returns:
        SyncSettings
    """
    env = os.environ if env is None else env
    values: Dict[str, Any] = {}
    known = {f.name for f in fields(SyncSettings)}

    if path:
        with open(path, 'r') as f:
            raw = json.load(f)
        unknown = set(raw) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {sorted(unknown)}")
        values.update({k: v for k, v in raw.items() if k in known})

    for env_name, attr in ENV_OVERRIDES.items():
        if env.get(env_name):
            values[attr] = env[env_name]

    return replace(SyncSettings(), **values)
