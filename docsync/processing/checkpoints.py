"""
Consolidation Checkpoints
=========================

Per-configuration watermark: the end of the last successfully
reconciled window.

One JSON file per (instanceId, configId) pair:

    checkpoints/<instanceId>-<configId>.json
    {"lastRunDate": "2024-01-01T00:00:00.000Z", "updatedAt": "...", "lastRun": {...}}
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd

from docsync.processing.utils import to_iso_instant, to_timestamp, utc_now

logger = logging.getLogger(__name__)


class JsonCheckpointStore:
    """File-backed checkpoint store; advance() never moves a checkpoint backward."""

    def __init__(self, checkpoint_dir: Union[str, Path], instance_id: str):
        self.checkpoint_dir = Path(checkpoint_dir)
        self.instance_id = instance_id

    def _path(self, config_id: str) -> Path:
        return self.checkpoint_dir / f"{self.instance_id}-{config_id}.json"

    def _read(self, config_id: str) -> Dict:
        path = self._path(config_id)
        if not path.exists():
            return {}
        with open(path, 'r') as f:
            return json.load(f)

    def load(self, config_id: str) -> Optional[datetime]:
        """Last run date, or None before the first successful run."""
        raw = self._read(config_id).get("lastRunDate")
        if not raw:
            return None
        ts = to_timestamp(raw)
        if ts is None:
            logger.warning(f"Ignoring unreadable checkpoint for {config_id}: {raw!r}")
            return None
        return ts.to_pydatetime()

    def advance(self, config_id: str, run_date: datetime, stats: Optional[Dict] = None) -> datetime:
        """
        Persist a new last run date.

        Returns:
            The stored checkpoint (the current one if run_date is older)
        """
        current = self.load(config_id)
        if current is not None and run_date <= current:
            logger.info(f"Checkpoint for {config_id} already at {current.isoformat()}, not moving back")
            return current

        checkpoint = {
            "lastRunDate": to_iso_instant(pd.Timestamp(run_date)),
            "updatedAt": to_iso_instant(pd.Timestamp(utc_now())),
            "lastRun": stats or {},
        }
        self._write(config_id, checkpoint)
        logger.info(f"Checkpoint saved: {config_id} -> {checkpoint['lastRunDate']}")
        return run_date

    def _write(self, config_id: str, checkpoint: Dict) -> None:
        os.makedirs(self.checkpoint_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.checkpoint_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(checkpoint, f, indent=2, default=str)
            os.replace(tmp_path, self._path(config_id))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
