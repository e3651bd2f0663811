"""
In-memory warehouse with the same semantics as the PostgreSQL one.

Used for dry runs (docsync CLI --dry-run) and tests.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Set

import pandas as pd

from docsync.config.collection_config import CollectionConfig
from docsync.errors import WarehouseError
from docsync.models import ReconciliationPlan
from docsync.processing.table_schema import TRACKER_COLUMNS

logger = logging.getLogger(__name__)


class MemoryWarehouse:
    """Dict-backed tracker logs and main tables."""

    def __init__(self):
        self.tracker: Dict[str, List[Dict[str, Any]]] = {}
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._leases: Dict[str, threading.Lock] = {}

    @staticmethod
    def _tracker_key(config: CollectionConfig) -> str:
        return f"{config.dataset_id}.{config.tracker_table_id}"

    @staticmethod
    def _table_key(config: CollectionConfig) -> str:
        return f"{config.dataset_id}.{config.table_id}"

    def _tracker(self, config: CollectionConfig) -> List[Dict[str, Any]]:
        key = self._tracker_key(config)
        if key not in self.tracker:
            raise WarehouseError(f"Table {key} does not exist")
        return self.tracker[key]

    def _table(self, config: CollectionConfig) -> Dict[str, Dict[str, Any]]:
        key = self._table_key(config)
        if key not in self.tables:
            raise WarehouseError(f"Table {key} does not exist")
        return self.tables[key]

    def ensure_tables(self, config: CollectionConfig) -> None:
        with self._lock:
            self.tracker.setdefault(self._tracker_key(config), [])
            self.tables.setdefault(self._table_key(config), {})

    def append_change(self, config: CollectionConfig, row: Dict[str, Any]) -> None:
        with self._lock:
            self._tracker(config).append(dict(row))

    def read_changes(self, config: CollectionConfig, until: datetime) -> pd.DataFrame:
        columns = list(TRACKER_COLUMNS) + config.field_names
        with self._lock:
            rows = [dict(r) for r in self._tracker(config) if r["timestamp"] < until]
        return pd.DataFrame(rows, columns=columns, dtype=object)

    def existing_document_ids(self, config: CollectionConfig, document_ids: Iterable[str]) -> Set[str]:
        with self._lock:
            table = self._table(config)
            return {doc_id for doc_id in document_ids if doc_id in table}

    def apply_reconciliation(self, config: CollectionConfig, plan: ReconciliationPlan) -> None:
        with self._lock:
            # Work on a copy and swap at the end so a failure leaves the table untouched
            table = copy.deepcopy(self._table(config))
            for row in plan.inserts:
                table[row["documentId"]] = dict(row)
            for doc_id in plan.deletes:
                table.pop(doc_id, None)
            for update in plan.updates:
                existing = table.get(update["documentId"])
                if existing is None:
                    continue
                for name, value in update.items():
                    if value is not None:
                        existing[name] = value
            self.tables[self._table_key(config)] = table

    def insert_rows(self, config: CollectionConfig, rows: List[Dict[str, Any]]) -> int:
        inserted = 0
        with self._lock:
            table = self._table(config)
            for row in rows:
                if row["documentId"] not in table:
                    table[row["documentId"]] = dict(row)
                    inserted += 1
        return inserted

    def purge_changes(self, config: CollectionConfig, older_than: datetime) -> int:
        with self._lock:
            entries = self._tracker(config)
            kept = [r for r in entries if r["timestamp"] >= older_than]
            purged = len(entries) - len(kept)
            entries[:] = kept
        return purged

    @contextmanager
    def lease(self, key: str) -> Iterator[bool]:
        with self._lock:
            lock = self._leases.setdefault(key, threading.Lock())
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()

    def rows(self, config: CollectionConfig) -> Dict[str, Dict[str, Any]]:
        """Snapshot of the main table (documentId -> row)."""
        with self._lock:
            return copy.deepcopy(self._table(config))
