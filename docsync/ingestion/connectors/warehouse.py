"""
Warehouse Interface
===================

What DocSync needs from the analytical warehouse: a tracker log per
collection (append-only) and a main table per collection (keyed by
documentId).
"""

from datetime import datetime
from typing import Any, ContextManager, Dict, Iterable, List, Protocol, Set, runtime_checkable

import pandas as pd

from docsync.config.collection_config import CollectionConfig
from docsync.models import ReconciliationPlan


@runtime_checkable
class Warehouse(Protocol):
    """
    Tracker log + main table storage.

    Domain expectations:
    - Tracker rows are never updated; they only expire (purge_changes).
    - The main table holds at most one row per documentId.
    - apply_reconciliation is all-or-nothing.
    """

    def ensure_tables(self, config: CollectionConfig) -> None:
        """Create the dataset, tracker and main tables when missing (no migration)."""
        ...

    def append_change(self, config: CollectionConfig, row: Dict[str, Any]) -> None:
        """Append one encoded tracker row."""
        ...

    def read_changes(self, config: CollectionConfig, until: datetime) -> pd.DataFrame:
        """
        All tracker rows with timestamp < until, one column per tracker column.

        Rows before the consolidation window are needed to find each
        document's latest CREATED entry.
        """
        ...

    def existing_document_ids(self, config: CollectionConfig, document_ids: Iterable[str]) -> Set[str]:
        ...

    def apply_reconciliation(self, config: CollectionConfig, plan: ReconciliationPlan) -> None:
        """Inserts, then deletes, then field-wise updates, in one transaction."""
        ...

    def insert_rows(self, config: CollectionConfig, rows: List[Dict[str, Any]]) -> int:
        """Bulk insert main table rows; rows whose documentId already exists are skipped."""
        ...

    def purge_changes(self, config: CollectionConfig, older_than: datetime) -> int:
        ...

    def lease(self, key: str) -> ContextManager[bool]:
        """Non-blocking single-flight guard; yields whether it was acquired."""
        ...
