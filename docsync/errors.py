"""
Sync Errors
===========

Exception hierarchy shared by every DocSync component.

None of these terminate the event handler or the scheduled run: they are
raised at the point of failure and caught, logged and skipped by the
runner that owns the unit of work (a collection config, a change event,
a backfill page).
"""

from typing import Any, Dict, List, Optional


class SyncError(Exception):
    """Base class for DocSync errors."""


class ConfigValidationError(SyncError):
    """A collection configuration is missing a required value or is invalid."""

    def __init__(self, message: str, config_id: Optional[str] = None, source: Optional[str] = None):
        self.config_id = config_id
        self.source = source
        prefix = f"{source}: " if source else ""
        super().__init__(f"{prefix}{message}")


class NoMatchingConfig(SyncError):
    """No collection configuration owns the given document path."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No matching config found for path: {path}")


class TransformWebhookError(SyncError):
    """The remote transform call failed or returned an unusable body."""

    def __init__(self, url: str, document_id: str, reason: str):
        self.url = url
        self.document_id = document_id
        super().__init__(f"Transform webhook {url} failed for {document_id}: {reason}")


class WarehouseError(SyncError):
    """A warehouse operation (append, query, reconcile, insert) failed."""


class ConsolidationError(SyncError):
    """Consolidation of one configuration failed; its checkpoint is not advanced."""

    def __init__(self, config_id: str, reason: str):
        self.config_id = config_id
        super().__init__(f"Consolidation failed for {config_id}: {reason}")


class ConsolidationInProgress(SyncError):
    """Another consolidation run already holds the lease for this configuration."""

    def __init__(self, config_id: str):
        self.config_id = config_id
        super().__init__(f"Consolidation already running for {config_id}")


class BackfillPageInsertError(SyncError):
    """Bulk insert of one backfill page failed; the page rows are dropped."""

    def __init__(self, config_id: str, page: int, rows: List[Dict[str, Any]], reason: str):
        self.config_id = config_id
        self.page = page
        self.document_ids = [row.get("documentId") for row in rows]
        super().__init__(
            f"Backfill insert failed for {config_id} page {page} "
            f"({len(rows)} rows): {reason}"
        )
