"""
Consolidation Job (Tracker Log -> Main Table)
=============================================

Reconciles a collection's append-only tracker log into its deduplicated,
current-state main table.

Core Logic:
1. Window [lastRunDate, now) (first run: the last 100 years)
2. Read tracker entries before the window end
3. Per document, keep window entries at or after its latest CREATED entry
4. Aggregate: last non-null value per field (by timestamp), plus
   CREATED / DELETED counts over the window
5. Reconcile: insert (created > deleted, no row), delete (deleted > created,
   row exists), field-wise update of every other existing row
6. Advance the checkpoint to the window end (only on success)
7. Purge tracker entries past the retention period

Runs for one configuration never overlap: a process-local lock plus a
warehouse lease keyed by (instanceId, configId).
"""

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Sequence

import pandas as pd

from docsync.config.collection_config import CollectionConfig
from docsync.errors import ConsolidationError, ConsolidationInProgress
from docsync.ingestion.connectors.warehouse import Warehouse
from docsync.models import ChangeType, ReconciliationPlan
from docsync.observability.structured_logger import log_context, new_trace_id
from docsync.processing.checkpoints import JsonCheckpointStore
from docsync.processing.table_schema import is_missing, main_row
from docsync.processing.utils import to_iso_instant, utc_now

logger = logging.getLogger(__name__)

EPOCH = pd.Timestamp("1970-01-01", tz="UTC")
FIRST_RUN_LOOKBACK = pd.DateOffset(years=100)
COUNT_COLUMNS = ["createdCount", "deletedCount"]


def _as_utc(value: Any) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def aggregate_changes(
    config: CollectionConfig,
    log: pd.DataFrame,
    start: Any,
    end: Any
) -> pd.DataFrame:
    """
    Aggregate tracker entries of the window [start, end).

    Args:
        config: Collection configuration (field columns)
        log: Tracker rows; rows at or after `end` are ignored
        start: Window start (inclusive)
        end: Window end (exclusive)

    Returns:
        One row per document: documentId, createdCount, deletedCount and
        the most recent non-null value of every field
    """
    columns = ["documentId"] + COUNT_COLUMNS + config.field_names
    if log is None or log.empty:
        return pd.DataFrame(columns=columns)

    start, end = _as_utc(start), _as_utc(end)
    log = log.copy()
    log["timestamp"] = pd.to_datetime(log["timestamp"], utc=True)
    log = log[log["timestamp"] < end]

    # Latest CREATED entry per document (epoch when there is none)
    created = log["changeType"] == ChangeType.CREATED.value
    floor = (
        log["timestamp"].where(created)
        .groupby(log["documentId"])
        .transform("max")
        .fillna(EPOCH)
    )

    in_window = log["timestamp"] >= start
    window = log[in_window]
    rows = log[in_window & (log["timestamp"] >= floor)]
    if rows.empty:
        return pd.DataFrame(columns=columns)

    counts = pd.DataFrame({
        "documentId": window["documentId"],
        "createdCount": (window["changeType"] == ChangeType.CREATED.value).astype(int),
        "deletedCount": (window["changeType"] == ChangeType.DELETED.value).astype(int),
    }).groupby("documentId").sum()

    # last() skips nulls, giving the latest non-null value of each field
    ordered = rows.sort_values("timestamp", kind="stable")
    latest = ordered[["documentId"] + config.field_names].groupby("documentId", sort=True).last()

    result = latest.join(counts, how="left").reset_index()
    result[COUNT_COLUMNS] = result[COUNT_COLUMNS].fillna(0).astype(int)
    return result[columns]


def plan_reconciliation(
    config: CollectionConfig,
    aggregates: pd.DataFrame,
    existing_ids: Sequence[str]
) -> ReconciliationPlan:
    """
    Decide the main-table changes for aggregated documents.

    Inserted documents are not updated again; deleted rows are not updated.
    A tie between CREATED and DELETED counts neither inserts nor deletes.
    """
    existing = set(existing_ids)
    plan = ReconciliationPlan()

    for record in aggregates.to_dict("records"):
        doc_id = record["documentId"]
        created, deleted = int(record["createdCount"]), int(record["deletedCount"])
        values = main_row({k: (None if is_missing(v) else v) for k, v in record.items()}, config)

        if doc_id not in existing:
            if created > deleted:
                plan.inserts.append(values)
            continue

        if deleted > created:
            plan.deletes.append(doc_id)
        elif any(values[name] is not None for name in config.field_names):
            plan.updates.append(values)

    return plan


class ConsolidationEngine:
    """
    Scheduled log-to-table consolidation.

    Usage:
        engine = ConsolidationEngine(warehouse, JsonCheckpointStore("checkpoints", "docsync"))
        result = engine.run(config)
        # {"config_id": "users", "status": "success", "inserted": 3, ...}
    """

    def __init__(
        self,
        warehouse: Warehouse,
        checkpoints: JsonCheckpointStore,
        instance_id: str = "docsync",
        retention_days: int = 30,
        clock: Callable[[], datetime] = utc_now
    ):
        self.warehouse = warehouse
        self.checkpoints = checkpoints
        self.instance_id = instance_id
        self.retention_days = retention_days
        self.clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def lease_key(self, config: CollectionConfig) -> str:
        return f"{self.instance_id}-{config.id}"

    def _local_lock(self, config: CollectionConfig) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(config.id, threading.Lock())

    def run(self, config: CollectionConfig) -> Dict:
        """
        Consolidate one configuration; never raises.

        Returns:
            Result dict (status: success | failed | skipped)
        """
        result = {
            "config_id": config.id,
            "status": "failed",
            "window_start": None,
            "window_end": None,
            "entries": 0,
            "documents": 0,
            "inserted": 0,
            "updated": 0,
            "deleted": 0,
            "error": None,
        }
        start_time = time.time()

        with log_context(config_id=config.id, trace_id=new_trace_id()):
            local_lock = self._local_lock(config)
            try:
                if not local_lock.acquire(blocking=False):
                    raise ConsolidationInProgress(config.id)
                try:
                    with self.warehouse.lease(self.lease_key(config)) as acquired:
                        if not acquired:
                            raise ConsolidationInProgress(config.id)
                        self._consolidate(config, result)
                finally:
                    local_lock.release()

            except ConsolidationInProgress as e:
                logger.warning(f"⚠ {e}; skipping this tick", extra={"config_id": config.id})
                result["status"] = "skipped"
                result["error"] = str(e)

            except Exception as e:
                error = e if isinstance(e, ConsolidationError) else ConsolidationError(config.id, str(e))
                logger.error(
                    f"✗ {error}",
                    exc_info=True,
                    extra={
                        "config_id": config.id,
                        "window_start": result["window_start"],
                        "window_end": result["window_end"],
                    }
                )
                result["status"] = "failed"
                result["error"] = str(error)

            result["duration_seconds"] = round(time.time() - start_time, 3)
        return result

    def _consolidate(self, config: CollectionConfig, result: Dict) -> None:
        end = _as_utc(self.clock()).floor("ms")
        last_run = self.checkpoints.load(config.id)
        start = _as_utc(last_run) if last_run is not None else end - FIRST_RUN_LOOKBACK

        result["window_start"] = to_iso_instant(start)
        result["window_end"] = to_iso_instant(end)
        logger.info(f"Consolidating {config.id}: [{result['window_start']}, {result['window_end']})")

        log = self.warehouse.read_changes(config, end.to_pydatetime())
        if log is not None and not log.empty:
            timestamps = pd.to_datetime(log["timestamp"], utc=True)
            result["entries"] = int(((timestamps >= start) & (timestamps < end)).sum())

        aggregates = aggregate_changes(config, log, start, end)
        result["documents"] = len(aggregates)

        existing = self.warehouse.existing_document_ids(config, aggregates["documentId"].tolist())
        plan = plan_reconciliation(config, aggregates, existing)

        if not plan.is_empty:
            self.warehouse.apply_reconciliation(config, plan)

        result["inserted"] = len(plan.inserts)
        result["updated"] = len(plan.updates)
        result["deleted"] = len(plan.deletes)

        self.checkpoints.advance(config.id, end.to_pydatetime(), {
            k: result[k] for k in ("entries", "documents", "inserted", "updated", "deleted")
        })
        result["status"] = "success"

        logger.info(
            f"✓ Consolidated {config.id}: {result['inserted']} inserted, "
            f"{result['updated']} updated, {result['deleted']} deleted",
            extra={k: result[k] for k in ("entries", "documents", "inserted", "updated", "deleted")}
        )

        self._purge(config, end)

    def _purge(self, config: CollectionConfig, end: pd.Timestamp) -> None:
        """Drop tracker entries past retention; failures are logged only."""
        if self.retention_days <= 0:
            return
        cutoff = (end - timedelta(days=self.retention_days)).to_pydatetime()
        try:
            purged = self.warehouse.purge_changes(config, cutoff)
            if purged:
                logger.info(f"  Purged {purged} tracker entries older than {cutoff.isoformat()}")
        except Exception as e:
            logger.warning(f"Tracker purge failed for {config.id}: {e}", extra={"config_id": config.id})

    def run_all(self, configs: Sequence[CollectionConfig]) -> List[Dict]:
        """Consolidate every configuration in order, isolating failures."""
        logger.info("=" * 60)
        logger.info(f"CONSOLIDATION RUN: {len(configs)} configuration(s)")
        logger.info("=" * 60)

        results = [self.run(config) for config in configs]

        succeeded = sum(1 for r in results if r["status"] == "success")
        logger.info(f"Consolidation complete: {succeeded}/{len(results)} succeeded")
        return results
