"""
Backfill Engine
===============

One-time bulk load of pre-existing documents into the main table,
bypassing the tracker log and the checkpoint.

Core Logic:
1. Cursor-paginate the collection (or collection group), fetching
   page_size + 1 documents; the extra one is the next cursor (inclusive)
2. Coerce the page concurrently; a failing document is logged and skipped
3. Bulk insert the coerced rows, one call per page; a failed insert is
   logged and its rows are dropped, pagination continues
4. Pages are processed strictly in cursor order
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

from docsync.config.collection_config import CollectionConfig
from docsync.errors import BackfillPageInsertError
from docsync.ingestion.connectors.document_source import DocumentSource
from docsync.ingestion.connectors.warehouse import Warehouse
from docsync.models import DocumentSnapshot
from docsync.observability.structured_logger import log_context, new_trace_id
from docsync.processing.coercion import FieldCoercionEngine
from docsync.processing.table_schema import main_row

logger = logging.getLogger(__name__)

FetchPage = Callable[[int, Optional[DocumentSnapshot]], List[DocumentSnapshot]]


class BackfillEngine:
    """
    Bulk loader for existing documents.

    Usage:
        engine = BackfillEngine(source, coercion, warehouse, page_size=500)
        engine.initialize_all(configs)
    """

    def __init__(
        self,
        source: DocumentSource,
        coercion: FieldCoercionEngine,
        warehouse: Warehouse,
        page_size: int = 500,
        max_workers: int = 16
    ):
        """
        Initialize the backfill engine.

        Args:
            source: Document store reader
            coercion: Field coercion engine
            warehouse: Target warehouse
            page_size: Documents per page (and per bulk insert)
            max_workers: Concurrent coercions within a page (capped at page_size)
        """
        self.source = source
        self.coercion = coercion
        self.warehouse = warehouse
        self.page_size = page_size
        self.max_workers = max(1, min(max_workers, page_size))

    # =========================================
    # PAGES
    # =========================================

    def _coerce_document(self, config: CollectionConfig, doc: DocumentSnapshot, with_parent: bool) -> Optional[Dict]:
        data = doc.data()
        if with_parent and doc.parent_id:
            data["parentId"] = doc.parent_id
        try:
            return main_row(self.coercion.coerce(data, doc.id, config), config)
        except Exception as e:
            logger.error(
                f"  ✗ Skipping document {doc.path or doc.id}: {e}",
                extra={"config_id": config.id, "document_id": doc.id}
            )
            return None

    def _coerce_page(
        self,
        config: CollectionConfig,
        docs: Sequence[DocumentSnapshot],
        with_parent: bool
    ) -> List[Dict]:
        if not docs:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(docs))) as pool:
            results = list(pool.map(lambda d: self._coerce_document(config, d, with_parent), docs))
        return [row for row in results if row is not None]

    def _paginate(self, config: CollectionConfig, label: str, fetch: FetchPage, with_parent: bool) -> Dict:
        stats = {"target": label, "pages": 0, "documents": 0, "rows_inserted": 0,
                 "rows_failed": 0, "failed_pages": []}
        cursor: Optional[DocumentSnapshot] = None

        while True:
            docs = fetch(self.page_size + 1, cursor)
            page_docs = docs[:self.page_size]
            cursor = docs[self.page_size] if len(docs) > self.page_size else None
            if not page_docs:
                break

            stats["pages"] += 1
            stats["documents"] += len(page_docs)
            rows = self._coerce_page(config, page_docs, with_parent)
            stats["rows_failed"] += len(page_docs) - len(rows)

            if rows:
                try:
                    stats["rows_inserted"] += self.warehouse.insert_rows(config, rows)
                except Exception as e:
                    error = BackfillPageInsertError(config.id, stats["pages"], rows, str(e))
                    logger.error(
                        f"  ✗ {error}",
                        extra={
                            "config_id": config.id,
                            "target": label,
                            "page": stats["pages"],
                            "row_count": len(rows),
                            "document_ids": error.document_ids,
                        }
                    )
                    stats["failed_pages"].append(stats["pages"])
                    stats["rows_failed"] += len(rows)

            logger.info(f"  Page {stats['pages']}: {len(page_docs)} documents, {len(rows)} rows")
            if cursor is None:
                break

        logger.info(f"  Backfilled {stats['documents']} documents for {label}")
        return stats

    def backfill_collection(self, config: CollectionConfig, path: str) -> Dict:
        logger.info(f"Backfilling collection: {path}")
        return self._paginate(
            config, path,
            lambda limit, start_at: self.source.list_documents(path, limit, start_at),
            with_parent=False
        )

    def backfill_collection_group(self, config: CollectionConfig) -> Dict:
        group = config.collection_group
        logger.info(f"Backfilling collection group: {group}")
        return self._paginate(
            config, group,
            lambda limit, start_at: self.source.list_collection_group(group, limit, start_at),
            with_parent=True
        )

    def backfill(self, config: CollectionConfig) -> List[Dict]:
        """Backfill a configuration: its collection group, or every literal collection path."""
        if config.collection_group:
            return [self.backfill_collection_group(config)]

        results = []
        for pattern in config.path_patterns:
            if pattern.has_wildcards:
                logger.info(f"  Skipping wildcard path {pattern.raw} (no collection group)")
                continue
            results.append(self.backfill_collection(config, pattern.raw))
        return results

    # =========================================
    # SETUP TASK
    # =========================================

    def initialize_collection(self, config: CollectionConfig) -> Dict:
        """
        Create the tables of a configuration, then backfill if enabled.

        Returns:
            Result dict with status and per-target backfill stats
        """
        start_time = time.time()
        result = {"config_id": config.id, "status": "pending", "backfill": []}

        with log_context(config_id=config.id, trace_id=new_trace_id()):
            try:
                self.warehouse.ensure_tables(config)
                if config.backfill:
                    logger.info(f"Starting backfill for {config.id}")
                    result["backfill"] = self.backfill(config)
                result["status"] = "success"
                logger.info(f"✓ Initialized {config.id}")
            except Exception as e:
                logger.error(f"✗ Failed to initialize {config.id}: {e}", exc_info=True,
                             extra={"config_id": config.id})
                result["status"] = "failed"
                result["error"] = str(e)

        result["duration_seconds"] = round(time.time() - start_time, 2)
        return result

    def initialize_all(self, configs: Sequence[CollectionConfig]) -> List[Dict]:
        """Initialize every configuration, isolating failures."""
        logger.info("=" * 60)
        logger.info(f"INITIALIZING {len(configs)} COLLECTION(S)")
        logger.info("=" * 60)

        results = [self.initialize_collection(config) for config in configs]

        success = sum(1 for r in results if r["status"] == "success")
        logger.info("=" * 60)
        logger.info("INITIALIZATION COMPLETE")
        logger.info(f"  Collections: {success} success, {len(results) - success} failed")
        logger.info("=" * 60)
        return results
