"""
Sync Application
================

Wires the DocSync components together from a configuration set and
process settings. The configuration set is loaded once and never mutated;
reloading means building a new SyncApp (i.e. restarting the process).
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from docsync.config.collection_config import CollectionConfig, SyncConfiguration, load_sync_configuration
from docsync.config.resolver import ConfigResolver
from docsync.config.settings import SyncSettings, load_settings
from docsync.errors import SyncError
from docsync.ingestion.backfill import BackfillEngine
from docsync.ingestion.cdc_recorder import ChangeEventRecorder
from docsync.ingestion.connectors.document_source import DocumentSource
from docsync.ingestion.connectors.postgres_warehouse import PostgresWarehouse
from docsync.ingestion.connectors.transform_webhook import TransformWebhookClient
from docsync.ingestion.connectors.warehouse import Warehouse
from docsync.observability.structured_logger import setup_logging
from docsync.processing.checkpoints import JsonCheckpointStore
from docsync.processing.coercion import FieldCoercionEngine
from docsync.processing.consolidation import ConsolidationEngine
from docsync.processing.utils import utc_now

logger = logging.getLogger(__name__)


class SyncApp:
    """
    One DocSync process.

    Usage:
        app = SyncApp.from_paths("collections/", settings_path="settings.json")
        app.recorder.handle(event)
        app.consolidate_all()
    """

    def __init__(
        self,
        configuration: SyncConfiguration,
        settings: SyncSettings,
        warehouse: Warehouse,
        source: Optional[DocumentSource] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.configuration = configuration
        self.settings = settings
        self.warehouse = warehouse
        self.source = source

        self.resolver = ConfigResolver(configuration.collections)
        self.coercion = FieldCoercionEngine(TransformWebhookClient(settings.transform_timeout_seconds))
        self.recorder = ChangeEventRecorder(self.resolver, self.coercion, warehouse, clock)
        self.checkpoints = JsonCheckpointStore(settings.checkpoint_dir, settings.instance_id)
        self.consolidator = ConsolidationEngine(
            warehouse,
            self.checkpoints,
            instance_id=settings.instance_id,
            retention_days=settings.tracker_retention_days,
            clock=clock,
        )

    @classmethod
    def from_paths(
        cls,
        config_path: Union[str, Path],
        settings_path: Optional[Union[str, Path]] = None,
        warehouse: Optional[Warehouse] = None,
        source: Optional[DocumentSource] = None,
        configure_logging: bool = True
    ) -> "SyncApp":
        """
        Load settings and collection configs, connect the warehouse.

        Args:
            config_path: Collection config file or directory
            settings_path: Optional JSON settings file
            warehouse: Warehouse to use instead of PostgreSQL (dry runs, tests)
            source: Document source for backfill
            configure_logging: Install the structured log handler
        """
        settings = load_settings(settings_path)
        if configure_logging:
            setup_logging(settings.log_level, settings.log_json)

        configuration = load_sync_configuration(config_path)

        if warehouse is None:
            if not settings.database_url:
                raise SyncError("No database_url configured (set DOCSYNC_DATABASE_URL)")
            warehouse = PostgresWarehouse(settings.database_url)
            warehouse.connect()

        return cls(configuration, settings, warehouse, source=source)

    @property
    def configs(self) -> Tuple[CollectionConfig, ...]:
        return self.configuration.collections

    @property
    def backfiller(self) -> BackfillEngine:
        if self.source is None:
            raise SyncError("Backfill needs a document source")
        return BackfillEngine(
            self.source,
            self.coercion,
            self.warehouse,
            page_size=self.settings.backfill_page_size,
            max_workers=self.settings.page_workers,
        )

    def initialize_all(self) -> List[Dict]:
        """Create tables (and backfill when a document source is available)."""
        if self.source is not None:
            return self.backfiller.initialize_all(self.configs)

        results = []
        for config in self.configs:
            try:
                self.warehouse.ensure_tables(config)
                if config.backfill:
                    logger.warning(f"No document source: skipping backfill for {config.id}")
                results.append({"config_id": config.id, "status": "success", "backfill": []})
            except Exception as e:
                logger.error(f"✗ Failed to initialize {config.id}: {e}", extra={"config_id": config.id})
                results.append({"config_id": config.id, "status": "failed", "error": str(e)})
        return results

    def consolidate_all(self) -> List[Dict]:
        return self.consolidator.run_all(self.configs)

    def close(self):
        disconnect = getattr(self.warehouse, "disconnect", None)
        if disconnect:
            disconnect()
