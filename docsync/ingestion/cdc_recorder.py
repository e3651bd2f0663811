"""
CDC Recorder - Document Change Capture
======================================

Turns document write notifications into tracker log entries.

Features:
- CREATED / UPDATED / DELETED detection from before/after existence
- Path -> collection config resolution with parentId capture
- Field coercion of the "after" document
- One append per event; failures are logged and the event is dropped

Usage:
    docsync record collections/ --events events.jsonl
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from docsync.config.resolver import ConfigResolver, ResolvedPath
from docsync.errors import NoMatchingConfig
from docsync.ingestion.connectors.warehouse import Warehouse
from docsync.models import ChangeEvent, ChangeRecord, ChangeType
from docsync.observability.structured_logger import log_context, new_trace_id
from docsync.processing.coercion import FieldCoercionEngine, build_document_id
from docsync.processing.table_schema import tracker_row
from docsync.processing.utils import utc_now

logger = logging.getLogger(__name__)


def classify(event: ChangeEvent) -> Optional[ChangeType]:
    """Change kind from before/after existence; None when neither side exists."""
    before, after = event.before.exists, event.after.exists
    if not before and after:
        return ChangeType.CREATED
    if before and after:
        return ChangeType.UPDATED
    if before and not after:
        return ChangeType.DELETED
    return None


class ChangeEventRecorder:
    """
    Records document changes into per-collection tracker logs.

    Independent invocations share only the immutable configuration set,
    so events for different documents may be handled concurrently.
    """

    def __init__(
        self,
        resolver: ConfigResolver,
        coercion: FieldCoercionEngine,
        warehouse: Warehouse,
        clock: Callable[[], datetime] = utc_now
    ):
        self.resolver = resolver
        self.coercion = coercion
        self.warehouse = warehouse
        self.clock = clock

    def build_record(
        self,
        event: ChangeEvent,
        change_type: ChangeType,
        resolved: ResolvedPath
    ) -> ChangeRecord:
        """
        Build the tracker entry for an event without storing it.

        Raises:
            TransformWebhookError: the transform webhook failed
        """
        config = resolved.config

        if change_type == ChangeType.DELETED:
            data = {"parentId": resolved.parent_id} if resolved.parent_id else {}
            return ChangeRecord(
                change_type=change_type,
                timestamp=self.clock(),
                document_id=build_document_id(event.document_id, data, config),
            )

        data = event.after.data()
        if resolved.parent_id:
            data["parentId"] = resolved.parent_id

        values = self.coercion.coerce(data, event.document_id, config)
        return ChangeRecord(
            change_type=change_type,
            timestamp=self.clock(),
            document_id=values["documentId"],
            values=values,
        )

    def handle(self, event: ChangeEvent) -> Optional[ChangeRecord]:
        """
        Record one change event; never raises.

        Returns:
            The appended record, or None when the event was ignored or dropped
        """
        with log_context(path=event.full_path, trace_id=new_trace_id()):
            try:
                change_type = classify(event)
                if change_type is None:
                    logger.debug(f"Ignoring no-op write on {event.full_path}")
                    return None

                resolved = self.resolver.resolve(event.full_path)
                config = resolved.config
                record = self.build_record(event, change_type, resolved)
                self.warehouse.append_change(config, tracker_row(record, config))

            except NoMatchingConfig as e:
                logger.warning(f"⚠ {e}; event dropped", extra={"path": event.full_path})
                return None
            except Exception as e:
                logger.error(
                    f"✗ Failed to record change on {event.full_path}: {e}",
                    exc_info=True,
                    extra={"path": event.full_path}
                )
                return None

            logger.info(
                f"✓ {record.change_type.value} {record.document_id} -> {config.tracker_table_id}",
                extra={"config_id": config.id, "document_id": record.document_id}
            )
            return record

    def handle_all(self, events: Iterable[ChangeEvent]) -> int:
        """Record events in order; returns how many were recorded."""
        recorded = 0
        for event in events:
            if self.handle(event) is not None:
                recorded += 1
        return recorded
