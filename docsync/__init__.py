"""
DocSync
=======

Change-data-capture pipeline that mirrors document store mutations into an
analytical warehouse table.

Components:
- config: collection configurations, path matching, transform registry
- processing: field coercion and tracker-log consolidation
- ingestion: change event recording, backfill, warehouse connectors
- observability: structured logging

Usage:
    from docsync import SyncApp

    app = SyncApp.from_paths("collections/", settings_path="settings.json")
    app.recorder.handle(event)        # on every document write
    app.consolidate_all()             # on the schedule
"""

__version__ = "1.0.0"

from .app import SyncApp

__all__ = ["SyncApp"]
