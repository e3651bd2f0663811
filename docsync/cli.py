#!/usr/bin/env python3
"""
DocSync Runner
==============

CLI to run the sync pipeline.

Usage:
    docsync validate-config collections/          # Load and validate configs only
    docsync init collections/ --documents export.jsonl
                                                  # Create tables, backfill from an export
    docsync consolidate collections/              # One scheduled consolidation run
    docsync record collections/ --events events.jsonl
                                                  # Replay change events
"""

import argparse
import json
import sys
from typing import Dict, List, Optional

from docsync.app import SyncApp
from docsync.config.collection_config import load_sync_configuration
from docsync.ingestion.connectors.document_source import MemoryDocumentSource
from docsync.ingestion.connectors.memory_warehouse import MemoryWarehouse
from docsync.models import ChangeEvent
from docsync.observability.structured_logger import setup_logging


def _print_results(title: str, results: List[Dict]):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    for result in results:
        status_icon = {"success": "✓", "skipped": "⚠"}.get(result["status"], "✗")
        print(f"\n{status_icon} {result['config_id']}")
        print(f"    Status: {result['status']}")
        for key in ("window_start", "window_end", "entries", "documents", "inserted", "updated", "deleted"):
            if key in result:
                print(f"    {key}: {result[key]}")
        for backfill in result.get("backfill", []):
            print(f"    Backfill {backfill['target']}: {backfill['rows_inserted']} rows "
                  f"in {backfill['pages']} page(s), {backfill['rows_failed']} failed")
        if result.get("error"):
            print(f"    Error: {result['error']}")


def validate_config(config_path: str) -> bool:
    """Load configs and report rejections."""
    setup_logging("WARNING", json_format=False)
    configuration = load_sync_configuration(config_path)

    print("=" * 60)
    print("CONFIGURATION CHECK")
    print("=" * 60)
    for config in configuration.collections:
        print(f"✓ {config.id}: {', '.join(config.collection_paths)} -> "
              f"{config.dataset_id}.{config.table_id} ({len(config.fields)} fields)")
    for error in configuration.errors:
        print(f"✗ {error}")

    return not configuration.errors and bool(configuration.collections)


def _build_app(args, source=None) -> SyncApp:
    warehouse = MemoryWarehouse() if args.dry_run else None
    app = SyncApp.from_paths(args.config_path, args.settings, warehouse=warehouse, source=source)
    if args.dry_run:
        for config in app.configs:
            app.warehouse.ensure_tables(config)
    return app


def run_init(args) -> bool:
    source: Optional[MemoryDocumentSource] = None
    if args.documents:
        source = MemoryDocumentSource.from_jsonl(args.documents)

    app = _build_app(args, source)
    try:
        results = app.initialize_all()
    finally:
        app.close()

    _print_results("INITIALIZATION RESULTS", results)
    return all(r["status"] == "success" for r in results)


def run_consolidate(args) -> bool:
    app = _build_app(args)
    try:
        results = app.consolidate_all()
    finally:
        app.close()

    _print_results("CONSOLIDATION RESULTS", results)
    if args.output:
        with open(args.output, "w") as f:
            json.dump(results, f, indent=2, default=str)
        print(f"\nResults saved to: {args.output}")
    # Skipped runs are not failures: another run holds the lease
    return all(r["status"] in ("success", "skipped") for r in results)


def run_record(args) -> bool:
    app = _build_app(args)
    total = recorded = 0
    try:
        with open(args.events, "r") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                total += 1
                try:
                    event = ChangeEvent.from_dict(json.loads(line))
                except ValueError as e:
                    print(f"✗ {args.events}:{line_number}: invalid event: {e}")
                    continue
                if app.recorder.handle(event) is not None:
                    recorded += 1
    finally:
        app.close()

    print(f"\nRecorded {recorded}/{total} change events")
    return True


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="DocSync - document store to warehouse sync")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub):
        sub.add_argument("config_path", help="Collection config file or directory")
        sub.add_argument("--settings", default=None, help="Path to settings JSON file")
        sub.add_argument("--dry-run", action="store_true",
                         help="Use an in-memory warehouse instead of PostgreSQL")

    validate = subparsers.add_parser("validate-config", help="Validate collection configs")
    validate.add_argument("config_path", help="Collection config file or directory")

    init = subparsers.add_parser("init", help="Create tables and backfill")
    add_common(init)
    init.add_argument("--documents", default=None,
                      help="JSON-lines document export to backfill from")

    consolidate = subparsers.add_parser("consolidate", help="Run one consolidation pass")
    add_common(consolidate)
    consolidate.add_argument("--output", default=None, help="Write results JSON to this file")

    record = subparsers.add_parser("record", help="Replay change events from a JSON-lines file")
    add_common(record)
    record.add_argument("--events", required=True, help="JSON-lines change event file")

    args = parser.parse_args(argv)

    try:
        if args.command == "validate-config":
            success = validate_config(args.config_path)
        elif args.command == "init":
            success = run_init(args)
        elif args.command == "consolidate":
            success = run_consolidate(args)
        else:
            success = run_record(args)
    except Exception as e:
        print(f"\n✗ {args.command} failed: {e}")
        success = False

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
