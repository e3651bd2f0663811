"""
DocSync Ingestion
=================

Getting document changes into the warehouse:
- cdc_recorder: change events -> tracker log entries
- backfill: existing documents -> main table (setup task)
- connectors: warehouse, document source, transform webhook
"""
