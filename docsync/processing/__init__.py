"""
Processing Module
=================

Field coercion and tracker-log consolidation for DocSync.

Stages:
- coercion: raw document -> typed column values
- table_schema: tracker/main table value encoding
- consolidation: tracker log -> deduplicated main table
- checkpoints: per-configuration consolidation watermarks
"""
