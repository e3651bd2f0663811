"""
DocSync Observability Module
============================

Structured logging for the sync pipeline.

Usage:
    from docsync.observability import setup_logging, log_context, new_trace_id

    setup_logging("INFO", json_format=True)
    with log_context(config_id="users", trace_id=new_trace_id()):
        logger.info("Consolidation started")
"""

from .structured_logger import JsonFormatter, log_context, new_trace_id, setup_logging

__all__ = ["JsonFormatter", "log_context", "new_trace_id", "setup_logging"]
