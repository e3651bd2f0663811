"""
Ingestion Connectors
====================

Warehouse, document store and transform webhook connectors.
"""

from .document_source import DocumentSource, MemoryDocumentSource
from .memory_warehouse import MemoryWarehouse
from .postgres_warehouse import PostgresWarehouse
from .transform_webhook import TransformWebhookClient
from .warehouse import Warehouse

__all__ = [
    "DocumentSource",
    "MemoryDocumentSource",
    "MemoryWarehouse",
    "PostgresWarehouse",
    "TransformWebhookClient",
    "Warehouse",
]
