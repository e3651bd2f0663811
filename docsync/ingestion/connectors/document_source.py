"""
Document Source
===============

Read side of the document store, as needed by backfill: cursor-paginated
listing of one collection, or of every same-named subcollection
(collection group).

MemoryDocumentSource serves documents from memory, e.g. an export file:

    {"path": "users/u1", "data": {"email": "a@b.com"}}      (one per line)
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union, runtime_checkable

from docsync.config.paths import split_path
from docsync.models import DocumentSnapshot

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentSource(Protocol):
    """
    Cursor-paginated document listing.

    Domain expectations:
    - Results are ordered by a stable key (document path).
    - start_at is inclusive: the cursor document is the first result.
    """

    def list_documents(
        self,
        collection_path: str,
        limit: int,
        start_at: Optional[DocumentSnapshot] = None
    ) -> List[DocumentSnapshot]:
        ...

    def list_collection_group(
        self,
        collection_id: str,
        limit: int,
        start_at: Optional[DocumentSnapshot] = None
    ) -> List[DocumentSnapshot]:
        ...


class MemoryDocumentSource:
    """DocumentSource over an in-memory set of documents."""

    def __init__(self, documents: Optional[Iterable[DocumentSnapshot]] = None):
        self._documents: Dict[str, DocumentSnapshot] = {}
        for doc in documents or []:
            self.add(doc)

    def __len__(self) -> int:
        return len(self._documents)

    def add(self, doc: DocumentSnapshot) -> None:
        self._documents["/".join(split_path(doc.path))] = doc

    def put(self, path: str, data: Dict[str, Any]) -> DocumentSnapshot:
        segments = split_path(path)
        doc = DocumentSnapshot(id=segments[-1], path="/".join(segments), fields=dict(data))
        self.add(doc)
        return doc

    @classmethod
    def from_jsonl(cls, path: Union[str, Path]) -> "MemoryDocumentSource":
        """Load an export with one {"path": ..., "data": {...}} object per line."""
        source = cls()
        with open(path, 'r') as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                entry = json.loads(line)
                if "path" not in entry:
                    raise ValueError(f"{path}:{line_number}: document is missing 'path'")
                source.put(entry["path"], entry.get("data") or {})
        logger.info(f"Loaded {len(source)} documents from {path}")
        return source

    @staticmethod
    def _page(
        docs: List[DocumentSnapshot],
        limit: int,
        start_at: Optional[DocumentSnapshot]
    ) -> List[DocumentSnapshot]:
        docs = sorted(docs, key=lambda d: d.path)
        if start_at is not None:
            docs = [d for d in docs if d.path >= start_at.path]
        return docs[:limit]

    def list_documents(
        self,
        collection_path: str,
        limit: int,
        start_at: Optional[DocumentSnapshot] = None
    ) -> List[DocumentSnapshot]:
        wanted = "/".join(split_path(collection_path))
        docs = [d for d in self._documents.values() if d.collection_path == wanted]
        return self._page(docs, limit, start_at)

    def list_collection_group(
        self,
        collection_id: str,
        limit: int,
        start_at: Optional[DocumentSnapshot] = None
    ) -> List[DocumentSnapshot]:
        docs = [
            d for d in self._documents.values()
            if split_path(d.collection_path)[-1:] == [collection_id]
        ]
        return self._page(docs, limit, start_at)
