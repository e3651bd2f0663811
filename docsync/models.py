"""
Data Model
==========

Records exchanged between the DocSync components.

- DocumentSnapshot / ChangeEvent: what the document store hands us
- ChangeRecord: one append-only tracker log entry
- ReconciliationPlan: the inserts/updates/deletes one consolidation applies
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from docsync.config.paths import split_path


class ChangeType(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class DocumentSnapshot:
    """
    A document as read from the document store.

    `path` is the full document path ("orgs/o1/members/m1"); `fields` is
    the document body, absent (None) when the document does not exist.
    """
    id: str
    path: str = ""
    fields: Optional[Dict[str, Any]] = None
    exists: bool = True

    def data(self) -> Dict[str, Any]:
        return dict(self.fields or {})

    @property
    def collection_path(self) -> str:
        return "/".join(split_path(self.path)[:-1])

    @property
    def parent_id(self) -> Optional[str]:
        """Id of the document owning this document's collection, if nested."""
        segments = split_path(self.path)
        return segments[-3] if len(segments) >= 4 else None

    @classmethod
    def missing(cls, document_id: str = "", path: str = "") -> "DocumentSnapshot":
        return cls(id=document_id, path=path, fields=None, exists=False)


@dataclass(frozen=True)
class ChangeEvent:
    """A single document write: state before and after, plus its path."""
    before: DocumentSnapshot
    after: DocumentSnapshot
    full_path: str

    @property
    def document_id(self) -> str:
        segments = split_path(self.full_path)
        return self.after.id or self.before.id or (segments[-1] if segments else "")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ChangeEvent":
        """
        Build from a JSON payload:
            {"fullPath": "users/u1", "before": {...} | null, "after": {...} | null}

        A side may be a bare document body, null (does not exist), or an
        explicit {"exists": bool, "data": {...}} object.
        """
        full_path = payload.get("fullPath") or payload.get("full_path")
        if not full_path:
            raise ValueError("Change event is missing 'fullPath'")
        document_id = split_path(full_path)[-1]
        return cls(
            before=_snapshot_from(payload.get("before"), document_id, full_path),
            after=_snapshot_from(payload.get("after"), document_id, full_path),
            full_path=full_path,
        )


def _snapshot_from(side: Any, document_id: str, path: str) -> DocumentSnapshot:
    if side is None:
        return DocumentSnapshot.missing(document_id, path)
    if not isinstance(side, dict):
        raise ValueError("Change event side must be an object or null")
    if "exists" in side or "data" in side:
        if not side.get("exists", True):
            return DocumentSnapshot.missing(document_id, path)
        return DocumentSnapshot(
            id=side.get("id", document_id), path=path, fields=side.get("data") or {}
        )
    return DocumentSnapshot(id=document_id, path=path, fields=side)


@dataclass(frozen=True)
class ChangeRecord:
    change_type: ChangeType
    timestamp: datetime
    document_id: str
    # Coerced column values; empty for DELETED
    values: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReconciliationPlan:
    """Row-level changes for the main table, applied in one transaction."""
    inserts: List[Dict[str, Any]] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)
    # documentId + the non-null aggregate values to write over the row
    updates: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.deletes or self.updates)
