import logging
from datetime import datetime, timedelta, timezone

import pytest

from docsync.config.collection_config import parse_collection_config
from docsync.config.resolver import ConfigResolver
from docsync.ingestion.connectors.document_source import MemoryDocumentSource
from docsync.ingestion.connectors.memory_warehouse import MemoryWarehouse
from docsync.models import ChangeRecord, ChangeType
from docsync.processing.checkpoints import JsonCheckpointStore
from docsync.processing.coercion import FieldCoercionEngine
from docsync.processing.table_schema import tracker_row

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def make_config(**overrides):
    raw = {
        "id": "users",
        "collectionPaths": ["users"],
        "tableId": "users",
        "fields": [
            {"name": "email", "type": "STRING"},
            {"name": "name", "type": "STRING"},
        ],
    }
    raw.update(overrides)
    return parse_collection_config(raw)


def record_change(warehouse, config, change_type, document_id, timestamp, **values):
    record = ChangeRecord(
        change_type=ChangeType(change_type),
        timestamp=timestamp,
        document_id=document_id,
        values={"documentId": document_id, **values},
    )
    warehouse.append_change(config, tracker_row(record, config))


@pytest.fixture(autouse=True)
def reset_docsync_logger():
    yield
    package_logger = logging.getLogger("docsync")
    package_logger.handlers = []
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def clock():
    return FakeClock(BASE_TIME + timedelta(days=1))


@pytest.fixture
def users_config():
    return make_config()


@pytest.fixture
def members_config():
    return make_config(
        id="members",
        collectionPaths=["organizations/{orgId}/members"],
        collectionGroup="members",
        tableId="organization_members",
        includeParentIdInDocumentId=True,
        fields=[
            {"name": "parentId", "type": "STRING"},
            {"name": "role", "type": "STRING"},
        ],
    )


@pytest.fixture
def warehouse(users_config, members_config):
    wh = MemoryWarehouse()
    wh.ensure_tables(users_config)
    wh.ensure_tables(members_config)
    return wh


@pytest.fixture
def checkpoints(tmp_path):
    return JsonCheckpointStore(tmp_path / "checkpoints", "test")


@pytest.fixture
def coercion():
    return FieldCoercionEngine()


@pytest.fixture
def resolver(users_config, members_config):
    return ConfigResolver([users_config, members_config])


@pytest.fixture
def source():
    return MemoryDocumentSource()
