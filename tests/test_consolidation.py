from datetime import timedelta
from unittest.mock import patch

import pandas as pd
import pytest

from docsync.errors import WarehouseError
from docsync.processing.consolidation import (
    ConsolidationEngine,
    aggregate_changes,
    plan_reconciliation,
)

from conftest import BASE_TIME, at, make_config, record_change

USERS_TRACKER = "firestore_sync.users_tracker"


@pytest.fixture
def engine(warehouse, checkpoints, clock):
    return ConsolidationEngine(warehouse, checkpoints, instance_id="test", retention_days=30, clock=clock)


def aggregate(warehouse, config, start, end):
    return aggregate_changes(config, warehouse.read_changes(config, end), start, end)


class TestAggregateChanges:

    def test_latest_non_null_value_per_field(self, warehouse, users_config):
        record_change(warehouse, users_config, "CREATED", "u1", at(1), email="a", name="A")
        record_change(warehouse, users_config, "UPDATED", "u1", at(2), email="b", name=None)

        result = aggregate(warehouse, users_config, BASE_TIME, at(10))

        assert len(result) == 1
        row = result.iloc[0]
        assert (row["documentId"], row["email"], row["name"]) == ("u1", "b", "A")
        assert (row["createdCount"], row["deletedCount"]) == (1, 0)

    def test_entries_before_latest_create_are_ignored(self, warehouse, users_config):
        record_change(warehouse, users_config, "CREATED", "u1", at(1), email="a", name="A")
        record_change(warehouse, users_config, "DELETED", "u1", at(2))
        record_change(warehouse, users_config, "CREATED", "u1", at(3), email="c", name=None)

        row = aggregate(warehouse, users_config, BASE_TIME, at(10)).iloc[0]

        assert row["email"] == "c"
        assert pd.isna(row["name"])
        # Counts cover the whole window
        assert (row["createdCount"], row["deletedCount"]) == (2, 1)

    def test_updates_without_a_create(self, warehouse, users_config):
        record_change(warehouse, users_config, "UPDATED", "u1", at(1), email="a", name=None)
        record_change(warehouse, users_config, "UPDATED", "u1", at(2), email=None, name="B")

        result = aggregate(warehouse, users_config, BASE_TIME, at(10))

        assert result["documentId"].tolist() == ["u1"]
        row = result.iloc[0]
        assert (row["email"], row["name"]) == ("a", "B")
        assert (row["createdCount"], row["deletedCount"]) == (0, 0)

    def test_window_is_half_open(self, warehouse, users_config):
        record_change(warehouse, users_config, "CREATED", "before", at(0), email="x")
        record_change(warehouse, users_config, "CREATED", "inside", at(5), email="y")
        record_change(warehouse, users_config, "CREATED", "at-end", at(10), email="z")

        result = aggregate(warehouse, users_config, at(5), at(10))

        assert result["documentId"].tolist() == ["inside"]

    def test_empty_log(self, warehouse, users_config):
        result = aggregate(warehouse, users_config, BASE_TIME, at(10))

        assert result.empty
        assert list(result.columns) == ["documentId", "createdCount", "deletedCount", "email", "name"]


class TestPlanReconciliation:

    def frame(self, *rows):
        return pd.DataFrame(
            rows, columns=["documentId", "createdCount", "deletedCount", "email", "name"]
        )

    def test_decisions(self, users_config):
        aggregates = self.frame(
            ("new", 1, 0, "n@x", None),
            ("created-and-deleted", 1, 1, "c@x", None),
            ("gone", 0, 1, None, None),
            ("changed", 0, 0, "e@x", None),
            ("untouched", 0, 0, None, None),
            ("tie-existing", 1, 1, "t@x", None),
        )
        existing = {"gone", "changed", "untouched", "tie-existing"}

        plan = plan_reconciliation(users_config, aggregates, existing)

        assert [row["documentId"] for row in plan.inserts] == ["new"]
        assert plan.deletes == ["gone"]
        assert [row["documentId"] for row in plan.updates] == ["changed", "tie-existing"]
        assert plan.updates[0] == {"documentId": "changed", "email": "e@x", "name": None}


class TestConsolidationEngine:

    def test_create_update_delete_nets_to_nothing(self, engine, warehouse, users_config):
        record_change(warehouse, users_config, "CREATED", "u1", at(1), email="a")
        record_change(warehouse, users_config, "UPDATED", "u1", at(2), email="b")
        record_change(warehouse, users_config, "DELETED", "u1", at(3))

        result = engine.run(users_config)

        assert result["status"] == "success"
        assert (result["inserted"], result["updated"], result["deleted"]) == (0, 0, 0)
        assert warehouse.rows(users_config) == {}

    def test_two_creates_insert_one_row(self, engine, warehouse, users_config):
        record_change(warehouse, users_config, "CREATED", "u1", at(1), email="a", name="A")
        record_change(warehouse, users_config, "CREATED", "u1", at(2), email="b", name=None)
        record_change(warehouse, users_config, "UPDATED", "u1", at(3), email=None, name="B")

        result = engine.run(users_config)

        assert result["inserted"] == 1
        assert result["entries"] == 3
        assert warehouse.rows(users_config) == {"u1": {"documentId": "u1", "email": "b", "name": "B"}}

    def test_first_run_sets_checkpoint_to_window_end(self, engine, checkpoints, users_config, clock):
        result = engine.run(users_config)

        assert result["status"] == "success"
        assert result["window_end"] == "2024-01-02T00:00:00.000Z"
        assert result["window_start"] == "1924-01-02T00:00:00.000Z"
        assert checkpoints.load(users_config.id) == clock()

    def test_rerun_without_new_entries_is_idempotent(self, engine, warehouse, checkpoints, users_config, clock):
        record_change(warehouse, users_config, "CREATED", "u1", at(1), email="a")
        engine.run(users_config)
        before = warehouse.rows(users_config)

        clock.advance(hours=1)
        result = engine.run(users_config)

        assert result["status"] == "success"
        assert result["documents"] == 0
        assert warehouse.rows(users_config) == before
        assert checkpoints.load(users_config.id) == clock()

    def test_update_keeps_existing_values_for_nulls(self, engine, warehouse, users_config, clock):
        warehouse.insert_rows(users_config, [{"documentId": "u1", "email": "old", "name": "keep"}])
        record_change(warehouse, users_config, "UPDATED", "u1", at(1), email="new", name=None)

        result = engine.run(users_config)

        assert result["updated"] == 1
        assert warehouse.rows(users_config)["u1"] == {"documentId": "u1", "email": "new", "name": "keep"}

    def test_updates_to_a_backfilled_row(self, engine, warehouse, users_config):
        warehouse.insert_rows(users_config, [{"documentId": "u1", "email": "old", "name": None}])
        record_change(warehouse, users_config, "UPDATED", "u1", at(1), email="new", name=None)
        record_change(warehouse, users_config, "UPDATED", "u1", at(2), email=None, name="N")

        result = engine.run(users_config)

        assert result["status"] == "success"
        assert result["updated"] == 1
        assert warehouse.rows(users_config)["u1"] == {"documentId": "u1", "email": "new", "name": "N"}

    def test_delete_removes_row(self, engine, warehouse, users_config):
        warehouse.insert_rows(users_config, [{"documentId": "u1", "email": "a", "name": None}])
        record_change(warehouse, users_config, "DELETED", "u1", at(1))

        result = engine.run(users_config)

        assert result["deleted"] == 1
        assert warehouse.rows(users_config) == {}

    def test_entry_at_window_end_waits_for_next_run(self, engine, warehouse, users_config, clock):
        record_change(warehouse, users_config, "CREATED", "u1", clock(), email="a")

        assert engine.run(users_config)["inserted"] == 0

        clock.advance(minutes=5)
        assert engine.run(users_config)["inserted"] == 1

    def test_incremental_window(self, engine, warehouse, users_config, clock):
        record_change(warehouse, users_config, "CREATED", "u1", at(1), email="a", name="A")
        engine.run(users_config)

        clock.advance(hours=1)
        record_change(warehouse, users_config, "UPDATED", "u1", clock() - timedelta(minutes=30), email="b")
        result = engine.run(users_config)

        assert (result["inserted"], result["updated"]) == (0, 1)
        assert warehouse.rows(users_config)["u1"] == {"documentId": "u1", "email": "b", "name": "A"}

    def test_failure_keeps_checkpoint(self, engine, warehouse, checkpoints, users_config):
        record_change(warehouse, users_config, "CREATED", "u1", at(1), email="a")

        with patch.object(warehouse, "apply_reconciliation", side_effect=WarehouseError("down")):
            result = engine.run(users_config)

        assert result["status"] == "failed"
        assert "down" in result["error"]
        assert checkpoints.load(users_config.id) is None
        assert warehouse.rows(users_config) == {}

        assert engine.run(users_config)["inserted"] == 1

    def test_concurrent_run_is_skipped(self, engine, warehouse, checkpoints, users_config):
        with warehouse.lease(engine.lease_key(users_config)) as acquired:
            assert acquired
            result = engine.run(users_config)

        assert result["status"] == "skipped"
        assert checkpoints.load(users_config.id) is None
        assert engine.run(users_config)["status"] == "success"

    def test_checkpoint_never_moves_back(self, engine, checkpoints, users_config, clock):
        engine.run(users_config)
        first = checkpoints.load(users_config.id)

        clock.advance(hours=-2)
        engine.run(users_config)

        assert checkpoints.load(users_config.id) == first

    def test_old_tracker_entries_are_purged(self, engine, warehouse, users_config, clock):
        record_change(warehouse, users_config, "CREATED", "old", clock() - timedelta(days=40), email="o")
        record_change(warehouse, users_config, "CREATED", "recent", at(1), email="r")

        result = engine.run(users_config)

        assert result["inserted"] == 2
        assert [e["documentId"] for e in warehouse.tracker[USERS_TRACKER]] == ["recent"]

    def test_purge_failure_does_not_fail_the_run(self, engine, warehouse, checkpoints, users_config):
        with patch.object(warehouse, "purge_changes", side_effect=WarehouseError("locked")):
            result = engine.run(users_config)

        assert result["status"] == "success"
        assert checkpoints.load(users_config.id) is not None

    def test_run_all_isolates_failures(self, engine, users_config):
        orphan = make_config(id="orphan", tableId="orphan")

        results = engine.run_all([orphan, users_config])

        assert [r["status"] for r in results] == ["failed", "success"]

    def test_array_and_json_columns(self, engine, warehouse, checkpoints):
        config = make_config(id="items", tableId="items", fields=[
            {"name": "ids", "type": "ARRAY", "arrayType": "INT64"},
            {"name": "meta", "type": "JSON"},
        ])
        warehouse.ensure_tables(config)
        record_change(warehouse, config, "CREATED", "i1", at(1), ids=[1, 2], meta='{"k":1}')

        assert warehouse.tracker["firestore_sync.items_tracker"][0]["ids"] == "1,2"

        engine.run(config)

        assert warehouse.rows(config)["i1"] == {"documentId": "i1", "ids": [1, 2], "meta": {"k": 1}}
