import json
from datetime import timedelta

from docsync.processing.checkpoints import JsonCheckpointStore

from conftest import BASE_TIME


def test_missing_checkpoint(checkpoints):
    assert checkpoints.load("users") is None


def test_advance_and_load(checkpoints, tmp_path):
    checkpoints.advance("users", BASE_TIME, {"inserted": 3})

    assert checkpoints.load("users") == BASE_TIME
    stored = json.loads((tmp_path / "checkpoints" / "test-users.json").read_text())
    assert stored["lastRunDate"] == "2024-01-01T00:00:00.000Z"
    assert stored["lastRun"] == {"inserted": 3}


def test_never_moves_backward(checkpoints):
    later = BASE_TIME + timedelta(hours=1)
    checkpoints.advance("users", later)

    assert checkpoints.advance("users", BASE_TIME) == later
    assert checkpoints.load("users") == later


def test_checkpoints_are_per_instance_and_config(tmp_path):
    a = JsonCheckpointStore(tmp_path, "blue")
    b = JsonCheckpointStore(tmp_path, "green")
    a.advance("users", BASE_TIME)

    assert b.load("users") is None
    assert a.load("orders") is None


def test_unreadable_checkpoint_is_ignored(tmp_path):
    (tmp_path / "test-users.json").write_text('{"lastRunDate": "garbage"}')

    assert JsonCheckpointStore(tmp_path, "test").load("users") is None
