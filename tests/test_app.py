import json
from pathlib import Path

import pytest

from docsync.app import SyncApp
from docsync.cli import main
from docsync.config.collection_config import load_sync_configuration
from docsync.config.settings import SyncSettings
from docsync.errors import SyncError
from docsync.ingestion.connectors.document_source import MemoryDocumentSource
from docsync.ingestion.connectors.memory_warehouse import MemoryWarehouse
from docsync.models import ChangeEvent


EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DOCSYNC_DATABASE_URL", "DOCSYNC_INSTANCE_ID", "DOCSYNC_CHECKPOINT_DIR", "DOCSYNC_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "checkpoint_dir": str(tmp_path / "checkpoints"),
        "log_level": "WARNING",
        "log_json": False,
    }))
    return path


def load_events():
    with open(EXAMPLES / "events.jsonl") as f:
        return [ChangeEvent.from_dict(json.loads(line)) for line in f if line.strip()]


class TestSyncApp:

    def test_record_then_consolidate(self, tmp_path, clock):
        configuration = load_sync_configuration(EXAMPLES / "collections.json")
        warehouse = MemoryWarehouse()
        app = SyncApp(configuration, SyncSettings(checkpoint_dir=str(tmp_path)), warehouse, clock=clock)
        app.initialize_all()

        recorded = app.recorder.handle_all(load_events())
        clock.advance(minutes=1)
        results = app.consolidate_all()

        assert recorded > 0
        assert all(r["status"] == "success" for r in results)
        total_rows = sum(len(warehouse.rows(config)) for config in app.configs)
        assert total_rows > 0

    def test_initialize_with_source(self, tmp_path):
        configuration = load_sync_configuration(EXAMPLES / "collections.json")
        source = MemoryDocumentSource()
        source.put("users/u1", {"email": "A@B.COM", "age": "41"})
        warehouse = MemoryWarehouse()
        app = SyncApp(configuration, SyncSettings(checkpoint_dir=str(tmp_path)), warehouse, source=source)

        results = app.initialize_all()

        assert all(r["status"] == "success" for r in results)
        row = warehouse.rows(configuration.get("users"))["u1"]
        assert row["email"] == "a@b.com"
        assert row["age"] == 41.0

    def test_backfill_needs_a_source(self, tmp_path):
        app = SyncApp(load_sync_configuration(EXAMPLES / "collections.json"),
                      SyncSettings(checkpoint_dir=str(tmp_path)), MemoryWarehouse())

        with pytest.raises(SyncError):
            app.backfiller

    def test_postgres_needs_a_url(self):
        with pytest.raises(SyncError):
            SyncApp.from_paths(EXAMPLES / "collections.json", configure_logging=False)


class TestCli:

    def test_validate_config(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["validate-config", str(EXAMPLES / "collections.json")])

        assert exc.value.code == 0
        assert "✓ users" in capsys.readouterr().out

    def test_validate_config_reports_errors(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"id": "x"}))

        with pytest.raises(SystemExit) as exc:
            main(["validate-config", str(path)])

        assert exc.value.code == 1

    def test_record_dry_run(self, settings_file, capsys):
        with pytest.raises(SystemExit) as exc:
            main([
                "record", str(EXAMPLES / "collections.json"),
                "--events", str(EXAMPLES / "events.jsonl"),
                "--settings", str(settings_file),
                "--dry-run",
            ])

        assert exc.value.code == 0
        assert "Recorded" in capsys.readouterr().out

    def test_consolidate_dry_run_writes_results(self, settings_file, tmp_path):
        output = tmp_path / "results.json"

        with pytest.raises(SystemExit) as exc:
            main([
                "consolidate", str(EXAMPLES / "collections.json"),
                "--settings", str(settings_file),
                "--dry-run",
                "--output", str(output),
            ])

        assert exc.value.code == 0
        results = json.loads(output.read_text())
        assert {r["config_id"] for r in results} == {"users", "members"}
        assert (tmp_path / "checkpoints").is_dir()

    def test_init_dry_run_with_documents(self, settings_file, tmp_path):
        export = tmp_path / "export.jsonl"
        export.write_text('{"path": "users/u1", "data": {"email": "a@b.com"}}\n')

        with pytest.raises(SystemExit) as exc:
            main([
                "init", str(EXAMPLES / "collections.json"),
                "--settings", str(settings_file),
                "--documents", str(export),
                "--dry-run",
            ])

        assert exc.value.code == 0

    def test_missing_database_fails(self, settings_file):
        with pytest.raises(SystemExit) as exc:
            main(["consolidate", str(EXAMPLES / "collections.json"), "--settings", str(settings_file)])

        assert exc.value.code == 1
