"""
Tests for api/services/snapshot_service.py.
"""

import asyncio
import json

import pytest

from api.services.snapshot_service import (
    BACKUP_FILE_PREFIX,
    SNAPSHOT_VERSION,
    export_snapshot,
    import_snapshot,
    resolve_backup_dir,
    seed_default_accounts,
    write_backup,
)
from db.errors import StorageError, ValidationError
from db.schema_constants import USER_ACCOUNTS_STORE


class TestExportImport:
    def test_export_envelope(self, storage):
        asyncio.run(storage.upsert("legislators", {"id": "L-1"}))

        snapshot = asyncio.run(export_snapshot(storage))

        assert snapshot["version"] == SNAPSHOT_VERSION
        assert snapshot["timestamp"].endswith("Z")
        assert snapshot["data"] == {"legislators": [{"id": "L-1"}]}

    def test_import_replays_upserts(self, storage):
        payload = {
            "version": SNAPSHOT_VERSION,
            "timestamp": "2026-01-01T00:00:00Z",
            "data": {
                "legislators": [{"id": "L-1"}, {"id": "L-2"}],
                "committees": [{"id": "C-1"}],
            },
        }

        result = asyncio.run(import_snapshot(storage, payload))

        assert result.imported == 3
        assert result.stores == {"legislators": 2, "committees": 1}
        assert len(asyncio.run(storage.list_by_collection("legislators"))) == 2

    def test_import_is_idempotent(self, storage):
        payload = {"legislators": [{"id": "L-1", "name": "A"}]}

        asyncio.run(import_snapshot(storage, payload))
        asyncio.run(import_snapshot(storage, payload))

        assert asyncio.run(storage.list_by_collection("legislators")) == [{"id": "L-1", "name": "A"}]

    def test_export_then_import_restores_state(self, storage, fake_pool):
        asyncio.run(storage.upsert("legislators", {"id": "L-1"}))
        asyncio.run(storage.upsert("committees", {"id": "C-1"}))
        snapshot = asyncio.run(export_snapshot(storage))

        fake_pool.rows.clear()
        asyncio.run(import_snapshot(storage, snapshot))

        assert asyncio.run(storage.export_all()) == snapshot["data"]

    @pytest.mark.parametrize(
        "payload",
        [
            ["not", "an", "object"],
            {"legislators": {"id": "L-1"}},
            {"legislators": [{"id": "L-1"}, {"name": "missing id"}]},
            {"bad/name": [{"id": "x"}]},
        ],
    )
    def test_malformed_import_writes_nothing(self, storage, fake_pool, payload):
        with pytest.raises(ValidationError):
            asyncio.run(import_snapshot(storage, payload))

        assert fake_pool.rows == {}

    def test_import_outside_whitelist_writes_nothing(self, storage, fake_pool):
        payload = {"legislators": [{"id": "L-1"}], "secrets": [{"id": "s1"}]}

        with pytest.raises(ValidationError, match="Unknown store"):
            asyncio.run(import_snapshot(storage, payload, allowed={"legislators"}))

        assert fake_pool.rows == {}


class TestBackup:
    def test_resolve_backup_dir(self, tmp_path):
        root = tmp_path / "backups"

        assert resolve_backup_dir(str(root), None) == root.resolve()
        assert resolve_backup_dir(str(root), "daily") == (root / "daily").resolve()

    @pytest.mark.parametrize("requested", ["..", "../elsewhere", "/etc"])
    def test_escaping_paths_are_rejected(self, tmp_path, requested):
        with pytest.raises(ValidationError):
            resolve_backup_dir(str(tmp_path / "backups"), requested)

    def test_write_backup_exports_fresh_snapshot(self, storage, tmp_path):
        asyncio.run(storage.upsert("legislators", {"id": "L-1"}))

        path = asyncio.run(write_backup(storage, str(tmp_path / "backups"), directory="daily"))

        assert path.parent == (tmp_path / "backups" / "daily").resolve()
        assert path.name.startswith(BACKUP_FILE_PREFIX)
        written = json.loads(path.read_text(encoding="utf-8"))
        assert written["data"] == {"legislators": [{"id": "L-1"}]}

    def test_write_backup_with_supplied_data(self, storage, tmp_path, fake_pool):
        data = {"version": SNAPSHOT_VERSION, "data": {"x": [{"id": 1}]}}

        path = asyncio.run(write_backup(storage, str(tmp_path), data=data))

        assert json.loads(path.read_text(encoding="utf-8")) == data

    def test_unwritable_root(self, storage, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError, match="Could not write backup"):
            asyncio.run(write_backup(storage, str(blocker)))


class TestSeed:
    def test_seeds_admin_account(self, storage):
        count = asyncio.run(seed_default_accounts(storage))

        accounts = asyncio.run(storage.list_by_collection(USER_ACCOUNTS_STORE))
        assert count == 1
        assert [account["userId"] for account in accounts] == ["admin"]

    def test_seed_twice_keeps_one_copy(self, storage):
        asyncio.run(seed_default_accounts(storage))
        asyncio.run(seed_default_accounts(storage))

        assert len(asyncio.run(storage.list_by_collection(USER_ACCOUNTS_STORE))) == 1
