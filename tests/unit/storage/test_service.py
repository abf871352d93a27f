"""ApplicationStoreのユニットテスト。"""

import json
from pathlib import Path

import pytest

from berth.models.app import ApplicationRecord, ApplicationState
from berth.models.errors import ApplicationNotFoundError, StorageError, StoreParseError
from berth.storage.service import ApplicationStore


def _record(app_id: str, state: ApplicationState = "RUNNING", version: str = "1.0.0") -> ApplicationRecord:
    return ApplicationRecord(
        id=app_id,
        version=version,
        timestamp=1700000000,
        state=state,
        app_name="app1",
        compose_root_path=f"/tmp/{app_id}",
        value_file_paths=["/tmp/values.yaml"],
    )


class TestApplicationStore:
    def test_list_without_store_file(self, store: ApplicationStore) -> None:
        assert store.list_applications() == []

    @pytest.mark.parametrize("content", ["", "  \n"])
    def test_blank_store_file_raises(self, store: ApplicationStore, tmp_home: Path, content: str) -> None:
        """切り詰められたストアファイルを空リストとして扱わない。"""
        tmp_home.mkdir(parents=True)
        (tmp_home / "config.json").write_text(content, encoding="utf-8")
        with pytest.raises(StoreParseError):
            store.list_applications()
        with pytest.raises(StoreParseError):
            store.upsert(_record("app-a"))
        assert (tmp_home / "config.json").read_text(encoding="utf-8") == content

    def test_upsert_and_get(self, store: ApplicationStore) -> None:
        store.upsert(_record("app-a"))
        loaded = store.get_by_id("app-a")
        assert loaded == _record("app-a")

    def test_upsert_replaces_and_moves_to_end(self, store: ApplicationStore) -> None:
        store.upsert(_record("app-a"))
        store.upsert(_record("app-b"))
        store.upsert(_record("app-a", version="2.0.0"))

        records = store.list_applications()
        assert [r.id for r in records] == ["app-b", "app-a"]
        assert records[1].version == "2.0.0"

    def test_store_file_is_json_array(self, store: ApplicationStore) -> None:
        store.upsert(_record("app-a"))
        data = json.loads(store.store_file.read_text(encoding="utf-8"))
        assert isinstance(data, list)
        assert data[0]["id"] == "app-a"
        assert data[0]["state"] == "RUNNING"
        assert data[0]["value_file_paths"] == ["/tmp/values.yaml"]

    def test_no_temporary_files_left(self, store: ApplicationStore, tmp_home: Path) -> None:
        store.upsert(_record("app-a"))
        store.upsert(_record("app-b"))
        assert sorted(p.name for p in tmp_home.iterdir() if p.name.startswith(".config-")) == []

    def test_get_missing_raises(self, store: ApplicationStore) -> None:
        with pytest.raises(ApplicationNotFoundError) as exc_info:
            store.get_by_id("missing")
        assert exc_info.value.app_ids == ["missing"]

    def test_exists(self, store: ApplicationStore) -> None:
        store.upsert(_record("app-a"))
        assert store.exists("app-a")
        assert not store.exists("app-b")

    def test_exists_false_on_corrupt_store(self, store: ApplicationStore, tmp_home: Path) -> None:
        tmp_home.mkdir(parents=True)
        (tmp_home / "config.json").write_text("{not json", encoding="utf-8")
        assert not store.exists("app-a")

    def test_corrupt_store_raises_on_list(self, store: ApplicationStore, tmp_home: Path) -> None:
        tmp_home.mkdir(parents=True)
        (tmp_home / "config.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(StoreParseError):
            store.list_applications()

    def test_update_state_only_changes_state(self, store: ApplicationStore) -> None:
        store.upsert(_record("app-a", state="STARTING"))
        store.update_state("app-a", "ERROR")

        loaded = store.get_by_id("app-a")
        assert loaded.state == "ERROR"
        assert loaded.model_dump(exclude={"state"}) == _record("app-a").model_dump(exclude={"state"})

    def test_update_state_missing_raises(self, store: ApplicationStore) -> None:
        with pytest.raises(ApplicationNotFoundError):
            store.update_state("missing", "ERROR")

    def test_delete_removes_record_and_directory(self, store: ApplicationStore) -> None:
        store.upsert(_record("app-a"))
        store.upsert(_record("app-b"))
        app_dir = store.get_app_dir("app-a")
        (app_dir / "sub").mkdir(parents=True)
        (app_dir / "sub" / "file.txt").write_text("x", encoding="utf-8")

        store.delete_by_id("app-a")

        assert [r.id for r in store.list_applications()] == ["app-b"]
        assert not app_dir.exists()

    def test_delete_without_directory(self, store: ApplicationStore) -> None:
        store.upsert(_record("app-a"))
        store.delete_by_id("app-a")
        assert store.list_applications() == []

    def test_delete_missing_raises(self, store: ApplicationStore) -> None:
        store.upsert(_record("app-a"))
        with pytest.raises(ApplicationNotFoundError):
            store.delete_by_id("missing")
        assert store.exists("app-a")

    def test_get_app_dir(self, store: ApplicationStore, tmp_home: Path) -> None:
        assert store.get_app_dir("app-a") == tmp_home / "app-a"

    @pytest.mark.parametrize(
        "app_id",
        ["../../../etc/passwd", "a/b", "..", "", "config.json", "config.json.lock", ".config-abc.json", ".hidden"],
    )
    def test_directory_traversal_prevention(self, store: ApplicationStore, app_id: str) -> None:
        with pytest.raises(StorageError):
            store.get_app_dir(app_id)
