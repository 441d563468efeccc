"""Tests for the local mirror backends and the default dataset."""

from datetime import date

import pytest

from app.services.default_data import default_records
from app.services.local_storage import (
    FileLocalStorage,
    MemoryLocalStorage,
    collection_key,
    get_local_storage,
)


def test_collection_key():
    assert collection_key("revo_mock", "sites") == "revo_mock_sites"


@pytest.fixture(params=["memory", "file"])
def storage(request, tmp_path):
    if request.param == "memory":
        return MemoryLocalStorage()
    return FileLocalStorage(str(tmp_path / "local_store"))


class TestBackends:

    def test_missing_key_returns_default(self, storage):
        assert storage.get("revo_mock_sites") is None
        assert storage.get("revo_mock_sites", []) == []

    def test_set_then_get(self, storage):
        storage.set("revo_mock_sites", [{"id": "local_1", "name": "Chantier"}])
        assert storage.get("revo_mock_sites") == [{"id": "local_1", "name": "Chantier"}]

    def test_remove(self, storage):
        storage.set("revo_local_limit", 5)
        storage.remove("revo_local_limit")
        storage.remove("revo_local_limit")
        assert storage.get("revo_local_limit") is None

    def test_keys(self, storage):
        storage.set("revo_mock_sites", [])
        storage.set("revo_mock_leads", [])
        assert sorted(storage.keys()) == ["revo_mock_leads", "revo_mock_sites"]


class TestCorruptEntries:

    def test_memory_corrupt_entry_returns_default(self):
        storage = MemoryLocalStorage()
        storage.set_raw("revo_mock_sites", "[{broken")
        assert storage.get("revo_mock_sites", "fallback") == "fallback"

    def test_file_corrupt_entry_returns_default(self, tmp_path):
        storage = FileLocalStorage(str(tmp_path))
        (tmp_path / "revo_mock_sites.json").write_text("[{broken", encoding="utf-8")
        assert storage.get("revo_mock_sites", "fallback") == "fallback"

    def test_file_write_leaves_no_temp_file(self, tmp_path):
        storage = FileLocalStorage(str(tmp_path))
        storage.set("revo_mock_sites", [{"id": "a"}])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["revo_mock_sites.json"]


class TestAppStorage:

    def test_testing_config_uses_memory(self, app):
        assert isinstance(get_local_storage(app), MemoryLocalStorage)

    def test_storage_is_cached_on_the_app(self, app):
        assert get_local_storage(app) is get_local_storage(app)


class TestDefaultData:

    @pytest.mark.parametrize("collection", ["sites", "clients", "leads", "templates", "teams"])
    def test_every_collection_has_defaults(self, collection):
        records = default_records(collection)
        assert records
        assert all(r["id"].startswith("seed_") for r in records)

    def test_unknown_collection_is_empty(self):
        assert default_records("invoices") == []

    def test_site_dates_follow_today(self):
        sites = {s["id"]: s for s in default_records("sites", today=date(2025, 6, 10))}
        assert sites["seed_site_1"]["start_date"] == "2025-05-31"
        assert sites["seed_site_1"]["end_date"] == "2025-06-30"

    def test_returns_fresh_copies(self):
        first = default_records("sites")
        first[0]["name"] = "changed"
        assert default_records("sites")[0]["name"] != "changed"
