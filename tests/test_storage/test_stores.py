"""
Keyed Store Tests.

Covers the get/set/delete contract on both backends, transaction flush
batching, JSON persistence and failure degradation.
"""

import json

import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from propintel.config import Settings
from propintel.exceptions import ConfigurationError
from propintel.storage import InMemoryStore, JsonFileStore, open_store


records_strategy = st.lists(
    st.fixed_dictionaries({
        "id": st.text(alphabet="abcdefghij0123456789", min_size=1, max_size=8),
        "value": st.integers(min_value=-1000, max_value=1000),
        "label": st.text(max_size=12),
    }),
    max_size=15,
    unique_by=lambda r: r["id"],
)


class TestContract:
    """Shared get/set/delete behaviour."""

    @pytest.fixture(params=["memory", "json"])
    def store(self, request, tmp_path):
        if request.param == "memory":
            return InMemoryStore("things")
        return JsonFileStore(tmp_path / "things.json")

    def test_get_missing_returns_none(self, store):
        assert store.get("nope") is None

    def test_set_then_get(self, store):
        store.set("a", {"value": 1})
        assert store.get("a") == {"value": 1, "id": "a"}

    def test_get_returns_copy(self, store):
        store.set("a", {"value": 1})
        record = store.get("a")
        record["value"] = 99
        assert store.get("a")["value"] == 1

    def test_delete(self, store):
        store.set("a", {"value": 1})
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert "a" not in store

    def test_len_keys_values(self, store):
        store.set("a", {"value": 1})
        store.set("b", {"value": 2})
        assert len(store) == 2
        assert set(store.keys()) == {"a", "b"}
        assert sorted(r["value"] for r in store.values()) == [1, 2]

    def test_replace_all(self, store):
        store.set("old", {"value": 0})
        store.replace_all([{"id": "x", "value": 1}, {"id": "y", "value": 2}])
        assert set(store.keys()) == {"x", "y"}


class TestTransactions:
    """Flush batching."""

    def test_each_mutation_flushes_outside_transaction(self):
        store = InMemoryStore()
        store.set("a", {})
        store.set("b", {})
        assert store.flush_count == 2

    def test_transaction_flushes_once(self):
        store = InMemoryStore()
        with store.transaction():
            store.set("a", {})
            store.set("b", {})
            store.delete("a")
        assert store.flush_count == 1

    def test_nested_transaction_flushes_at_outermost_exit(self):
        store = InMemoryStore()
        with store.transaction():
            with store.transaction():
                store.set("a", {})
            assert store.flush_count == 0
        assert store.flush_count == 1

    def test_read_only_transaction_does_not_flush(self):
        store = InMemoryStore()
        with store.transaction():
            store.get("a")
        assert store.flush_count == 0


class TestJsonFileStore:
    """Persistence format and failure handling."""

    def test_writes_pretty_printed_array(self, tmp_path):
        path = tmp_path / "regional-knowledge.json"
        store = JsonFileStore(path)
        store.set("city_malaga", {"region_name": "Málaga"})

        text = path.read_text(encoding="utf-8")
        assert text.startswith("[\n  {")
        assert "Málaga" in text
        assert json.loads(text) == [{"region_name": "Málaga", "id": "city_malaga"}]

    def test_reopen_reads_records(self, tmp_path):
        path = tmp_path / "c.json"
        JsonFileStore(path).set("a", {"value": 1})
        assert JsonFileStore(path).get("a") == {"value": 1, "id": "a"}

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileStore(path)
        assert len(store) == 0

    def test_non_array_payload_loads_empty(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text('{"id": "a"}', encoding="utf-8")
        assert len(JsonFileStore(path)) == 0

    def test_records_without_key_are_skipped(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text('[{"id": "a"}, {"value": 2}]', encoding="utf-8")
        assert JsonFileStore(path).keys() == ["a"]

    def test_unwritable_target_keeps_memory_state(self, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("file, not a directory", encoding="utf-8")
        store = JsonFileStore(blocker / "c.json")

        store.set("a", {"value": 1})

        assert store.get("a") == {"value": 1, "id": "a"}

    def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileStore(tmp_path / "c.json")
        store.set("a", {"value": 1})
        assert [p.name for p in tmp_path.iterdir()] == ["c.json"]

    def test_reload_rereads_file(self, tmp_path):
        path = tmp_path / "c.json"
        store = JsonFileStore(path)
        store.set("a", {"value": 1})
        path.write_text('[{"id": "b", "value": 2}]', encoding="utf-8")

        store.reload()

        assert store.keys() == ["b"]

    @hyp_settings(max_examples=50, deadline=None)
    @given(records=records_strategy)
    def test_load_then_save_is_idempotent(self, tmp_path_factory, records):
        """Loading and saving without mutations keeps the same records."""
        path = tmp_path_factory.mktemp("idem") / "c.json"
        path.write_text(json.dumps(records, indent=2, ensure_ascii=False), encoding="utf-8")

        store = JsonFileStore(path)
        with store.transaction():
            store.replace_all(store.values())

        saved = json.loads(path.read_text(encoding="utf-8"))
        key = lambda r: r["id"]
        assert sorted(saved, key=key) == sorted(records, key=key)


class TestOpenStore:
    """Backend selection."""

    def test_memory_backend(self, tmp_path):
        store = open_store("ab-tests", Settings(storage_backend="memory", data_dir=tmp_path))
        assert isinstance(store, InMemoryStore)
        assert store.name == "ab-tests"

    def test_json_backend_uses_data_dir(self, tmp_path):
        store = open_store("ab-tests", Settings(storage_backend="json", data_dir=tmp_path))
        assert isinstance(store, JsonFileStore)
        assert store.path == tmp_path / "ab-tests.json"

    def test_unknown_backend_raises(self, tmp_path):
        with pytest.raises(ConfigurationError):
            open_store("ab-tests", Settings(storage_backend="redis", data_dir=tmp_path))
