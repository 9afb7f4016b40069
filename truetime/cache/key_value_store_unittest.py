import json
from typing import Dict, Optional

import pytest

from truetime.cache.key_value_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
)


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path) -> KeyValueStore:
    if request.param == "memory":
        return InMemoryKeyValueStore()
    return JsonFileKeyValueStore(tmp_path / "time_data.json")


class TestKeyValueStore:

    def test_absent_is_none(self, store) -> None:
        assert store.get("missing") is None

    def test_zero_is_not_absent(self, store) -> None:
        store.set("zero", 0)
        assert store.get("zero") == 0

    def test_set_get_remove(self, store) -> None:
        store.set("a", -5)
        store.set("b", 2**62)
        assert store.get("a") == -5
        assert store.get("b") == 2**62

        store.set("a", 7)
        assert store.get("a") == 7

        store.remove("a")
        assert store.get("a") is None
        assert store.get("b") == 2**62

    def test_remove_missing_is_noop(self, store) -> None:
        store.remove("never-set")
        assert store.get("never-set") is None


class TestJsonFileKeyValueStore:

    def test_survives_new_instance(self, tmp_path) -> None:
        path = tmp_path / "time_data.json"
        JsonFileKeyValueStore(path).set("uptime offset", 123)
        assert JsonFileKeyValueStore(path).get("uptime offset") == 123
        assert json.loads(path.read_text()) == {"uptime offset": 123}

    def test_no_temporary_files_left_behind(self, tmp_path) -> None:
        store = JsonFileKeyValueStore(tmp_path / "time_data.json")
        store.set("a", 1)
        store.set("b", 2)
        store.remove("a")
        assert [p.name for p in tmp_path.iterdir()] == ["time_data.json"]

    def test_corrupt_file_reads_as_empty(self, tmp_path) -> None:
        path = tmp_path / "time_data.json"
        path.write_text("{not json")
        store = JsonFileKeyValueStore(path)
        assert store.get("a") is None

        store.set("a", 1)
        assert store.get("a") == 1

    def test_non_object_file_reads_as_empty(self, tmp_path) -> None:
        path = tmp_path / "time_data.json"
        path.write_text("[1, 2, 3]")
        assert JsonFileKeyValueStore(path).get("a") is None

    @pytest.mark.parametrize(
        "value", ["x", "12", [1], {"a": 1}, 1.5, True, False]
    )
    def test_non_integer_field_reads_as_absent(self, tmp_path, value) -> None:
        path = tmp_path / "time_data.json"
        path.write_text(json.dumps({"a": value, "b": 2}))
        store = JsonFileKeyValueStore(path)

        assert store.get("a") is None
        assert store.get("b") == 2

    def test_set_many_writes_all_fields_at_once(self, tmp_path) -> None:
        path = tmp_path / "time_data.json"
        store = JsonFileKeyValueStore(path)
        store.set("a", 1)
        store.set_many({"b": 2, "c": 3})

        assert json.loads(path.read_text()) == {"a": 1, "b": 2, "c": 3}

    def test_failed_set_many_keeps_old_contents(
        self, tmp_path, mocker
    ) -> None:
        path = tmp_path / "time_data.json"
        store = JsonFileKeyValueStore(path)
        store.set_many({"a": 1, "b": 2})

        mocker.patch(
            "truetime.cache.key_value_store.os.replace",
            side_effect=OSError("No space left on device"),
        )
        with pytest.raises(OSError):
            store.set_many({"a": 10, "b": 20})

        assert store.get("a") == 1
        assert store.get("b") == 2
        assert [p.name for p in tmp_path.iterdir()] == ["time_data.json"]


class FailingKeyValueStore(KeyValueStore):
    """Writes one field at a time; fails writes to |failing_key| when armed."""

    def __init__(self, failing_key: str) -> None:
        self.values: Dict[str, int] = {}
        self.failing_key = failing_key
        self.armed = False

    def get(self, key: str) -> Optional[int]:
        return self.values.get(key)

    def set(self, key: str, value: int) -> None:
        if self.armed and key == self.failing_key:
            raise OSError("write failed")
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)


class TestDefaultSetMany:

    def test_writes_every_field(self) -> None:
        store = FailingKeyValueStore("c")
        store.set_many({"a": 1, "b": 2})
        assert store.values == {"a": 1, "b": 2}

    def test_failure_removes_every_field(self) -> None:
        store = FailingKeyValueStore("c")
        store.set_many({"a": 1, "b": 2, "c": 3})
        store.armed = True

        with pytest.raises(OSError):
            store.set_many({"a": 10, "b": 20, "c": 30})

        # Neither the old nor a mix of old and new values remain.
        assert store.values == {}
