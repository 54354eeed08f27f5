import asyncio
import json

import pytest

from codearena_core import CodeStore, JsonFileKeyValueStore, MemoryKeyValueStore
from codearena_core.code_store import storage_key

DEBOUNCE = 0.05


def test_storage_key_is_scoped_by_problem_and_language():
    assert storage_key("p1", "cpp") == "code:p1:cpp"
    assert storage_key("p1", "python") != storage_key("p1", "cpp")


def test_only_last_text_of_a_burst_is_persisted():
    storage = MemoryKeyValueStore()

    async def scenario():
        store = CodeStore(storage, DEBOUNCE)
        for text in ("i", "in", "int", "int main"):
            store.set_code("p1", "cpp", text)
            await asyncio.sleep(DEBOUNCE / 5)
        assert storage.writes == []
        assert store.buffer("p1", "cpp") == "int main"
        await asyncio.sleep(DEBOUNCE * 4)
        return store

    store = asyncio.run(scenario())
    assert storage.writes == [("code:p1:cpp", "int main")]
    assert store.has_pending("p1", "cpp") is False


def test_separate_keys_debounce_independently():
    storage = MemoryKeyValueStore()

    async def scenario():
        store = CodeStore(storage, DEBOUNCE)
        store.set_code("p1", "cpp", "a")
        store.set_code("p1", "python", "b")
        await asyncio.sleep(DEBOUNCE * 4)

    asyncio.run(scenario())
    assert sorted(storage.writes) == [("code:p1:cpp", "a"), ("code:p1:python", "b")]


def test_empty_text_is_never_persisted_and_drops_pending_write():
    storage = MemoryKeyValueStore()

    async def scenario():
        store = CodeStore(storage, DEBOUNCE)
        store.set_code("p1", "cpp", "draft")
        store.set_code("p1", "cpp", "")
        await asyncio.sleep(DEBOUNCE * 4)
        return store

    store = asyncio.run(scenario())
    assert storage.writes == []
    assert store.buffer("p1", "cpp") == ""


def test_flush_writes_pending_edit_immediately():
    storage = MemoryKeyValueStore()

    async def scenario():
        store = CodeStore(storage, DEBOUNCE)
        store.set_code("p1", "cpp", "last second edit")
        assert store.flush("p1", "cpp") is True
        assert store.flush("p1", "cpp") is False
        await asyncio.sleep(DEBOUNCE * 4)

    asyncio.run(scenario())
    assert storage.writes == [("code:p1:cpp", "last second edit")]


def test_drop_discards_pending_edit():
    storage = MemoryKeyValueStore()

    async def scenario():
        store = CodeStore(storage, DEBOUNCE)
        store.set_code("p1", "cpp", "throwaway")
        assert store.drop("p1", "cpp") is True
        await asyncio.sleep(DEBOUNCE * 4)

    asyncio.run(scenario())
    assert storage.writes == []


def test_load_reads_persisted_copy():
    storage = MemoryKeyValueStore({"code:p1:cpp": "saved"})
    store = CodeStore(storage, DEBOUNCE)
    assert store.load("p1", "cpp") == "saved"
    assert store.buffer("p1", "cpp") == "saved"
    assert store.load("p1", "java") is None


def test_json_file_store_survives_restart(tmp_path):
    path = tmp_path / "state" / "code.json"

    async def scenario():
        store = CodeStore(JsonFileKeyValueStore(path), DEBOUNCE)
        store.set_code("p1", "cpp", "int main() {}")
        await asyncio.sleep(DEBOUNCE * 4)

    asyncio.run(scenario())
    assert json.loads(path.read_text(encoding="utf-8")) == {"code:p1:cpp": "int main() {}"}

    reopened = CodeStore(JsonFileKeyValueStore(path), DEBOUNCE)
    assert reopened.load("p1", "cpp") == "int main() {}"


def test_json_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "code.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileKeyValueStore(path)
    assert store.get("code:p1:cpp") is None
    store.set("code:p1:cpp", "x")
    assert JsonFileKeyValueStore(path).get("code:p1:cpp") == "x"


def test_rejects_non_positive_debounce():
    with pytest.raises(ValueError):
        CodeStore(MemoryKeyValueStore(), 0)


class _FailingStore:
    def get(self, key):
        raise OSError("permission denied")

    def set(self, key, value):
        raise OSError("disk full")


def test_storage_errors_are_reported_not_raised():
    errors = []

    async def scenario():
        store = CodeStore(_FailingStore(), DEBOUNCE, on_error=lambda key, e: errors.append((key, str(e))))
        assert store.load("p1", "cpp") is None
        store.set_code("p1", "cpp", "background write")
        await asyncio.sleep(DEBOUNCE * 4)
        store.set_code("p1", "cpp", "flushed write")
        assert store.flush("p1", "cpp") is False
        return store

    store = asyncio.run(scenario())
    assert errors == [
        (("p1", "cpp"), "permission denied"),
        (("p1", "cpp"), "disk full"),
        (("p1", "cpp"), "disk full"),
    ]
    assert store.buffer("p1", "cpp") == "flushed write"
