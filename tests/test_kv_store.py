"""Tests for saveit.kv_store: SQLite and in-memory key/value stores."""

import pytest

from saveit.kv_store import MemoryKeyValueStore, SqliteKeyValueStore


@pytest.fixture
def sqlite_store(tmp_path):
    store = SqliteKeyValueStore(tmp_path / "sub" / "cache.db")
    yield store
    if store._conn is not None:
        store._conn.close()


class TestSqliteKeyValueStore:
    @pytest.mark.asyncio
    async def test_set_get(self, sqlite_store):
        await sqlite_store.set({"a": {"x": [1, 2]}, "b": "text"})
        assert await sqlite_store.get("a") == {"a": {"x": [1, 2]}}
        assert await sqlite_store.get("b") == {"b": "text"}

    @pytest.mark.asyncio
    async def test_missing_key_is_empty(self, sqlite_store):
        assert await sqlite_store.get("nope") == {}

    @pytest.mark.asyncio
    async def test_overwrite_and_remove(self, sqlite_store):
        await sqlite_store.set({"a": 1})
        await sqlite_store.set({"a": 2})
        assert await sqlite_store.get("a") == {"a": 2}
        await sqlite_store.remove("a")
        await sqlite_store.remove("a")
        assert sqlite_store.keys() == []

    @pytest.mark.asyncio
    async def test_clear(self, sqlite_store):
        await sqlite_store.set({"a": 1, "b": 2})
        await sqlite_store.clear()
        assert sqlite_store.keys() == []

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "cache.db"
        first = SqliteKeyValueStore(path)
        await first.set({"k": {"v": 1}})
        await first.close()

        second = SqliteKeyValueStore(path)
        assert await second.get("k") == {"k": {"v": 1}}
        await second.close()


class TestMemoryKeyValueStore:
    @pytest.mark.asyncio
    async def test_values_are_copied(self):
        store = MemoryKeyValueStore()
        value = {"pages": [1]}
        await store.set({"k": value})
        value["pages"].append(2)
        got = (await store.get("k"))["k"]
        assert got == {"pages": [1]}
        got["pages"].append(3)
        assert (await store.get("k"))["k"] == {"pages": [1]}
