"""Tests for the document store: field paths, transforms, queries, batches and watches."""

import asyncio

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from chatline.core.document_store import DocumentStore, Increment, apply_field_updates, get_field
from chatline.utils.exceptions import NotFoundError, ValidationError


def test_apply_field_updates_writes_nested_paths_without_mutating_input():
    data = {"unreadCount": {"a": 1}, "name": "x"}
    result = apply_field_updates(data, {
        "unreadCount.b": Increment(2),
        "unreadCount.a": Increment(),
        "deletedAt.a": 99,
        "name": "y",
    })
    assert result == {"unreadCount": {"a": 2, "b": 2}, "deletedAt": {"a": 99}, "name": "y"}
    assert data == {"unreadCount": {"a": 1}, "name": "x"}


def test_get_field_reads_dotted_paths():
    data = {"data": {"senderId": "a"}, "flat": 1}
    assert get_field(data, "data.senderId") == "a"
    assert get_field(data, "flat.nested") is None
    assert get_field(data, "missing") is None


async def test_set_get_and_delete(store: DocumentStore):
    await store.set("things", "t1", {"id": "t1", "n": 1})
    assert await store.get("things", "t1") == {"id": "t1", "n": 1}
    assert await store.exists("things", "t1")

    await store.set("things", "t1", {"id": "t1"})
    assert await store.get("things", "t1") == {"id": "t1"}

    assert await store.delete("things", "t1") is True
    assert await store.get("things", "t1") is None
    assert await store.delete("things", "t1") is False


async def test_update_requires_existing_document(store: DocumentStore):
    with pytest.raises(NotFoundError):
        await store.update("things", "ghost", {"n": 1})


async def test_increments_accumulate(store: DocumentStore):
    await store.set("chats", "c", {"id": "c", "unreadCount": {"b": 0}})
    for _ in range(5):
        await store.update("chats", "c", {"unreadCount.b": Increment(1)})
    assert (await store.get("chats", "c"))["unreadCount"]["b"] == 5


async def test_query_filters_order_and_limit(store: DocumentStore):
    await store.set("msgs", "1", {"id": "1", "from": "a", "to": "b", "ts": 3, "tags": ["x"]})
    await store.set("msgs", "2", {"id": "2", "from": "a", "to": "c", "ts": 1, "tags": []})
    await store.set("msgs", "3", {"id": "3", "from": "b", "to": "a", "ts": 2, "tags": ["x", "y"]})
    await store.set("msgs", "4", {"id": "4", "from": "a", "to": "b"})

    rows = await store.query("msgs").where("from", "==", "a").order_by("ts", descending=True).get()
    assert [row["id"] for row in rows] == ["1", "2"]

    rows = await store.query("msgs").where("tags", "array-contains", "x").order_by("ts").get()
    assert [row["id"] for row in rows] == ["3", "1"]

    rows = await store.query("msgs").where("ts", ">=", 2).get()
    assert sorted(row["id"] for row in rows) == ["1", "3"]

    rows = await store.query("msgs").where("to", "in", ["c", "a"]).order_by("ts").limit(1).get()
    assert [row["id"] for row in rows] == ["2"]


async def test_array_contains_is_pushed_down_only_on_postgresql(store: DocumentStore):
    query = store.query("chats").where("participants", "array-contains", "alice")

    pg_sql = str(query.statement("postgresql").compile(dialect=postgresql.dialect()))
    assert "@>" in pg_sql
    assert "CAST" in pg_sql

    sqlite_sql = str(query.statement("sqlite").compile(dialect=sqlite.dialect()))
    assert "@>" not in sqlite_sql


async def test_query_rejects_unknown_operator(store: DocumentStore):
    with pytest.raises(ValidationError):
        store.query("msgs").where("a", "~=", 1)


async def test_batch_commits_together(store: DocumentStore):
    await store.set("a", "1", {"id": "1"})
    batch = store.batch()
    batch.set("b", "2", {"id": "2", "n": 0})
    batch.update("b", "2", {"n": Increment(4)})
    batch.delete("a", "1")
    await batch.commit()

    assert await store.get("a", "1") is None
    assert await store.get("b", "2") == {"id": "2", "n": 4}


async def test_failed_batch_writes_nothing(store: DocumentStore):
    batch = store.batch()
    batch.set("b", "2", {"id": "2"})
    batch.update("b", "missing", {"n": 1})
    with pytest.raises(NotFoundError):
        await batch.commit()
    assert await store.get("b", "2") is None


async def test_watch_yields_replacement_snapshots(store: DocumentStore):
    async def load():
        return sorted(row["id"] for row in await store.query("items").get())

    stream = store.watch(load, ["items"])
    try:
        assert await asyncio.wait_for(stream.__anext__(), 1) == []

        await store.set("items", "a", {"id": "a"})
        assert await asyncio.wait_for(stream.__anext__(), 1) == ["a"]

        await store.set("unrelated", "z", {"id": "z"})
        await store.set("items", "b", {"id": "b"})
        assert await asyncio.wait_for(stream.__anext__(), 1) == ["a", "b"]

        await store.delete("items", "a")
        assert await asyncio.wait_for(stream.__anext__(), 1) == ["b"]
    finally:
        await stream.aclose()

    assert not store.feed.subscribers
