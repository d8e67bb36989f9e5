"""
tests/database/test_document_store.py

Test cases for the document store adapter.
Covers identifiers, field transforms, the size ceiling, ordered queries
with filters and live subscriptions.
"""

import asyncio

import pytest

from doit.core.exceptions import BackendError
from doit.database.store import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    DocumentStore,
    FieldFilter,
    Increment,
    apply_transforms,
)


# Writes and Reads


@pytest.mark.asyncio
async def test_add_generates_id_and_get_returns_data(store: DocumentStore) -> None:
    """Test that add returns a fresh id and get reads the document back."""
    first = await store.add("tasks", {"title": "Mow lawn"})
    second = await store.add("tasks", {"title": "Walk dog"})

    assert first != second
    snapshot = await store.get("tasks", first)
    assert snapshot is not None
    assert snapshot.data == {"title": "Mow lawn"}
    assert snapshot.to_dict() == {"title": "Mow lawn", "id": first}


@pytest.mark.asyncio
async def test_get_missing_document_returns_none(store: DocumentStore) -> None:
    """Test that reading an unknown id yields None rather than an error."""
    assert await store.get("tasks", "missing") is None


@pytest.mark.asyncio
async def test_set_overwrites_whole_document(store: DocumentStore) -> None:
    """Test that set replaces every field of an existing document."""
    await store.set("users", "u1", {"displayName": "Ann", "bio": "hi"})
    await store.set("users", "u1", {"displayName": "Anna"})

    snapshot = await store.get("users", "u1")
    assert snapshot.data == {"displayName": "Anna"}


@pytest.mark.asyncio
async def test_update_merges_and_resolves_transforms(store: DocumentStore) -> None:
    """Test server timestamp, increment and array transforms on update."""
    await store.set("users", "u1", {"postedTasks": 2, "bookmarkedTasks": ["a"], "name": "Ann"})

    await store.update(
        "users",
        "u1",
        {
            "postedTasks": Increment(1),
            "completedTasks": Increment(1),
            "bookmarkedTasks": ArrayUnion("a", "b"),
            "updatedAt": SERVER_TIMESTAMP,
        },
    )

    data = (await store.get("users", "u1")).data
    assert data["name"] == "Ann"
    assert data["postedTasks"] == 3
    assert data["completedTasks"] == 1
    assert data["bookmarkedTasks"] == ["a", "b"]
    assert isinstance(data["updatedAt"], str) and data["updatedAt"].endswith("+00:00")

    await store.update("users", "u1", {"bookmarkedTasks": ArrayRemove("a", "zzz")})
    assert (await store.get("users", "u1")).data["bookmarkedTasks"] == ["b"]


@pytest.mark.asyncio
async def test_concurrent_updates_to_one_document_are_not_lost(store: DocumentStore) -> None:
    """Test that concurrent transforms on one document all apply."""
    await store.set("users", "u1", {"postedTasks": 0, "bookmarkedTasks": []})

    await asyncio.gather(
        *(store.update("users", "u1", {"postedTasks": Increment(1)}) for _ in range(10)),
        *(store.update("users", "u1", {"bookmarkedTasks": ArrayUnion(f"t{i}")}) for i in range(5)),
    )

    data = (await store.get("users", "u1")).data
    assert data["postedTasks"] == 10
    assert sorted(data["bookmarkedTasks"]) == ["t0", "t1", "t2", "t3", "t4"]


@pytest.mark.asyncio
async def test_update_missing_document_raises_not_found(store: DocumentStore) -> None:
    """Test that updating an unknown document is rejected with the not-found code."""
    with pytest.raises(BackendError) as exc_info:
        await store.update("users", "ghost", {"rating": 5})

    assert exc_info.value.code == "not-found"
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_oversized_document_is_rejected(store: DocumentStore) -> None:
    """Test that writes above the document ceiling fail and store nothing."""
    small_store = DocumentStore(store._session_factory, store.events, max_document_bytes=100)

    with pytest.raises(BackendError) as exc_info:
        await small_store.add("tasks", {"imageUrl": "x" * 200})

    assert exc_info.value.code == "invalid-argument"
    assert await store.query("tasks") == []


def test_apply_transforms_tolerates_non_list_arrays() -> None:
    """Test that array transforms treat a non-list field as empty."""
    result = apply_transforms({"tags": "oops"}, {"tags": ArrayUnion("x")}, "now")
    assert result == {"tags": ["x"]}


# Queries


@pytest.mark.asyncio
async def test_query_filters_and_orders(store: DocumentStore) -> None:
    """Test equality and array-contains filters with ordering and limit."""
    await store.add("chats", {"participants": ["a", "b"], "createdAt": "2024-01-02"})
    await store.add("chats", {"participants": ["b", "c"], "createdAt": "2024-01-03"})
    await store.add("chats", {"participants": ["a", "c"], "createdAt": "2024-01-01"})

    with_a = await store.query("chats", where=[FieldFilter("participants", "array-contains", "a")], order_by="createdAt")
    assert [s.data["createdAt"] for s in with_a] == ["2024-01-01", "2024-01-02"]

    newest = await store.query("chats", order_by="createdAt", descending=True, limit=2)
    assert [s.data["createdAt"] for s in newest] == ["2024-01-03", "2024-01-02"]

    exact = await store.query("chats", where=[FieldFilter("createdAt", "==", "2024-01-03")])
    assert len(exact) == 1


@pytest.mark.asyncio
async def test_query_orders_missing_values_first(store: DocumentStore) -> None:
    """Test that documents without the order field sort lowest."""
    await store.add("reviews", {"rating": 3})
    await store.add("reviews", {})
    await store.add("reviews", {"rating": 1})

    ordered = await store.query("reviews", order_by="rating")
    assert [s.data.get("rating") for s in ordered] == [None, 1, 3]


@pytest.mark.asyncio
async def test_nested_collection_paths_are_independent(store: DocumentStore) -> None:
    """Test that sub-collections do not leak into their parent collection."""
    await store.add("chats/c1/messages", {"content": "hi"})
    await store.add("chats/c2/messages", {"content": "yo"})

    assert len(await store.query("chats/c1/messages")) == 1
    assert await store.query("chats") == []


# Subscriptions


@pytest.mark.asyncio
async def test_subscribe_delivers_now_and_after_each_write(store: DocumentStore) -> None:
    """Test that a subscription receives the initial and updated ordered lists."""
    deliveries: list[list[str]] = []
    await store.add("chats/c1/messages", {"content": "first", "timestamp": "2024-01-01T00:00:00"})

    subscription = await store.subscribe(
        "chats/c1/messages",
        lambda snapshots: deliveries.append([s.data["content"] for s in snapshots]),
        order_by="timestamp",
    )
    await store.add("chats/c1/messages", {"content": "second", "timestamp": "2024-01-02T00:00:00"})
    await store.add("chats/c2/messages", {"content": "elsewhere"})

    assert deliveries == [["first"], ["first", "second"]]

    subscription.cancel()
    await store.add("chats/c1/messages", {"content": "third", "timestamp": "2024-01-03T00:00:00"})
    assert len(deliveries) == 2


@pytest.mark.asyncio
async def test_subscribe_is_cancelled_when_initial_delivery_fails(store: DocumentStore) -> None:
    """Test that a failing first delivery raises and leaves no handler behind."""

    def broken(_snapshots: list) -> None:
        raise RuntimeError("listener failed")

    with pytest.raises(RuntimeError):
        await store.subscribe("tasks", broken)

    assert store.events.handler_count(("collection", "tasks")) == 0
