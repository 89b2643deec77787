"""Tests for the counter and document store adapters."""

from unittest.mock import AsyncMock, Mock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError
from redis.exceptions import ConnectionError as RedisConnectionError

from civicsync.adapters.counter_store.base import TTL_MISSING, TTL_NO_EXPIRY, CounterStoreError
from civicsync.adapters.counter_store.redis_store import RedisCounterStore
from civicsync.adapters.document_store.base import (
    ASCENDING,
    DESCENDING,
    DocumentStoreError,
    DuplicateKeyStoreError,
)
from civicsync.adapters.document_store.in_memory import InMemoryCollection, InMemoryDocumentStore
from civicsync.adapters.document_store.mongo import MongoCollection


class TestInMemoryCounterStore:
    @pytest.mark.asyncio
    async def test_incr_creates_key_without_expiry(self, counter_store) -> None:
        assert await counter_store.incr("k") == 1
        assert await counter_store.incr("k") == 2
        assert await counter_store.ttl("k") == TTL_NO_EXPIRY

    @pytest.mark.asyncio
    async def test_ttl_counts_down_and_key_expires(self, counter_store, fake_clock) -> None:
        await counter_store.incr("k")
        assert await counter_store.expire("k", 10) is True

        fake_clock.advance(3.5)
        assert await counter_store.ttl("k") == 7

        fake_clock.advance(6.5)
        assert await counter_store.ttl("k") == TTL_MISSING
        assert await counter_store.incr("k") == 1

    @pytest.mark.asyncio
    async def test_expire_on_missing_key_is_false(self, counter_store) -> None:
        assert await counter_store.expire("missing", 10) is False
        assert await counter_store.ttl("missing") == TTL_MISSING


class TestRedisCounterStore:
    @pytest.mark.asyncio
    async def test_delegates_to_client(self) -> None:
        client = AsyncMock()
        client.incr.return_value = 3
        client.expire.return_value = 1
        client.ttl.return_value = 42
        store = RedisCounterStore(client)

        assert await store.incr("issue_limit:u1") == 3
        assert await store.expire("issue_limit:u1", 60) is True
        assert await store.ttl("issue_limit:u1") == 42
        client.expire.assert_awaited_once_with("issue_limit:u1", 60)

    @pytest.mark.parametrize("method,args", [("incr", ("k",)), ("expire", ("k", 5)), ("ttl", ("k",))])
    @pytest.mark.asyncio
    async def test_redis_errors_become_counter_store_errors(self, method: str, args: tuple) -> None:
        client = AsyncMock()
        getattr(client, method).side_effect = RedisConnectionError("connection refused")
        store = RedisCounterStore(client)

        with pytest.raises(CounterStoreError):
            await getattr(store, method)(*args)

    @pytest.mark.asyncio
    async def test_ping_failure_returns_false(self) -> None:
        client = AsyncMock()
        client.ping.side_effect = RedisConnectionError("down")

        assert await RedisCounterStore(client).ping() is False

    @pytest.mark.asyncio
    async def test_close_releases_client(self) -> None:
        client = AsyncMock()
        await RedisCounterStore(client).close()
        client.aclose.assert_awaited_once()


class TestInMemoryDocumentStore:
    @pytest.mark.asyncio
    async def test_insert_find_count_delete(self) -> None:
        collection = InMemoryCollection("votes")
        issue = ObjectId()

        inserted_id = await collection.insert_one({"issue": issue, "user": ObjectId()})
        await collection.insert_one({"issue": issue, "user": ObjectId()})

        assert isinstance(inserted_id, ObjectId)
        assert (await collection.find_one({"_id": inserted_id}))["issue"] == issue
        assert await collection.count({"issue": issue}) == 2
        assert await collection.delete_one({"_id": inserted_id}) == 1
        assert await collection.delete_one({"_id": inserted_id}) == 0
        assert await collection.delete_many({"issue": issue}) == 1
        assert await collection.count({}) == 0

    @pytest.mark.asyncio
    async def test_unique_index_rejects_duplicates(self) -> None:
        collection = InMemoryCollection("votes")
        await collection.ensure_unique_index(("issue", "user"))
        await collection.ensure_unique_index(("issue", "user"))
        doc = {"issue": ObjectId(), "user": ObjectId()}

        await collection.insert_one(doc)
        with pytest.raises(DuplicateKeyStoreError, match="E11000"):
            await collection.insert_one(doc)

        assert await collection.count(doc) == 1

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected_without_declared_index(self) -> None:
        collection = InMemoryCollection("issues")
        oid = ObjectId()
        await collection.insert_one({"_id": oid})

        with pytest.raises(DuplicateKeyStoreError):
            await collection.insert_one({"_id": oid})

    @pytest.mark.asyncio
    async def test_found_documents_are_copies(self) -> None:
        collection = InMemoryCollection("issues")
        oid = await collection.insert_one({"title": "Pothole"})

        found = await collection.find_one({"_id": oid})
        found["title"] = "changed"

        assert (await collection.find_one({"_id": oid}))["title"] == "Pothole"

    @pytest.mark.asyncio
    async def test_find_sorts_and_pages(self) -> None:
        collection = InMemoryCollection("issues")
        for rank in (2, 0, 3, 1):
            await collection.insert_one({"rank": rank, "kind": "road"})
        await collection.insert_one({"rank": 9, "kind": "water"})

        newest = await collection.find({"kind": "road"}, sort=[("rank", DESCENDING)], limit=2)
        second_page = await collection.find({"kind": "road"}, sort=[("rank", ASCENDING)], skip=2, limit=2)

        assert [d["rank"] for d in newest] == [3, 2]
        assert [d["rank"] for d in second_page] == [2, 3]
        assert len(await collection.find({})) == 5

    @pytest.mark.asyncio
    async def test_find_supports_case_insensitive_regex_in_or(self) -> None:
        collection = InMemoryCollection("issues")
        await collection.insert_one({"title": "Broken STREETLIGHT", "description": "dark"})
        await collection.insert_one({"title": "Pothole", "description": "near the streetlight"})
        await collection.insert_one({"title": "Leak", "description": "water main"})

        search = {"$regex": "streetlight", "$options": "i"}
        found = await collection.find({"$or": [{"title": search}, {"description": search}]})

        assert {d["title"] for d in found} == {"Broken STREETLIGHT", "Pothole"}
        assert await collection.count({"title": {"$regex": "streetlight"}}) == 0

    @pytest.mark.asyncio
    async def test_ne_excludes_null_and_missing_fields(self) -> None:
        collection = InMemoryCollection("issues")
        await collection.insert_one({"title": "pinned", "latitude": 52.5})
        await collection.insert_one({"title": "null", "latitude": None})
        await collection.insert_one({"title": "missing"})

        found = await collection.find({"latitude": {"$ne": None}})

        assert [d["title"] for d in found] == ["pinned"]

    @pytest.mark.asyncio
    async def test_update_one_sets_fields_on_first_match(self) -> None:
        collection = InMemoryCollection("issues")
        oid = await collection.insert_one({"title": "Pothole", "status": "Pending"})

        assert await collection.update_one({"_id": oid}, {"status": "Resolved"}) == 1
        assert await collection.update_one({"_id": ObjectId()}, {"status": "Resolved"}) == 0

        assert await collection.find_one({"_id": oid}) == {
            "_id": oid,
            "title": "Pothole",
            "status": "Resolved",
        }

    def test_collections_are_cached_by_name(self) -> None:
        store = InMemoryDocumentStore()
        assert store.collection("votes") is store.collection("votes")
        assert store.collection("votes") is not store.collection("issues")


class TestMongoCollection:
    @pytest.mark.asyncio
    async def test_duplicate_key_is_translated(self) -> None:
        raw = AsyncMock()
        raw.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key error")

        with pytest.raises(DuplicateKeyStoreError):
            await MongoCollection(raw).insert_one({"issue": ObjectId()})

    @pytest.mark.asyncio
    async def test_other_errors_become_store_errors(self) -> None:
        raw = AsyncMock()
        raw.count_documents.side_effect = PyMongoError("server selection timeout")

        with pytest.raises(DocumentStoreError) as exc_info:
            await MongoCollection(raw).count({"issue": ObjectId()})

        assert not isinstance(exc_info.value, DuplicateKeyStoreError)

    @pytest.mark.asyncio
    async def test_results_are_unwrapped(self) -> None:
        raw = AsyncMock()
        oid = ObjectId()
        raw.insert_one.return_value = Mock(inserted_id=oid)
        raw.delete_one.return_value = Mock(deleted_count=0)
        raw.delete_many.return_value = Mock(deleted_count=4)
        collection = MongoCollection(raw)

        assert await collection.insert_one({"_id": oid}) == oid
        assert await collection.delete_one({"_id": oid}) == 0
        assert await collection.delete_many({"issue": oid}) == 4

    @pytest.mark.asyncio
    async def test_unique_index_is_compound_ascending(self) -> None:
        raw = AsyncMock()

        await MongoCollection(raw).ensure_unique_index(("issue", "user"))

        raw.create_index.assert_awaited_once_with([("issue", 1), ("user", 1)], unique=True)

    @pytest.mark.asyncio
    async def test_find_passes_sort_and_paging_to_cursor(self) -> None:
        raw = AsyncMock()
        cursor = Mock(to_list=AsyncMock(return_value=[{"title": "Pothole"}]))
        raw.find = Mock(return_value=cursor)

        found = await MongoCollection(raw).find(
            {"status": "Pending"}, sort=[("createdAt", DESCENDING)], skip=10, limit=10
        )

        assert found == [{"title": "Pothole"}]
        raw.find.assert_called_once_with(
            {"status": "Pending"}, sort=[("createdAt", -1)], skip=10, limit=10
        )

    @pytest.mark.asyncio
    async def test_find_errors_become_store_errors(self) -> None:
        raw = AsyncMock()
        cursor = Mock(to_list=AsyncMock(side_effect=PyMongoError("cursor killed")))
        raw.find = Mock(return_value=cursor)

        with pytest.raises(DocumentStoreError, match="find failed"):
            await MongoCollection(raw).find({})

    @pytest.mark.asyncio
    async def test_update_one_uses_set_and_reports_matches(self) -> None:
        raw = AsyncMock()
        oid = ObjectId()
        raw.update_one.return_value = Mock(matched_count=1)

        assert await MongoCollection(raw).update_one({"_id": oid}, {"status": "Resolved"}) == 1
        raw.update_one.assert_awaited_once_with({"_id": oid}, {"$set": {"status": "Resolved"}})
