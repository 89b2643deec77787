"""MongoDB document store using PyMongo's asyncio client.

The vote toggle relies on the server-side unique index: a concurrent
duplicate insert surfaces as DuplicateKeyError, translated here to
DuplicateKeyStoreError.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import DuplicateKeyError, PyMongoError

from civicsync.adapters.document_store.base import (
    AbstractDocumentCollection,
    AbstractDocumentStore,
    Document,
    DocumentStoreError,
    DuplicateKeyStoreError,
    Filter,
    Sort,
)

logger = logging.getLogger(__name__)


class MongoCollection(AbstractDocumentCollection):
    """Thin wrapper translating PyMongo errors into store errors."""

    def __init__(self, collection: AsyncCollection) -> None:
        self._collection = collection

    async def find_one(self, filter: Filter) -> Document | None:
        try:
            return await self._collection.find_one(dict(filter))
        except PyMongoError as exc:
            raise DocumentStoreError(f"find_one failed: {exc}") from exc

    async def find(
        self,
        filter: Filter,
        *,
        sort: Sort | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]:
        try:
            cursor = self._collection.find(
                dict(filter),
                sort=list(sort) if sort else None,
                skip=skip,
                limit=limit or 0,
            )
            return await cursor.to_list()
        except PyMongoError as exc:
            raise DocumentStoreError(f"find failed: {exc}") from exc

    async def update_one(self, filter: Filter, fields: Mapping[str, Any]) -> int:
        try:
            result = await self._collection.update_one(dict(filter), {"$set": dict(fields)})
        except PyMongoError as exc:
            raise DocumentStoreError(f"update_one failed: {exc}") from exc
        return result.matched_count

    async def insert_one(self, document: Document) -> Any:
        try:
            result = await self._collection.insert_one(dict(document))
        except DuplicateKeyError as exc:
            raise DuplicateKeyStoreError(str(exc)) from exc
        except PyMongoError as exc:
            raise DocumentStoreError(f"insert_one failed: {exc}") from exc
        return result.inserted_id

    async def delete_one(self, filter: Filter) -> int:
        try:
            result = await self._collection.delete_one(dict(filter))
        except PyMongoError as exc:
            raise DocumentStoreError(f"delete_one failed: {exc}") from exc
        return result.deleted_count

    async def delete_many(self, filter: Filter) -> int:
        try:
            result = await self._collection.delete_many(dict(filter))
        except PyMongoError as exc:
            raise DocumentStoreError(f"delete_many failed: {exc}") from exc
        return result.deleted_count

    async def count(self, filter: Filter) -> int:
        try:
            return await self._collection.count_documents(dict(filter))
        except PyMongoError as exc:
            raise DocumentStoreError(f"count_documents failed: {exc}") from exc

    async def ensure_unique_index(self, fields: Sequence[str]) -> None:
        try:
            await self._collection.create_index(
                [(field, ASCENDING) for field in fields],
                unique=True,
            )
        except PyMongoError as exc:
            raise DocumentStoreError(f"create_index failed: {exc}") from exc


class MongoDocumentStore(AbstractDocumentStore):
    """Document store backed by a MongoDB database."""

    def __init__(self, client: AsyncMongoClient, database: str) -> None:
        self._client = client
        self._database = client[database]

    @classmethod
    def from_uri(cls, uri: str, database: str, *, timeout_seconds: float) -> "MongoDocumentStore":
        """Build a store with client-side operation timeouts applied."""
        client: AsyncMongoClient = AsyncMongoClient(
            uri,
            timeoutMS=int(timeout_seconds * 1000),
            serverSelectionTimeoutMS=int(timeout_seconds * 1000),
        )
        return cls(client, database)

    def collection(self, name: str) -> MongoCollection:
        return MongoCollection(self._database[name])

    async def ping(self) -> bool:
        try:
            await self._client.admin.command("ping")
            return True
        except PyMongoError as exc:
            logger.warning("document_store.ping_failed", extra={"error_msg": str(exc)})
            return False

    async def close(self) -> None:
        await self._client.close()
