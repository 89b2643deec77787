"""In-memory document store with unique index enforcement.

Notes:
- Per-process only, intended for tests and local development.
- Thread-safe: the uniqueness check and the insert happen under one lock,
  giving the same atomic insert-if-absent behavior as a real unique index.
"""

from __future__ import annotations

import re
import threading
from typing import Any, Mapping, Sequence

from bson import ObjectId

from civicsync.adapters.document_store.base import (
    AbstractDocumentCollection,
    AbstractDocumentStore,
    DESCENDING,
    Document,
    DuplicateKeyStoreError,
    Filter,
    Sort,
)


def _field_matches(value: Any, condition: Any) -> bool:
    if isinstance(condition, Mapping) and "$ne" in condition:
        return value != condition["$ne"]
    if isinstance(condition, Mapping) and "$regex" in condition:
        flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
        return isinstance(value, str) and re.search(condition["$regex"], value, flags) is not None
    return value == condition


def _matches(document: Document, filter: Filter) -> bool:
    for key, condition in filter.items():
        if key == "$or":
            if not any(_matches(document, clause) for clause in condition):
                return False
        elif not _field_matches(document.get(key), condition):
            return False
    return True


class InMemoryCollection(AbstractDocumentCollection):
    """List-backed collection."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.RLock()
        self._documents: list[Document] = []
        self._unique_indexes: list[tuple[str, ...]] = [("_id",)]

    def _violated_index(self, document: Document) -> tuple[str, ...] | None:
        for fields in self._unique_indexes:
            key = {field: document.get(field) for field in fields}
            if any(_matches(existing, key) for existing in self._documents):
                return fields
        return None

    async def find_one(self, filter: Filter) -> Document | None:
        with self._lock:
            for document in self._documents:
                if _matches(document, filter):
                    return dict(document)
        return None

    async def find(
        self,
        filter: Filter,
        *,
        sort: Sort | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]:
        with self._lock:
            found = [dict(d) for d in self._documents if _matches(d, filter)]
        # stable sorts, least significant key first
        for field, direction in reversed(list(sort or ())):
            found.sort(key=lambda d: d.get(field), reverse=direction == DESCENDING)
        end = None if limit is None else skip + limit
        return found[skip:end]

    async def update_one(self, filter: Filter, fields: Mapping[str, Any]) -> int:
        with self._lock:
            for document in self._documents:
                if _matches(document, filter):
                    document.update(fields)
                    return 1
        return 0

    async def insert_one(self, document: Document) -> Any:
        with self._lock:
            stored = dict(document)
            stored.setdefault("_id", ObjectId())
            violated = self._violated_index(stored)
            if violated is not None:
                raise DuplicateKeyStoreError(
                    f"E11000 duplicate key error collection: {self.name} "
                    f"index: {'_'.join(violated)}"
                )
            self._documents.append(stored)
            return stored["_id"]

    async def delete_one(self, filter: Filter) -> int:
        with self._lock:
            for index, document in enumerate(self._documents):
                if _matches(document, filter):
                    del self._documents[index]
                    return 1
        return 0

    async def delete_many(self, filter: Filter) -> int:
        with self._lock:
            kept = [d for d in self._documents if not _matches(d, filter)]
            deleted = len(self._documents) - len(kept)
            self._documents = kept
            return deleted

    async def count(self, filter: Filter) -> int:
        with self._lock:
            return sum(1 for d in self._documents if _matches(d, filter))

    async def ensure_unique_index(self, fields: Sequence[str]) -> None:
        with self._lock:
            key = tuple(fields)
            if key not in self._unique_indexes:
                self._unique_indexes.append(key)


class InMemoryDocumentStore(AbstractDocumentStore):
    """Holds InMemoryCollection instances by name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: dict[str, InMemoryCollection] = {}

    def collection(self, name: str) -> InMemoryCollection:
        with self._lock:
            if name not in self._collections:
                self._collections[name] = InMemoryCollection(name)
            return self._collections[name]
