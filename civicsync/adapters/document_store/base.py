"""Document store interfaces.

Filters use the MongoDB query shape, restricted to what the issue and vote
flows send: field equality (``{"issue": oid, "user": oid}``), inequality
(``{"$ne": value}``, which also matches a missing field), a case-insensitive
``{"$regex": pattern, "$options": "i"}`` condition, and a top-level ``$or``
list of such filters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

Document = dict[str, Any]
Filter = Mapping[str, Any]
Sort = Sequence[tuple[str, int]]

ASCENDING = 1
DESCENDING = -1


class DocumentStoreError(Exception):
    """Raised when the document store cannot complete an operation."""


class DuplicateKeyStoreError(DocumentStoreError):
    """Raised when an insert violates a unique index."""


class AbstractDocumentCollection(ABC):
    """Interface for a single collection of documents."""

    @abstractmethod
    async def find_one(self, filter: Filter) -> Document | None:
        """Return the first document matching ``filter`` or None."""
        raise NotImplementedError

    @abstractmethod
    async def find(
        self,
        filter: Filter,
        *,
        sort: Sort | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]:
        """Return matching documents, ordered by ``sort`` then paged.

        Args:
            filter: Query filter.
            sort: ``(field, ASCENDING | DESCENDING)`` pairs, most significant first.
            skip: Number of leading matches to drop.
            limit: Maximum number of documents to return; None means all.
        """
        raise NotImplementedError

    @abstractmethod
    async def insert_one(self, document: Document) -> Any:
        """Insert a document and return its ``_id``.

        Raises:
            DuplicateKeyStoreError: If a unique index would be violated.
            DocumentStoreError: On any other store failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_one(self, filter: Filter, fields: Mapping[str, Any]) -> int:
        """Set ``fields`` on the first matching document.

        Returns:
            Number of matched documents (0 or 1).
        """
        raise NotImplementedError

    @abstractmethod
    async def delete_one(self, filter: Filter) -> int:
        """Delete at most one matching document.

        Returns:
            Number of deleted documents; 0 is a valid no-op.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete_many(self, filter: Filter) -> int:
        """Delete every matching document and return how many were removed."""
        raise NotImplementedError

    @abstractmethod
    async def count(self, filter: Filter) -> int:
        """Count matching documents."""
        raise NotImplementedError

    @abstractmethod
    async def ensure_unique_index(self, fields: Sequence[str]) -> None:
        """Declare a unique compound index over ``fields`` (idempotent)."""
        raise NotImplementedError


class AbstractDocumentStore(ABC):
    """Interface for a database holding named collections."""

    @abstractmethod
    def collection(self, name: str) -> AbstractDocumentCollection:
        """Return a handle to the named collection."""
        raise NotImplementedError

    async def ping(self) -> bool:
        """Check connectivity (used by the readiness route)."""
        return True

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
