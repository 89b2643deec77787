"""Factory for document store instances."""

from civicsync.adapters.document_store.base import AbstractDocumentStore
from civicsync.adapters.document_store.in_memory import InMemoryDocumentStore
from civicsync.adapters.document_store.mongo import MongoDocumentStore
from civicsync.core.config import settings
from civicsync.core.errors import ValidationAppError


def create_document_store() -> AbstractDocumentStore:
    """Instantiate the configured document store.

    Returns:
        AbstractDocumentStore: MongoDB store, or the in-memory store when
            MONGO_BACKEND=memory (single process only).

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    backend = settings.mongo.backend.lower()

    if backend == "mongo":
        return MongoDocumentStore.from_uri(
            settings.mongo.uri,
            settings.mongo.database,
            timeout_seconds=settings.mongo.timeout_seconds,
        )

    if backend == "memory":
        return InMemoryDocumentStore()

    raise ValidationAppError(
        code="document_store_unknown_backend",
        message=f"Unknown document store backend: '{backend}'. Supported: mongo, memory",
    )
