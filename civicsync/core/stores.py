"""Process-wide store clients exposed as FastAPI dependencies.

Services never reach for module globals themselves: routes obtain the store
handles through these dependencies and pass them into service constructors,
which is also the seam tests use (``app.dependency_overrides``).
"""

from __future__ import annotations

import logging

from civicsync.adapters.counter_store.base import AbstractCounterStore
from civicsync.adapters.counter_store.factory import create_counter_store
from civicsync.adapters.document_store.base import AbstractDocumentStore
from civicsync.adapters.document_store.factory import create_document_store

logger = logging.getLogger(__name__)

ISSUES_COLLECTION = "issues"
VOTES_COLLECTION = "votes"

_counter_store: AbstractCounterStore | None = None
_document_store: AbstractDocumentStore | None = None


def get_counter_store() -> AbstractCounterStore:
    """Return the shared counter store client, creating it on first use."""

    global _counter_store

    if _counter_store is None:
        _counter_store = create_counter_store()
        logger.info("stores.counter_store_created", extra={"store_type": type(_counter_store).__name__})
    return _counter_store


def get_document_store() -> AbstractDocumentStore:
    """Return the shared document store client, creating it on first use."""

    global _document_store

    if _document_store is None:
        _document_store = create_document_store()
        logger.info("stores.document_store_created", extra={"store_type": type(_document_store).__name__})
    return _document_store


async def close_stores() -> None:
    """Close and forget the shared clients (application shutdown)."""

    global _counter_store, _document_store

    if _counter_store is not None:
        await _counter_store.close()
        _counter_store = None
    if _document_store is not None:
        await _document_store.close()
        _document_store = None
