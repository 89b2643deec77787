"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any import of the settings module so
the application runs against the in-memory stores.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("REDIS_BACKEND", "memory")
os.environ.setdefault("MONGO_BACKEND", "memory")
os.environ.setdefault("APP_GATEWAY_KEY_REQUIRED", "true")
os.environ.setdefault("APP_GATEWAY_KEYS", "test-gateway-key-123,test-gateway-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import asyncio
from typing import Iterator

import pytest
from bson import ObjectId
from fastapi import FastAPI
from fastapi.testclient import TestClient

from civicsync.adapters.counter_store.in_memory import InMemoryCounterStore
from civicsync.adapters.document_store.in_memory import InMemoryDocumentStore
from civicsync.core.app_factory import create_app
from civicsync.core.stores import VOTES_COLLECTION, get_counter_store, get_document_store
from civicsync.services.vote_service import VOTE_UNIQUE_FIELDS


class FakeClock:
    """Deterministic clock used to test window expiry."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def counter_store(fake_clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=fake_clock)


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    """Document store with the vote uniqueness index already declared."""
    store = InMemoryDocumentStore()
    asyncio.run(store.collection(VOTES_COLLECTION).ensure_unique_index(VOTE_UNIQUE_FIELDS))
    return store


@pytest.fixture
def app(counter_store: InMemoryCounterStore, document_store: InMemoryDocumentStore) -> FastAPI:
    """Application wired to fresh in-memory stores."""
    application = create_app()
    application.dependency_overrides[get_counter_store] = lambda: counter_store
    application.dependency_overrides[get_document_store] = lambda: document_store
    return application


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_id() -> str:
    return str(ObjectId())


@pytest.fixture
def other_user_id() -> str:
    return str(ObjectId())


@pytest.fixture
def auth_headers(user_id: str) -> dict[str, str]:
    """Headers the gateway would forward for ``user_id``."""
    return {"X-Gateway-Key": "test-gateway-key-123", "X-User-ID": user_id}
