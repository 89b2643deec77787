"""Factory for counter store instances."""

from civicsync.adapters.counter_store.base import AbstractCounterStore
from civicsync.adapters.counter_store.in_memory import InMemoryCounterStore
from civicsync.adapters.counter_store.redis_store import RedisCounterStore
from civicsync.core.config import settings
from civicsync.core.errors import ValidationAppError


def create_counter_store() -> AbstractCounterStore:
    """Instantiate the configured counter store.

    Returns:
        AbstractCounterStore: Redis store, or the in-memory store when
            REDIS_BACKEND=memory (single process only).

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    backend = settings.redis.backend.lower()

    if backend == "redis":
        return RedisCounterStore.from_url(
            settings.redis.url,
            timeout_seconds=settings.redis.timeout_seconds,
        )

    if backend == "memory":
        return InMemoryCounterStore()

    raise ValidationAppError(
        code="counter_store_unknown_backend",
        message=f"Unknown counter store backend: '{backend}'. Supported: redis, memory",
    )
