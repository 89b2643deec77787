"""Redis-backed counter store.

Uses redis.asyncio so the counters are shared by every service instance;
INCR is atomic on the server, which is what makes the fixed-window limiter
correct across processes.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from civicsync.adapters.counter_store.base import AbstractCounterStore, CounterStoreError

logger = logging.getLogger(__name__)


class RedisCounterStore(AbstractCounterStore):
    """Counter store backed by a Redis server."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, timeout_seconds: float) -> "RedisCounterStore":
        """Build a store from a Redis URL with socket timeouts applied."""
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout_seconds,
            socket_timeout=timeout_seconds,
        )
        return cls(client)

    async def incr(self, key: str) -> int:
        try:
            return int(await self._client.incr(key))
        except RedisError as exc:
            raise CounterStoreError(f"INCR failed: {exc}") from exc

    async def expire(self, key: str, seconds: int) -> bool:
        try:
            return bool(await self._client.expire(key, seconds))
        except RedisError as exc:
            raise CounterStoreError(f"EXPIRE failed: {exc}") from exc

    async def ttl(self, key: str) -> int:
        try:
            return int(await self._client.ttl(key))
        except RedisError as exc:
            raise CounterStoreError(f"TTL failed: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning("counter_store.ping_failed", extra={"error_msg": str(exc)})
            return False

    async def close(self) -> None:
        await self._client.aclose()
