"""
Steward — Shared key-value store (Redis).

Ephemeral state shared by every worker process: update dedup markers, the
polling offset, rate-limit counters, OAuth state, pending confirmations and
conversation windows.
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisKeyValueStore:
    """Redis implementation of KeyValueStore."""

    def __init__(self, client: Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await self._redis.set(key, value, ex=ttl_seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        result = await self._redis.set(key, value, ex=ttl_seconds, nx=True)
        return bool(result)

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def pop(self, key: str) -> str | None:
        return await self._redis.getdel(key)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def increment_with_expiry(self, key: str, ttl_seconds: int) -> int:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl_seconds, nx=True)
            count, _ = await pipe.execute()
        return int(count)

    async def append_to_list(
        self, key: str, value: str, max_length: int, ttl_seconds: int
    ) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.rpush(key, value)
            pipe.ltrim(key, -max_length, -1)
            pipe.expire(key, ttl_seconds)
            await pipe.execute()

    async def read_list(self, key: str) -> list[str]:
        return list(await self._redis.lrange(key, 0, -1))

    async def close(self) -> None:
        await self._redis.aclose()
