"""Inbound update idempotency guard and polling-offset checkpoint."""

from __future__ import annotations

import logging

from steward.ports.kv_port import KeyValueStore

logger = logging.getLogger(__name__)

DEDUP_TTL_SECONDS = 60 * 60 * 24
OFFSET_KEY = "telegram:offset"


class UpdateDeduplicator:
    """Reserves a TTL-bound marker per update id; only the first reservation wins."""

    def __init__(self, store: KeyValueStore, ttl_seconds: int = DEDUP_TTL_SECONDS) -> None:
        self._store = store
        self._ttl = ttl_seconds

    async def should_process(self, update_id: int) -> bool:
        reserved = await self._store.set_if_absent(
            f"telegram:update:{update_id}", "1", self._ttl
        )
        if not reserved:
            logger.info("Skipping already-seen update %d", update_id)
        return reserved


class OffsetStore:
    """Persists the next update id to request from the transport."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def get_offset(self) -> int:
        value = await self._store.get(OFFSET_KEY)
        if value is None:
            return 0
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring malformed stored offset %r", value)
            return 0

    async def set_offset(self, offset: int) -> None:
        await self._store.set(OFFSET_KEY, str(offset))
