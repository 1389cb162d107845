"""Fixed-window rate limiter over the shared key-value store.

Fails closed: if the store errors or returns something that is not a
counter, the attempt is denied.
"""

from __future__ import annotations

import logging

from steward.ports.kv_port import KeyValueStore

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def is_allowed(self, key: str, max_attempts: int, window_seconds: int) -> bool:
        """Count one attempt against key; True while the window budget holds."""
        try:
            attempts = await self._store.increment_with_expiry(
                f"ratelimit:{key}", window_seconds
            )
        except Exception as exc:
            logger.error("Rate limiter unavailable for %s, denying: %s", key, exc)
            return False

        if not isinstance(attempts, int) or isinstance(attempts, bool):
            logger.error("Rate limiter returned non-numeric count for %s, denying", key)
            return False

        allowed = attempts <= max_attempts
        if not allowed:
            logger.warning("Rate limit exceeded for %s (%d/%d)", key, attempts, max_attempts)
        return allowed
