"""Key-value port — shared ephemeral store used for dedup, rate limits and TTL state.

Every operation that correctness depends on (reservation, single-use reads)
is a single atomic call; callers never read-then-write.
"""

from __future__ import annotations

from typing import Protocol


class KeyValueStore(Protocol):
    """Abstract shared key-value store."""

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store the value only if the key does not exist. True when stored."""
        ...

    async def get(self, key: str) -> str | None: ...

    async def pop(self, key: str) -> str | None:
        """Atomically read and delete a key."""
        ...

    async def delete(self, key: str) -> None: ...

    async def increment_with_expiry(self, key: str, ttl_seconds: int) -> int:
        """Increment a counter; a freshly created counter expires after ttl_seconds."""
        ...

    async def append_to_list(
        self, key: str, value: str, max_length: int, ttl_seconds: int
    ) -> None:
        """Append, keep only the newest max_length items, refresh expiry."""
        ...

    async def read_list(self, key: str) -> list[str]: ...
