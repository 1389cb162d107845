"""Bounded per-user conversation window kept in the shared key-value store."""

from __future__ import annotations

import json
import logging

from steward.data.models import ConversationTurn
from steward.ports.kv_port import KeyValueStore

logger = logging.getLogger(__name__)

MEMORY_TTL_SECONDS = 60 * 60 * 24 * 14


class ConversationMemory:
    def __init__(self, store: KeyValueStore, window_size: int = 20) -> None:
        self._store = store
        self._window = window_size

    @staticmethod
    def _key(user_id: str) -> str:
        return f"conversation:{user_id}"

    async def append(self, user_id: str, role: str, content: str) -> None:
        entry = json.dumps({"role": role, "content": content})
        await self._store.append_to_list(
            self._key(user_id), entry, self._window, MEMORY_TTL_SECONDS
        )

    async def read(self, user_id: str) -> list[ConversationTurn]:
        """Turns oldest-first; undecodable entries are skipped."""
        turns: list[ConversationTurn] = []
        for raw in await self._store.read_list(self._key(user_id)):
            try:
                data = json.loads(raw)
                turns.append(ConversationTurn(role=str(data["role"]), content=str(data["content"])))
            except (ValueError, KeyError, TypeError):
                logger.debug("Skipping undecodable memory entry for %s", user_id)
        return turns
