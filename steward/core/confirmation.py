"""Pending-confirmation store: one nonce-bound action per user, TTL-bound."""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import asdict, dataclass, field

from steward.ports.kv_port import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class PendingConfirmation:
    user_id: str
    nonce: str
    tool: str
    payload: dict = field(default_factory=dict)


def _generate_nonce() -> str:
    return str(100000 + secrets.randbelow(900000))


class ConfirmationService:
    def __init__(self, store: KeyValueStore, ttl_seconds: int = 300) -> None:
        self._store = store
        self._ttl = ttl_seconds

    @staticmethod
    def _key(user_id: str) -> str:
        return f"confirm:{user_id}"

    async def create(self, user_id: str, tool: str, payload: dict) -> PendingConfirmation:
        """Store a new pending action, replacing any earlier one for this user."""
        pending = PendingConfirmation(
            user_id=user_id, nonce=_generate_nonce(), tool=tool, payload=dict(payload)
        )
        await self._store.set(self._key(user_id), json.dumps(asdict(pending)), self._ttl)
        return pending

    async def get(self, user_id: str) -> PendingConfirmation | None:
        raw = await self._store.get(self._key(user_id))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return PendingConfirmation(
                user_id=str(data["user_id"]),
                nonce=str(data["nonce"]),
                tool=str(data["tool"]),
                payload=dict(data.get("payload") or {}),
            )
        except (ValueError, KeyError, TypeError):
            logger.warning("Dropping malformed pending confirmation for user %s", user_id)
            await self._store.delete(self._key(user_id))
            return None

    async def clear(self, user_id: str) -> None:
        await self._store.delete(self._key(user_id))
