"""Transport port — abstract interface for the messaging channel.

Core modules depend on this protocol, never on a specific messaging provider.
Both calls raise on a non-success response.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from telegram import Update


class TransportClient(Protocol):
    """Abstract long-poll transport used by the ingestion loop and notifiers."""

    async def fetch_updates(self, offset: int, timeout_seconds: int) -> Sequence[Update]: ...

    async def send_message(self, chat_id: str, text: str) -> None: ...
