"""Telegram transport adapter — implements TransportClient.

Wraps a telegram.Bot instance; both calls raise telegram.error.TelegramError
on a non-success response.
"""

from __future__ import annotations

import logging
from typing import Sequence

from telegram import Bot, LinkPreviewOptions, Update

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = ["message"]


class TelegramTransport:
    """Telegram implementation of TransportClient."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    @classmethod
    def from_token(cls, token: str) -> "TelegramTransport":
        return cls(Bot(token=token))

    async def start(self) -> None:
        await self._bot.initialize()

    async def close(self) -> None:
        await self._bot.shutdown()

    async def fetch_updates(self, offset: int, timeout_seconds: int) -> Sequence[Update]:
        return await self._bot.get_updates(
            offset=offset,
            timeout=timeout_seconds,
            allowed_updates=ALLOWED_UPDATES,
        )

    async def send_message(self, chat_id: str, text: str) -> None:
        await self._bot.send_message(
            chat_id=chat_id,
            text=text,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )
