"""
Steward — Update ingestion loop.

Long-polls the transport from the persisted offset, reserves a dedup marker
per update, routes first-seen updates, and checkpoints the offset after
every update. Transient failures are logged and retried after a fixed
delay; the loop only ends when stop() is called.
"""

from __future__ import annotations

import asyncio
import logging

from steward.bot.update_router import UpdateRouter
from steward.core.dedup import OffsetStore, UpdateDeduplicator
from steward.ports.transport_port import TransportClient

logger = logging.getLogger(__name__)


class TelegramPoller:
    def __init__(
        self,
        transport: TransportClient,
        router: UpdateRouter,
        dedup: UpdateDeduplicator,
        offsets: OffsetStore,
        poll_timeout_seconds: int = 30,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self._transport = transport
        self._router = router
        self._dedup = dedup
        self._offsets = offsets
        self._poll_timeout = poll_timeout_seconds
        self._retry_delay = retry_delay_seconds
        self._stop = asyncio.Event()
        self._offset = 0

    def stop(self) -> None:
        self._stop.set()

    @property
    def offset(self) -> int:
        return self._offset

    async def run(self) -> None:
        self._offset = await self._offsets.get_offset()
        logger.info("Starting Telegram long poll worker at offset %d", self._offset)

        while not self._stop.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Polling loop failed, retrying in %.1fs", self._retry_delay)
                await self._backoff()

        logger.info("Telegram poller stopped")

    async def poll_once(self) -> None:
        """Fetch and handle one batch, checkpointing after each update."""
        updates = await self._transport.fetch_updates(self._offset, self._poll_timeout)
        for update in updates:
            if await self._dedup.should_process(update.update_id):
                await self._router.handle_update(update)
            self._offset = max(self._offset, update.update_id + 1)
            await self._offsets.set_offset(self._offset)

    async def _backoff(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._retry_delay)
        except asyncio.TimeoutError:
            pass
