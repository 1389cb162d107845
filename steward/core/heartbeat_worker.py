"""One pass of the scheduled heartbeat sender for a single job type."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from steward.core.briefing import BriefingService
from steward.core.cron_lite import heartbeat_slot_key, should_run_cron_now
from steward.ports.kv_port import KeyValueStore
from steward.ports.store_port import HeartbeatRepository
from steward.ports.transport_port import TransportClient

logger = logging.getLogger(__name__)

SLOT_TTL_SECONDS = 60 * 60 * 2


@dataclass
class HeartbeatRunStats:
    sent: int = 0
    skipped_not_due: int = 0
    skipped_duplicate: int = 0
    failed: int = 0


class HeartbeatWorker:
    def __init__(
        self,
        repo: HeartbeatRepository,
        store: KeyValueStore,
        briefings: BriefingService,
        transport: TransportClient,
    ) -> None:
        self._repo = repo
        self._store = store
        self._briefings = briefings
        self._transport = transport

    async def run(self, job_type: str, now: datetime | None = None) -> HeartbeatRunStats:
        """Send every due, not-yet-sent heartbeat of job_type for the current minute."""
        now = now or datetime.now(timezone.utc)
        jobs = await self._repo.list_enabled(job_type)
        logger.info("Running heartbeat worker for %s (%d jobs)", job_type, len(jobs))

        stats = HeartbeatRunStats()
        for job in jobs:
            if not should_run_cron_now(job.schedule_cron, job.timezone, now):
                stats.skipped_not_due += 1
                continue

            slot = heartbeat_slot_key(job_type, job.owner_user_id, job.timezone, now)
            if not await self._store.set_if_absent(slot, "1", SLOT_TTL_SECONDS):
                stats.skipped_duplicate += 1
                continue

            try:
                message = await self._briefings.build(job.owner_user_id, job_type)
                await self._transport.send_message(job.owner_user_id, message)
                stats.sent += 1
            except Exception:
                stats.failed += 1
                logger.exception("Failed to send %s heartbeat to %s", job_type, job.owner_user_id)

        logger.info(
            "Heartbeat worker completed for %s: sent=%d not_due=%d duplicate=%d failed=%d",
            job_type, stats.sent, stats.skipped_not_due, stats.skipped_duplicate, stats.failed,
        )
        return stats
