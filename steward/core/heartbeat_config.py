"""`/heartbeats` command handling."""

from __future__ import annotations

from steward.data.models import HeartbeatJob
from steward.ports.store_port import HeartbeatRepository, ProfileRepository

DEFAULT_SCHEDULE = {
    "morning_briefing": "0 7 * * *",
    "weekly_review": "0 18 * * SUN",
}
DEFAULT_TIMEZONE = "UTC"

_KIND_TO_JOB = {"morning": "morning_briefing", "weekly": "weekly_review"}


class HeartbeatConfigService:
    def __init__(self, repo: HeartbeatRepository, profiles: ProfileRepository) -> None:
        self._repo = repo
        self._profiles = profiles

    async def handle_command(self, user_id: str, text: str) -> str:
        parts = text.strip().split()
        if len(parts) == 1:
            return await self.list(user_id)

        if len(parts) < 3:
            return self._help_text()

        kind, state = parts[1].lower(), parts[2].lower()
        if kind not in _KIND_TO_JOB or state not in ("on", "off"):
            return self._help_text()

        job_type = _KIND_TO_JOB[kind]
        timezone = await self._profiles.get_timezone(user_id) or DEFAULT_TIMEZONE
        await self._repo.upsert(
            HeartbeatJob(
                owner_user_id=user_id,
                job_type=job_type,
                schedule_cron=DEFAULT_SCHEDULE[job_type],
                timezone=timezone,
                enabled=state == "on",
                config={},
            )
        )
        return f"{kind} heartbeat {'enabled' if state == 'on' else 'disabled'}."

    async def list(self, user_id: str) -> str:
        jobs = {job.job_type: job for job in await self._repo.list(user_id)}

        def _line(label: str, job_type: str) -> str:
            job = jobs.get(job_type)
            state = "enabled" if job is not None and job.enabled else "disabled"
            schedule = job.schedule_cron if job is not None else DEFAULT_SCHEDULE[job_type]
            return f"- {label}: {state} ({schedule})"

        return "\n".join(
            [
                "Heartbeats:",
                _line("Morning briefing", "morning_briefing"),
                _line("Weekly review", "weekly_review"),
                "",
                "Commands:",
                "/heartbeats",
                "/heartbeats morning on",
                "/heartbeats morning off",
                "/heartbeats weekly on",
                "/heartbeats weekly off",
            ]
        )

    @staticmethod
    def _help_text() -> str:
        return "\n".join(
            [
                "Heartbeat commands:",
                "/heartbeats",
                "/heartbeats morning on|off",
                "/heartbeats weekly on|off",
            ]
        )
