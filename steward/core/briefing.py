"""
Steward — Briefing builder.

Assembles the morning briefing / weekly review text. Each section degrades
independently to an "unavailable" line so one failing provider never
suppresses the rest.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from steward.core.integration_service import IntegrationService
from steward.ports.integration_port import CalendarProvider, MailProvider, WeatherProvider

logger = logging.getLogger(__name__)


class BriefingService:
    def __init__(
        self,
        integrations: IntegrationService,
        weather: WeatherProvider,
        calendar: CalendarProvider,
        mail: MailProvider,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._integrations = integrations
        self._weather = weather
        self._calendar = calendar
        self._mail = mail
        self._clock = clock

    async def build(self, user_id: str, job_type: str) -> str:
        today = self._clock()
        date_label = f"{today.month}/{today.day}/{today.year}"
        if job_type == "morning_briefing":
            lines = [f"Good morning. Briefing for {date_label}"]
        else:
            lines = [f"Weekly review for {date_label}"]

        try:
            location = await self._integrations.get_weather_location(user_id)
            lines += ["", await self._weather.forecast(location, 1)]
        except Exception as exc:
            logger.warning("Weather section failed for %s: %s", user_id, exc)
            lines += ["", "Weather unavailable."]

        try:
            calendar_id = await self._integrations.get_calendar_id(user_id)
            range_name = "today" if job_type == "morning_briefing" else "tomorrow"
            lines += ["", await self._calendar.list_events(user_id, range_name, calendar_id)]
        except Exception as exc:
            logger.warning("Calendar section failed for %s: %s", user_id, exc)
            lines += ["", "Calendar unavailable."]

        if await self._integrations.is_gmail_enabled(user_id):
            try:
                lines += ["", await self._mail.important_summary(user_id)]
            except Exception as exc:
                logger.warning("Gmail section failed for %s: %s", user_id, exc)
                lines += ["", "Gmail unavailable."]

        return "\n".join(lines)
