"""Tool executor: maps each registered tool name to exactly one handler."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from steward.core.integration_service import IntegrationService
from steward.ports.integration_port import CalendarProvider, MailProvider, WeatherProvider

logger = logging.getLogger(__name__)

MISSING_WHEN_MESSAGE = (
    "I need a date/time. Try 'tomorrow 2pm' or ISO like 2026-02-10T15:00:00-08:00."
)


class UnsupportedToolError(Exception):
    """The executor was asked to run a tool with no registered handler."""


@dataclass
class ToolExecutionResult:
    tool: str
    content: str


def _to_text(value: object, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return fallback


def _to_number(value: object, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value == value and value not in (float("inf"), float("-inf")):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return fallback
    return fallback


def _to_optional_text(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _is_iso_datetime(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


class ToolExecutor:
    def __init__(
        self,
        integrations: IntegrationService,
        weather: WeatherProvider,
        calendar: CalendarProvider,
        mail: MailProvider,
    ) -> None:
        self._integrations = integrations
        self._weather = weather
        self._calendar = calendar
        self._mail = mail
        self._handlers = {
            "weather_forecast": self._weather_forecast,
            "calendar_read": self._calendar_read,
            "email_read": self._email_read,
            "calendar_write_create": self._calendar_write_create,
        }

    async def execute(self, user_id: str, tool: str, payload: dict) -> ToolExecutionResult:
        """Run tool for user_id. Raises UnsupportedToolError for unregistered names."""
        handler = self._handlers.get(tool)
        if handler is None:
            raise UnsupportedToolError(f"Unsupported tool: {tool}")
        content = await handler(user_id, payload)
        logger.info("Executed tool %s for user %s", tool, user_id)
        return ToolExecutionResult(tool=tool, content=content)

    async def _weather_forecast(self, user_id: str, payload: dict) -> str:
        location = payload.get("location")
        if not isinstance(location, str) or not location.strip() or location == "default":
            location = await self._integrations.get_weather_location(user_id)
        return await self._weather.forecast(location, _to_number(payload.get("days"), 1))

    async def _calendar_read(self, user_id: str, payload: dict) -> str:
        range_name = "tomorrow" if _to_text(payload.get("range"), "today") == "tomorrow" else "today"
        calendar_id = await self._integrations.get_calendar_id(user_id)
        return await self._calendar.list_events(user_id, range_name, calendar_id)

    async def _email_read(self, user_id: str, payload: dict) -> str:
        if not await self._integrations.is_gmail_enabled(user_id):
            return "Gmail integration is disabled. Enable with /integrations gmail"
        return await self._mail.important_summary(user_id, _to_number(payload.get("limit"), 5))

    async def _calendar_write_create(self, user_id: str, payload: dict) -> str:
        title = _to_text(payload.get("title"), "Untitled event")
        when_iso = _to_text(payload.get("when"), "")
        if not when_iso or not _is_iso_datetime(when_iso):
            return MISSING_WHEN_MESSAGE

        calendar_id = await self._integrations.get_calendar_id(user_id)
        return await self._calendar.create_event(
            user_id,
            title,
            when_iso,
            calendar_id,
            duration_minutes=_to_number(payload.get("durationMinutes"), 60),
            location=_to_optional_text(payload.get("location")),
        )
