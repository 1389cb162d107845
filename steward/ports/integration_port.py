"""Integration ports — weather, calendar and mail provider contracts.

Tool execution and briefings depend on these protocols; every call returns
ready-to-send text.
"""

from __future__ import annotations

from typing import Protocol


class IntegrationError(Exception):
    """Raised when a provider call fails (non-success status or malformed body)."""


class WeatherProvider(Protocol):
    async def forecast(self, location: str, days: int) -> str: ...


class CalendarProvider(Protocol):
    async def list_events(
        self, user_id: str, range_name: str, calendar_id: str | None = None
    ) -> str: ...

    async def create_event(
        self,
        user_id: str,
        title: str,
        when_iso: str,
        calendar_id: str | None = None,
        duration_minutes: int = 60,
        location: str | None = None,
        description: str | None = None,
    ) -> str: ...


class MailProvider(Protocol):
    async def important_summary(self, user_id: str, max_items: int | None = None) -> str: ...
