"""
Steward — Google Calendar REST client.

Lists a day's events and creates events on behalf of a user, using the
user's OAuth token or the static GOOGLE_CALENDAR_ACCESS_TOKEN fallback.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import quote

import httpx

from steward.integrations.google_oauth import (
    GoogleOAuthService,
    NotConnectedError,
    OAuthError,
    resolve_google_token_error,
)
from steward.ports.integration_port import IntegrationError

logger = logging.getLogger(__name__)

CALENDAR_API = "https://www.googleapis.com/calendar/v3"


def format_event_time(start: dict | None) -> str:
    """'Feb 8, 2:00 PM' for timed events; all-day and unparsable values pass through."""
    if not isinstance(start, dict):
        return "unspecified time"
    raw = start.get("dateTime") or start.get("date")
    if not raw or not isinstance(raw, str):
        return "unspecified time"
    if "T" not in raw:
        return raw
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return raw
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value.strftime('%b')} {value.day}, {hour}:{value.minute:02d} {meridiem}"


class GoogleCalendarClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        oauth: GoogleOAuthService,
        default_calendar_id: str = "primary",
        static_access_token: str = "",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._http = http
        self._oauth = oauth
        self._default_calendar_id = default_calendar_id
        self._static_token = static_access_token
        self._clock = clock

    async def _access_token(self, user_id: str) -> str:
        try:
            return await self._oauth.get_valid_access_token(user_id, "calendar")
        except (NotConnectedError, OAuthError) as exc:
            return resolve_google_token_error(exc, self._static_token, "Google Calendar")

    def _events_url(self, calendar_id: str | None) -> str:
        selected = calendar_id or self._default_calendar_id
        return f"{CALENDAR_API}/calendars/{quote(selected, safe='')}/events"

    async def list_events(
        self, user_id: str, range_name: str, calendar_id: str | None = None
    ) -> str:
        token = await self._access_token(user_id)

        start = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        if range_name == "tomorrow":
            start += timedelta(days=1)
        end = start + timedelta(days=1)

        response = await self._http.get(
            self._events_url(calendar_id),
            params={
                "singleEvents": "true",
                "orderBy": "startTime",
                "timeMin": start.isoformat(),
                "timeMax": end.isoformat(),
            },
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code >= 400:
            raise IntegrationError(f"Google Calendar request failed ({response.status_code})")

        try:
            items = response.json().get("items") or []
        except (ValueError, AttributeError) as exc:
            raise IntegrationError("Google Calendar returned a malformed response") from exc

        if not items:
            return f"No calendar events {range_name}."

        lines = [f"Calendar {range_name}:"]
        for event in items:
            if not isinstance(event, dict):
                continue
            lines.append(f"- {format_event_time(event.get('start'))}: {event.get('summary') or 'Untitled'}")
        return "\n".join(lines)

    async def create_event(
        self,
        user_id: str,
        title: str,
        when_iso: str,
        calendar_id: str | None = None,
        duration_minutes: int = 60,
        location: str | None = None,
        description: str | None = None,
    ) -> str:
        token = await self._access_token(user_id)

        try:
            start = datetime.fromisoformat(when_iso.replace("Z", "+00:00"))
        except ValueError as exc:
            raise IntegrationError("Invalid event time. Use an ISO timestamp.") from exc
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        end = start + timedelta(minutes=duration_minutes)

        body: dict = {
            "summary": title,
            "start": {"dateTime": start.isoformat()},
            "end": {"dateTime": end.isoformat()},
        }
        if location:
            body["location"] = location
        if description:
            body["description"] = description

        response = await self._http.post(
            self._events_url(calendar_id),
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code >= 400:
            raise IntegrationError(f"Google Calendar create failed ({response.status_code})")

        try:
            event = response.json()
        except ValueError:
            event = {}
        if not isinstance(event, dict):
            event = {}
        logger.info("Created calendar event for user %s", user_id)
        return f'Created event "{event.get("summary") or title}" at {format_event_time(event.get("start"))}.'
