"""
Steward — `/integrations` command handling and integration lookups.
"""

from __future__ import annotations

import logging

import httpx

from steward.config import Settings
from steward.core.rate_limiter import RateLimiter
from steward.data.models import GOOGLE_INTEGRATION_KINDS, INTEGRATION_TYPES
from steward.integrations.google_oauth import GoogleOAuthService, OAuthError
from steward.ports.store_port import IntegrationRepository

logger = logging.getLogger(__name__)

_COMMANDS = [
    "/integrations weather <location>",
    "/integrations calendar <calendarId>",
    "/integrations connect <calendar|gmail>",
    "/integrations disconnect <calendar|gmail>",
    "/integrations gmail",
    "/integrations disable <weather|calendar|gmail>",
]


def has_oauth_token(config: dict | None) -> bool:
    if not config:
        return False
    encrypted = config.get("tokenEncrypted")
    if isinstance(encrypted, str) and encrypted:
        return True
    token = config.get("token")
    return isinstance(token, dict) and bool(token.get("accessToken"))


def strip_oauth_secret_fields(config: dict) -> dict:
    return {k: v for k, v in config.items() if k not in ("token", "tokenEncrypted")}


class IntegrationService:
    def __init__(
        self,
        settings: Settings,
        repo: IntegrationRepository,
        oauth: GoogleOAuthService,
        rate_limiter: RateLimiter,
    ) -> None:
        self._settings = settings
        self._repo = repo
        self._oauth = oauth
        self._rate_limiter = rate_limiter

    async def handle_command(self, user_id: str, text: str) -> str:
        parts = text.strip().split()
        if len(parts) == 1:
            return await self._format_status(user_id)

        subcommand = parts[1].lower()
        argument = " ".join(parts[2:]).strip()
        target = parts[2].lower() if len(parts) > 2 else ""

        if subcommand == "weather":
            if not argument:
                return "Usage: /integrations weather <location>"
            await self._repo.upsert(user_id, "weather", "openweather", {"location": argument})
            return f"Weather integration configured for: {argument}"

        if subcommand == "calendar":
            if not argument:
                return "Usage: /integrations calendar <calendarId> (example: primary)"
            existing = await self._repo.get(user_id, "calendar")
            config = {**(existing.config if existing else {}), "calendarId": argument}
            await self._repo.upsert(user_id, "calendar", "google", config)
            return f"Google Calendar integration enabled (calendar: {argument})."

        if subcommand == "gmail":
            existing = await self._repo.get(user_id, "gmail")
            if existing is None or not has_oauth_token(existing.config):
                return "Gmail is not connected yet. Use: /integrations connect gmail"
            await self._repo.upsert(user_id, "gmail", "google", {**existing.config, "enabled": True})
            return "Gmail integration enabled."

        if subcommand == "connect":
            return await self._connect(user_id, target)

        if subcommand == "disconnect":
            return await self._disconnect(user_id, target)

        if subcommand == "disable":
            if target not in INTEGRATION_TYPES:
                return "Usage: /integrations disable <weather|calendar|gmail>"
            provider = "openweather" if target == "weather" else "google"
            await self._repo.upsert(user_id, target, provider, {"enabled": False})
            return f"Disabled {target} integration."

        return self._help_text()

    async def _connect(self, user_id: str, target: str) -> str:
        if target not in GOOGLE_INTEGRATION_KINDS:
            return "Usage: /integrations connect <calendar|gmail>"

        allowed = await self._rate_limiter.is_allowed(
            f"oauth-connect:{user_id}",
            self._settings.OAUTH_CONNECT_ATTEMPT_MAX,
            self._settings.OAUTH_CONNECT_ATTEMPT_WINDOW_SECONDS,
        )
        if not allowed:
            return "Too many connect attempts. Try again later."

        if not self._oauth.is_configured():
            return (
                "OAuth is not configured on this deployment. "
                "Set Google OAuth + TOKEN_ENCRYPTION_KEY env vars first."
            )

        url = await self._oauth.create_connect_url(user_id, target)
        return f"Connect Google {target}:\n{url}"

    async def _disconnect(self, user_id: str, target: str) -> str:
        if target not in GOOGLE_INTEGRATION_KINDS:
            return "Usage: /integrations disconnect <calendar|gmail>"

        existing = await self._repo.get(user_id, target)
        if existing is None:
            return f"Google {target} is already disconnected."

        try:
            await self._oauth.revoke_integration_tokens(user_id, target)
        except (OAuthError, httpx.HTTPError) as exc:
            logger.warning("Token revoke for %s/%s failed, disconnecting locally: %s", user_id, target, exc)

        config = strip_oauth_secret_fields({**existing.config, "enabled": False})
        await self._repo.upsert(user_id, target, "google", config)
        return f"Google {target} disconnected."

    # ------------------------------------------------------------------
    # Lookups used by tools and briefings
    # ------------------------------------------------------------------

    async def get_weather_location(self, user_id: str) -> str:
        connection = await self._repo.get(user_id, "weather")
        location = connection.config.get("location") if connection else None
        if isinstance(location, str) and location.strip():
            return location
        return self._settings.DEFAULT_WEATHER_LOCATION

    async def get_calendar_id(self, user_id: str) -> str:
        connection = await self._repo.get(user_id, "calendar")
        calendar_id = connection.config.get("calendarId") if connection else None
        if isinstance(calendar_id, str) and calendar_id.strip():
            return calendar_id
        return self._settings.GOOGLE_CALENDAR_ID

    async def is_gmail_enabled(self, user_id: str) -> bool:
        connection = await self._repo.get(user_id, "gmail")
        if connection is None:
            return False
        return connection.config.get("enabled") is not False

    async def _format_status(self, user_id: str) -> str:
        by_type = {c.integration_type: c for c in await self._repo.list(user_id)}
        weather = by_type.get("weather")
        calendar = by_type.get("calendar")
        gmail = by_type.get("gmail")

        location = (weather.config.get("location") if weather else None) or self._settings.DEFAULT_WEATHER_LOCATION
        calendar_id = (calendar.config.get("calendarId") if calendar else None) or self._settings.GOOGLE_CALENDAR_ID
        calendar_connected = has_oauth_token(calendar.config if calendar else None) or bool(
            self._settings.GOOGLE_CALENDAR_ACCESS_TOKEN
        )
        gmail_connected = has_oauth_token(gmail.config if gmail else None) or bool(
            self._settings.GMAIL_ACCESS_TOKEN
        )
        gmail_enabled = gmail.config.get("enabled") is not False if gmail else gmail_connected

        if self._settings.OPENWEATHER_API_KEY:
            weather_line = f"configured ({location})"
        else:
            weather_line = "missing OPENWEATHER_API_KEY"

        if calendar_connected:
            calendar_line = f"connected ({calendar_id})"
        else:
            calendar_line = "not connected (/integrations connect calendar)"

        if not gmail_connected:
            gmail_line = "not connected (/integrations connect gmail)"
        else:
            gmail_line = "connected" if gmail_enabled else "disabled"

        return "\n".join(
            [
                "Integrations:",
                f"- Weather: {weather_line}",
                f"- Google Calendar: {calendar_line}",
                f"- Gmail: {gmail_line}",
                "",
                "Commands:",
                *_COMMANDS,
            ]
        )

    @staticmethod
    def _help_text() -> str:
        return "\n".join(["Integration commands:", "/integrations", *_COMMANDS])
