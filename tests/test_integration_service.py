"""Tests for steward.core.integration_service — the /integrations command."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from conftest import make_settings
from steward.core.integration_service import (
    IntegrationService,
    has_oauth_token,
    strip_oauth_secret_fields,
)
from steward.core.rate_limiter import RateLimiter
from steward.integrations.google_oauth import OAuthError


@pytest.fixture
def oauth():
    oauth = MagicMock()
    oauth.is_configured = MagicMock(return_value=True)
    oauth.create_connect_url = AsyncMock(return_value="https://bot.example.com/oauth/google/start?state=s")
    oauth.revoke_integration_tokens = AsyncMock()
    return oauth


@pytest.fixture
def service(settings, integration_repo, oauth, kv):
    return IntegrationService(settings, integration_repo, oauth, RateLimiter(kv))


class TestHelpers:
    def test_has_oauth_token(self):
        assert has_oauth_token({"tokenEncrypted": "v1.a.b.c"})
        assert has_oauth_token({"token": {"accessToken": "x"}})
        assert not has_oauth_token({"token": {"accessToken": ""}})
        assert not has_oauth_token({})
        assert not has_oauth_token(None)

    def test_strip_secret_fields(self):
        config = {"calendarId": "primary", "token": {}, "tokenEncrypted": "x", "enabled": False}
        assert strip_oauth_secret_fields(config) == {"calendarId": "primary", "enabled": False}


# ---------------------------------------------------------------------------
# Status and configuration commands
# ---------------------------------------------------------------------------


class TestCommands:
    @pytest.mark.asyncio
    async def test_status_defaults(self, service):
        reply = await service.handle_command("42", "/integrations")
        lines = reply.splitlines()
        assert lines[0] == "Integrations:"
        assert lines[1] == "- Weather: configured (San Francisco, CA)"
        assert lines[2] == "- Google Calendar: not connected (/integrations connect calendar)"
        assert lines[3] == "- Gmail: not connected (/integrations connect gmail)"
        assert "Commands:" in lines

    @pytest.mark.asyncio
    async def test_status_without_weather_key(self, integration_repo, oauth, kv):
        service = IntegrationService(
            make_settings(OPENWEATHER_API_KEY=""), integration_repo, oauth, RateLimiter(kv)
        )
        reply = await service.handle_command("42", "/integrations")
        assert "- Weather: missing OPENWEATHER_API_KEY" in reply

    @pytest.mark.asyncio
    async def test_status_with_connections(self, service, integration_repo):
        await integration_repo.upsert("42", "calendar", "google", {"calendarId": "work", "tokenEncrypted": "x"})
        await integration_repo.upsert("42", "gmail", "google", {"enabled": False, "tokenEncrypted": "y"})
        reply = await service.handle_command("42", "/integrations")
        assert "- Google Calendar: connected (work)" in reply
        assert "- Gmail: disabled" in reply

    @pytest.mark.asyncio
    async def test_weather_location(self, service, integration_repo):
        reply = await service.handle_command("42", "/integrations weather New York, NY")
        assert reply == "Weather integration configured for: New York, NY"
        assert await service.get_weather_location("42") == "New York, NY"
        assert integration_repo.rows[("42", "weather")].provider == "openweather"

    @pytest.mark.asyncio
    async def test_weather_usage(self, service):
        assert await service.handle_command("42", "/integrations weather") == "Usage: /integrations weather <location>"

    @pytest.mark.asyncio
    async def test_calendar_id_merges_existing_config(self, service, integration_repo):
        await integration_repo.upsert("42", "calendar", "google", {"tokenEncrypted": "blob", "enabled": True})
        reply = await service.handle_command("42", "/integrations calendar team@example.com")
        assert reply == "Google Calendar integration enabled (calendar: team@example.com)."
        config = integration_repo.rows[("42", "calendar")].config
        assert config == {"tokenEncrypted": "blob", "enabled": True, "calendarId": "team@example.com"}

    @pytest.mark.asyncio
    async def test_gmail_enable_requires_connection(self, service, integration_repo):
        assert await service.handle_command("42", "/integrations gmail") == (
            "Gmail is not connected yet. Use: /integrations connect gmail"
        )
        await integration_repo.upsert("42", "gmail", "google", {"tokenEncrypted": "x", "enabled": False})
        assert await service.handle_command("42", "/integrations gmail") == "Gmail integration enabled."
        assert await service.is_gmail_enabled("42") is True

    @pytest.mark.asyncio
    async def test_disable(self, service, integration_repo):
        await integration_repo.upsert("42", "weather", "openweather", {"location": "Oslo"})
        assert await service.handle_command("42", "/integrations disable weather") == "Disabled weather integration."
        assert integration_repo.rows[("42", "weather")].config == {"enabled": False}
        assert await service.get_weather_location("42") == "San Francisco, CA"

    @pytest.mark.asyncio
    async def test_disable_usage(self, service):
        reply = await service.handle_command("42", "/integrations disable slack")
        assert reply == "Usage: /integrations disable <weather|calendar|gmail>"

    @pytest.mark.asyncio
    async def test_unknown_subcommand_shows_help(self, service):
        reply = await service.handle_command("42", "/integrations frobnicate")
        assert reply.startswith("Integration commands:")

    @pytest.mark.asyncio
    async def test_lookups_default(self, service):
        assert await service.get_calendar_id("42") == "primary"
        assert await service.is_gmail_enabled("42") is False


# ---------------------------------------------------------------------------
# Connect / disconnect
# ---------------------------------------------------------------------------


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_returns_link(self, service, oauth):
        reply = await service.handle_command("42", "/integrations connect Calendar")
        assert reply == "Connect Google calendar:\nhttps://bot.example.com/oauth/google/start?state=s"
        oauth.create_connect_url.assert_awaited_once_with("42", "calendar")

    @pytest.mark.asyncio
    async def test_connect_usage(self, service, oauth):
        assert await service.handle_command("42", "/integrations connect weather") == (
            "Usage: /integrations connect <calendar|gmail>"
        )
        oauth.create_connect_url.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connect_not_configured(self, service, oauth):
        oauth.is_configured.return_value = False
        reply = await service.handle_command("42", "/integrations connect gmail")
        assert reply.startswith("OAuth is not configured on this deployment.")

    @pytest.mark.asyncio
    async def test_connect_rate_limited(self, service, oauth):
        for _ in range(10):
            await service.handle_command("42", "/integrations connect gmail")
        reply = await service.handle_command("42", "/integrations connect gmail")
        assert reply == "Too many connect attempts. Try again later."
        assert oauth.create_connect_url.await_count == 10

    @pytest.mark.asyncio
    async def test_disconnect(self, service, oauth, integration_repo):
        await integration_repo.upsert(
            "42", "calendar", "google", {"calendarId": "work", "tokenEncrypted": "x", "enabled": True}
        )
        reply = await service.handle_command("42", "/integrations disconnect calendar")
        assert reply == "Google calendar disconnected."
        oauth.revoke_integration_tokens.assert_awaited_once_with("42", "calendar")
        assert integration_repo.rows[("42", "calendar")].config == {"calendarId": "work", "enabled": False}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [OAuthError("revoke failed"), httpx.ConnectError("down")])
    async def test_disconnect_survives_revoke_failure(self, service, oauth, integration_repo, error):
        await integration_repo.upsert("42", "gmail", "google", {"tokenEncrypted": "x"})
        oauth.revoke_integration_tokens.side_effect = error
        assert await service.handle_command("42", "/integrations disconnect gmail") == "Google gmail disconnected."
        assert "tokenEncrypted" not in integration_repo.rows[("42", "gmail")].config

    @pytest.mark.asyncio
    async def test_disconnect_when_absent(self, service, oauth):
        assert await service.handle_command("42", "/integrations disconnect gmail") == (
            "Google gmail is already disconnected."
        )
        oauth.revoke_integration_tokens.assert_not_awaited()
