"""Tests for steward.bot.update_router — per-message routing decisions."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from telegram.constants import ChatType

from steward.bot.update_router import (
    CLAIM_FAILURE_MESSAGES,
    CLAIM_SUCCESS_MESSAGE,
    ERROR_REPLY,
    HELP_TEXT,
    UpdateRouter,
)
from steward.core.ownership import ClaimFailure, ClaimResult
from steward.integrations.google_oauth import NotConnectedError
from steward.ports.integration_port import IntegrationError


def _update(text="hello", user_id=42, chat_type=ChatType.PRIVATE, update_id=1):
    update = MagicMock()
    update.update_id = update_id
    update.message.text = text
    update.message.chat.id = user_id
    update.message.chat.type = chat_type
    update.message.from_user.id = user_id
    return update


@pytest.fixture
def services():
    ownership = MagicMock()
    ownership.is_owner_configured = AsyncMock(return_value=True)
    ownership.is_allowed_user = AsyncMock(return_value=True)
    ownership.claim_ownership = AsyncMock(return_value=ClaimResult.success())
    agent = MagicMock(handle_message=AsyncMock(return_value="agent reply"))
    integrations = MagicMock(handle_command=AsyncMock(return_value="integrations reply"))
    heartbeats = MagicMock(handle_command=AsyncMock(return_value="heartbeats reply"))
    return ownership, agent, integrations, heartbeats


@pytest.fixture
def router(transport, services):
    return UpdateRouter(transport, *services)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestFiltering:
    @pytest.mark.asyncio
    async def test_group_chat_is_ignored(self, router, transport, services):
        await router.handle_update(_update(chat_type=ChatType.GROUP))
        assert transport.sent == []
        services[1].handle_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_without_message_is_ignored(self, router, transport):
        update = _update()
        update.message = None
        await router.handle_update(update)
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_non_text_message_is_ignored(self, router, transport):
        await router.handle_update(_update(text=None))
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_non_allowed_user_is_dropped_silently(self, router, transport, services):
        services[0].is_allowed_user.return_value = False
        await router.handle_update(_update(text="hi", user_id=99))
        assert transport.sent == []
        services[1].handle_message.assert_not_awaited()


# ---------------------------------------------------------------------------
# Unclaimed bot
# ---------------------------------------------------------------------------


class TestUnclaimed:
    @pytest.fixture(autouse=True)
    def _unclaimed(self, services):
        services[0].is_owner_configured.return_value = False

    @pytest.mark.asyncio
    async def test_start_shows_user_id(self, router, transport):
        await router.handle_update(_update(text="/start", user_id=777))
        assert transport.sent[0][0] == "777"
        assert "Your Telegram ID: 777" in transport.texts()[0]

    @pytest.mark.asyncio
    async def test_other_text_prompts_claim(self, router, transport, services):
        await router.handle_update(_update(text="hello"))
        assert transport.texts() == ["This bot is not claimed yet. Use /claim <code>."]
        services[1].handle_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_claim_without_code(self, router, transport, services):
        await router.handle_update(_update(text="/claim"))
        assert transport.texts() == ["Invalid claim command. Use /claim <code>."]
        services[0].claim_ownership.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_claim_success(self, router, transport, services):
        await router.handle_update(_update(text="/claim  correct-horse-battery "))
        services[0].claim_ownership.assert_awaited_once_with("42", "correct-horse-battery")
        assert transport.texts() == [CLAIM_SUCCESS_MESSAGE]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reason", list(ClaimFailure))
    async def test_claim_failures(self, router, transport, services, reason):
        services[0].claim_ownership.return_value = ClaimResult.failure(reason)
        await router.handle_update(_update(text="/claim nope"))
        assert transport.texts() == [CLAIM_FAILURE_MESSAGES[reason]]

    @pytest.mark.asyncio
    async def test_claim_store_error_gets_generic_reply(self, router, transport, services):
        services[0].claim_ownership.side_effect = RuntimeError("database unavailable")
        await router.handle_update(_update(text="/claim correct-horse-battery"))
        assert transport.texts() == [ERROR_REPLY]
        services[0].is_allowed_user.assert_not_awaited()


# ---------------------------------------------------------------------------
# Claimed bot
# ---------------------------------------------------------------------------


class TestDispatch:
    @pytest.mark.asyncio
    async def test_help(self, router, transport):
        await router.handle_update(_update(text="/help"))
        assert transport.texts() == [HELP_TEXT]

    @pytest.mark.asyncio
    async def test_start_when_claimed(self, router, transport):
        await router.handle_update(_update(text="/start"))
        assert transport.texts() == ["Assistant is online. Use /help to view available commands."]

    @pytest.mark.asyncio
    async def test_claim_when_claimed(self, router, transport, services):
        await router.handle_update(_update(text="/claim abc"))
        assert transport.texts() == ["Ownership already claimed."]
        services[0].claim_ownership.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_integrations_command_with_bot_suffix(self, router, transport, services):
        await router.handle_update(_update(text="/integrations@StewardBot weather Paris"))
        services[2].handle_command.assert_awaited_once_with("42", "/integrations@StewardBot weather Paris")
        assert transport.texts() == ["integrations reply"]

    @pytest.mark.asyncio
    async def test_heartbeats_command(self, router, transport, services):
        await router.handle_update(_update(text="/heartbeats"))
        services[3].handle_command.assert_awaited_once_with("42", "/heartbeats")
        assert transport.texts() == ["heartbeats reply"]

    @pytest.mark.asyncio
    async def test_free_text_goes_to_agent(self, router, transport, services):
        await router.handle_update(_update(text="  what's up  "))
        services[1].handle_message.assert_awaited_once_with("42", "what's up")
        assert transport.texts() == ["agent reply"]

    @pytest.mark.asyncio
    async def test_integration_errors_are_shown(self, router, transport, services):
        services[1].handle_message.side_effect = NotConnectedError("calendar")
        await router.handle_update(_update(text="calendar today"))
        assert transport.texts() == [
            "No valid calendar token. Connect via /integrations connect calendar"
        ]

        services[1].handle_message.side_effect = IntegrationError("Weather API error: 500")
        await router.handle_update(_update(text="weather"))
        assert transport.texts()[-1] == "Weather API error: 500"

    @pytest.mark.asyncio
    async def test_unexpected_errors_get_generic_reply(self, router, transport, services):
        services[1].handle_message.side_effect = RuntimeError("boom")
        await router.handle_update(_update(text="hello"))
        assert transport.texts() == [ERROR_REPLY]
