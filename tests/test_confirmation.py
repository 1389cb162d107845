"""Tests for steward.core.confirmation, tool_policy and memory."""

import pytest

from steward.core.confirmation import ConfirmationService
from steward.core.memory import ConversationMemory
from steward.core.tool_policy import TOOL_REGISTRY, requires_confirmation, tool_tier


# ---------------------------------------------------------------------------
# Tool policy
# ---------------------------------------------------------------------------


class TestToolPolicy:
    def test_registered_tiers(self):
        assert tool_tier("weather_forecast") == 0
        assert tool_tier("calendar_read") == 1
        assert tool_tier("email_read") == 1
        assert tool_tier("calendar_write_create") == 2

    def test_unknown_tool_is_highest_tier(self):
        assert tool_tier("delete_everything") == 3
        assert requires_confirmation("delete_everything")

    @pytest.mark.parametrize("tool", sorted(TOOL_REGISTRY))
    def test_confirmation_follows_tier(self, tool):
        assert requires_confirmation(tool) == (TOOL_REGISTRY[tool] >= 2)

    def test_calendar_create_always_needs_confirmation(self):
        assert requires_confirmation("calendar_write_create") is True


# ---------------------------------------------------------------------------
# ConfirmationService
# ---------------------------------------------------------------------------


class TestConfirmationService:
    @pytest.mark.asyncio
    async def test_create_and_get(self, kv):
        svc = ConfirmationService(kv, ttl_seconds=300)
        created = await svc.create("42", "calendar_write_create", {"title": "Dentist"})

        assert len(created.nonce) == 6 and created.nonce.isdigit()
        fetched = await svc.get("42")
        assert fetched == created
        assert fetched.payload == {"title": "Dentist"}

    @pytest.mark.asyncio
    async def test_one_pending_per_user(self, kv):
        svc = ConfirmationService(kv)
        await svc.create("42", "calendar_write_create", {"title": "A"})
        second = await svc.create("42", "calendar_write_create", {"title": "B"})
        assert (await svc.get("42")) == second

    @pytest.mark.asyncio
    async def test_expires_after_ttl(self, kv, clock):
        svc = ConfirmationService(kv, ttl_seconds=300)
        await svc.create("42", "calendar_write_create", {})

        clock.advance(299)
        assert await svc.get("42") is not None
        clock.advance(2)
        assert await svc.get("42") is None

    @pytest.mark.asyncio
    async def test_clear(self, kv):
        svc = ConfirmationService(kv)
        await svc.create("42", "calendar_write_create", {})
        await svc.clear("42")
        assert await svc.get("42") is None

    @pytest.mark.asyncio
    async def test_malformed_entry_is_dropped(self, kv):
        await kv.set("confirm:42", "{not json", 300)
        assert await ConfirmationService(kv).get("42") is None
        assert await kv.get("confirm:42") is None


# ---------------------------------------------------------------------------
# ConversationMemory
# ---------------------------------------------------------------------------


class TestConversationMemory:
    @pytest.mark.asyncio
    async def test_append_and_read_in_order(self, kv):
        memory = ConversationMemory(kv, window_size=10)
        await memory.append("42", "user", "hi")
        await memory.append("42", "assistant", "hello")

        turns = await memory.read("42")
        assert [(t.role, t.content) for t in turns] == [("user", "hi"), ("assistant", "hello")]

    @pytest.mark.asyncio
    async def test_window_evicts_oldest(self, kv):
        memory = ConversationMemory(kv, window_size=4)
        for i in range(6):
            await memory.append("42", "user", f"m{i}")

        assert [t.content for t in await memory.read("42")] == ["m2", "m3", "m4", "m5"]

    @pytest.mark.asyncio
    async def test_skips_undecodable_entries(self, kv):
        memory = ConversationMemory(kv)
        await kv.append_to_list("conversation:42", "garbage", 20, 60)
        await memory.append("42", "user", "ok")
        assert [t.content for t in await memory.read("42")] == ["ok"]

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, kv):
        memory = ConversationMemory(kv)
        await memory.append("1", "user", "mine")
        assert await memory.read("2") == []
