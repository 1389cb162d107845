"""Tests for steward.core.llm and steward.config."""

from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock, MagicMock

from conftest import make_settings
from steward.core.llm import LLMChatBackend, LLMError
from steward.data.models import ConversationTurn

MESSAGES = [
    ConversationTurn("system", "be brief"),
    ConversationTurn("user", "hi"),
]


def _openai_client(content):
    choices = [SimpleNamespace(message=SimpleNamespace(content=content))] if content is not None else []
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=choices))
    return client


def _anthropic_client(*texts):
    blocks = [SimpleNamespace(type="text", text=t) for t in texts]
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=SimpleNamespace(content=blocks))
    return client


# ---------------------------------------------------------------------------
# LLMChatBackend
# ---------------------------------------------------------------------------


class TestLLMChatBackend:
    @pytest.mark.asyncio
    async def test_openrouter_default_model(self):
        client = _openai_client("  hello there ")
        backend = LLMChatBackend(make_settings(), client=client)

        assert backend.model == "openai/gpt-4o-mini"
        assert await backend.chat(MESSAGES) == "hello there"
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o-mini"
        assert kwargs["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ]

    @pytest.mark.asyncio
    async def test_explicit_model(self):
        backend = LLMChatBackend(make_settings(LLM_PROVIDER="openai", LLM_MODEL="gpt-4.1"), client=_openai_client("x"))
        assert backend.model == "gpt-4.1"

    @pytest.mark.asyncio
    async def test_anthropic_splits_system_prompt(self):
        client = _anthropic_client("Hel", "lo")
        backend = LLMChatBackend(make_settings(LLM_PROVIDER="Anthropic"), client=client)

        assert await backend.chat(MESSAGES) == "Hello"
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["system"] == "be brief"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [None, "", "   "])
    async def test_empty_reply_raises(self, content):
        backend = LLMChatBackend(make_settings(), client=_openai_client(content))
        with pytest.raises(LLMError):
            await backend.chat(MESSAGES)

    @pytest.mark.asyncio
    async def test_api_errors_propagate(self):
        client = _openai_client("x")
        client.chat.completions.create.side_effect = ConnectionError("down")
        backend = LLMChatBackend(make_settings(), client=client)
        with pytest.raises(ConnectionError):
            await backend.chat(MESSAGES)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM_PROVIDER"):
            LLMChatBackend(make_settings(LLM_PROVIDER="cohere"), client=object())

    @pytest.mark.asyncio
    async def test_close(self):
        client = _openai_client("x")
        client.close = AsyncMock()
        await LLMChatBackend(make_settings(), client=client).close()
        client.close.assert_awaited_once()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_trailing_slash_stripped(self):
        assert make_settings().PUBLIC_BASE_URL == "https://bot.example.com"

    def test_oauth_configured(self):
        assert make_settings().oauth_configured is True
        assert make_settings(GOOGLE_OAUTH_CLIENT_SECRET="").oauth_configured is False

    def test_short_claim_code_rejected(self):
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            make_settings(OWNER_CLAIM_CODE="short")

    def test_load_settings_exits_on_missing_values(self, monkeypatch):
        from steward import config

        monkeypatch.setattr(config, "load_dotenv", lambda path: None)
        for name in config.Settings.model_fields:
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(SystemExit) as excinfo:
            config.load_settings()
        assert excinfo.value.code == 1

    def test_load_settings_reads_environment(self, monkeypatch):
        from steward import config

        monkeypatch.setattr(config, "load_dotenv", lambda path: None)
        for name in config.Settings.model_fields:
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "t")
        monkeypatch.setenv("LLM_API_KEY", "k")
        monkeypatch.setenv("OWNER_CLAIM_CODE", "correct-horse-battery")
        monkeypatch.setenv("OWNER_CLAIM_PEPPER", "pepper-pepper-pepper")
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///x.db")
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
        monkeypatch.setenv("CLAIM_ATTEMPT_MAX", "3")

        settings = config.load_settings()
        assert settings.CLAIM_ATTEMPT_MAX == 3
        assert settings.LLM_PROVIDER == "openrouter"
