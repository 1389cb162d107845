"""
Steward — LLM Provider Abstraction.

`LLMChatBackend.chat()` routes a message list to the configured provider.
Provider is selected at startup via the LLM_PROVIDER env var.
Supports: openrouter (default), openai, anthropic.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Sequence

from steward.config import Settings
from steward.data.models import ConversationTurn

logger = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """Raised when the model backend returns no usable content."""


# Type alias for provider implementations
_ProviderFn = Callable[[object, str, list[dict], int], Awaitable[str | None]]

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _chat_openai_compatible(
    client, model: str, messages: list[dict], max_tokens: int
) -> str | None:
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        messages=messages,
    )
    if not response.choices:
        return None
    return response.choices[0].message.content


async def _chat_anthropic(
    client, model: str, messages: list[dict], max_tokens: int
) -> str | None:
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    turns = [m for m in messages if m["role"] != "system"]
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=turns,
    )
    parts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
    return "".join(parts) or None


def _openrouter_client(settings: Settings):
    from openai import AsyncOpenAI

    return AsyncOpenAI(api_key=settings.LLM_API_KEY, base_url=settings.LLM_BASE_URL)


def _openai_client(settings: Settings):
    from openai import AsyncOpenAI

    return AsyncOpenAI(api_key=settings.LLM_API_KEY)


def _anthropic_client(settings: Settings):
    import anthropic

    return anthropic.AsyncAnthropic(api_key=settings.LLM_API_KEY)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[Callable[[Settings], object], _ProviderFn, str]] = {
    "openrouter": (_openrouter_client, _chat_openai_compatible, "openai/gpt-4o-mini"),
    "openai":     (_openai_client,     _chat_openai_compatible, "gpt-4o-mini"),
    "anthropic":  (_anthropic_client,  _chat_anthropic,         "claude-haiku-4-5-20251001"),
}


class LLMChatBackend:
    """Model backend bound to one provider client for the process lifetime."""

    def __init__(self, settings: Settings, client: object | None = None, max_tokens: int = 512) -> None:
        provider_name = settings.LLM_PROVIDER.lower()
        if provider_name not in _PROVIDERS:
            raise ValueError(
                f"Unknown LLM_PROVIDER={provider_name!r}. "
                f"Supported: {', '.join(_PROVIDERS)}"
            )

        make_client, self._chat_fn, default_model = _PROVIDERS[provider_name]
        self._client = client if client is not None else make_client(settings)
        self._model = settings.LLM_MODEL or default_model
        self._max_tokens = max_tokens
        logger.info("LLM provider: %s, model: %s", provider_name, self._model)

    @property
    def model(self) -> str:
        return self._model

    async def chat(self, messages: Sequence[ConversationTurn]) -> str:
        """Send the conversation and return the reply text.

        Raises LLMError when the provider answers without content; API errors propagate.
        """
        payload = [{"role": m.role, "content": m.content} for m in messages]
        text = await self._chat_fn(self._client, self._model, payload, self._max_tokens)
        if not text or not text.strip():
            raise LLMError("Model returned no content")
        return text.strip()

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()
