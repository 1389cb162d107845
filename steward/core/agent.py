"""
Steward — Agent orchestrator.

Turns a free-text message into one of: a resolution of the user's pending
confirmation, an immediate low-tier tool call, a confirmation prompt for a
mutating tool, or a model-backed reply. Pending-resolution always takes
priority over inferring a new action.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from steward.core.confirmation import ConfirmationService
from steward.core.event_parser import parse_calendar_event_request
from steward.core.executor import ToolExecutor
from steward.core.llm import LLMChatBackend
from steward.core.memory import ConversationMemory
from steward.core.tool_policy import requires_confirmation
from steward.data.models import AuditEvent, ConversationTurn
from steward.ports.store_port import AuditSink

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = " ".join(
    [
        "You are a concise personal assistant.",
        "Do not claim actions were executed unless explicitly confirmed.",
        "If user asks for sensitive changes, tell them to use explicit commands.",
    ]
)
PROMPT_HISTORY_TURNS = 12

_CONFIRM_RE = re.compile(r"^YES\s+(\d{6})$", re.IGNORECASE)
_REJECT_RE = re.compile(r"^NO$", re.IGNORECASE)
_CREATE_VERB_RE = re.compile(r"\b(add|create|schedule)\b")
_EVENT_NOUN_RE = re.compile(r"\b(event|appointment|meeting|calendar)\b")

CANCELLED_MESSAGE = "Cancelled. No changes were made."
NONCE_MISMATCH_MESSAGE = "Confirmation code mismatch. Reply exactly with the latest YES code or NO."
NO_CONFIRMATION_NEEDED_MESSAGE = "No confirmation is required for that action."
STILL_PENDING_MESSAGE = "You have a pending action. Reply YES <code> to continue or NO to cancel."


@dataclass
class InferredAction:
    tool: str
    payload: dict = field(default_factory=dict)
    preview: str = ""


def infer_action(text: str) -> InferredAction | None:
    """Rule-based intent detection. None means 'hand the message to the model'."""
    normalized = text.lower()

    if "weather" in normalized:
        return InferredAction(
            tool="weather_forecast",
            payload={"location": "default", "days": 1},
            preview="Fetching weather forecast.",
        )

    if "calendar" in normalized and ("today" in normalized or "tomorrow" in normalized):
        return InferredAction(
            tool="calendar_read",
            payload={"range": "tomorrow" if "tomorrow" in normalized else "today"},
            preview="Reading your calendar.",
        )

    if "email" in normalized or "inbox" in normalized:
        return InferredAction(
            tool="email_read",
            payload={"since": "24h", "limit": 5},
            preview="Checking email summaries.",
        )

    if _CREATE_VERB_RE.search(normalized) and _EVENT_NOUN_RE.search(normalized):
        event = parse_calendar_event_request(text)
        payload = {
            "title": event.title,
            "when": event.when_iso or "",
            "durationMinutes": event.duration_minutes,
        }
        if event.location:
            payload["location"] = event.location

        preview = [
            "I will create this calendar event.",
            f"Title: {event.title}",
            f"Duration: {event.duration_minutes} minutes",
            f"Location: {event.location}" if event.location else "Location: (none)",
            f"Detected time: {event.when_iso}"
            if event.when_iso
            else "No date/time detected. Include one like 'tomorrow 2pm' or an ISO time.",
        ]
        return InferredAction(tool="calendar_write_create", payload=payload, preview="\n".join(preview))

    return None


class AgentService:
    def __init__(
        self,
        confirmations: ConfirmationService,
        memory: ConversationMemory,
        llm: LLMChatBackend,
        executor: ToolExecutor,
        audit: AuditSink,
    ) -> None:
        self._confirmations = confirmations
        self._memory = memory
        self._llm = llm
        self._executor = executor
        self._audit = audit

    async def handle_message(self, user_id: str, text: str) -> str:
        await self._memory.append(user_id, "user", text)

        pending = await self._confirmations.get(user_id)
        if pending is not None:
            return await self._resolve_pending(user_id, text, pending)

        action = infer_action(text)
        if action is not None:
            if requires_confirmation(action.tool):
                created = await self._confirmations.create(user_id, action.tool, action.payload)
                await self._log(user_id, "confirmation_requested", action.tool)
                message = f"{action.preview}\n\nReply YES {created.nonce} to confirm, or NO to cancel."
                return await self._reply(user_id, message)

            content = await self._execute(user_id, action.tool, action.payload, "tool_executed_auto")
            return await self._reply(user_id, content)

        prior = await self._memory.read(user_id)
        # the stored window already ends with this message
        history = prior[:-1] if prior and prior[-1].role == "user" and prior[-1].content == text else prior
        response = await self._llm.chat(
            [
                ConversationTurn(role="system", content=SYSTEM_PROMPT),
                *history[-PROMPT_HISTORY_TURNS:],
                ConversationTurn(role="user", content=text),
            ]
        )
        return await self._reply(user_id, response)

    async def _resolve_pending(self, user_id: str, text: str, pending) -> str:
        stripped = text.strip()

        if _REJECT_RE.match(stripped):
            await self._confirmations.clear(user_id)
            await self._log(user_id, "confirmation_rejected", pending.tool)
            return await self._reply(user_id, CANCELLED_MESSAGE)

        confirm = _CONFIRM_RE.match(stripped)
        if confirm is None:
            return STILL_PENDING_MESSAGE

        if confirm.group(1) != pending.nonce:
            logger.warning("Confirmation nonce mismatch for user %s", user_id)
            return NONCE_MISMATCH_MESSAGE

        if not requires_confirmation(pending.tool):
            return NO_CONFIRMATION_NEEDED_MESSAGE

        await self._confirmations.clear(user_id)
        await self._log(user_id, "confirmation_granted", pending.tool)
        content = await self._execute(
            user_id, pending.tool, pending.payload, "tool_executed_after_confirmation"
        )
        return await self._reply(user_id, content)

    async def _execute(self, user_id: str, tool: str, payload: dict, event_type: str) -> str:
        try:
            result = await self._executor.execute(user_id, tool, payload)
        except Exception as exc:
            await self._audit.log(
                AuditEvent(
                    event_type="tool_execution_failed",
                    actor_user_id=user_id,
                    metadata={"tool": tool, "error": type(exc).__name__},
                )
            )
            raise
        await self._log(user_id, event_type, tool)
        return result.content

    async def _reply(self, user_id: str, text: str) -> str:
        await self._memory.append(user_id, "assistant", text)
        return text

    async def _log(self, user_id: str, event_type: str, tool: str) -> None:
        await self._audit.log(
            AuditEvent(event_type=event_type, actor_user_id=user_id, metadata={"tool": tool})
        )
