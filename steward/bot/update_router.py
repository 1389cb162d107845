"""
Steward — Update router.

Per-message decision tree: ignore what isn't a private text message, run
the claim flow while the bot is unclaimed, silently drop senders outside
the allow-list, dispatch fixed commands and hand everything else to the
agent.
"""

from __future__ import annotations

import logging

from telegram import Update
from telegram.constants import ChatType

from steward.core.agent import AgentService
from steward.core.heartbeat_config import HeartbeatConfigService
from steward.core.integration_service import IntegrationService
from steward.core.ownership import ClaimFailure, OwnershipService
from steward.integrations.google_oauth import NotConnectedError
from steward.ports.integration_port import IntegrationError
from steward.ports.transport_port import TransportClient

logger = logging.getLogger(__name__)

CLAIM_FAILURE_MESSAGES = {
    ClaimFailure.TOO_MANY_ATTEMPTS: "Too many claim attempts. Try again later.",
    ClaimFailure.ALREADY_CLAIMED: "Ownership already claimed.",
    ClaimFailure.CLAIM_UNAVAILABLE: "Claim code is not available. Check deployment config.",
    ClaimFailure.INVALID_CODE: "Invalid claim code.",
}
CLAIM_SUCCESS_MESSAGE = (
    "Claim successful. You are now the owner and have been added to the whitelist."
)
ERROR_REPLY = "Sorry, something went wrong handling that message. Please try again."

HELP_TEXT = "\n".join(
    [
        "Available commands:",
        "/help",
        "/integrations",
        "/heartbeats",
        "Reply with a normal message for assistant responses.",
        "For write actions you must confirm with YES <code>.",
    ]
)


def _command(text: str) -> str:
    """'/integrations@MyBot weather x' -> '/integrations'."""
    return text.split(maxsplit=1)[0].split("@", 1)[0].lower()


class UpdateRouter:
    def __init__(
        self,
        transport: TransportClient,
        ownership: OwnershipService,
        agent: AgentService,
        integrations: IntegrationService,
        heartbeats: HeartbeatConfigService,
    ) -> None:
        self._transport = transport
        self._ownership = ownership
        self._agent = agent
        self._integrations = integrations
        self._heartbeats = heartbeats

    async def handle_update(self, update: Update) -> None:
        message = update.message
        if message is None or message.chat.type != ChatType.PRIVATE:
            return
        if not message.text or message.from_user is None:
            return

        user_id = str(message.from_user.id)
        chat_id = str(message.chat.id)
        text = message.text.strip()

        claimed = await self._ownership.is_owner_configured()
        if claimed and not await self._ownership.is_allowed_user(user_id):
            logger.warning("Dropping message from non-allow-listed user %s", user_id)
            return

        try:
            if claimed:
                reply = await self._dispatch(user_id, text)
            else:
                reply = await self._handle_unclaimed(user_id, text)
        except (NotConnectedError, IntegrationError) as exc:
            logger.warning("Integration failure for %s: %s", user_id, exc)
            reply = str(exc)
        except Exception:
            logger.exception("Failed to handle message from %s", user_id)
            reply = ERROR_REPLY

        await self._reply(chat_id, reply)

    async def _handle_unclaimed(self, user_id: str, text: str) -> str:
        command = _command(text) if text else ""

        if command == "/claim":
            parts = text.split(maxsplit=1)
            if len(parts) != 2:
                return "Invalid claim command. Use /claim <code>."
            result = await self._ownership.claim_ownership(user_id, parts[1].strip())
            if result.ok:
                return CLAIM_SUCCESS_MESSAGE
            return CLAIM_FAILURE_MESSAGES[result.reason]

        if command == "/start":
            return "\n".join(
                [
                    "Setup required before this assistant can run.",
                    f"Your Telegram ID: {user_id}",
                    "Use: /claim <your-secret-claim-code>",
                ]
            )

        return "This bot is not claimed yet. Use /claim <code>."

    async def _dispatch(self, user_id: str, text: str) -> str:
        command = _command(text)
        if command == "/start":
            return "Assistant is online. Use /help to view available commands."
        if command == "/help":
            return HELP_TEXT
        if command == "/claim":
            return "Ownership already claimed."
        if command == "/integrations":
            return await self._integrations.handle_command(user_id, text)
        if command == "/heartbeats":
            return await self._heartbeats.handle_command(user_id, text)
        return await self._agent.handle_message(user_id, text)

    async def _reply(self, chat_id: str, text: str) -> None:
        await self._transport.send_message(chat_id, text)
