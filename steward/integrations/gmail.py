"""Gmail inbox summary client (read-only)."""

from __future__ import annotations

import logging

import httpx

from steward.integrations.google_oauth import (
    GoogleOAuthService,
    NotConnectedError,
    OAuthError,
    resolve_google_token_error,
)
from steward.ports.integration_port import IntegrationError

logger = logging.getLogger(__name__)

MESSAGES_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages"


def _header(headers: list[dict], name: str) -> str | None:
    for header in headers:
        if not isinstance(header, dict):
            continue
        if str(header.get("name", "")).lower() == name:
            return header.get("value")
    return None


class GmailClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        oauth: GoogleOAuthService,
        default_max_items: int = 5,
        static_access_token: str = "",
    ) -> None:
        self._http = http
        self._oauth = oauth
        self._default_max_items = default_max_items
        self._static_token = static_access_token

    async def _access_token(self, user_id: str) -> str:
        try:
            return await self._oauth.get_valid_access_token(user_id, "gmail")
        except (NotConnectedError, OAuthError) as exc:
            return resolve_google_token_error(exc, self._static_token, "Gmail")

    async def important_summary(self, user_id: str, max_items: int | None = None) -> str:
        token = await self._access_token(user_id)
        headers = {"Authorization": f"Bearer {token}"}
        limit = max_items or self._default_max_items

        response = await self._http.get(
            MESSAGES_URL,
            params={"maxResults": str(limit), "q": "is:inbox newer_than:2d"},
            headers=headers,
        )
        if response.status_code >= 400:
            raise IntegrationError(f"Gmail list failed ({response.status_code})")

        try:
            refs = (response.json().get("messages") or [])[:limit]
        except (ValueError, AttributeError, TypeError) as exc:
            raise IntegrationError("Gmail returned a malformed response") from exc
        refs = [ref for ref in refs if isinstance(ref, dict)]

        if not refs:
            return "No recent inbox messages."

        lines = ["Recent inbox summary:"]
        for ref in refs:
            detail = await self._http.get(
                f"{MESSAGES_URL}/{ref.get('id')}",
                params=[
                    ("format", "metadata"),
                    ("metadataHeaders", "Subject"),
                    ("metadataHeaders", "From"),
                ],
                headers=headers,
            )
            if detail.status_code >= 400:
                logger.warning("Skipping Gmail message %s (%d)", ref.get("id"), detail.status_code)
                continue

            try:
                message = detail.json()
            except ValueError:
                message = None
            if not isinstance(message, dict):
                logger.warning("Skipping malformed Gmail message %s", ref.get("id"))
                continue

            payload = message.get("payload")
            msg_headers = (payload.get("headers") if isinstance(payload, dict) else None) or []
            subject = _header(msg_headers, "subject") or "(no subject)"
            sender = _header(msg_headers, "from") or "unknown sender"
            snippet = message.get("snippet") or ""
            lines.append(f"- {subject} | {sender}" + (f" ({snippet})" if snippet else ""))

        return "\n".join(lines)
