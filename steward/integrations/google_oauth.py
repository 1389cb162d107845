"""
Steward — Google OAuth token service.

PKCE authorization-code flow for the Calendar and Gmail integrations:
connect links carry a single-use state id, tokens are stored encrypted in
the integration-connection config, and expired access tokens are refreshed
transparently.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import quote, urlencode

import httpx

from steward.config import ConfigurationError, Settings
from steward.data.models import GOOGLE_INTEGRATION_KINDS, StoredToken
from steward.ports.integration_port import IntegrationError
from steward.ports.kv_port import KeyValueStore
from steward.ports.store_port import IntegrationRepository
from steward.security.token_cipher import TokenCipher, TokenCipherError

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"

STATE_TTL_SECONDS = 600
EXPIRY_MARGIN = timedelta(seconds=60)

_SCOPES = {
    "calendar": [
        "https://www.googleapis.com/auth/calendar",
        "https://www.googleapis.com/auth/calendar.events",
    ],
    "gmail": ["https://www.googleapis.com/auth/gmail.readonly"],
}


class OAuthError(Exception):
    """Token endpoint failure or unusable token response."""


class OAuthStateError(OAuthError):
    """The state id is unknown, expired or already used."""


class NotConnectedError(Exception):
    """No usable token for the integration; the user must reconnect."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"No valid {kind} token. Connect via /integrations connect {kind}")
        self.kind = kind


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def pkce_challenge(verifier: str) -> str:
    return _b64url(hashlib.sha256(verifier.encode("utf-8")).digest())


def resolve_google_token_error(exc: Exception, fallback: str, label: str) -> str:
    """Static fallback token when OAuth has nothing usable; otherwise re-raise."""
    if fallback:
        logger.info("%s OAuth token unavailable, using static access token", label)
        return fallback
    if isinstance(exc, NotConnectedError):
        raise exc
    raise IntegrationError(f"{label} not configured") from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GoogleOAuthService:
    def __init__(
        self,
        settings: Settings,
        repo: IntegrationRepository,
        store: KeyValueStore,
        http: httpx.AsyncClient,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings
        self._repo = repo
        self._store = store
        self._http = http
        self._clock = clock
        self._cipher = (
            TokenCipher.from_key_string(settings.TOKEN_ENCRYPTION_KEY)
            if settings.TOKEN_ENCRYPTION_KEY
            else None
        )

    def is_configured(self) -> bool:
        return self._settings.oauth_configured

    # ------------------------------------------------------------------
    # Connect flow
    # ------------------------------------------------------------------

    async def create_connect_url(self, user_id: str, kind: str) -> str:
        """Persist a fresh state + PKCE verifier and return the deployment-hosted start link."""
        self._assert_configured()
        if kind not in GOOGLE_INTEGRATION_KINDS:
            raise ValueError(f"Unsupported Google integration: {kind}")

        state = str(uuid.uuid4())
        verifier = _b64url(secrets.token_bytes(32))
        await self._store.set(
            self._state_key(state),
            json.dumps({"userId": user_id, "kind": kind, "codeVerifier": verifier}),
            STATE_TTL_SECONDS,
        )
        return f"{self._settings.PUBLIC_BASE_URL}/oauth/google/start?state={quote(state, safe='')}"

    async def build_auth_url_for_state(self, state: str) -> str | None:
        """Provider authorization URL for a pending state, or None. Does not consume the state."""
        pending = self._decode_state(await self._store.get(self._state_key(state)))
        if pending is None:
            return None

        params = {
            "response_type": "code",
            "client_id": self._required("GOOGLE_OAUTH_CLIENT_ID"),
            "redirect_uri": self._redirect_uri(),
            "scope": " ".join(_SCOPES[pending["kind"]]),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
            "code_challenge": pkce_challenge(pending["codeVerifier"]),
            "code_challenge_method": "S256",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def handle_oauth_callback(self, state: str, code: str) -> tuple[str, str]:
        """Consume the state, exchange the code and store the token. Returns (user_id, kind)."""
        pending = self._decode_state(await self._store.pop(self._state_key(state)))
        if pending is None:
            raise OAuthStateError("Invalid or expired OAuth state.")

        token_response = await self._post_token(
            {
                "code": code,
                "client_id": self._required("GOOGLE_OAUTH_CLIENT_ID"),
                "client_secret": self._required("GOOGLE_OAUTH_CLIENT_SECRET"),
                "redirect_uri": self._redirect_uri(),
                "grant_type": "authorization_code",
                "code_verifier": pending["codeVerifier"],
            },
            "exchange",
        )
        await self._save_token(pending["userId"], pending["kind"], token_response)
        logger.info("Google %s connected for user %s", pending["kind"], pending["userId"])
        return pending["userId"], pending["kind"]

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    async def get_valid_access_token(self, user_id: str, kind: str) -> str:
        """Cached access token, or a refreshed one. Raises NotConnectedError."""
        connection = await self._repo.get(user_id, kind)
        token = self._extract_stored_token(connection.config if connection else {})

        if token.access_token and not self._is_expired(token.expires_at):
            return token.access_token

        if not token.refresh_token:
            raise NotConnectedError(kind)

        refreshed = await self._post_token(
            {
                "refresh_token": token.refresh_token,
                "client_id": self._required("GOOGLE_OAUTH_CLIENT_ID"),
                "client_secret": self._required("GOOGLE_OAUTH_CLIENT_SECRET"),
                "grant_type": "refresh_token",
            },
            "refresh",
        )
        await self._save_token(user_id, kind, refreshed, previous=token)
        logger.info("Refreshed Google %s token for user %s", kind, user_id)
        return refreshed["access_token"]

    async def revoke_integration_tokens(self, user_id: str, kind: str) -> None:
        """Revoke the refresh (or access) token remotely. Raises OAuthError on failure."""
        connection = await self._repo.get(user_id, kind)
        token = self._extract_stored_token(connection.config if connection else {})
        to_revoke = token.refresh_token or token.access_token
        if not to_revoke:
            return

        response = await self._http.post(REVOKE_URL, data={"token": to_revoke})
        if response.status_code >= 400:
            raise OAuthError(f"Google token revoke failed ({response.status_code})")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _post_token(self, form: dict, action: str) -> dict:
        response = await self._http.post(TOKEN_URL, data=form)
        if response.status_code >= 400:
            raise OAuthError(f"Google token {action} failed ({response.status_code})")
        try:
            body = response.json()
        except ValueError as exc:
            raise OAuthError(f"Google token {action} returned invalid JSON") from exc
        if not isinstance(body, dict) or not isinstance(body.get("access_token"), str):
            raise OAuthError(f"Google token {action} did not return an access token")
        return body

    async def _save_token(
        self,
        user_id: str,
        kind: str,
        response: dict,
        previous: StoredToken | None = None,
    ) -> None:
        if self._cipher is None:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY is required for encrypted OAuth token storage")

        existing = await self._repo.get(user_id, kind)
        existing_config = dict(existing.config) if existing else {}
        if previous is None:
            previous = self._extract_stored_token(existing_config)

        now = self._clock()
        expires_in = response.get("expires_in")
        if not isinstance(expires_in, (int, float)):
            expires_in = 3600

        merged = StoredToken(
            access_token=response["access_token"],
            refresh_token=response.get("refresh_token") or previous.refresh_token,
            expires_at=(now + timedelta(seconds=expires_in)).isoformat(),
            token_type=response.get("token_type") or previous.token_type or "Bearer",
            scope=response.get("scope") or previous.scope,
        )

        config = {
            **existing_config,
            "enabled": True,
            "tokenEncrypted": self._cipher.encrypt(json.dumps(merged.to_dict())),
            "connectedAt": now.isoformat(),
        }
        config.pop("token", None)
        if kind == "calendar" and not isinstance(config.get("calendarId"), str):
            config["calendarId"] = self._settings.GOOGLE_CALENDAR_ID

        await self._repo.upsert(user_id, kind, "google", config)

    def _extract_stored_token(self, config: dict) -> StoredToken:
        encrypted = config.get("tokenEncrypted")
        if isinstance(encrypted, str) and encrypted:
            if self._cipher is None:
                return StoredToken()
            try:
                decoded = json.loads(self._cipher.decrypt(encrypted))
            except (TokenCipherError, ValueError) as exc:
                logger.error("Stored OAuth token could not be decrypted: %s", exc)
                return StoredToken()
            return StoredToken.from_dict(decoded) if isinstance(decoded, dict) else StoredToken()

        legacy = config.get("token")
        return StoredToken.from_dict(legacy) if isinstance(legacy, dict) else StoredToken()

    def _is_expired(self, expires_at: str | None) -> bool:
        if not expires_at:
            return True
        try:
            expiry = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        except ValueError:
            return True
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return self._clock() >= expiry - EXPIRY_MARGIN

    @staticmethod
    def _decode_state(raw: str | None) -> dict | None:
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            return None
        if (
            not isinstance(value, dict)
            or value.get("kind") not in GOOGLE_INTEGRATION_KINDS
            or not isinstance(value.get("userId"), str)
            or not isinstance(value.get("codeVerifier"), str)
        ):
            return None
        return value

    def _redirect_uri(self) -> str:
        if self._settings.GOOGLE_OAUTH_REDIRECT_URI:
            return self._settings.GOOGLE_OAUTH_REDIRECT_URI
        if not self._settings.PUBLIC_BASE_URL:
            raise ConfigurationError("PUBLIC_BASE_URL or GOOGLE_OAUTH_REDIRECT_URI must be set.")
        return f"{self._settings.PUBLIC_BASE_URL}/oauth/google/callback"

    def _assert_configured(self) -> None:
        for name in (
            "PUBLIC_BASE_URL",
            "GOOGLE_OAUTH_CLIENT_ID",
            "GOOGLE_OAUTH_CLIENT_SECRET",
            "TOKEN_ENCRYPTION_KEY",
        ):
            self._required(name)

    def _required(self, name: str) -> str:
        value = getattr(self._settings, name)
        if not value:
            raise ConfigurationError(f"Missing {name}")
        return value

    @staticmethod
    def _state_key(state: str) -> str:
        return f"oauth:google:state:{state}"
