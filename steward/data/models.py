"""
Steward — Data Models.

Plain records passed between the stores and the services. The relational
tables that persist them live in steward.data.tables; nothing outside
steward.data touches ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

INTEGRATION_TYPES = ("weather", "calendar", "gmail")
GOOGLE_INTEGRATION_KINDS = ("calendar", "gmail")
HEARTBEAT_TYPES = ("morning_briefing", "weekly_review")


@dataclass
class OwnerRecord:
    """The single owner of this deployment. Created once, never deleted."""

    owner_user_id: str
    claimed_at: datetime | None = None


@dataclass
class ClaimCode:
    """The seeded claim secret (hashed). Consumed exactly once."""

    id: int
    code_hash: str
    consumed_at: datetime | None = None
    consumed_by_user_id: str | None = None


@dataclass
class AuditEvent:
    """Append-only security event."""

    event_type: str
    actor_user_id: str | None = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class IntegrationConnection:
    """A user's settings for one integration type.

    For Google integrations config may carry `tokenEncrypted`; a legacy
    plaintext `token` dict is read but never written.
    """

    owner_user_id: str
    integration_type: str   # weather | calendar | gmail
    provider: str           # openweather | google
    config: dict = field(default_factory=dict)


@dataclass
class HeartbeatJob:
    """A scheduled proactive message, one per (owner, job type)."""

    owner_user_id: str
    job_type: str           # morning_briefing | weekly_review
    schedule_cron: str      # cron-lite, e.g. "0 7 * * *"
    timezone: str = "UTC"
    enabled: bool = True
    config: dict = field(default_factory=dict)


@dataclass
class ConversationTurn:
    role: str               # system | user | assistant
    content: str


@dataclass
class StoredToken:
    """Decrypted view of a delegated OAuth token."""

    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: str | None = None     # ISO-8601, UTC
    token_type: str | None = None
    scope: str | None = None

    def to_dict(self) -> dict:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
            "tokenType": self.token_type,
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, value: dict) -> "StoredToken":
        def _text(key: str) -> str | None:
            item = value.get(key)
            return item if isinstance(item, str) else None

        return cls(
            access_token=_text("accessToken"),
            refresh_token=_text("refreshToken"),
            expires_at=_text("expiresAt"),
            token_type=_text("tokenType"),
            scope=_text("scope"),
        )
