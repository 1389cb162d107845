"""Relational store ports — ownership, allow-list, integrations, heartbeats, audit.

Core services depend on these protocols, never on SQLAlchemy directly.
"""

from __future__ import annotations

from typing import AsyncContextManager, Protocol

from steward.data.models import (
    AuditEvent,
    ClaimCode,
    HeartbeatJob,
    IntegrationConnection,
    OwnerRecord,
)


class TransactionConflict(Exception):
    """Raised when a transaction lost a serialization race and may be retried."""


class ClaimTransaction(Protocol):
    """Unit of work for a single claim attempt. Commits when the block exits cleanly."""

    async def get_owner_for_update(self) -> OwnerRecord | None: ...

    async def get_active_claim_code_for_update(self) -> ClaimCode | None: ...

    async def create_owner(self, owner_user_id: str) -> None: ...

    async def add_allowed_user(self, user_id: str, added_by_user_id: str) -> None: ...

    async def seed_profile(self, user_id: str, default_model: str) -> None: ...

    async def consume_claim_code(self, code_id: int, user_id: str) -> None: ...

    async def log_audit(self, event: AuditEvent) -> None: ...


class OwnershipStore(Protocol):
    """Transactional store behind the single-owner claim protocol."""

    def transaction(self) -> AsyncContextManager[ClaimTransaction]: ...

    async def get_owner(self) -> OwnerRecord | None: ...

    async def is_allowed(self, user_id: str) -> bool: ...

    async def seed_claim_code_if_missing(self, code_hash: str) -> None: ...


class AuditSink(Protocol):
    """Append-only audit log."""

    async def log(self, event: AuditEvent) -> None: ...


class IntegrationRepository(Protocol):
    """Per-user integration connections, one row per (user, integration type)."""

    async def list(self, owner_user_id: str) -> list[IntegrationConnection]: ...

    async def get(
        self, owner_user_id: str, integration_type: str
    ) -> IntegrationConnection | None: ...

    async def upsert(
        self,
        owner_user_id: str,
        integration_type: str,
        provider: str,
        config: dict,
    ) -> None: ...


class HeartbeatRepository(Protocol):
    """Scheduled heartbeat jobs, one row per (owner, job type)."""

    async def list(self, owner_user_id: str) -> list[HeartbeatJob]: ...

    async def list_enabled(self, job_type: str) -> list[HeartbeatJob]: ...

    async def upsert(self, job: HeartbeatJob) -> None: ...


class ProfileRepository(Protocol):
    """Per-user profile lookups."""

    async def get_timezone(self, user_id: str) -> str | None: ...
