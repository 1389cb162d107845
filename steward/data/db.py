"""
Steward — Relational storage.

Ownership, allow-list, audit log, integration connections and heartbeat jobs
persist in PostgreSQL (SQLite for local runs and tests). The claim protocol
runs inside one SERIALIZABLE transaction with row locks on the ownership and
claim-code rows.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from steward.data.models import (
    AuditEvent,
    ClaimCode,
    HeartbeatJob,
    IntegrationConnection,
    OwnerRecord,
)
from steward.data.tables import (
    AllowedUserRow,
    AuditLogRow,
    Base,
    ClaimCodeRow,
    HeartbeatJobRow,
    IntegrationConnectionRow,
    OwnershipStateRow,
    UserProfileRow,
)
from steward.ports.store_port import TransactionConflict

logger = logging.getLogger(__name__)

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


class Database:
    """Owns the async engine and session factory for one process."""

    def __init__(self, url: str, echo: bool = False) -> None:
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.engine = create_async_engine(url, echo=echo, connect_args=connect_args)
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def session(self) -> AsyncSession:
        return self._session_factory()

    def insert(self, table):
        """Dialect-specific INSERT supporting ON CONFLICT."""
        if self.dialect == "postgresql":
            return pg_insert(table)
        return sqlite_insert(table)

    async def init_schema(self) -> None:
        """Create all tables if they don't exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug("Schema initialized (%s)", self.dialect)

    async def dispose(self) -> None:
        await self.engine.dispose()


def _is_retryable(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in _RETRYABLE_SQLSTATES


# ---------------------------------------------------------------------------
# Ownership / claim protocol
# ---------------------------------------------------------------------------


class _SqlClaimTransaction:
    """ClaimTransaction bound to one open session."""

    def __init__(self, db: Database, session: AsyncSession) -> None:
        self._db = db
        self._session = session

    async def get_owner_for_update(self) -> OwnerRecord | None:
        stmt = (
            select(OwnershipStateRow)
            .where(OwnershipStateRow.id == 1)
            .with_for_update()
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return OwnerRecord(owner_user_id=row.owner_user_id, claimed_at=row.claimed_at)

    async def get_active_claim_code_for_update(self) -> ClaimCode | None:
        stmt = (
            select(ClaimCodeRow)
            .where(ClaimCodeRow.consumed_at.is_(None))
            .order_by(ClaimCodeRow.id)
            .limit(1)
            .with_for_update()
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return ClaimCode(
            id=row.id,
            code_hash=row.code_hash,
            consumed_at=row.consumed_at,
            consumed_by_user_id=row.consumed_by_user_id,
        )

    async def create_owner(self, owner_user_id: str) -> None:
        self._session.add(OwnershipStateRow(id=1, owner_user_id=owner_user_id))
        try:
            await self._session.flush()
        except IntegrityError as exc:
            # a concurrent claim committed the singleton row first
            raise TransactionConflict("ownership row already exists") from exc

    async def add_allowed_user(self, user_id: str, added_by_user_id: str) -> None:
        stmt = (
            self._db.insert(AllowedUserRow)
            .values(user_id=user_id, added_by_user_id=added_by_user_id)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        await self._session.execute(stmt)

    async def seed_profile(self, user_id: str, default_model: str) -> None:
        stmt = (
            self._db.insert(UserProfileRow)
            .values(user_id=user_id, default_model=default_model)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        await self._session.execute(stmt)

    async def consume_claim_code(self, code_id: int, user_id: str) -> None:
        await self._session.execute(
            update(ClaimCodeRow)
            .where(ClaimCodeRow.id == code_id)
            .values(consumed_at=datetime.now(timezone.utc), consumed_by_user_id=user_id)
        )

    async def log_audit(self, event: AuditEvent) -> None:
        self._session.add(
            AuditLogRow(
                actor_user_id=event.actor_user_id,
                event_type=event.event_type,
                event_metadata=dict(event.metadata),
            )
        )
        await self._session.flush()


class SqlOwnershipStore:
    """OwnershipStore backed by the relational database."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_SqlClaimTransaction]:
        async with self._db.session() as session:
            await session.connection(
                execution_options={"isolation_level": "SERIALIZABLE"}
            )
            try:
                yield _SqlClaimTransaction(self._db, session)
                await session.commit()
            except DBAPIError as exc:
                await session.rollback()
                if _is_retryable(exc):
                    raise TransactionConflict(str(exc.orig)) from exc
                raise
            except BaseException:
                await session.rollback()
                raise

    async def get_owner(self) -> OwnerRecord | None:
        async with self._db.session() as session:
            row = await session.get(OwnershipStateRow, 1)
        if row is None:
            return None
        return OwnerRecord(owner_user_id=row.owner_user_id, claimed_at=row.claimed_at)

    async def is_allowed(self, user_id: str) -> bool:
        async with self._db.session() as session:
            row = await session.get(AllowedUserRow, user_id)
        return row is not None

    async def seed_claim_code_if_missing(self, code_hash: str) -> None:
        """Insert the claim code row unless one (consumed or not) already exists."""
        async with self._db.session() as session:
            existing = (
                await session.execute(select(ClaimCodeRow.id).limit(1))
            ).scalar_one_or_none()
            if existing is not None:
                return
            session.add(ClaimCodeRow(code_hash=code_hash))
            await session.commit()
        logger.info("Claim code seeded")


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class SqlAuditRepository:
    """Append-only audit sink."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def log(self, event: AuditEvent) -> None:
        async with self._db.session() as session:
            session.add(
                AuditLogRow(
                    actor_user_id=event.actor_user_id,
                    event_type=event.event_type,
                    event_metadata=dict(event.metadata),
                )
            )
            await session.commit()

    async def list_events(self, limit: int = 100) -> list[AuditEvent]:
        """Return the most recent audit events, newest first."""
        async with self._db.session() as session:
            rows = (
                await session.execute(
                    select(AuditLogRow).order_by(AuditLogRow.id.desc()).limit(limit)
                )
            ).scalars().all()
        return [
            AuditEvent(
                event_type=r.event_type,
                actor_user_id=r.actor_user_id,
                metadata=dict(r.event_metadata or {}),
                created_at=r.created_at,
            )
            for r in rows
        ]


# ---------------------------------------------------------------------------
# Integrations
# ---------------------------------------------------------------------------


class SqlIntegrationRepository:
    """Integration connections, upserted by (owner, integration type)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _row_to_connection(row: IntegrationConnectionRow) -> IntegrationConnection:
        return IntegrationConnection(
            owner_user_id=row.owner_user_id,
            integration_type=row.integration_type,
            provider=row.provider,
            config=dict(row.config or {}),
        )

    async def list(self, owner_user_id: str) -> list[IntegrationConnection]:
        async with self._db.session() as session:
            rows = (
                await session.execute(
                    select(IntegrationConnectionRow)
                    .where(IntegrationConnectionRow.owner_user_id == owner_user_id)
                    .order_by(IntegrationConnectionRow.integration_type)
                )
            ).scalars().all()
        return [self._row_to_connection(r) for r in rows]

    async def get(
        self, owner_user_id: str, integration_type: str
    ) -> IntegrationConnection | None:
        async with self._db.session() as session:
            row = (
                await session.execute(
                    select(IntegrationConnectionRow).where(
                        IntegrationConnectionRow.owner_user_id == owner_user_id,
                        IntegrationConnectionRow.integration_type == integration_type,
                    )
                )
            ).scalar_one_or_none()
        if row is None:
            return None
        return self._row_to_connection(row)

    async def upsert(
        self,
        owner_user_id: str,
        integration_type: str,
        provider: str,
        config: dict,
    ) -> None:
        now = datetime.now(timezone.utc)
        stmt = self._db.insert(IntegrationConnectionRow).values(
            owner_user_id=owner_user_id,
            integration_type=integration_type,
            provider=provider,
            config=config,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["owner_user_id", "integration_type"],
            set_={
                "provider": stmt.excluded.provider,
                "config": stmt.excluded.config,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        async with self._db.session() as session:
            await session.execute(stmt)
            await session.commit()
        logger.info("Integration %s/%s saved for user %s", integration_type, provider, owner_user_id)


# ---------------------------------------------------------------------------
# Heartbeats and profiles
# ---------------------------------------------------------------------------


class SqlHeartbeatRepository:
    """Heartbeat job configuration, one row per (owner, job type)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _row_to_job(row: HeartbeatJobRow) -> HeartbeatJob:
        return HeartbeatJob(
            owner_user_id=row.owner_user_id,
            job_type=row.job_type,
            schedule_cron=row.schedule_cron,
            timezone=row.timezone,
            enabled=bool(row.enabled),
            config=dict(row.config or {}),
        )

    async def list(self, owner_user_id: str) -> list[HeartbeatJob]:
        async with self._db.session() as session:
            rows = (
                await session.execute(
                    select(HeartbeatJobRow)
                    .where(HeartbeatJobRow.owner_user_id == owner_user_id)
                    .order_by(HeartbeatJobRow.job_type)
                )
            ).scalars().all()
        return [self._row_to_job(r) for r in rows]

    async def list_enabled(self, job_type: str) -> list[HeartbeatJob]:
        async with self._db.session() as session:
            rows = (
                await session.execute(
                    select(HeartbeatJobRow).where(
                        HeartbeatJobRow.job_type == job_type,
                        HeartbeatJobRow.enabled.is_(True),
                    )
                )
            ).scalars().all()
        return [self._row_to_job(r) for r in rows]

    async def upsert(self, job: HeartbeatJob) -> None:
        stmt = self._db.insert(HeartbeatJobRow).values(
            owner_user_id=job.owner_user_id,
            job_type=job.job_type,
            schedule_cron=job.schedule_cron,
            timezone=job.timezone,
            enabled=job.enabled,
            config=job.config,
            updated_at=datetime.now(timezone.utc),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["owner_user_id", "job_type"],
            set_={
                "schedule_cron": stmt.excluded.schedule_cron,
                "timezone": stmt.excluded.timezone,
                "enabled": stmt.excluded.enabled,
                "config": stmt.excluded.config,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        async with self._db.session() as session:
            await session.execute(stmt)
            await session.commit()
        logger.info(
            "Heartbeat %s %s for user %s",
            job.job_type, "enabled" if job.enabled else "disabled", job.owner_user_id,
        )


class SqlProfileRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def get_timezone(self, user_id: str) -> str | None:
        async with self._db.session() as session:
            row = await session.get(UserProfileRow, user_id)
        return row.timezone if row is not None else None
