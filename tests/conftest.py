"""Shared test fixtures and configuration.

Settings are built directly (no .env), the relational store runs on a temp
SQLite file, and every other port is backed by an in-memory fake.
"""

import base64

import pytest
import pytest_asyncio

from fakes import (
    FakeClock,
    FakeTransport,
    InMemoryAuditSink,
    InMemoryHeartbeatRepository,
    InMemoryIntegrationRepository,
    InMemoryKeyValueStore,
    InMemoryOwnershipStore,
    InMemoryProfileRepository,
)

TEST_ENCRYPTION_KEY = base64.urlsafe_b64encode(b"k" * 32).rstrip(b"=").decode("ascii")


def make_settings(**overrides):
    from steward.config import Settings

    values = dict(
        TELEGRAM_BOT_TOKEN="fake-token-for-tests",
        LLM_API_KEY="fake-llm-key-for-tests",
        OWNER_CLAIM_CODE="correct-horse-battery",
        OWNER_CLAIM_PEPPER="pepper-pepper-pepper",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        REDIS_URL="redis://localhost:6379/0",
        PUBLIC_BASE_URL="https://bot.example.com/",
        TOKEN_ENCRYPTION_KEY=TEST_ENCRYPTION_KEY,
        GOOGLE_OAUTH_CLIENT_ID="client-id",
        GOOGLE_OAUTH_CLIENT_SECRET="client-secret",
        OPENWEATHER_API_KEY="weather-key",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return InMemoryKeyValueStore(clock)


@pytest.fixture
def ownership_store():
    return InMemoryOwnershipStore()


@pytest.fixture
def audit():
    return InMemoryAuditSink()


@pytest.fixture
def integration_repo():
    return InMemoryIntegrationRepository()


@pytest.fixture
def heartbeat_repo():
    return InMemoryHeartbeatRepository()


@pytest.fixture
def profile_repo():
    return InMemoryProfileRepository()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def tmp_db_url(tmp_path):
    """Return a SQLAlchemy URL for a temporary SQLite DB file."""
    return f"sqlite+aiosqlite:///{tmp_path / 'test_steward.db'}"


@pytest_asyncio.fixture
async def database(tmp_db_url):
    """Return an initialized Database backed by a temp file."""
    from steward.data.db import Database

    db = Database(tmp_db_url)
    await db.init_schema()
    yield db
    await db.dispose()
