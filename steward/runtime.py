"""
Steward — Process runtime.

Builds every client once, wires the services by constructor injection, and
owns startup and teardown. Nothing else in the package creates connections.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack

import httpx
import uvicorn

from steward.adapters.telegram_transport import TelegramTransport
from steward.bot.poller import TelegramPoller
from steward.bot.update_router import UpdateRouter
from steward.config import Settings
from steward.core.agent import AgentService
from steward.core.briefing import BriefingService
from steward.core.confirmation import ConfirmationService
from steward.core.dedup import OffsetStore, UpdateDeduplicator
from steward.core.executor import ToolExecutor
from steward.core.heartbeat_config import HeartbeatConfigService
from steward.core.heartbeat_worker import HeartbeatRunStats, HeartbeatWorker
from steward.core.integration_service import IntegrationService
from steward.core.llm import LLMChatBackend
from steward.core.memory import ConversationMemory
from steward.core.ownership import OwnershipService
from steward.core.rate_limiter import RateLimiter
from steward.data.db import (
    Database,
    SqlAuditRepository,
    SqlHeartbeatRepository,
    SqlIntegrationRepository,
    SqlOwnershipStore,
    SqlProfileRepository,
)
from steward.data.kv import RedisKeyValueStore
from steward.integrations.gmail import GmailClient
from steward.integrations.google_calendar import GoogleCalendarClient
from steward.integrations.google_oauth import GoogleOAuthService
from steward.integrations.openweather import OpenWeatherClient
from steward.web.oauth_routes import create_oauth_app

logger = logging.getLogger(__name__)


class Runtime:
    """Owns every long-lived client for one process."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

        self.db = Database(settings.DATABASE_URL)
        self.kv = RedisKeyValueStore.from_url(settings.REDIS_URL)
        self.http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
        self.transport = TelegramTransport.from_token(settings.TELEGRAM_BOT_TOKEN)
        self.llm = LLMChatBackend(settings)

        integrations_repo = SqlIntegrationRepository(self.db)
        heartbeat_repo = SqlHeartbeatRepository(self.db)
        audit = SqlAuditRepository(self.db)
        rate_limiter = RateLimiter(self.kv)

        self.ownership = OwnershipService(
            SqlOwnershipStore(self.db),
            rate_limiter,
            claim_code=settings.OWNER_CLAIM_CODE,
            pepper=settings.OWNER_CLAIM_PEPPER,
            default_model=self.llm.model,
            max_attempts=settings.CLAIM_ATTEMPT_MAX,
            window_seconds=settings.CLAIM_ATTEMPT_WINDOW_SECONDS,
        )
        self.oauth = GoogleOAuthService(settings, integrations_repo, self.kv, self.http)
        self.integrations = IntegrationService(settings, integrations_repo, self.oauth, rate_limiter)

        weather = OpenWeatherClient(self.http, settings.OPENWEATHER_API_KEY)
        calendar = GoogleCalendarClient(
            self.http,
            self.oauth,
            default_calendar_id=settings.GOOGLE_CALENDAR_ID,
            static_access_token=settings.GOOGLE_CALENDAR_ACCESS_TOKEN,
        )
        mail = GmailClient(
            self.http,
            self.oauth,
            default_max_items=settings.HEARTBEAT_MAX_EMAILS,
            static_access_token=settings.GMAIL_ACCESS_TOKEN,
        )

        self.agent = AgentService(
            ConfirmationService(self.kv, settings.CONFIRMATION_TTL_SECONDS),
            ConversationMemory(self.kv, settings.CONVERSATION_WINDOW_SIZE),
            self.llm,
            ToolExecutor(self.integrations, weather, calendar, mail),
            audit,
        )
        self.router = UpdateRouter(
            self.transport,
            self.ownership,
            self.agent,
            self.integrations,
            HeartbeatConfigService(heartbeat_repo, SqlProfileRepository(self.db)),
        )
        self.poller = TelegramPoller(
            self.transport,
            self.router,
            UpdateDeduplicator(self.kv),
            OffsetStore(self.kv),
            poll_timeout_seconds=settings.POLL_TIMEOUT_SECONDS,
            retry_delay_seconds=settings.POLL_RETRY_SECONDS,
        )
        self.heartbeats = HeartbeatWorker(
            heartbeat_repo,
            self.kv,
            BriefingService(self.integrations, weather, calendar, mail),
            self.transport,
        )

        self._oauth_server: uvicorn.Server | None = None
        self._oauth_task: asyncio.Task | None = None
        self._oauth_failed = False

    async def start(self) -> None:
        await self.db.init_schema()
        await self.transport.start()
        await self.ownership.bootstrap_claim_code()

    async def run_bot(self) -> None:
        """Serve until stop() is called."""
        await self.start()
        self._start_oauth_server()
        try:
            await self.poller.run()
        finally:
            await self.close()
        if self._oauth_failed:
            raise RuntimeError("OAuth callback server stopped unexpectedly")

    async def run_heartbeat(self, job_type: str) -> HeartbeatRunStats:
        await self.start()
        try:
            return await self.heartbeats.run(job_type)
        finally:
            await self.close()

    def stop(self) -> None:
        logger.info("Shutting down")
        self.poller.stop()

    def _start_oauth_server(self) -> None:
        if not self.oauth.is_configured():
            logger.warning("OAuth server disabled; missing OAuth config env vars")
            return

        config = uvicorn.Config(
            create_oauth_app(self.oauth, self.transport),
            host=self.settings.OAUTH_HTTP_HOST,
            port=self.settings.OAUTH_HTTP_PORT,
            log_level="info",
        )
        self._oauth_server = uvicorn.Server(config)
        self._oauth_task = asyncio.create_task(self._serve_oauth(self._oauth_server))
        logger.info("OAuth callback server listening on port %d", self.settings.OAUTH_HTTP_PORT)

    async def _serve_oauth(self, server: uvicorn.Server) -> None:
        # uvicorn exits the process with SystemExit when it cannot bind
        try:
            await server.serve()
        except SystemExit:
            logger.error("OAuth callback server failed on port %d", self.settings.OAUTH_HTTP_PORT)
            self._oauth_failed = True
            self.stop()

    async def _stop_oauth_server(self) -> None:
        if self._oauth_server is None or self._oauth_task is None:
            return
        self._oauth_server.should_exit = True
        try:
            await self._oauth_task
        finally:
            self._oauth_server = None
            self._oauth_task = None

    async def close(self) -> None:
        """Release every client. Each close runs even if an earlier one fails."""
        async with AsyncExitStack() as stack:
            stack.push_async_callback(self.db.dispose)
            stack.push_async_callback(self.kv.close)
            stack.push_async_callback(self.llm.close)
            stack.push_async_callback(self.http.aclose)
            stack.push_async_callback(self.transport.close)
            stack.push_async_callback(self._stop_oauth_server)
