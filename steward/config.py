"""
Steward — Centralized configuration.

Loads all settings from .env and validates required keys.
The runtime builds one Settings instance and hands it to every component;
nothing imports a module-level settings object.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

# Load .env from project root (two levels up from steward/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"


class ConfigurationError(RuntimeError):
    """Raised when an operation needs a setting that is not configured."""


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM — openrouter (default), openai, anthropic
    LLM_PROVIDER: str = "openrouter"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str
    LLM_BASE_URL: str = "https://openrouter.ai/api/v1"

    # Ownership
    OWNER_CLAIM_CODE: str = Field(min_length=8)
    OWNER_CLAIM_PEPPER: str = Field(min_length=16)
    CLAIM_ATTEMPT_MAX: int = Field(default=5, ge=1, le=20)
    CLAIM_ATTEMPT_WINDOW_SECONDS: int = Field(default=300, ge=60, le=3600)

    # Storage
    DATABASE_URL: str
    REDIS_URL: str

    # OAuth (optional; /integrations connect refuses until set)
    PUBLIC_BASE_URL: str = ""
    OAUTH_HTTP_HOST: str = "0.0.0.0"
    OAUTH_HTTP_PORT: int = Field(default=3000, ge=1, le=65535)
    TOKEN_ENCRYPTION_KEY: str = ""
    GOOGLE_OAUTH_CLIENT_ID: str = ""
    GOOGLE_OAUTH_CLIENT_SECRET: str = ""
    GOOGLE_OAUTH_REDIRECT_URI: str = ""
    OAUTH_CONNECT_ATTEMPT_MAX: int = Field(default=10, ge=1, le=30)
    OAUTH_CONNECT_ATTEMPT_WINDOW_SECONDS: int = Field(default=300, ge=60, le=3600)

    # Providers
    OPENWEATHER_API_KEY: str = ""
    DEFAULT_WEATHER_LOCATION: str = "San Francisco, CA"
    GOOGLE_CALENDAR_ID: str = "primary"
    GOOGLE_CALENDAR_ACCESS_TOKEN: str = ""
    GMAIL_ACCESS_TOKEN: str = ""
    HEARTBEAT_MAX_EMAILS: int = Field(default=5, ge=1, le=20)
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Polling
    POLL_TIMEOUT_SECONDS: int = Field(default=30, ge=1, le=50)
    POLL_RETRY_SECONDS: float = Field(default=1.0, ge=0.1, le=60)

    # Agent
    CONFIRMATION_TTL_SECONDS: int = Field(default=300, ge=60, le=3600)
    CONVERSATION_WINDOW_SIZE: int = Field(default=20, ge=4, le=100)

    @field_validator("PUBLIC_BASE_URL", "LLM_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def oauth_configured(self) -> bool:
        return bool(
            self.PUBLIC_BASE_URL
            and self.GOOGLE_OAUTH_CLIENT_ID
            and self.GOOGLE_OAUTH_CLIENT_SECRET
            and self.TOKEN_ENCRYPTION_KEY
        )


def load_settings() -> Settings:
    """Load settings from environment, validating required keys.

    Exits the process with status 1 when a required value is missing or invalid.
    """
    load_dotenv(_ENV_PATH)

    values = {
        name: os.environ[name]
        for name in Settings.model_fields
        if os.environ.get(name, "") != ""
    }
    try:
        return Settings(**values)
    except ValidationError as exc:
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"])
            print(f"ERROR: {field}: {error['msg']} (check .env)", file=sys.stderr)
        sys.exit(1)
