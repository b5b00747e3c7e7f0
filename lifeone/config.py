"""
LifeONE — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from lifeone/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM — provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str
    LLM_MAX_TOKENS: int = 4096
    LLM_WEB_SEARCH: bool = False  # gemini only: Google Search retrieval tool

    # SQLite key-value state
    DATABASE_PATH: str = "data/lifeone.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Clock & notifications (the assistant reasons in KST)
    TIMEZONE: str = "Asia/Seoul"
    NOTIFICATION_HOUR: int = 8
    TRASH_RETENTION_DAYS: int = 30

    # Deletion payloads are only applied right after a "네" to a delete question
    REQUIRE_DELETE_CONFIRMATION: bool = True

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("NOTIFICATION_HOUR", "TRASH_RETENTION_DAYS", "LLM_MAX_TOKENS", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("LLM_WEB_SEARCH", "REQUIRE_DELETE_CONFIRMATION", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in ("1", "true", "yes", "on")


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "gemini"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        LLM_MAX_TOKENS=os.getenv("LLM_MAX_TOKENS", "4096"),
        LLM_WEB_SEARCH=os.getenv("LLM_WEB_SEARCH", "false"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/lifeone.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Seoul"),
        NOTIFICATION_HOUR=os.getenv("NOTIFICATION_HOUR", "8"),
        TRASH_RETENTION_DAYS=os.getenv("TRASH_RETENTION_DAYS", "30"),
        REQUIRE_DELETE_CONFIRMATION=os.getenv("REQUIRE_DELETE_CONFIRMATION", "true"),
    )


# Singleton — imported by all other modules as:
#   from lifeone.config import settings
settings = _load_settings()
