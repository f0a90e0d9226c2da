"""
TrafficWatch - Configuration via Pydantic Settings.

All settings are loaded from environment variables or .env file.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings loaded from env / .env."""

    # ── General ──────────────────────────────────────────────
    app_name: str = "TrafficWatch"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"

    # ── Database ─────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./trafficwatch.db",
        description="SQLAlchemy database URL for the durability sink",
    )
    persistence_enabled: bool = Field(
        default=True,
        description="Write classified records, alerts and reputations to the database",
    )

    # ── Redis ────────────────────────────────────────────────
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for blocklist metadata",
    )

    # ── Detection ────────────────────────────────────────────
    history_retention_sec: float = Field(
        default=60.0, gt=0,
        description="Per-source lookback used for pattern and reputation analysis",
    )
    burst_window_sec: float = Field(
        default=5.0, gt=0,
        description="Short lookback used for burst feature extraction",
    )
    max_tracked_sources: int = Field(
        default=50_000, gt=0,
        description="Maximum number of source addresses kept in memory",
    )
    max_clock_skew_sec: float = Field(
        default=5.0, ge=0,
        description="How far ahead of the local clock a sample timestamp may be",
    )

    # ── Monitor ──────────────────────────────────────────────
    monitor_interval_sec: float = Field(
        default=0.5, gt=0,
        description="Delay between synthetic samples while monitoring",
    )
    recent_logs_limit: int = 100
    recent_alerts_limit: int = 50

    # ── Alerts ───────────────────────────────────────────────
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    webhook_url: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"debug", "info", "warning", "error", "critical"}
        if v.lower() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.lower()

    model_config = {
        "env_prefix": "TRAFFICWATCH_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Singleton
settings = Settings()
