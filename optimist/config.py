"""
Settings — environment-driven defaults for recovery and logging.

    OPTIMIST_MAX_RETRY_ATTEMPTS=5 OPTIMIST_LOG_LEVEL=DEBUG python app.py
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OptimistSettings(BaseSettings):
    """optimist configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="OPTIMIST_",
        env_file=".env",
        extra="ignore",
    )

    max_retry_attempts: int = Field(
        3, ge=0, description="Total retry budget for transient failures."
    )
    base_delay_ms: int = Field(
        1000, ge=0, description="Delay before the first retry; doubles per attempt."
    )
    cap_ms: int = Field(30_000, ge=0, description="Upper bound for any retry delay.")
    enable_auto_recovery: bool = Field(
        True,
        description="When off, every failure except ignored kinds goes to manual intervention.",
    )
    notify_on_failure: bool = Field(
        True, description="Notify administrators when a failure needs a human."
    )
    log_all_attempts: bool = Field(
        True, description="Log every retry attempt at INFO instead of DEBUG."
    )
    log_level: str = Field("INFO", description="Minimum level of the stderr sink.")
    ledger_ttl_seconds: int = Field(
        86_400,
        ge=0,
        description="How long an applied compensation is remembered (0 = forever).",
    )
    journal_retention_seconds: int = Field(
        86_400,
        ge=0,
        description="How long recovery results stay in the error journal (0 = forever).",
    )
    journal_max_entries: int = Field(
        10_000, ge=0, description="Most error journal entries kept (0 = unbounded)."
    )


__all__ = ("OptimistSettings",)
