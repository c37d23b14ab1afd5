"""
toolwire.settings - Centralized Configuration

Single source of truth for connection timing and client identity.
Loads from .env files and environment variables using pydantic-settings.

The retry backoff and the two settle delays exist because the stdio
protocol has no readiness signal beyond "the tool list request succeeds".

Usage:
    >>> from toolwire.settings import get_settings
    >>> settings = get_settings()
    >>> settings.max_attempts
    3
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from toolwire import __version__


class ToolwireSettings(BaseSettings):
    """Session configuration loaded from .env / environment variables.

    All TOOLWIRE_* prefixed env vars are loaded automatically.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TOOLWIRE_",
        extra="ignore",
    )

    # -- Connect / retry -------------------------------------------------------
    max_attempts: int = Field(default=3, ge=1)
    spawn_settle_seconds: float = Field(default=1.0, ge=0)
    handshake_settle_seconds: float = Field(default=1.0, ge=0)
    retry_backoff_seconds: float = Field(default=2.0, ge=0)

    # -- Process / transport ---------------------------------------------------
    terminate_grace_seconds: float = Field(default=0.5, ge=0)
    # None disables the per-request timeout.
    request_timeout_seconds: float | None = Field(default=60.0, gt=0)
    stream_limit_bytes: int = Field(default=16 * 1024 * 1024, gt=0)

    # -- Client identity (sent in the initialize handshake) --------------------
    client_name: str = "toolwire"
    client_version: str = __version__

    # -- Logging ---------------------------------------------------------------
    log_level: str = "WARNING"


# ---------------------------------------------------------------------------
# Singleton accessor
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_settings() -> ToolwireSettings:
    """Return the cached ToolwireSettings singleton."""
    return ToolwireSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for tests)."""
    get_settings.cache_clear()
