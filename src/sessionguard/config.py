"""
Runtime configuration.

Settings are read from SESSIONGUARD_* environment variables and validated
with pydantic.
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


ENV_PREFIX = "SESSIONGUARD_"

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(ValueError):
    """Raised for invalid settings."""


class Settings(BaseModel):
    """
    Process-wide settings.

    Attributes:
        max_age_ms: Absolute session lifetime in milliseconds
        default_inactivity_timeout_ms: Inactivity timeout for sessions that
            carry none. Unset keeps those sessions bounded by max age only.
        db_path: SQLite session database
        trust_forwarded_for: Take the client IP from X-Forwarded-For
        log_level: loguru level name
        host: Bind address for `serve`
        port: Bind port for `serve`
    """
    max_age_ms: int = Field(default=86_400_000, gt=0)
    default_inactivity_timeout_ms: Optional[int] = Field(default=None, gt=0)
    db_path: Path = Path("data/sessions.db")
    trust_forwarded_for: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = Field(default=8080, gt=0, lt=65536)

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def max_age(self) -> timedelta:
        return timedelta(milliseconds=self.max_age_ms)

    @property
    def default_inactivity_timeout(self) -> Optional[timedelta]:
        if self.default_inactivity_timeout_ms is None:
            return None
        return timedelta(milliseconds=self.default_inactivity_timeout_ms)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Empty variables are treated as unset.

        Raises:
            ConfigurationError: If a value fails validation
        """
        if environ is None:
            environ = os.environ

        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None and raw.strip():
                values[name] = raw.strip()

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"invalid configuration: {e}") from e
