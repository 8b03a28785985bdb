"""Configuration management for the pool monitor."""

from __future__ import annotations

import re
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


STATISTICS_PERIOD = re.compile(r"^(\d+)([smhd])$")
# Longest configurable duration, one year in milliseconds
MAX_DURATION_MILLIS = 365 * 24 * 60 * 60 * 1000


class PoolConfig(BaseModel):
    """One monitored pool, as read from ``MONITOR_POOLS``."""

    alias: str
    url: str
    minimum_connection_count: int = Field(default=5, ge=0)
    maximum_connection_count: int = Field(default=15, ge=1)
    prototype_count: int = Field(default=0, ge=0)
    # Durations in milliseconds, 0 = off
    maximum_connection_lifetime: int = Field(default=4 * 60 * 60 * 1000, ge=0, le=MAX_DURATION_MILLIS)
    maximum_active_time: int = Field(default=5 * 60 * 1000, ge=0, le=MAX_DURATION_MILLIS)
    house_keeping_sleep_time: int = Field(default=30 * 1000, ge=0, le=MAX_DURATION_MILLIS)
    house_keeping_test_sql: str | None = None
    fatal_sql_exceptions: list[str] = Field(default_factory=list)
    statistics: str | None = None

    @field_validator("statistics")
    @classmethod
    def _check_statistics(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        for token in value.split(","):
            if not STATISTICS_PERIOD.match(token.strip()):
                raise ValueError(f"invalid statistics period '{token.strip()}'")
        return value

    @model_validator(mode="after")
    def _check_counts(self) -> "PoolConfig":
        if self.minimum_connection_count > self.maximum_connection_count:
            raise ValueError("minimum_connection_count exceeds maximum_connection_count")
        return self


class Settings(BaseSettings):
    """Application settings."""

    title: str = Field(default="Pool Monitor")
    route_prefix: str = Field(default="/monitor")
    log_level: str = Field(default="INFO")

    # Seconds a checkout may wait before it counts as refused
    pool_timeout: float = Field(default=30.0, gt=0)

    pools: list[PoolConfig] = Field(default_factory=list)

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
