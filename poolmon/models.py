from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class PoolDefinition(BaseModel):
    alias: str
    url: str
    driver: str
    minimum_connection_count: int = Field(ge=0)
    maximum_connection_count: int = Field(ge=0)
    prototype_count: int = 0
    maximum_connection_lifetime: int = 0  # ms
    maximum_active_time: int = 0  # ms
    house_keeping_sleep_time: int = 0  # ms
    house_keeping_test_sql: str | None = None
    fatal_sql_exceptions: frozenset[str] = frozenset()
    statistics: str | None = None  # e.g. "10s,1m", None = disabled

    @model_validator(mode="after")
    def _check_counts(self) -> "PoolDefinition":
        if self.minimum_connection_count > self.maximum_connection_count:
            raise ValueError("minimum_connection_count exceeds maximum_connection_count")
        return self


class PoolSnapshot(BaseModel):
    snapshot_date: datetime
    date_started: datetime
    active_connection_count: int = Field(ge=0)
    available_connection_count: int = Field(ge=0)
    offline_connection_count: int | None = Field(default=None, ge=0)
    maximum_connection_count: int = Field(ge=0)
    served_count: int = Field(default=0, ge=0)
    refused_count: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_counts(self) -> "PoolSnapshot":
        used = (
            self.active_connection_count
            + self.available_connection_count
            + (self.offline_connection_count or 0)
        )
        if used > self.maximum_connection_count:
            raise ValueError("connection counts exceed maximum_connection_count")
        return self


class PoolStatistics(BaseModel):
    """Counters accumulated over the window [start_date, stop_date)."""

    start_date: datetime
    stop_date: datetime
    served_count: int = Field(default=0, ge=0)
    refused_count: int = Field(default=0, ge=0)
    served_per_second: float = 0.0
    refused_per_second: float = 0.0
    average_active_time: float = 0.0  # seconds
    average_active_count: float = 0.0

    @model_validator(mode="after")
    def _check_window(self) -> "PoolStatistics":
        if self.stop_date <= self.start_date:
            raise ValueError("stop_date must be after start_date")
        return self
