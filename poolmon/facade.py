"""Read interface onto the pool-management engine, and the monitor's errors."""

from __future__ import annotations

from typing import Protocol, Sequence

from .models import PoolDefinition, PoolSnapshot, PoolStatistics


class MonitorError(Exception):
    """Base class for errors raised while serving the monitor."""


class UnknownAlias(MonitorError):
    def __init__(self, alias: str):
        super().__init__(f"Unknown pool alias '{alias}'")
        self.alias = alias


class FacadeQueryFailure(MonitorError):
    """The pool facade could not answer, e.g. its backend is unavailable."""


class UnrecognizedAction(MonitorError):
    def __init__(self, action: str):
        super().__init__(f"Unrecognised action '{action}'")
        self.action = action


class PoolFacade(Protocol):
    def list_aliases(self) -> Sequence[str]: ...

    def get_definition(self, alias: str) -> PoolDefinition:
        """Raises UnknownAlias when no pool is registered under ``alias``."""
        ...

    def get_snapshot(self, alias: str) -> PoolSnapshot: ...

    def get_statistics(self, alias: str) -> Sequence[PoolStatistics]:
        """Closed statistics windows, oldest first."""
        ...
