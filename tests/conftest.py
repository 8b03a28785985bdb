"""Pytest configuration and shared fixtures for testing."""

from datetime import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from poolmon.facade import FacadeQueryFailure, UnknownAlias
from poolmon.models import PoolDefinition, PoolSnapshot, PoolStatistics
from poolmon.modules.monitor import get_facade, router


class StubFacade:
    """In-memory pool facade with fixed answers."""

    def __init__(self, definitions=None, snapshots=None, statistics=None):
        self.definitions = dict(definitions or {})
        self.snapshots = dict(snapshots or {})
        self.statistics = dict(statistics or {})
        self.fail = False

    def _check(self, alias):
        if self.fail:
            raise FacadeQueryFailure("backend unavailable")
        if alias not in self.definitions:
            raise UnknownAlias(alias)

    def list_aliases(self):
        if self.fail:
            raise FacadeQueryFailure("backend unavailable")
        return list(self.definitions)

    def get_definition(self, alias):
        self._check(alias)
        return self.definitions[alias]

    def get_snapshot(self, alias):
        self._check(alias)
        return self.snapshots[alias]

    def get_statistics(self, alias):
        self._check(alias)
        return self.statistics.get(alias, [])


def make_definition(alias: str = "db1", **overrides) -> PoolDefinition:
    values = {
        "alias": alias,
        "url": f"postgresql://db.example.com/{alias}",
        "driver": "psycopg2",
        "minimum_connection_count": 2,
        "maximum_connection_count": 10,
        "prototype_count": 0,
        "maximum_connection_lifetime": 4 * 60 * 60 * 1000,
        "maximum_active_time": 5 * 60 * 1000,
        "house_keeping_sleep_time": 30 * 1000,
        "house_keeping_test_sql": "SELECT 1",
        "fatal_sql_exceptions": frozenset(),
        "statistics": None,
    }
    values.update(overrides)
    return PoolDefinition(**values)


def make_snapshot(**overrides) -> PoolSnapshot:
    values = {
        "snapshot_date": datetime(2024, 3, 5, 14, 30, 15),
        "date_started": datetime(2024, 3, 5, 9, 0, 0),
        "active_connection_count": 3,
        "available_connection_count": 2,
        "maximum_connection_count": 10,
        "served_count": 1200,
        "refused_count": 4,
    }
    values.update(overrides)
    return PoolSnapshot(**values)


def make_statistics(**overrides) -> PoolStatistics:
    values = {
        "start_date": datetime(2024, 3, 5, 14, 29, 0),
        "stop_date": datetime(2024, 3, 5, 14, 30, 0),
        "served_count": 120,
        "refused_count": 3,
        "served_per_second": 2.0,
        "refused_per_second": 0.05,
        "average_active_time": 0.25,
        "average_active_count": 2.5,
    }
    values.update(overrides)
    return PoolStatistics(**values)


@pytest.fixture
def stub_facade():
    """Two pools, db1 with one statistics window."""
    return StubFacade(
        definitions={"db1": make_definition("db1"), "db2": make_definition("db2")},
        snapshots={"db1": make_snapshot(), "db2": make_snapshot()},
        statistics={"db1": [make_statistics()]},
    )


@pytest.fixture
def monitor_app(stub_facade):
    """Create a test FastAPI app with only the monitor router."""
    app = FastAPI()
    app.include_router(router, prefix="/monitor")
    app.dependency_overrides[get_facade] = lambda: stub_facade
    return app


@pytest.fixture
def client(monitor_app):
    return TestClient(monitor_app)
