from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import QueuePool

from .config import STATISTICS_PERIOD, PoolConfig, Settings
from .facade import FacadeQueryFailure, UnknownAlias
from .models import PoolDefinition, PoolSnapshot, PoolStatistics


logger = logging.getLogger(__name__)

_PERIOD_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}
_CHECKOUT_KEY = "poolmon_checkout"


def parse_periods(statistics: str | None) -> list[timedelta]:
    """'10s,1m' -> [10 seconds, 1 minute]"""
    periods = []
    for token in (statistics or "").split(","):
        match = STATISTICS_PERIOD.match(token.strip())
        if match:
            periods.append(timedelta(**{_PERIOD_UNITS[match.group(2)]: int(match.group(1))}))
    return periods


class _Window:
    """Counters for one statistics window still being filled."""

    def __init__(self, start: datetime, active: int):
        self.start = start
        self.active = active
        self.served = 0
        self.refused = 0
        self.active_time = 0.0
        self.checkins = 0
        self._area = 0.0  # active connection-seconds
        self._last_change = start

    def touch(self, now: datetime) -> None:
        self._area += self.active * (now - self._last_change).total_seconds()
        self._last_change = now

    def close(self, stop: datetime) -> PoolStatistics:
        self.touch(stop)
        seconds = (stop - self.start).total_seconds()
        return PoolStatistics(
            start_date=self.start,
            stop_date=stop,
            served_count=self.served,
            refused_count=self.refused,
            served_per_second=self.served / seconds,
            refused_per_second=self.refused / seconds,
            average_active_time=self.active_time / self.checkins if self.checkins else 0.0,
            average_active_count=self._area / seconds,
        )


class _RollingStatistics:
    def __init__(self, period: timedelta, now: datetime):
        self.period = period
        self.current = _Window(now, 0)
        self.latest: PoolStatistics | None = None

    def advance(self, now: datetime) -> _Window:
        if now < self.current.start + self.period:
            return self.current
        stop = self.current.start + self.period
        active = self.current.active
        self.latest = self.current.close(stop)
        # Whole idle periods since then collapse into the most recent one
        skipped = (now - stop) // self.period
        if skipped:
            idle = _Window(stop + (skipped - 1) * self.period, active)
            stop = idle.start + self.period
            self.latest = idle.close(stop)
        self.current = _Window(stop, active)
        return self.current


class _PoolTracker:
    """Snapshot and statistics bookkeeping for one engine's pool."""

    def __init__(self, definition: PoolDefinition, engine: Engine, now: datetime):
        self.definition = definition
        self.engine = engine
        self.date_started = now
        self.active = 0
        self.served = 0
        self.refused = 0
        self.rolling = [_RollingStatistics(p, now) for p in parse_periods(definition.statistics)]
        self.lock = threading.Lock()

    def _windows(self, now: datetime) -> list[_Window]:
        windows = [r.advance(now) for r in self.rolling]
        for w in windows:
            w.touch(now)
        return windows

    def checkout(self, now: datetime) -> None:
        with self.lock:
            self.active += 1
            self.served += 1
            for w in self._windows(now):
                w.active += 1
                w.served += 1

    def checkin(self, now: datetime, held: float) -> None:
        with self.lock:
            self.active = max(self.active - 1, 0)
            for w in self._windows(now):
                w.active = max(w.active - 1, 0)
                w.active_time += held
                w.checkins += 1

    def refuse(self, now: datetime) -> None:
        with self.lock:
            self.refused += 1
            for w in self._windows(now):
                w.refused += 1

    def statistics(self, now: datetime) -> list[PoolStatistics]:
        with self.lock:
            for r in self.rolling:
                r.advance(now)
            latest = [r.latest for r in self.rolling if r.latest is not None]
        return sorted(latest, key=lambda s: s.start_date)


class EnginePoolFacade:
    """Pool facade over SQLAlchemy engines, keyed by alias."""

    def __init__(self, pool_timeout: float = 30.0, clock: Callable[[], datetime] = datetime.now):
        self.pool_timeout = pool_timeout
        self._clock = clock
        self._trackers: dict[str, _PoolTracker] = {}

    def register(self, config: PoolConfig) -> Engine:
        if config.alias in self._trackers:
            raise ValueError(f"Pool alias '{config.alias}' is already registered")
        lifetime = config.maximum_connection_lifetime // 1000
        # QueuePool treats pool_size=0 as unbounded
        pool_size = config.minimum_connection_count or config.maximum_connection_count
        engine = create_engine(
            config.url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=config.maximum_connection_count - pool_size,
            pool_recycle=lifetime if lifetime > 0 else -1,
            pool_pre_ping=bool(config.house_keeping_test_sql),
            pool_timeout=self.pool_timeout,
            future=True,
        )
        definition = PoolDefinition(
            alias=config.alias,
            url=engine.url.render_as_string(hide_password=True),
            driver=engine.dialect.driver,
            minimum_connection_count=config.minimum_connection_count,
            maximum_connection_count=config.maximum_connection_count,
            prototype_count=config.prototype_count,
            maximum_connection_lifetime=config.maximum_connection_lifetime,
            maximum_active_time=config.maximum_active_time,
            house_keeping_sleep_time=config.house_keeping_sleep_time,
            house_keeping_test_sql=config.house_keeping_test_sql,
            fatal_sql_exceptions=frozenset(config.fatal_sql_exceptions),
            statistics=config.statistics,
        )
        tracker = _PoolTracker(definition, engine, self._clock())

        def on_checkout(dbapi_connection, connection_record, connection_proxy):
            now = self._clock()
            connection_record.record_info[_CHECKOUT_KEY] = now
            tracker.checkout(now)

        def on_checkin(dbapi_connection, connection_record):
            started = connection_record.record_info.pop(_CHECKOUT_KEY, None)
            if started is None:
                return
            now = self._clock()
            tracker.checkin(now, (now - started).total_seconds())

        event.listen(engine.pool, "checkout", on_checkout)
        event.listen(engine.pool, "checkin", on_checkin)

        self._trackers[config.alias] = tracker
        logger.info("Registered pool '%s' (%s)", config.alias, definition.url)
        return engine

    def _tracker(self, alias: str) -> _PoolTracker:
        try:
            return self._trackers[alias]
        except KeyError:
            raise UnknownAlias(alias) from None

    @contextmanager
    def connect(self, alias: str) -> Iterator[Connection]:
        """Lease a connection from the pool; a checkout timeout counts as refused."""
        tracker = self._tracker(alias)
        try:
            conn = tracker.engine.connect()
        except sa_exc.TimeoutError:
            tracker.refuse(self._clock())
            raise
        with conn:
            yield conn

    def list_aliases(self) -> list[str]:
        return list(self._trackers)

    def get_definition(self, alias: str) -> PoolDefinition:
        return self._tracker(alias).definition

    def get_snapshot(self, alias: str) -> PoolSnapshot:
        tracker = self._tracker(alias)
        maximum = tracker.definition.maximum_connection_count
        with tracker.lock:
            try:
                available = tracker.engine.pool.checkedin()
            except sa_exc.SQLAlchemyError as exc:
                raise FacadeQueryFailure(f"Could not read pool '{alias}'") from exc
            active, served, refused = tracker.active, tracker.served, tracker.refused
        # A lease between the pool's queue and its checkout event shows in both counts
        active = min(active, maximum)
        available = min(available, maximum - active)
        return PoolSnapshot(
            snapshot_date=self._clock(),
            date_started=tracker.date_started,
            active_connection_count=active,
            available_connection_count=available,
            maximum_connection_count=maximum,
            served_count=served,
            refused_count=refused,
        )

    def get_statistics(self, alias: str) -> list[PoolStatistics]:
        return self._tracker(alias).statistics(self._clock())

    def dispose(self) -> None:
        for tracker in self._trackers.values():
            tracker.engine.dispose()


def init_facade(settings: Settings) -> EnginePoolFacade:
    facade = EnginePoolFacade(pool_timeout=settings.pool_timeout)
    for config in settings.pools:
        facade.register(config)
    return facade
