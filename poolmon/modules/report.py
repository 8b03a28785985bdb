from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Sequence
from urllib.parse import urlencode

from pydantic import BaseModel

from ..facade import PoolFacade, UnknownAlias, UnrecognizedAction
from ..models import PoolDefinition, PoolSnapshot, PoolStatistics


logger = logging.getLogger(__name__)

ACTION_LIST = "list"
ACTION_STATS = "stats"
ACTION_CHART = "chart"

COLOR_ACTIVE = "ff0000"
COLOR_AVAILABLE = "00ff00"
COLOR_SPARE = "eeeeee"
COLOR_ACTIVITY = "0000ff"

# Durations are shown by reading (duration - one hour) as a time of day on a
# UTC+01:00 clock, which prints the elapsed time as HH:MM:SS.
DATE_OFFSET = timedelta(hours=1)
_CLOCK_ZONE = timezone(DATE_OFFSET)
_DAY_MILLIS = 24 * 60 * 60 * 1000


# --- Formatting ---
def format_time(value: datetime) -> str:
    return value.strftime("%H:%M:%S")


def format_date(value: datetime) -> str:
    return value.strftime("%d-%b-%Y %H:%M:%S")


def format_decimal(value: float) -> str:
    return f"{value:.2f}"


def format_duration(millis: int) -> str:
    """Clock-style rendering of a duration in milliseconds.

    This is a display convention rather than a timestamp: durations of a day
    or more wrap around like a clock face.
    """
    millis %= _DAY_MILLIS
    moment = datetime.fromtimestamp(0, _CLOCK_ZONE) + timedelta(milliseconds=millis) - DATE_OFFSET
    return format_time(moment)


def chart_url(link: str, segments: Sequence[tuple[str, int]], divisions: int) -> str:
    params: list[tuple[str, str | int]] = [("action", ACTION_CHART)]
    params += [("c", color) for color, _ in segments]
    params += [("l", length) for _, length in segments]
    params.append(("d", divisions))
    return f"{link}?{urlencode(params)}"


# --- Document model ---
class LegendEntry(BaseModel):
    count: int
    label: str
    color: str | None = None  # "#rrggbb"


class Row(BaseModel):
    label: str
    value: str | None = None
    legend: list[LegendEntry] = []
    chart_url: str | None = None

    @property
    def off(self) -> bool:
        return self.value is None and not self.legend


class Section(BaseModel):
    title: str
    subject: str
    rows: list[Row]


class PoolListing(BaseModel):
    alias: str
    url: str
    href: str
    selected: bool = False


class ListReport(BaseModel):
    pools: list[PoolListing]


class StatsReport(BaseModel):
    alias: str
    sections: list[Section]


class View(enum.Enum):
    LIST = ACTION_LIST
    STATS = ACTION_STATS


class Resolution(BaseModel):
    view: View
    alias: str | None = None


# --- View resolution ---
def resolve_view(action: str, alias: str | None, facade: PoolFacade) -> Resolution:
    """Decide which view answers a list/stats request.

    Without an alias the only pool is picked when there is exactly one,
    otherwise the list is shown. An alias the facade does not know also
    falls back to the list.
    """
    try:
        view = View(action)
    except ValueError:
        raise UnrecognizedAction(action) from None

    alias = alias or None
    if alias is None:
        aliases = list(facade.list_aliases())
        if len(aliases) == 1:
            alias = aliases[0]
        else:
            view = View.LIST

    if alias is not None:
        try:
            facade.get_definition(alias)
        except UnknownAlias:
            logger.info("Unknown pool alias '%s', showing the pool list", alias)
            view = View.LIST

    return Resolution(view=view, alias=alias)


# --- Reports ---
def build_list(facade: PoolFacade, selected: str | None, link: str) -> ListReport:
    pools = []
    for alias in facade.list_aliases():
        try:
            definition = facade.get_definition(alias)
        except UnknownAlias:
            # removed since list_aliases() answered
            continue
        pools.append(PoolListing(
            alias=alias,
            url=definition.url,
            href=f"{link}?{urlencode({'alias': alias})}",
            selected=alias == selected,
        ))
    return ListReport(pools=pools)


def _duration_or_off(millis: int) -> str | None:
    return format_duration(millis) if millis > 0 else None


def build_definition(definition: PoolDefinition) -> Section:
    fatal = ", ".join(sorted(definition.fatal_sql_exceptions)) or None
    rows = [
        Row(label="URL", value=definition.url),
        Row(label="Driver", value=definition.driver),
        Row(
            label="Connections",
            value=f"{definition.minimum_connection_count} (min), "
            f"{definition.maximum_connection_count} (max)",
        ),
        Row(
            label="Prototyping",
            value=str(definition.prototype_count) if definition.prototype_count > 0 else None,
        ),
        Row(label="Connection lifetime", value=_duration_or_off(definition.maximum_connection_lifetime)),
        Row(label="Maximum active time", value=_duration_or_off(definition.maximum_active_time)),
        Row(label="House keeping sleep time", value=_duration_or_off(definition.house_keeping_sleep_time)),
        Row(label="House keeping test SQL", value=(definition.house_keeping_test_sql or "").strip() or None),
        Row(label="Fatal SQL exceptions", value=fatal),
        Row(label="Statistics", value=definition.statistics or None),
    ]
    return Section(title="Definition", subject=f"for {definition.alias}", rows=rows)


def build_snapshot(snapshot: PoolSnapshot, definition: PoolDefinition, link: str) -> Section:
    maximum = definition.maximum_connection_count
    legend = [
        LegendEntry(count=snapshot.active_connection_count, label="active", color=f"#{COLOR_ACTIVE}"),
        LegendEntry(count=snapshot.available_connection_count, label="available", color=f"#{COLOR_AVAILABLE}"),
    ]
    if snapshot.offline_connection_count:
        legend.append(LegendEntry(count=snapshot.offline_connection_count, label="offline"))
    legend.append(LegendEntry(count=snapshot.maximum_connection_count, label="max", color=f"#{COLOR_SPARE}"))

    connections_chart = None
    if maximum > 0:
        connections_chart = chart_url(
            link,
            [
                (COLOR_SPARE, maximum),
                (COLOR_ACTIVE, snapshot.active_connection_count),
                (COLOR_AVAILABLE, snapshot.available_connection_count),
            ],
            maximum,
        )

    rows = [
        Row(label="Start date", value=format_date(snapshot.date_started)),
        Row(label="Connections", legend=legend, chart_url=connections_chart),
        Row(label="Served", value=str(snapshot.served_count)),
        Row(label="Refused", value=str(snapshot.refused_count)),
    ]
    return Section(title="Snapshot", subject=f"at {format_time(snapshot.snapshot_date)}", rows=rows)


def activity_level(statistics: PoolStatistics, maximum_connection_count: int) -> int | None:
    """Average active connections as a whole percentage of the maximum."""
    if maximum_connection_count <= 0:
        return None
    return int(100 * statistics.average_active_count / maximum_connection_count)


def build_statistics(
    windows: Sequence[PoolStatistics], definition: PoolDefinition, link: str
) -> list[Section]:
    sections = []
    for statistics in windows:
        level = activity_level(statistics, definition.maximum_connection_count)
        activity = Row(label="Activity level")
        if level is not None:
            activity = Row(
                label="Activity level",
                value=f"{level}%",
                chart_url=chart_url(link, [(COLOR_SPARE, 100), (COLOR_ACTIVITY, level)], 10),
            )
        rows = [
            Row(
                label="Served",
                value=f"{statistics.served_count} ({format_decimal(statistics.served_per_second)}/s)",
            ),
            Row(
                label="Refused",
                value=f"{statistics.refused_count} ({format_decimal(statistics.refused_per_second)}/s)",
            ),
            Row(label="Average active time", value=f"{format_decimal(statistics.average_active_time)}s"),
            activity,
        ]
        sections.append(Section(
            title="Statistics",
            subject=f"from {format_time(statistics.start_date)} to {format_time(statistics.stop_date)}",
            rows=rows,
        ))
    return sections


def build_stats(facade: PoolFacade, alias: str, link: str) -> StatsReport:
    # Query everything before building so a facade failure leaves nothing half done
    definition = facade.get_definition(alias)
    snapshot = facade.get_snapshot(alias)
    windows = facade.get_statistics(alias)

    sections = [build_definition(definition), build_snapshot(snapshot, definition, link)]
    sections += build_statistics(windows, definition, link)
    return StatsReport(alias=alias, sections=sections)
