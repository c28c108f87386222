"""Historial del log: DataFrames, agrupación por día y duración de rutinas."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import pandas as pd

from cuidado_tool.civil_time import format_date, get_zone
from cuidado_tool.model import CareEvent, EventType, minutes_between, round_minutes
from cuidado_tool.normalize import sort_events

FRAME_COLUMNS = [
    "id",
    "type",
    "timestamp_utc",
    "local_datetime",
    "date",
    "time",
    "auto_predicted",
]

SUMMARY_COLUMNS = [
    "date",
    "feeds",
    "naps",
    "nap_minutes",
    "routines",
    "auto_predicted",
]


@dataclass(frozen=True)
class RoutineStats:
    """Longest/shortest routine durations in minutes (None without data)."""

    longest: int | None
    shortest: int | None
    count: int


def events_to_frame(events: Iterable[CareEvent], time_zone: str) -> pd.DataFrame:
    """Convert care events to a DataFrame with UTC and local date/time."""
    zone = get_zone(time_zone)
    rows = []
    for event in events:
        ts = event.instant
        if ts is None:
            continue
        local = ts.astimezone(zone)
        rows.append(
            {
                "id": event.id,
                "type": event.type.value,
                "timestamp_utc": pd.Timestamp(ts),
                "local_datetime": pd.Timestamp(local),
                "date": local.date(),
                "time": local.time().replace(second=0, microsecond=0),
                "auto_predicted": event.auto_predicted,
            }
        )
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    if df.empty:
        return df
    return df.sort_values("timestamp_utc", kind="stable").reset_index(drop=True)


def routine_durations(events: Iterable[CareEvent]) -> list[int]:
    """Minutes from each RoutineStarted to the next non-routine event.

    Unclosed routines and zero-length pairs are not counted.
    """
    timed = [(e, e.instant) for e in sort_events(events)]
    timed = [(e, ts) for e, ts in timed if ts is not None]
    durations: list[int] = []
    for index, (event, ts) in enumerate(timed):
        if event.type is not EventType.ROUTINE_STARTED:
            continue
        closing = next(
            (
                other_ts
                for other, other_ts in timed[index + 1 :]
                if other.type is not EventType.ROUTINE_STARTED
            ),
            None,
        )
        if closing is None:
            continue
        minutes = max(0, round_minutes(minutes_between(closing, ts)))
        if minutes > 0:
            durations.append(minutes)
    return durations


def routine_stats(events: Iterable[CareEvent]) -> RoutineStats:
    durations = routine_durations(events)
    if not durations:
        return RoutineStats(longest=None, shortest=None, count=0)
    return RoutineStats(longest=max(durations), shortest=min(durations), count=len(durations))


def _nap_minutes_by_day(frame: pd.DataFrame) -> dict[object, float]:
    """Suma de siestas cerradas, asignadas al día civil del inicio."""
    totals: dict[object, float] = {}
    start: pd.Timestamp | None = None
    start_day: object = None
    for row in frame.itertuples(index=False):
        if row.type in (EventType.NAP_STARTED.value, EventType.ASLEEP.value):
            start, start_day = row.timestamp_utc, row.date
        elif row.type == EventType.NAP_ENDED.value and start is not None:
            minutes = max(0.0, (row.timestamp_utc - start).total_seconds() / 60.0)
            totals[start_day] = totals.get(start_day, 0.0) + minutes
            start = None
        elif row.type == EventType.FIRST_AWAKE.value:
            start = None
    return totals


def daily_care_summary(events: Iterable[CareEvent], time_zone: str) -> pd.DataFrame:
    """Aggregate the log by civil day (feeds, naps, nap minutes, routines)."""
    frame = events_to_frame(events, time_zone)
    if frame.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    feed_types = {EventType.MILK_GIVEN.value, EventType.SOLIDS_GIVEN.value}
    frame = frame.assign(
        is_feed=frame["type"].isin(feed_types),
        is_nap=frame["type"] == EventType.NAP_STARTED.value,
        is_routine=frame["type"] == EventType.ROUTINE_STARTED.value,
    )
    g = frame.groupby("date", as_index=False).agg(
        feeds=("is_feed", "sum"),
        naps=("is_nap", "sum"),
        routines=("is_routine", "sum"),
        auto_predicted=("auto_predicted", "sum"),
    )
    nap_minutes = _nap_minutes_by_day(frame)
    g["nap_minutes"] = g["date"].map(lambda d: round(nap_minutes.get(d, 0.0), 1))
    for col in ("feeds", "naps", "routines", "auto_predicted"):
        g[col] = g[col].astype(int)
    return g[SUMMARY_COLUMNS].sort_values("date").reset_index(drop=True)


def group_by_day(
    events: Sequence[CareEvent], time_zone: str, *, latest_first: bool = True
) -> list[tuple[str, list[CareEvent]]]:
    """Group events under their civil date label, keeping the display order."""
    timed = [(e, e.instant) for e in sort_events(events)]
    if latest_first:
        timed.reverse()
    groups: dict[str, list[CareEvent]] = {}
    for event, ts in timed:
        if ts is None:
            continue
        groups.setdefault(format_date(ts, time_zone), []).append(event)
    return list(groups.items())
