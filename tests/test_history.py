from __future__ import annotations

from datetime import date, datetime, time, timezone

import pandas as pd

from cuidado_tool.history import (
    FRAME_COLUMNS,
    SUMMARY_COLUMNS,
    daily_care_summary,
    events_to_frame,
    group_by_day,
    routine_durations,
    routine_stats,
)
from cuidado_tool.model import CareEvent, EventType, to_iso

UTC = timezone.utc


def _ev(
    event_type: EventType, when: datetime, event_id: str | None = None, *, auto: bool = False
) -> CareEvent:
    return CareEvent(
        event_id or f"{event_type.value}-{when:%d%H%M}", event_type, to_iso(when), auto
    )


def _day(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=UTC)


def test_events_to_frame_local_columns() -> None:
    events = [
        _ev(EventType.MILK_GIVEN, _day(15, 9)),
        CareEvent("bad", EventType.MILK_GIVEN, "nope"),
        _ev(EventType.FIRST_AWAKE, _day(15, 7), auto=True),
    ]
    df = events_to_frame(events, "Europe/Madrid")

    assert list(df.columns) == FRAME_COLUMNS
    assert len(df) == 2
    first = df.iloc[0]
    assert first["type"] == "FirstAwake"
    assert first["time"] == time(8, 0)
    assert first["date"] == date(2024, 1, 15)
    assert bool(first["auto_predicted"]) is True
    assert first["timestamp_utc"] == pd.Timestamp("2024-01-15 07:00", tz="UTC")


def test_events_to_frame_empty() -> None:
    df = events_to_frame([], "UTC")
    assert df.empty
    assert list(df.columns) == FRAME_COLUMNS


def test_routine_durations_pair_with_next_non_routine() -> None:
    events = [
        _ev(EventType.ROUTINE_STARTED, _day(15, 18)),
        _ev(EventType.ROUTINE_STARTED, _day(15, 18, 5)),
        _ev(EventType.ASLEEP, _day(15, 18, 30)),
        _ev(EventType.ROUTINE_STARTED, _day(15, 19)),
    ]
    assert routine_durations(events) == [30, 25]
    stats = routine_stats(events)
    assert (stats.longest, stats.shortest, stats.count) == (30, 25, 2)


def test_routine_stats_without_data() -> None:
    stats = routine_stats([_ev(EventType.ROUTINE_STARTED, _day(15, 18))])
    assert stats.longest is None
    assert stats.count == 0


def test_daily_care_summary() -> None:
    events = [
        _ev(EventType.FIRST_AWAKE, _day(15, 7)),
        _ev(EventType.MILK_GIVEN, _day(15, 7, 10)),
        _ev(EventType.NAP_STARTED, _day(15, 9)),
        _ev(EventType.NAP_ENDED, _day(15, 10)),
        _ev(EventType.SOLIDS_GIVEN, _day(15, 11), auto=True),
        _ev(EventType.ROUTINE_STARTED, _day(15, 18)),
        _ev(EventType.FIRST_AWAKE, _day(16, 7)),
    ]
    summary = daily_care_summary(events, "UTC")

    assert list(summary.columns) == SUMMARY_COLUMNS
    assert list(summary["date"]) == [date(2024, 1, 15), date(2024, 1, 16)]
    day1 = summary.iloc[0]
    assert day1["feeds"] == 2
    assert day1["naps"] == 1
    assert day1["nap_minutes"] == 60.0
    assert day1["routines"] == 1
    assert day1["auto_predicted"] == 1
    assert summary.iloc[1]["feeds"] == 0


def test_daily_care_summary_empty() -> None:
    summary = daily_care_summary([], "UTC")
    assert summary.empty
    assert list(summary.columns) == SUMMARY_COLUMNS


def test_group_by_day_latest_first() -> None:
    events = [
        _ev(EventType.FIRST_AWAKE, _day(15, 7), "a"),
        _ev(EventType.MILK_GIVEN, _day(15, 8), "b"),
        _ev(EventType.FIRST_AWAKE, _day(16, 7), "c"),
    ]
    groups = group_by_day(events, "UTC")
    assert [day for day, _ in groups] == ["2024-01-16", "2024-01-15"]
    assert [e.id for e in groups[1][1]] == ["b", "a"]

    oldest_first = group_by_day(events, "UTC", latest_first=False)
    assert [e.id for e in oldest_first[0][1]] == ["a", "b"]
