"""Plegado del log normalizado a un CoreState."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from cuidado_tool.model import (
    MINUTE,
    CareEvent,
    CoreState,
    EventType,
    RegulationLevel,
    minutes_between,
)

PRESSURE_FULL_AWAKE_MIN = 150.0
SHORT_NAP_PENALTY = 0.15
SHORT_NAP_PENALTY_THRESHOLD_MIN = 45.0
HIGH_PRESSURE = 0.8
LOW_PRESSURE = 0.35
HIGH_FEED_GAP_MIN = 180.0
LOW_FEED_GAP_MIN = 120.0


def sleep_pressure(
    last_wake_time: datetime | None,
    last_nap_duration: timedelta | None,
    now: datetime,
) -> float:
    """Unitless [0, 1] tiredness estimate; 0 before any wake is known."""
    if last_wake_time is None:
        return 0.0
    awake_min = max(0.0, minutes_between(now, last_wake_time))
    penalty = 0.0
    if (
        last_nap_duration is not None
        and last_nap_duration / MINUTE < SHORT_NAP_PENALTY_THRESHOLD_MIN
    ):
        penalty = SHORT_NAP_PENALTY
    return min(1.0, awake_min / PRESSURE_FULL_AWAKE_MIN + penalty)


def regulation_level(pressure: float, minutes_since_feed: float | None) -> RegulationLevel:
    if pressure >= HIGH_PRESSURE or (
        minutes_since_feed is not None and minutes_since_feed >= HIGH_FEED_GAP_MIN
    ):
        return RegulationLevel.HIGH
    if pressure <= LOW_PRESSURE and (
        minutes_since_feed is None or minutes_since_feed < LOW_FEED_GAP_MIN
    ):
        return RegulationLevel.LOW
    return RegulationLevel.MEDIUM


def reduce_core_state(events: Iterable[CareEvent], now: datetime) -> CoreState:
    """Fold events, in the given order, into the state as of ``now``.

    Events whose timestamp is unparseable or later than ``now`` are skipped
    where they occur. Never raises.
    """
    last_wake: datetime | None = None
    nap_start: datetime | None = None
    nap_end: datetime | None = None
    nap_duration: timedelta | None = None
    last_feed: datetime | None = None
    total_sleep = timedelta(0)

    for event in events:
        ts = event.instant
        if ts is None or ts > now:
            continue
        if event.type is EventType.FIRST_AWAKE:
            last_wake = ts
            nap_start = None
            nap_end = None
            nap_duration = None
        elif event.type in (EventType.NAP_STARTED, EventType.ASLEEP):
            nap_start = ts
        elif event.type is EventType.NAP_ENDED:
            nap_end = ts
            if nap_start is not None:
                nap_duration = max(timedelta(0), ts - nap_start)
                total_sleep += nap_duration
            last_wake = ts
        elif event.type in (EventType.MILK_GIVEN, EventType.SOLIDS_GIVEN):
            last_feed = ts
        # RoutineStarted: sin efecto sobre el estado.

    since_feed = max(timedelta(0), now - last_feed) if last_feed is not None else None
    pressure = sleep_pressure(last_wake, nap_duration, now)
    level = regulation_level(
        pressure, since_feed / MINUTE if since_feed is not None else None
    )
    return CoreState(
        last_wake_time=last_wake,
        last_nap_start=nap_start,
        last_nap_end=nap_end,
        last_nap_duration=nap_duration,
        last_feed_time=last_feed,
        time_since_last_feed=since_feed,
        estimated_sleep_pressure=pressure,
        regulation_level=level,
        total_day_sleep=total_sleep,
    )
