"""Normalización del log: orden, FirstAwake único y agenda base sintetizada.

The merged log is what the reducer folds. Real events always win over
synthesized ones: a candidate is only inserted when no suppression entry and
no event of the same type sits within ``BASELINE_TOLERANCE``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone

from cuidado_tool.civil_time import operational_day_start
from cuidado_tool.constraints import DEFAULT_CONFIG, ConstraintConfig
from cuidado_tool.model import (
    AutoSuppressionEntry,
    CareEvent,
    EventType,
    epoch_ms,
    to_iso,
)

logger = logging.getLogger(__name__)

BASELINE_TOLERANCE = timedelta(minutes=20)
MAX_BASELINE_CYCLES = 8
HORIZON_REAL_EVENTS = 3
_FAR_PAST = datetime.min.replace(tzinfo=timezone.utc)


def sort_events(events: Iterable[CareEvent]) -> list[CareEvent]:
    """Stable ascending sort; unparseable timestamps go last."""

    def key(event: CareEvent) -> tuple[bool, datetime]:
        ts = event.instant
        return (ts is None, ts or _FAR_PAST)

    return sorted(events, key=key)


def _within_tolerance(
    entries: Iterable[CareEvent | AutoSuppressionEntry],
    event_type: EventType,
    instant: datetime,
) -> bool:
    for entry in entries:
        if entry.type is not event_type:
            continue
        ts = entry.instant
        if ts is not None and abs(ts - instant) <= BASELINE_TOLERANCE:
            return True
    return False


def is_suppressed(
    suppressed: Iterable[AutoSuppressionEntry], event_type: EventType, instant: datetime
) -> bool:
    return _within_tolerance(suppressed, event_type, instant)


def has_matching_event(
    events: Iterable[CareEvent], event_type: EventType, instant: datetime
) -> bool:
    return _within_tolerance(events, event_type, instant)


def _is_real_core(event: CareEvent) -> bool:
    return not event.auto_predicted and event.type is not EventType.ROUTINE_STARTED


def compute_horizon(ordered: Sequence[CareEvent], now: datetime) -> datetime:
    """Latest of the last three real events, or ``now`` with fewer than three."""
    real = [e for e in ordered if _is_real_core(e)]
    if len(real) < HORIZON_REAL_EVENTS:
        return now
    stamps = [ts for ts in (e.instant for e in real[-HORIZON_REAL_EVENTS:]) if ts]
    return max(stamps) if stamps else now


def _auto_event(prefix: str, event_type: EventType, instant: datetime) -> CareEvent:
    return CareEvent(
        id=f"{prefix}-{epoch_ms(instant)}",
        type=event_type,
        timestamp_utc=to_iso(instant),
        auto_predicted=True,
    )


def build_baseline_events(
    first_wake: datetime,
    horizon: datetime,
    config: ConstraintConfig = DEFAULT_CONFIG,
) -> list[CareEvent]:
    """Repeat feed / nap start / nap end cycles from ``first_wake`` up to ``horizon``."""
    events: list[CareEvent] = []
    wake = first_wake
    for _ in range(MAX_BASELINE_CYCLES):
        if wake >= horizon:
            break
        feed = wake + timedelta(minutes=config.feed_interval_min_min)
        if feed <= horizon:
            events.append(_auto_event("auto-feed", EventType.MILK_GIVEN, feed))

        nap_start = wake + timedelta(minutes=config.min_wake_window_min)
        if nap_start > horizon:
            break
        events.append(_auto_event("auto-nap-start", EventType.NAP_STARTED, nap_start))

        nap_end = nap_start + timedelta(minutes=config.expected_nap_duration_min)
        if nap_end > horizon:
            break
        events.append(_auto_event("auto-nap-end", EventType.NAP_ENDED, nap_end))
        wake = nap_end
    return events


def normalize_event_log(
    events: Iterable[CareEvent],
    now: datetime,
    suppressed: Iterable[AutoSuppressionEntry] = (),
    *,
    time_zone: str = "UTC",
    config: ConstraintConfig = DEFAULT_CONFIG,
) -> tuple[CareEvent, ...]:
    """Merge the raw log with the synthesized baseline schedule.

    Args:
        events: Raw log, any order.
        now: Current instant.
        suppressed: Auto-predictions the user edited or deleted.
        time_zone: Zone that defines the operational day start.
        config: Supplies intervals and the day start hour.

    Returns:
        Time-ordered, duplicate-free log.
    """
    suppressed = tuple(suppressed)
    ordered = sort_events(events)

    if any(e.type is EventType.FIRST_AWAKE and not e.auto_predicted for e in ordered):
        ordered = [
            e for e in ordered
            if not (e.type is EventType.FIRST_AWAKE and e.auto_predicted)
        ]

    # Suppressions only apply to the baseline below; the day start always has a wake.
    if not any(e.type is EventType.FIRST_AWAKE for e in ordered):
        day_start = operational_day_start(now, time_zone, config.day_start_hour)
        ordered.append(_auto_event("auto-first-awake", EventType.FIRST_AWAKE, day_start))
        ordered = sort_events(ordered)

    first_wake = next(
        (e.instant for e in ordered if e.type is EventType.FIRST_AWAKE and e.instant),
        None,
    )
    if first_wake is None:
        return tuple(ordered)

    horizon = compute_horizon(ordered, now)
    merged = list(ordered)
    added = 0
    for candidate in build_baseline_events(first_wake, horizon, config):
        ts = candidate.instant
        if ts is None:
            continue
        if is_suppressed(suppressed, candidate.type, ts):
            continue
        if has_matching_event(merged, candidate.type, ts):
            continue
        merged.append(candidate)
        added += 1

    if added:
        logger.debug("Synthesized %d baseline events up to %s", added, to_iso(horizon))
    return tuple(sort_events(merged))
