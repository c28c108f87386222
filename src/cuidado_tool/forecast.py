"""Próximos eventos previstos, acción sugerida y estado actual."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from cuidado_tool.constraints import DEFAULT_CONFIG, ConstraintConfig
from cuidado_tool.model import (
    MINUTE,
    AppState,
    CareEvent,
    EventType,
    OutputModel,
    epoch_ms,
    minutes_between,
    round_minutes,
)

SATISFIED_TOLERANCE = timedelta(minutes=20)
DAY_CLOSED_AWAKE_MIN = 240
HUNGER_SECONDARY_THRESHOLD = 0.7

_KIND_TO_TYPE = {
    "milk": EventType.MILK_GIVEN,
    "solids": EventType.SOLIDS_GIVEN,
    "nap": EventType.NAP_STARTED,
    "bedtime": EventType.ASLEEP,
}


@dataclass(frozen=True)
class PredictedEvent:
    """Upcoming suggestion; ``kind`` is milk, solids, nap or bedtime."""

    id: str
    kind: str
    label: str
    time_utc: datetime
    prep: str
    range_end_utc: datetime | None = None

    @property
    def event_type(self) -> EventType:
        return _KIND_TO_TYPE[self.kind]


@dataclass(frozen=True)
class PressureSnapshot:
    hunger_pressure: float
    sleep_pressure: float
    wake_duration_min: float
    last_solids: datetime | None
    last_milk: datetime | None
    day_closed: bool


def _last_of_type(
    events: Iterable[CareEvent], event_type: EventType, now: datetime
) -> datetime | None:
    last = None
    for event in events:
        ts = event.instant
        if event.type is event_type and ts is not None and ts <= now:
            last = ts
    return last


def schedule_from_wake(
    wake: datetime,
    now: datetime,
    cap: datetime | None,
    config: ConstraintConfig = DEFAULT_CONFIG,
) -> list[PredictedEvent]:
    """Typical two-nap day starting at ``wake``, clipped to the hard stop."""
    nap = timedelta(minutes=config.expected_nap_duration_min)
    nap1_start = wake + timedelta(hours=3)
    nap1_end = nap1_start + nap
    nap2_start = nap1_end + timedelta(hours=3.5)
    nap2_end = nap2_start + nap
    bedtime = nap2_end + timedelta(hours=4)
    if cap is not None:
        bedtime = min(cap, bedtime)

    def at(offset_from: datetime, minutes: float) -> datetime:
        return offset_from + timedelta(minutes=minutes)

    candidates = [
        PredictedEvent(f"feed-morning-{epoch_ms(wake)}", "milk", "Bottle feed",
                       at(wake, 10), "Prep feeding supplies"),
        PredictedEvent(f"solids-breakfast-{epoch_ms(wake)}", "solids", "Solids",
                       at(wake, 45), "Prep solids"),
        PredictedEvent(f"nap1-{epoch_ms(nap1_start)}", "nap", "Nap window",
                       nap1_start, "Prepare sleep space", range_end_utc=nap1_end),
        PredictedEvent(f"feed-postnap1-{epoch_ms(nap1_end)}", "milk", "Bottle feed",
                       at(nap1_end, 15), "Prep feeding supplies"),
        PredictedEvent(f"solids-lunch-{epoch_ms(nap1_end)}", "solids", "Solids",
                       at(nap1_end, 60), "Prep solids"),
        PredictedEvent(f"nap2-{epoch_ms(nap2_start)}", "nap", "Nap window",
                       nap2_start, "Prepare sleep space", range_end_utc=nap2_end),
        PredictedEvent(f"feed-postnap2-{epoch_ms(nap2_end)}", "milk", "Bottle feed",
                       at(nap2_end, 15), "Prep feeding supplies"),
        PredictedEvent(f"solids-dinner-{epoch_ms(nap2_end)}", "solids", "Solids",
                       at(nap2_end, 120), "Prep solids"),
        PredictedEvent(f"feed-final-{epoch_ms(bedtime)}", "milk", "Bottle feed",
                       at(bedtime, -30), "Prep bedtime feed"),
        PredictedEvent(f"bedtime-{epoch_ms(bedtime)}", "bedtime", "Bedtime cap",
                       bedtime, "Bedtime buffer"),
    ]
    kept = [
        c for c in candidates
        if (cap is None or c.time_utc <= cap) and c.time_utc > now
    ]
    return sorted(kept, key=lambda c: c.time_utc)


def build_predicted_events(
    state: AppState,
    outputs: OutputModel,
    now: datetime,
    config: ConstraintConfig = DEFAULT_CONFIG,
) -> list[PredictedEvent]:
    if not state.event_log:
        return []
    cap = outputs.next_hard_stop_utc
    if outputs.is_asleep:
        if outputs.expected_wake_utc is None:
            return []
        wake_entry = PredictedEvent(
            "expected-wake", "bedtime", "Expected wake",
            outputs.expected_wake_utc, "Start the day",
        )
        return [wake_entry, *schedule_from_wake(outputs.expected_wake_utc, now, cap, config)]
    if state.last_wake_time is not None:
        return schedule_from_wake(state.last_wake_time, now, cap, config)
    return []


def is_event_satisfied(predicted: PredictedEvent, logged: Iterable[CareEvent]) -> bool:
    """A logged event of the matching type lies strictly within 20 minutes."""
    target = predicted.event_type
    for event in logged:
        ts = event.instant
        if event.type is target and ts is not None:
            if abs(ts - predicted.time_utc) < SATISFIED_TOLERANCE:
                return True
    return False


def upcoming_events(
    state: AppState,
    outputs: OutputModel,
    now: datetime,
    config: ConstraintConfig = DEFAULT_CONFIG,
) -> list[PredictedEvent]:
    return [
        p for p in build_predicted_events(state, outputs, now, config)
        if not is_event_satisfied(p, state.event_log)
    ]


def pressure_snapshot(
    state: AppState, now: datetime, config: ConstraintConfig = DEFAULT_CONFIG
) -> PressureSnapshot:
    hunger = 0.0
    if state.time_since_last_feed:
        hunger = min(1.0, state.time_since_last_feed / (config.feed_interval_max_min * MINUTE))
    wake_min = (
        max(0.0, minutes_between(now, state.last_wake_time))
        if state.last_wake_time is not None
        else 0.0
    )
    last_solids = _last_of_type(state.event_log, EventType.SOLIDS_GIVEN, now)
    last_milk = _last_of_type(state.event_log, EventType.MILK_GIVEN, now)
    return PressureSnapshot(
        hunger_pressure=hunger,
        sleep_pressure=state.estimated_sleep_pressure,
        wake_duration_min=wake_min,
        last_solids=last_solids,
        last_milk=last_milk,
        day_closed=(
            last_solids is not None
            and last_milk is not None
            and wake_min > DAY_CLOSED_AWAKE_MIN
        ),
    )


def resolve_next_action(snapshot: PressureSnapshot) -> str | None:
    """bedtime, solids, milk, nap, or None when pressures are tied."""
    if snapshot.day_closed:
        return "bedtime"
    if snapshot.hunger_pressure > snapshot.sleep_pressure:
        if snapshot.last_solids is None:
            return "solids"
        return "milk"
    if snapshot.sleep_pressure > snapshot.hunger_pressure:
        return "nap"
    return None


def resolve_secondary_action(snapshot: PressureSnapshot, primary: str | None) -> str | None:
    if primary == "milk" and snapshot.last_solids is None:
        return "solids"
    if primary == "nap" and snapshot.hunger_pressure > HUNGER_SECONDARY_THRESHOLD:
        return "milk"
    return None


def next_event_type(
    state: AppState, outputs: OutputModel, now: datetime,
    config: ConstraintConfig = DEFAULT_CONFIG,
) -> EventType | None:
    """Event the caregiver is most likely to log next."""
    if outputs.is_asleep:
        return EventType.FIRST_AWAKE
    action = resolve_next_action(pressure_snapshot(state, now, config))
    return _KIND_TO_TYPE[action] if action else None


def nap_history_delta(events: Iterable[CareEvent]) -> str | None:
    """Compare the last two nap starts in log order; None if unchanged or missing."""
    starts = [
        ts for ts in (e.instant for e in events if e.type is EventType.NAP_STARTED)
        if ts is not None
    ]
    if len(starts) < 2:
        return None
    delta = round_minutes(minutes_between(starts[-1], starts[-2]))
    if delta == 0:
        return None
    direction = "earlier" if delta < 0 else "later"
    return f"Nap detected {abs(delta)} min {direction} than previous → adjusted next nap time"


def current_status(state: AppState, outputs: OutputModel, now: datetime) -> str:
    if outputs.is_asleep:
        return "Sleeping"
    if state.last_feed_time is not None and now - state.last_feed_time < 30 * MINUTE:
        return "Feeding"
    if state.last_wake_time is not None and now - state.last_wake_time < 30 * MINUTE:
        return "Getting ready"
    return "Playtime"


def feed_window(
    state: AppState, outputs: OutputModel, config: ConstraintConfig = DEFAULT_CONFIG
) -> tuple[datetime, datetime] | None:
    """Next feed range from the last feed, hidden while asleep."""
    if state.last_feed_time is None or outputs.is_asleep:
        return None
    return (
        state.last_feed_time + timedelta(minutes=config.feed_interval_min_min),
        state.last_feed_time + timedelta(minutes=config.feed_interval_max_min),
    )
