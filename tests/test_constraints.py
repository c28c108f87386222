from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cuidado_tool.constraints import (
    DEFAULT_CONFIG,
    ConstraintConfig,
    bedtime_cap,
    compute_outputs,
    expected_wake,
    is_currently_asleep,
    routine_latest,
)
from cuidado_tool.model import CareEvent, CoreState, EventType, RegulationLevel, to_iso
from cuidado_tool.pipeline import rebuild_from_log

UTC = timezone.utc
DAY = datetime(2024, 3, 1, tzinfo=UTC)


def _at(hour: int, minute: int = 0) -> datetime:
    return DAY.replace(hour=hour, minute=minute)


def _ev(event_type: EventType, when: datetime) -> CareEvent:
    return CareEvent(f"{event_type.value}-{when:%H%M}", event_type, to_iso(when))


def test_short_nap_shortens_wake_window() -> None:
    events = [
        _ev(EventType.FIRST_AWAKE, _at(7)),
        _ev(EventType.NAP_STARTED, _at(8, 15)),
        _ev(EventType.NAP_ENDED, _at(8, 45)),
    ]
    now = _at(9)
    state = rebuild_from_log(events, now)
    out = compute_outputs(state, now, "UTC")

    # 08:45 + (75 - 15) min
    assert out.next_window_start_utc == _at(9, 45)
    assert out.next_window_end_utc == _at(10, 40)
    assert out.next_window == "09:45 AM – 10:40 AM"
    assert out.shift_preview[0].status == "applied"
    assert out.shift_preview[1].status == "pending"


def test_late_nap_pulls_bedtime_cap_earlier() -> None:
    events = [
        _ev(EventType.FIRST_AWAKE, _at(7)),
        _ev(EventType.NAP_STARTED, _at(15)),
        _ev(EventType.NAP_ENDED, _at(16)),
    ]
    now = _at(16, 30)
    state = rebuild_from_log(events, now)
    out = compute_outputs(state, now, "UTC")

    assert out.next_hard_stop_utc == _at(18, 55)
    assert out.next_hard_stop == "Routine latest 06:55 PM (bedtime cap 07:30 PM)"
    late_entry = out.shift_preview[1]
    assert late_entry.delta == "Nap after 15:00 → bedtime cap −30 min"
    assert late_entry.status == "applied"
    assert out.shift_preview[2].status == "applied"


def test_bedtime_cap_without_late_nap() -> None:
    state = CoreState(last_wake_time=_at(7), last_nap_end=_at(13))
    cap = bedtime_cap(state, _at(14), "UTC", DEFAULT_CONFIG)
    assert cap == _at(20)
    assert routine_latest(cap, DEFAULT_CONFIG) == _at(19, 25)


def test_bedtime_cap_uses_civil_day_of_zone() -> None:
    state = CoreState(last_wake_time=datetime(2024, 1, 15, 12, tzinfo=UTC))
    now = datetime(2024, 1, 15, 15, 0, tzinfo=UTC)
    cap = bedtime_cap(state, now, "America/New_York", DEFAULT_CONFIG)
    assert cap == datetime(2024, 1, 16, 1, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("awake_min", "first_allowed", "first_window"),
    [
        (44, "Low-stim movement", "Regulation / low stimulation"),
        (45, "Active play", "Regulation / low stimulation"),
        (116, "Active play", "Regulation / low stimulation"),
        (117, "Wind-down", "Regulation / low stimulation"),
        (130, "Wind-down", "Regulation / low stimulation"),
        (131, "Minimal stimulation", "Regulation / low stimulation"),
    ],
)
def test_activity_tiers(awake_min: int, first_allowed: str, first_window: str) -> None:
    wake = _at(7)
    state = CoreState(last_wake_time=wake)
    out = compute_outputs(state, wake + timedelta(minutes=awake_min), "UTC")
    assert out.activity_categories.allowed[0].label == first_allowed
    assert out.activity_categories.allowed[0].expires_at == out.next_window_end_utc
    assert out.window_categories.allowed[0] == first_window


def test_near_cap_and_exceeded_label_sets() -> None:
    wake = _at(7)
    state = CoreState(last_wake_time=wake)

    near = compute_outputs(state, wake + timedelta(minutes=120), "UTC")
    assert [a.label for a in near.activity_categories.allowed] == [
        "Wind-down",
        "Low-light calm",
        "Routine start",
    ]
    assert near.window_categories.suppressed == [
        "High stimulation",
        "New novel activities",
        "Outdoor light",
    ]
    assert {s.reason for s in near.activity_categories.suppressed} == {"wake window near cap"}

    over = compute_outputs(state, wake + timedelta(minutes=200), "UTC")
    assert [a.label for a in over.activity_categories.allowed] == [
        "Minimal stimulation",
        "Reduce novelty",
        "Bridge to sleep",
    ]
    assert over.window_categories.allowed == ["Regulation / low stimulation"]
    assert over.wake_window_remaining_min == 0
    assert over.pressure_indicator.wake_utilization == 1.0


def test_awake_pressure_indicator() -> None:
    wake = _at(7)
    state = CoreState(last_wake_time=wake, regulation_level=RegulationLevel.LOW)
    out = compute_outputs(state, wake + timedelta(minutes=65), "UTC")
    assert out.pressure_indicator.wake_utilization == pytest.approx(0.5)
    assert out.pressure_indicator.sleep_pressure_trend == "up"
    assert out.pressure_indicator.regulation_risk == "low"
    assert out.wake_window_remaining_min == 65
    assert out.state_summary[0] == "Awake for 65 min"


def test_uncalibrated_before_first_wake() -> None:
    out = compute_outputs(CoreState(), _at(6), "UTC")
    assert out.window_categories.allowed == ["Log first awake"]
    assert [a.label for a in out.activity_categories.allowed] == [
        "Log first awake",
        "Record a feed",
        "Start routine when ready",
    ]
    assert out.next_window is None
    assert out.next_hard_stop_utc is None
    assert out.pressure_indicator.wake_utilization is None
    assert out.pressure_indicator.regulation_risk == "rising"
    assert len(out.shift_preview) == 1
    assert out.shift_preview[0].status == "pending"
    assert out.state_summary[0] == "Awaiting first awake marker"


def test_asleep_collapses_outputs() -> None:
    state = CoreState(
        last_wake_time=_at(7),
        last_nap_start=_at(10),
        regulation_level=RegulationLevel.HIGH,
    )
    out = compute_outputs(state, _at(10, 20), "UTC")
    assert out.is_asleep
    assert out.next_window is None
    assert out.next_hard_stop is None
    assert out.next_window_start_utc is None
    assert out.activity_categories.allowed == []
    assert out.window_categories.suppressed == []
    assert out.expected_wake_utc == _at(11)
    assert out.pressure_indicator.sleep_pressure_trend == "down"
    assert out.pressure_indicator.wake_utilization is None
    assert out.pressure_indicator.regulation_risk == "high"
    assert out.state_summary[:2] == ["Asleep for 20 min", "Expected wake 11:00 AM"]


def test_expected_wake_capped_for_late_nap() -> None:
    state = CoreState(last_wake_time=_at(13), last_nap_start=_at(15, 30))
    assert expected_wake(state, "UTC", DEFAULT_CONFIG) == _at(16, 10)


def test_is_currently_asleep_when_end_precedes_start() -> None:
    assert is_currently_asleep(CoreState(last_nap_start=_at(12), last_nap_end=_at(10)))
    assert not is_currently_asleep(CoreState(last_nap_start=_at(10), last_nap_end=_at(11)))
    assert not is_currently_asleep(CoreState())


def test_with_overrides_ignores_unknown_and_bad_values() -> None:
    config = ConstraintConfig().with_overrides(
        {"min_wake_window_min": 60, "unknown": 5, "late_nap_hour": True, "max_wake_window_min": "x"}
    )
    assert config.min_wake_window_min == 60
    assert config.late_nap_hour == 15
    assert config.max_wake_window_min == 130
