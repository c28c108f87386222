"""Proyección del estado a ventanas, categorías y riesgo."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from datetime import datetime, timedelta

from cuidado_tool.civil_time import day_bound, format_time, to_civil
from cuidado_tool.model import (
    MINUTE,
    ActivityCategories,
    ActivityItem,
    CoreState,
    OutputModel,
    PressureIndicator,
    RegulationLevel,
    ShiftEntry,
    SuppressedActivity,
    WindowCategories,
    minutes_between,
    round_minutes,
)


@dataclass(frozen=True)
class ConstraintConfig:
    """Tunable durations (minutes) and hour-of-day thresholds."""

    min_wake_window_min: int = 75
    max_wake_window_min: int = 130
    # Applied to both wake-window bounds after a short nap.
    shorten_wake_by_min_if_short_nap: int = 15
    short_nap_threshold_min: int = 45
    late_nap_hour: int = 15
    bedtime_latest_hour: int = 20
    bedtime_latest_minute: int = 0
    bedtime_earlier_by_min_if_late_nap: int = 30
    routine_latency_min: int = 25
    setup_latency_min: int = 10
    next_nap_cap_min_if_late_nap: int = 40
    feed_interval_min_min: int = 120
    feed_interval_max_min: int = 180
    expected_nap_duration_min: int = 60
    day_start_hour: int = 7

    def with_overrides(self, overrides: Mapping[str, object]) -> ConstraintConfig:
        """Return a copy with known numeric keys replaced; others are ignored."""
        known = {f.name for f in fields(self)}
        changes: dict[str, int] = {}
        for key, value in overrides.items():
            if key not in known or isinstance(value, bool):
                continue
            try:
                changes[key] = int(value)  # type: ignore[call-overload]
            except (TypeError, ValueError):
                continue
        return replace(self, **changes)


DEFAULT_CONFIG = ConstraintConfig()

LOW_STIM = "Regulation / low stimulation"
OUTDOOR = "Outdoor light"
ROUTINE_RESET = "Routine reset"
HIGH_STIM = "High stimulation"
NOVEL = "New novel activities"

# (window allowed, window suppressed, activities allowed, activities suppressed, reason)
_TIERS: dict[str, tuple[list[str], list[str], list[str], list[str], str]] = {
    "early": (
        [LOW_STIM, OUTDOOR, ROUTINE_RESET],
        [HIGH_STIM, NOVEL],
        ["Low-stim movement", "Quiet bonding", "Feeding window prep"],
        [HIGH_STIM, NOVEL],
        "wake window still early",
    ),
    "mid": (
        [LOW_STIM, OUTDOOR, ROUTINE_RESET],
        [HIGH_STIM, NOVEL],
        ["Active play", OUTDOOR, ROUTINE_RESET],
        [HIGH_STIM, NOVEL],
        "wake window mid-cycle",
    ),
    "near_cap": (
        [LOW_STIM, ROUTINE_RESET],
        [HIGH_STIM, NOVEL, OUTDOOR],
        ["Wind-down", "Low-light calm", "Routine start"],
        [HIGH_STIM, NOVEL, OUTDOOR],
        "wake window near cap",
    ),
    "exceeded": (
        [LOW_STIM],
        [HIGH_STIM, NOVEL, OUTDOOR],
        ["Minimal stimulation", "Reduce novelty", "Bridge to sleep"],
        [HIGH_STIM, NOVEL, OUTDOOR],
        "wake window exceeded",
    ),
    "uncalibrated": (
        ["Log first awake"],
        [HIGH_STIM, NOVEL],
        ["Log first awake", "Record a feed", "Start routine when ready"],
        [HIGH_STIM, NOVEL],
        "system not yet calibrated",
    ),
}

_RISK_BY_LEVEL = {
    RegulationLevel.LOW: "low",
    RegulationLevel.MEDIUM: "rising",
    RegulationLevel.HIGH: "high",
}


def is_currently_asleep(state: CoreState) -> bool:
    """A sleep start is recorded and not closed by a later end."""
    if state.last_nap_start is None:
        return False
    return state.last_nap_end is None or state.last_nap_end < state.last_nap_start


def is_short_nap(state: CoreState, config: ConstraintConfig) -> bool:
    if state.last_nap_duration is None:
        return False
    return state.last_nap_duration / MINUTE < config.short_nap_threshold_min


def is_late_nap(state: CoreState, time_zone: str, config: ConstraintConfig) -> bool:
    """Last nap ended at or after the late-nap hour (civil time)."""
    if state.last_nap_end is None:
        return False
    return to_civil(state.last_nap_end, time_zone).hour >= config.late_nap_hour


def wake_window_bounds(
    state: CoreState, config: ConstraintConfig
) -> tuple[int, int]:
    """Min/max wake window in minutes, shortened after a short nap."""
    shorten = config.shorten_wake_by_min_if_short_nap if is_short_nap(state, config) else 0
    return config.min_wake_window_min - shorten, config.max_wake_window_min - shorten


def bedtime_cap(
    state: CoreState, now: datetime, time_zone: str, config: ConstraintConfig
) -> datetime:
    cap = day_bound(now, time_zone, config.bedtime_latest_hour, config.bedtime_latest_minute)
    if is_late_nap(state, time_zone, config):
        cap -= timedelta(minutes=config.bedtime_earlier_by_min_if_late_nap)
    return cap


def routine_latest(cap: datetime, config: ConstraintConfig) -> datetime:
    """Hard stop: latest routine start that still meets the bedtime cap."""
    return cap - timedelta(minutes=config.routine_latency_min + config.setup_latency_min)


def expected_wake(
    state: CoreState, time_zone: str, config: ConstraintConfig
) -> datetime | None:
    """Expected end of the sleep in progress, or None when awake."""
    if not is_currently_asleep(state) or state.last_nap_start is None:
        return None
    late = is_late_nap(state, time_zone, config) or (
        to_civil(state.last_nap_start, time_zone).hour >= config.late_nap_hour
    )
    duration = config.expected_nap_duration_min
    if late:
        duration = min(duration, config.next_nap_cap_min_if_late_nap)
    return state.last_nap_start + timedelta(minutes=duration)


def _tier_for(awake_min: int, min_wake: int, max_wake: int) -> str:
    if awake_min > max_wake:
        return "exceeded"
    if awake_min < min_wake * 0.6:
        return "early"
    if awake_min < max_wake * 0.9:
        return "mid"
    return "near_cap"


def _categories(
    tier: str, expires_at: datetime | None
) -> tuple[WindowCategories, ActivityCategories]:
    win_allowed, win_suppressed, act_allowed, act_suppressed, reason = _TIERS[tier]
    return (
        WindowCategories(allowed=list(win_allowed), suppressed=list(win_suppressed)),
        ActivityCategories(
            allowed=[ActivityItem(label, expires_at) for label in act_allowed],
            suppressed=[SuppressedActivity(label, reason) for label in act_suppressed],
        ),
    )


def _shift_preview(
    shorten: bool, late_nap: bool, config: ConstraintConfig
) -> list[ShiftEntry]:
    def status(flag: bool) -> str:
        return "applied" if flag else "pending"

    return [
        ShiftEntry(
            f"Nap <{config.short_nap_threshold_min} min → next wake window "
            f"−{config.shorten_wake_by_min_if_short_nap} min",
            status(shorten),
        ),
        ShiftEntry(
            f"Nap after {config.late_nap_hour}:00 → bedtime cap "
            f"−{config.bedtime_earlier_by_min_if_late_nap} min",
            status(late_nap),
        ),
        ShiftEntry(
            f"Late nap detected → next nap capped at "
            f"{config.next_nap_cap_min_if_late_nap} min",
            status(late_nap),
        ),
    ]


def _summary_lines(
    state: CoreState,
    now: datetime,
    time_zone: str,
    asleep: bool,
    wake_at: datetime | None,
) -> list[str]:
    lines: list[str] = []
    if asleep and state.last_nap_start is not None:
        lines.append(f"Asleep for {round_minutes(minutes_between(now, state.last_nap_start))} min")
        if wake_at is not None:
            lines.append(f"Expected wake {format_time(wake_at, time_zone)}")
        else:
            lines.append("Expected wake —")
    elif state.last_wake_time is not None:
        lines.append(f"Awake for {round_minutes(minutes_between(now, state.last_wake_time))} min")
        if state.last_nap_duration:
            lines.append(f"Last slept {round_minutes(state.last_nap_duration / MINUTE)} min")
        else:
            lines.append("Last slept —")
    else:
        lines.append("Awaiting first awake marker")
        lines.append("Last slept —")

    if state.last_feed_time is not None:
        lines.append(
            f"Last feed {round_minutes(minutes_between(now, state.last_feed_time))} min ago"
        )
    else:
        lines.append("No feed logged yet")
    lines.append(f"Regulation level: {state.regulation_level.value}")
    return lines


def compute_outputs(
    state: CoreState,
    now: datetime,
    time_zone: str,
    config: ConstraintConfig = DEFAULT_CONFIG,
) -> OutputModel:
    """Project a CoreState into the externally consumed OutputModel.

    Args:
        state: Reduced state as of ``now``.
        now: Current instant (aware).
        time_zone: IANA zone used for civil-time rules.
        config: Constraint configuration.

    Returns:
        The output model. Never raises for absent inputs; missing data
        produces None fields or the uncalibrated tier.
    """
    asleep = is_currently_asleep(state)
    wake_at = expected_wake(state, time_zone, config)
    indicator = PressureIndicator(
        wake_utilization=None,
        sleep_pressure_trend="down" if asleep else "up",
        regulation_risk=_RISK_BY_LEVEL[state.regulation_level],
    )
    summary = _summary_lines(state, now, time_zone, asleep, wake_at)

    if state.last_wake_time is None:
        window_cats, activity_cats = _categories("uncalibrated", None)
        return OutputModel(
            state_summary=summary,
            next_window=None,
            next_hard_stop=None,
            is_asleep=asleep,
            next_window_start_utc=None,
            next_window_end_utc=None,
            next_hard_stop_utc=None,
            wake_window_remaining_min=None,
            expected_wake_utc=wake_at,
            activity_categories=activity_cats,
            window_categories=window_cats,
            shift_preview=[ShiftEntry("First awake marker → system window active", "pending")],
            pressure_indicator=indicator,
        )

    shorten = is_short_nap(state, config)
    late_nap = is_late_nap(state, time_zone, config)
    shifts = _shift_preview(shorten, late_nap, config)

    if asleep:
        return OutputModel(
            state_summary=summary,
            next_window=None,
            next_hard_stop=None,
            is_asleep=True,
            next_window_start_utc=None,
            next_window_end_utc=None,
            next_hard_stop_utc=None,
            wake_window_remaining_min=None,
            expected_wake_utc=wake_at,
            activity_categories=ActivityCategories(),
            window_categories=WindowCategories(),
            shift_preview=shifts,
            pressure_indicator=indicator,
        )

    min_wake, max_wake = wake_window_bounds(state, config)
    window_start = state.last_wake_time + timedelta(minutes=min_wake)
    window_end = state.last_wake_time + timedelta(minutes=max_wake)
    cap = bedtime_cap(state, now, time_zone, config)
    hard_stop = routine_latest(cap, config)

    awake_min = round_minutes(minutes_between(now, state.last_wake_time))
    utilization = min(1.0, max(0.0, awake_min / max_wake)) if max_wake > 0 else 1.0
    window_cats, activity_cats = _categories(
        _tier_for(awake_min, min_wake, max_wake), window_end
    )

    return OutputModel(
        state_summary=summary,
        next_window=f"{format_time(window_start, time_zone)} – {format_time(window_end, time_zone)}",
        next_hard_stop=(
            f"Routine latest {format_time(hard_stop, time_zone)} "
            f"(bedtime cap {format_time(cap, time_zone)})"
        ),
        is_asleep=False,
        next_window_start_utc=window_start,
        next_window_end_utc=window_end,
        next_hard_stop_utc=hard_stop,
        wake_window_remaining_min=max(0, max_wake - awake_min),
        expected_wake_utc=None,
        activity_categories=activity_cats,
        window_categories=window_cats,
        shift_preview=shifts,
        pressure_indicator=PressureIndicator(
            wake_utilization=utilization,
            sleep_pressure_trend="up",
            regulation_risk=indicator.regulation_risk,
        ),
    )
