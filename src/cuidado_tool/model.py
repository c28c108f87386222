"""Modelos tipados para eventos de cuidado, estado derivado y salida."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from dateutil import parser as date_parser

MINUTE = timedelta(minutes=1)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class EventType(str, Enum):
    """Closed set of loggable care events."""

    FIRST_AWAKE = "FirstAwake"
    NAP_STARTED = "NapStarted"
    NAP_ENDED = "NapEnded"
    MILK_GIVEN = "MilkGiven"
    SOLIDS_GIVEN = "SolidsGiven"
    ROUTINE_STARTED = "RoutineStarted"
    ASLEEP = "Asleep"

    @classmethod
    def parse(cls, value: object) -> EventType | None:
        """Devuelve el miembro para un valor persistido, o None si no existe."""
        if isinstance(value, EventType):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


class RegulationLevel(str, Enum):
    """Three-tier urgency summary."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def to_iso(instant: datetime) -> str:
    """Format an instant as ISO-8601 UTC with millisecond precision."""
    utc = instant.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def epoch_ms(instant: datetime) -> int:
    """Milliseconds since the Unix epoch, as used in generated ids."""
    return int((instant - _EPOCH) / timedelta(milliseconds=1))


def parse_instant(value: Any) -> datetime | None:
    """Parse an ISO-8601 instant; None when the value is unusable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = date_parser.isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def minutes_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier) / MINUTE


def round_minutes(minutes: float) -> int:
    """Round half-up, as the UI always did for displayed minutes."""
    return int((minutes + 0.5) // 1)


@dataclass(frozen=True)
class CareEvent:
    """One logged (or auto-predicted) care event."""

    id: str
    type: EventType
    timestamp_utc: str
    auto_predicted: bool = False

    @property
    def instant(self) -> datetime | None:
        return parse_instant(self.timestamp_utc)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "timestampUtc": self.timestamp_utc,
        }
        if self.auto_predicted:
            out["autoPredicted"] = True
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CareEvent | None:
        """Build from the persisted shape; None if the type is unknown."""
        event_type = EventType.parse(raw.get("type"))
        if event_type is None:
            return None
        return cls(
            id=str(raw.get("id", "")),
            type=event_type,
            timestamp_utc=str(raw.get("timestampUtc", "")),
            auto_predicted=bool(raw.get("autoPredicted", False)),
        )


@dataclass(frozen=True)
class AutoSuppressionEntry:
    """Auto-predicted event the user edited or removed; never resynthesized."""

    type: EventType
    timestamp_utc: str

    @property
    def instant(self) -> datetime | None:
        return parse_instant(self.timestamp_utc)

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "timestampUtc": self.timestamp_utc}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AutoSuppressionEntry | None:
        event_type = EventType.parse(raw.get("type"))
        if event_type is None:
            return None
        return cls(type=event_type, timestamp_utc=str(raw.get("timestampUtc", "")))


@dataclass(frozen=True)
class CoreState:
    """Physiological snapshot derived from the normalized log."""

    last_wake_time: datetime | None = None
    last_nap_start: datetime | None = None
    last_nap_end: datetime | None = None
    last_nap_duration: timedelta | None = None
    last_feed_time: datetime | None = None
    time_since_last_feed: timedelta | None = None
    estimated_sleep_pressure: float = 0.0
    regulation_level: RegulationLevel = RegulationLevel.MEDIUM
    total_day_sleep: timedelta = timedelta(0)


@dataclass(frozen=True)
class AppState(CoreState):
    """CoreState plus the log it was derived from."""

    event_log: tuple[CareEvent, ...] = ()
    auto_suppressed: tuple[AutoSuppressionEntry, ...] = ()


@dataclass(frozen=True)
class ActivityItem:
    label: str
    expires_at: datetime | None


@dataclass(frozen=True)
class SuppressedActivity:
    label: str
    reason: str


@dataclass(frozen=True)
class ActivityCategories:
    allowed: list[ActivityItem] = field(default_factory=list)
    suppressed: list[SuppressedActivity] = field(default_factory=list)


@dataclass(frozen=True)
class WindowCategories:
    allowed: list[str] = field(default_factory=list)
    suppressed: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ShiftEntry:
    """One shift rule and whether its trigger currently holds."""

    delta: str
    status: str  # "applied" | "pending"


@dataclass(frozen=True)
class PressureIndicator:
    wake_utilization: float | None
    sleep_pressure_trend: str  # "up" | "down"
    regulation_risk: str  # "low" | "rising" | "high"


@dataclass(frozen=True)
class OutputModel:
    """Read-only projection consumed by the presentation layer."""

    state_summary: list[str]
    next_window: str | None
    next_hard_stop: str | None
    is_asleep: bool
    next_window_start_utc: datetime | None
    next_window_end_utc: datetime | None
    next_hard_stop_utc: datetime | None
    wake_window_remaining_min: int | None
    expected_wake_utc: datetime | None
    activity_categories: ActivityCategories
    window_categories: WindowCategories
    shift_preview: list[ShiftEntry]
    pressure_indicator: PressureIndicator
