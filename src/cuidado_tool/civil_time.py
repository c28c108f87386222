"""Conversión entre instantes UTC y hora civil de una zona IANA."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

from dateutil import tz

DEFAULT_TIME_ZONE = "UTC"


@dataclass(frozen=True)
class CivilFields:
    """Wall-clock fields in some zone (minute precision)."""

    year: int
    month: int
    day: int
    hour: int
    minute: int

    @property
    def day_date(self) -> date:
        return date(self.year, self.month, self.day)

    def at(self, hour: int, minute: int = 0) -> CivilFields:
        """Same civil day, different time of day."""
        return CivilFields(self.year, self.month, self.day, hour, minute)

    def plus_days(self, days: int) -> CivilFields:
        d = self.day_date + timedelta(days=days)
        return CivilFields(d.year, d.month, d.day, self.hour, self.minute)


def get_zone(time_zone: str | None) -> tzinfo:
    """Resolve a zone id; unknown or empty ids fall back to UTC."""
    if not time_zone:
        return tz.UTC
    zone = tz.gettz(time_zone)
    return zone if zone is not None else tz.UTC


def is_known_zone(time_zone: str) -> bool:
    return bool(time_zone) and tz.gettz(time_zone) is not None


def resolve_time_zone() -> str:
    """Host zone from $TZ when it names a real zone, else UTC."""
    env_zone = os.environ.get("TZ", "").lstrip(":")
    if env_zone and is_known_zone(env_zone):
        return env_zone
    return DEFAULT_TIME_ZONE


def to_civil(instant: datetime, time_zone: str) -> CivilFields:
    """UTC instant -> civil fields in ``time_zone``."""
    local = instant.astimezone(get_zone(time_zone))
    return CivilFields(local.year, local.month, local.day, local.hour, local.minute)


def from_civil(fields: CivilFields, time_zone: str) -> datetime:
    """Civil fields in ``time_zone`` -> UTC instant.

    Wall times skipped by a DST jump are moved forward to the first valid
    instant; repeated wall times resolve to their first occurrence.
    """
    local = datetime(
        fields.year,
        fields.month,
        fields.day,
        fields.hour,
        fields.minute,
        tzinfo=get_zone(time_zone),
    )
    local = tz.resolve_imaginary(local)
    return local.astimezone(timezone.utc)


def day_bound(instant: datetime, time_zone: str, hour: int, minute: int = 0) -> datetime:
    """Instant of ``hour:minute`` on the civil day that contains ``instant``."""
    return from_civil(to_civil(instant, time_zone).at(hour, minute), time_zone)


def operational_day_start(now: datetime, time_zone: str, hour: int) -> datetime:
    """Most recent civil ``hour:00`` boundary at or before ``now``."""
    civil = to_civil(now, time_zone)
    today = from_civil(civil.at(hour), time_zone)
    if today > now:
        return from_civil(civil.at(hour).plus_days(-1), time_zone)
    return today


def format_time(instant: datetime, time_zone: str) -> str:
    """Hora local corta, p.ej. ``09:30 AM``."""
    return instant.astimezone(get_zone(time_zone)).strftime("%I:%M %p")


def format_date(instant: datetime, time_zone: str) -> str:
    return instant.astimezone(get_zone(time_zone)).strftime("%Y-%m-%d")
