"""Almacén en memoria del log de eventos y de las supresiones."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from cuidado_tool.constraints import DEFAULT_CONFIG, ConstraintConfig
from cuidado_tool.model import (
    AppState,
    AutoSuppressionEntry,
    CareEvent,
    EventType,
    epoch_ms,
    to_iso,
)
from cuidado_tool.pipeline import rebuild_from_log

logger = logging.getLogger(__name__)


def build_event(event_type: EventType, instant: datetime) -> CareEvent:
    """New real (user-logged) event at ``instant``."""
    return CareEvent(
        id=f"{event_type.value}-{epoch_ms(instant)}-{secrets.token_hex(4)}",
        type=event_type,
        timestamp_utc=to_iso(instant),
    )


class EventStore:
    """Owns the care log; mutations are explicit and never re-normalize implicitly."""

    def __init__(
        self,
        events: Iterable[CareEvent] = (),
        suppressed: Iterable[AutoSuppressionEntry] = (),
    ) -> None:
        self._events: list[CareEvent] = list(events)
        self._suppressed: list[AutoSuppressionEntry] = list(suppressed)

    @property
    def events(self) -> tuple[CareEvent, ...]:
        return tuple(self._events)

    @property
    def suppressed(self) -> tuple[AutoSuppressionEntry, ...]:
        return tuple(self._suppressed)

    def find(self, event_id: str) -> CareEvent | None:
        return next((e for e in self._events if e.id == event_id), None)

    def append(self, event: CareEvent) -> None:
        self._events.append(event)

    def edit_timestamp(self, event_id: str, new_timestamp: datetime) -> bool:
        """Move an event in time. Returns False (no-op) for unknown ids.

        The edited event stops being auto-predicted; if it was, its original
        type/time is recorded so the baseline does not recreate it.
        """
        for index, event in enumerate(self._events):
            if event.id != event_id:
                continue
            self._suppress_if_auto(event)
            self._events[index] = replace(
                event, timestamp_utc=to_iso(new_timestamp), auto_predicted=False
            )
            return True
        logger.debug("Edit ignored, unknown event id %s", event_id)
        return False

    def delete(self, event_id: str) -> bool:
        """Remove an event. Returns False (no-op) for unknown ids."""
        target = self.find(event_id)
        if target is None:
            logger.debug("Delete ignored, unknown event id %s", event_id)
            return False
        self._suppress_if_auto(target)
        self._events = [e for e in self._events if e.id != event_id]
        return True

    def clear(self) -> None:
        """Start over: drop every event and suppression entry."""
        self._events = []
        self._suppressed = []

    def refresh(
        self,
        now: datetime,
        *,
        time_zone: str = "UTC",
        config: ConstraintConfig = DEFAULT_CONFIG,
    ) -> AppState:
        """Run the pipeline and keep the normalized log as the current log."""
        state = rebuild_from_log(
            self._events, now, self._suppressed, time_zone=time_zone, config=config
        )
        self._events = list(state.event_log)
        return state

    def _suppress_if_auto(self, event: CareEvent) -> None:
        if event.auto_predicted:
            self._suppressed.append(
                AutoSuppressionEntry(type=event.type, timestamp_utc=event.timestamp_utc)
            )
