"""Normalize → reduce, con todas las entradas explícitas."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import fields
from datetime import datetime

from cuidado_tool.constraints import DEFAULT_CONFIG, ConstraintConfig
from cuidado_tool.model import AppState, AutoSuppressionEntry, CareEvent
from cuidado_tool.normalize import normalize_event_log
from cuidado_tool.reducer import reduce_core_state


def rebuild_from_log(
    event_log: Iterable[CareEvent],
    now: datetime,
    auto_suppressed: Iterable[AutoSuppressionEntry] = (),
    *,
    time_zone: str = "UTC",
    config: ConstraintConfig = DEFAULT_CONFIG,
) -> AppState:
    """Run the full pipeline over ``event_log`` as of ``now``."""
    suppressed = tuple(auto_suppressed)
    normalized = normalize_event_log(
        event_log, now, suppressed, time_zone=time_zone, config=config
    )
    core = reduce_core_state(normalized, now)
    values = {f.name: getattr(core, f.name) for f in fields(core)}
    return AppState(**values, event_log=normalized, auto_suppressed=suppressed)


def apply_event(
    state: AppState,
    event: CareEvent,
    now: datetime,
    *,
    time_zone: str = "UTC",
    config: ConstraintConfig = DEFAULT_CONFIG,
) -> AppState:
    """Append one event to ``state`` and rebuild."""
    return rebuild_from_log(
        (*state.event_log, event),
        now,
        state.auto_suppressed,
        time_zone=time_zone,
        config=config,
    )
