"""Persistencia SQLite para configuracion y el log de eventos."""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from cuidado_tool.civil_time import is_known_zone, resolve_time_zone
from cuidado_tool.constraints import DEFAULT_CONFIG, ConstraintConfig
from cuidado_tool.model import AutoSuppressionEntry, CareEvent, to_iso

logger = logging.getLogger(__name__)

STATE_KEY = "reactive-care-scheduler:v1"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS app_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


@dataclass(frozen=True)
class AppConfig:
    """Configuracion persistida de la app."""

    time_zone: str
    export_dir: str
    constraint_overrides: dict[str, int] = field(default_factory=dict)

    def constraints(self) -> ConstraintConfig:
        return DEFAULT_CONFIG.with_overrides(self.constraint_overrides)


@dataclass(frozen=True)
class StoredState:
    """Log and suppression list exactly as persisted."""

    event_log: list[CareEvent] = field(default_factory=list)
    auto_suppressed: list[AutoSuppressionEntry] = field(default_factory=list)


class SQLiteStore:
    """Repositorio SQLite key/value para la app."""

    def __init__(self, db_path: Path) -> None:
        """Create store and ensure schema exists."""
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._init_schema()
        except sqlite3.DatabaseError:
            self._move_aside()
            self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def _move_aside(self) -> None:
        """Renombra un archivo ilegible a ``<nombre>.corrupt`` para empezar de cero."""
        backup = self._db_path.with_name(self._db_path.name + ".corrupt")
        logger.warning("Database %s is unreadable, moved to %s", self._db_path, backup)
        self._db_path.replace(backup)

    def load_config(self) -> AppConfig:
        """Devuelve configuracion guardada o defaults."""
        defaults = {
            "time_zone": resolve_time_zone(),
            "export_dir": "",
            "constraint_overrides": "{}",
        }
        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT key, value FROM app_config").fetchall()
        except sqlite3.DatabaseError:
            logger.warning("Stored config could not be read, using defaults")
            rows = []
        values = {row["key"]: row["value"] for row in rows}
        merged = {**defaults, **values}
        time_zone = merged["time_zone"]
        if not is_known_zone(time_zone):
            logger.warning("Unknown stored time zone %r, using default", time_zone)
            time_zone = defaults["time_zone"]
        return AppConfig(
            time_zone=time_zone,
            export_dir=merged["export_dir"],
            constraint_overrides=_parse_overrides(merged["constraint_overrides"]),
        )

    def save_config(self, config: AppConfig) -> None:
        """Guarda la configuracion en tabla key/value."""
        payload = {
            "time_zone": config.time_zone,
            "export_dir": config.export_dir,
            "constraint_overrides": json.dumps(config.constraint_overrides, sort_keys=True),
        }
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO app_config(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                payload.items(),
            )
            conn.commit()

    def load_state(self, now: datetime) -> StoredState:
        """Carga el log persistido; ante datos corruptos devuelve estado vacio.

        Legacy events are upgraded (and written back) before returning.

        Args:
            now: Fallback instant for legacy events without any timestamp.

        Returns:
            The stored log and suppression list, possibly empty.
        """
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM app_state WHERE key = ?", (STATE_KEY,)
                ).fetchone()
        except sqlite3.DatabaseError:
            logger.warning("Stored state could not be read, starting empty")
            return StoredState()
        if row is None:
            return StoredState()

        try:
            parsed: Any = json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Stored state is not valid JSON, starting empty")
            return StoredState()
        if not isinstance(parsed, dict):
            logger.warning("Stored state has unexpected shape, starting empty")
            return StoredState()

        raw_events = parsed.get("eventLog") or []
        raw_suppressed = parsed.get("autoSuppressed") or []
        if not isinstance(raw_events, list) or not isinstance(raw_suppressed, list):
            logger.warning("Stored state has unexpected shape, starting empty")
            return StoredState()

        upgraded, changed = _upgrade_legacy_events(raw_events, now)
        state = StoredState(
            event_log=_parse_items(upgraded, CareEvent.from_dict),
            auto_suppressed=_parse_items(raw_suppressed, AutoSuppressionEntry.from_dict),
        )
        if changed:
            logger.info("Upgraded %d legacy events", changed)
            self.save_state(state.event_log, state.auto_suppressed)
        return state

    def save_state(
        self,
        event_log: list[CareEvent] | tuple[CareEvent, ...],
        auto_suppressed: list[AutoSuppressionEntry] | tuple[AutoSuppressionEntry, ...],
    ) -> None:
        """Persist log and suppression list verbatim."""
        payload = json.dumps(
            {
                "eventLog": [event.to_dict() for event in event_log],
                "autoSuppressed": [entry.to_dict() for entry in auto_suppressed],
            },
            ensure_ascii=True,
        )
        updated_at = datetime.now(tz=timezone.utc).isoformat(timespec="seconds")
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO app_state(key, value, updated_at) VALUES(?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value, updated_at=excluded.updated_at
                """,
                (STATE_KEY, payload, updated_at),
            )
            conn.commit()

    def clear_state(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM app_state WHERE key = ?", (STATE_KEY,))
            conn.commit()


def _upgrade_legacy_events(
    raw_events: list[Any], now: datetime
) -> tuple[list[Any], int]:
    """Add ``timestampUtc`` to records that only carry a numeric ``timestamp``."""
    out: list[Any] = []
    changed = 0
    for item in raw_events:
        if not isinstance(item, dict) or "timestampUtc" in item:
            out.append(item)
            continue
        legacy = item.get("timestamp")
        instant = now
        if isinstance(legacy, (int, float)) and not isinstance(legacy, bool):
            try:
                instant = datetime.fromtimestamp(legacy / 1000, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                instant = now
        upgraded = {k: v for k, v in item.items() if k != "timestamp"}
        upgraded["timestampUtc"] = to_iso(instant)
        out.append(upgraded)
        changed += 1
    return out, changed


def _parse_items(raw_items: list[Any], factory: Any) -> list[Any]:
    out = []
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        parsed = factory(item)
        if parsed is not None:
            out.append(parsed)
    return out


def _parse_overrides(raw: str) -> dict[str, int]:
    try:
        parsed: Any = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(parsed, dict):
        return {}
    out: dict[str, int] = {}
    for key, value in parsed.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        out[str(key)] = int(value)
    return out
