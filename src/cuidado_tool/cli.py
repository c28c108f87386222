"""CLI para registrar eventos de cuidado y ver el estado operativo."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from cuidado_tool.civil_time import format_time, is_known_zone
from cuidado_tool.constraints import ConstraintConfig, compute_outputs
from cuidado_tool.event_store import EventStore, build_event
from cuidado_tool.excel_writer import ExcelLayout, write_care_log_xlsx
from cuidado_tool.forecast import (
    current_status,
    feed_window,
    nap_history_delta,
    next_event_type,
    pressure_snapshot,
    resolve_next_action,
    resolve_secondary_action,
    upcoming_events,
)
from cuidado_tool.history import (
    daily_care_summary,
    events_to_frame,
    group_by_day,
    routine_stats,
)
from cuidado_tool.model import AppState, EventType, OutputModel, parse_instant
from cuidado_tool.storage import AppConfig, SQLiteStore

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _instant_arg(value: str) -> datetime:
    parsed = parse_instant(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"Fecha/hora ISO-8601 inválida: {value!r}")
    return parsed


def _zone_arg(value: str) -> str:
    if not is_known_zone(value):
        raise argparse.ArgumentTypeError(f"Zona horaria desconocida: {value!r}")
    return value


def _override_arg(value: str) -> tuple[str, int]:
    key, sep, raw = value.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"Se esperaba CLAVE=VALOR: {value!r}")
    try:
        return key.strip(), int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Valor entero inválido: {value!r}") from exc


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="Registro de cuidados del bebé: ventanas, límite de rutina y riesgo."
    )
    parser.add_argument(
        "--db",
        default=str(Path.cwd() / "cuidado_tool.sqlite3"),
        help="Base SQLite (default: ./cuidado_tool.sqlite3).",
    )
    parser.add_argument(
        "--tz",
        type=_zone_arg,
        default=None,
        help="Zona horaria IANA para esta ejecución (default: la configurada).",
    )
    parser.add_argument(
        "--now",
        type=_instant_arg,
        default=None,
        help="Instante 'ahora' en ISO-8601 (default: reloj del sistema).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Nivel de logging.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    log_p = sub.add_parser("log", help="Registrar un evento.")
    log_p.add_argument("type", choices=[t.value for t in EventType])
    log_p.add_argument("--at", type=_instant_arg, default=None, help="Instante del evento.")

    edit_p = sub.add_parser("edit", help="Cambiar la hora de un evento.")
    edit_p.add_argument("event_id")
    edit_p.add_argument("timestamp", type=_instant_arg)

    delete_p = sub.add_parser("delete", help="Borrar un evento.")
    delete_p.add_argument("event_id")

    sub.add_parser("clear", help="Empezar de nuevo (borra todo el log).")
    sub.add_parser("status", help="Estado actual, ventanas y categorías.")
    sub.add_parser("events", help="Log agrupado por día.")
    sub.add_parser("forecast", help="Próximos eventos previstos.")

    export_p = sub.add_parser("export", help="Exportar el log a Excel.")
    export_p.add_argument("--out", default=None, help="Ruta del .xlsx.")

    config_p = sub.add_parser("config", help="Ver o cambiar la configuración.")
    config_p.add_argument("--set-tz", type=_zone_arg, default=None)
    config_p.add_argument("--export-dir", default=None)
    config_p.add_argument(
        "--set",
        dest="overrides",
        type=_override_arg,
        action="append",
        default=[],
        help="Ajuste de restricciones CLAVE=MINUTOS (repetible).",
    )
    return parser.parse_args(argv)


def _run_config(store: SQLiteStore, app_config: AppConfig, ns: argparse.Namespace) -> int:
    updated = app_config
    if ns.set_tz:
        updated = replace(updated, time_zone=ns.set_tz)
    if ns.export_dir is not None:
        updated = replace(updated, export_dir=ns.export_dir)
    if ns.overrides:
        known = set(ConstraintConfig.__dataclass_fields__)
        overrides = dict(updated.constraint_overrides)
        for key, value in ns.overrides:
            if key not in known:
                print(f"WARN: clave desconocida ignorada: {key}")
                continue
            overrides[key] = value
        updated = replace(updated, constraint_overrides=overrides)
    if updated != app_config:
        store.save_config(updated)

    print(f"OK: Zona horaria: {updated.time_zone}")
    print(f"OK: Directorio de exportación: {updated.export_dir or '(por defecto)'}")
    for key, value in sorted(updated.constraint_overrides.items()):
        print(f"OK: {key} = {value}")
    return 0


def _print_status(outputs: OutputModel, state: AppState, now: datetime, time_zone: str) -> None:
    print(f"OK: Estado: {current_status(state, outputs, now)}")
    for line in outputs.state_summary:
        print(f"  {line}")
    print(f"OK: Próxima ventana: {outputs.next_window or '—'}")
    print(f"OK: Límite: {outputs.next_hard_stop or '—'}")
    if outputs.expected_wake_utc is not None:
        print(f"OK: Despertar esperado: {format_time(outputs.expected_wake_utc, time_zone)}")
    indicator = outputs.pressure_indicator
    utilization = (
        f"{round(indicator.wake_utilization * 100)}%"
        if indicator.wake_utilization is not None
        else "—"
    )
    print(
        f"OK: Presión: uso de ventana {utilization}, "
        f"tendencia {indicator.sleep_pressure_trend}, riesgo {indicator.regulation_risk}"
    )
    for item in outputs.activity_categories.allowed:
        print(f"  + {item.label}")
    for blocked in outputs.activity_categories.suppressed:
        print(f"  - {blocked.label} ({blocked.reason})")
    for shift in outputs.shift_preview:
        print(f"  [{shift.status}] {shift.delta}")
    history = nap_history_delta(state.event_log)
    if history is not None:
        print(f"  [history] {history}")


def _print_events(state: AppState, time_zone: str) -> None:
    for day, events in group_by_day(state.event_log, time_zone):
        print(f"OK: {day}")
        for event in events:
            ts = event.instant
            when = format_time(ts, time_zone) if ts is not None else "??:??"
            flag = " (previsto)" if event.auto_predicted else ""
            print(f"  {when} {event.type.value}{flag} [{event.id}]")
    stats = routine_stats(state.event_log)
    if stats.count:
        print(f"OK: Rutina más larga {stats.longest} min, más corta {stats.shortest} min")


def _print_forecast(
    state: AppState,
    outputs: OutputModel,
    now: datetime,
    time_zone: str,
    constraints: ConstraintConfig,
) -> None:
    suggested = next_event_type(state, outputs, now, constraints)
    print(f"OK: Siguiente registro sugerido: {suggested.value if suggested else '—'}")
    snapshot = pressure_snapshot(state, now, constraints)
    primary = resolve_next_action(snapshot)
    print(f"OK: Acción sugerida: {primary or '—'}")
    secondary = resolve_secondary_action(snapshot, primary)
    if secondary is not None:
        print(f"OK: Después: {secondary}")
    window = feed_window(state, outputs, constraints)
    if window is not None:
        print(
            f"OK: Ventana de comida: {format_time(window[0], time_zone)} – "
            f"{format_time(window[1], time_zone)}"
        )
    for predicted in upcoming_events(state, outputs, now, constraints):
        print(f"  {format_time(predicted.time_utc, time_zone)} {predicted.label} ({predicted.prep})")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the care log CLI.

    Returns:
        Exit code (0 on success).
    """
    ns = parse_args(argv)
    logging.basicConfig(level=getattr(logging, ns.log_level), format=_LOG_FORMAT)

    store = SQLiteStore(Path(ns.db).expanduser())
    app_config = store.load_config()
    if ns.command == "config":
        return _run_config(store, app_config, ns)

    now = ns.now or datetime.now(tz=timezone.utc)
    time_zone = ns.tz or app_config.time_zone
    constraints = app_config.constraints()

    stored = store.load_state(now)
    events = EventStore(stored.event_log, stored.auto_suppressed)

    if ns.command == "log":
        event = build_event(EventType(ns.type), ns.at or now)
        events.append(event)
        print(f"OK: Registrado {event.type.value} [{event.id}]")
    elif ns.command == "edit":
        if events.edit_timestamp(ns.event_id, ns.timestamp):
            print(f"OK: Evento actualizado [{ns.event_id}]")
        else:
            print(f"OK: Evento no encontrado, sin cambios [{ns.event_id}]")
    elif ns.command == "delete":
        if events.delete(ns.event_id):
            print(f"OK: Evento borrado [{ns.event_id}]")
        else:
            print(f"OK: Evento no encontrado, sin cambios [{ns.event_id}]")
    elif ns.command == "clear":
        events.clear()
        store.save_state((), ())
        print("OK: Log vacío")
        return 0

    state = events.refresh(now, time_zone=time_zone, config=constraints)
    store.save_state(state.event_log, state.auto_suppressed)
    outputs = compute_outputs(state, now, time_zone, constraints)
    logger.debug("Pipeline run with %d events", len(state.event_log))

    if ns.command in ("log", "edit", "delete", "status"):
        _print_status(outputs, state, now, time_zone)
    elif ns.command == "events":
        _print_events(state, time_zone)
    elif ns.command == "forecast":
        _print_forecast(state, outputs, now, time_zone, constraints)
    elif ns.command == "export":
        out_dir = Path(app_config.export_dir or Path.cwd() / "salidas").expanduser()
        stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%d_%H-%M-%S")
        out_path = Path(ns.out) if ns.out else out_dir / f"registro_cuidados_{stamp}.xlsx"
        write_care_log_xlsx(
            events_to_frame(state.event_log, time_zone),
            out_path,
            ExcelLayout(),
            summary=daily_care_summary(state.event_log, time_zone),
        )
        print(f"OK: Eventos: {len(state.event_log)}")
        print(f"OK: Output: {out_path}")
    return 0
