"""Generación de Excel formateado con el log de cuidados."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, Side

_DIA_SEMANA: tuple[str, ...] = ("lun", "mar", "mie", "jue", "vie", "sab", "dom")

_TYPE_LABELS: dict[str, str] = {
    "FirstAwake": "Despertar",
    "NapStarted": "Inicio siesta",
    "NapEnded": "Fin siesta",
    "MilkGiven": "Leche",
    "SolidsGiven": "Sólidos",
    "RoutineStarted": "Rutina",
    "Asleep": "Dormido",
}

_HEADER_MAP: dict[str, str] = {
    "weekday": "Día",
    "local_datetime": "Fecha / Hora",
    "type": "Evento",
    "auto_predicted": "Previsto",
}

_EXPORT_COLUMNS = ["weekday", "local_datetime", "type", "auto_predicted"]

_SUMMARY_HEADER_MAP: dict[str, str] = {
    "date": "Fecha",
    "feeds": "Comidas",
    "naps": "Siestas",
    "nap_minutes": "Min. siesta",
    "routines": "Rutinas",
    "auto_predicted": "Previstos",
}


@dataclass(frozen=True)
class ExcelLayout:
    """Layout/formatting configuration for the care log sheets."""

    sheet_name: str = "Registro de cuidados"
    summary_sheet_name: str = "Resumen diario"


def _weekday_label(i: object) -> str:
    """Convierte índice 0-6 (lunes-domingo) a etiqueta de 3 letras."""
    try:
        if i is None or (isinstance(i, float) and pd.isna(i)):
            return ""
        if isinstance(i, int | float):
            idx = int(i)
            return _DIA_SEMANA[idx] if 0 <= idx < 7 else ""
        return ""
    except (ValueError, TypeError):
        return ""


def _wall_time(value: object) -> pd.Timestamp:
    """Hora local sin timezone (openpyxl no acepta datetimes con tz)."""
    if value is None or pd.isna(value):
        return pd.NaT
    ts = pd.Timestamp(value)
    return ts.tz_localize(None) if ts.tzinfo is not None else ts


def _prepare_export_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Deja solo las columnas exportables, con hora local sin timezone."""
    export_df = df.copy()
    if "local_datetime" in export_df.columns:
        export_df["local_datetime"] = [
            _wall_time(value) for value in export_df["local_datetime"]
        ]
        export_df["weekday"] = [
            _weekday_label(ts.weekday()) if not pd.isna(ts) else ""
            for ts in export_df["local_datetime"]
        ]
    if "type" in export_df.columns:
        export_df["type"] = export_df["type"].map(lambda t: _TYPE_LABELS.get(t, t))
    if "auto_predicted" in export_df.columns:
        export_df["auto_predicted"] = export_df["auto_predicted"].map(
            lambda flag: "sí" if bool(flag) else ""
        )
    cols = [c for c in _EXPORT_COLUMNS if c in export_df.columns]
    return export_df[cols]


def write_care_log_xlsx(
    df: pd.DataFrame,
    out_path: Path,
    layout: ExcelLayout,
    summary: pd.DataFrame | None = None,
) -> None:
    """Write the care log (see ``history.events_to_frame``) as a formatted sheet.

    Args:
        df: Event frame.
        out_path: Output path for the XLSX file.
        layout: Excel layout parameters.
        summary: Optional ``history.daily_care_summary`` frame, written as a
            second sheet.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)

    export_df = _prepare_export_frame(df).rename(columns=_HEADER_MAP)

    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        export_df.to_excel(writer, index=False, sheet_name=layout.sheet_name)
        ws = writer.book[layout.sheet_name]
        _format_sheet(ws)

        if summary is not None:
            summary_df = summary.rename(columns=_SUMMARY_HEADER_MAP)
            summary_df.to_excel(writer, index=False, sheet_name=layout.summary_sheet_name)
            _format_sheet(writer.book[layout.summary_sheet_name])


def _style_header_row(ws: Any) -> None:
    """Aplica fuente negrita, alineación y borde a la fila de cabecera."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    header_font = Font(bold=True)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = center
        cell.border = border


def _style_body_rows(ws: Any) -> None:
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    center = Alignment(horizontal="center", vertical="center")
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            cell.alignment = center
            cell.border = border
        ws.row_dimensions[row[0].row].height = 15


def _get_header_col_index(ws: Any) -> dict[str, int]:
    """Devuelve mapa nombre de cabecera -> índice de columna (1-based)."""
    headers = [str(cell.value) for cell in ws[1]]
    return {name: idx + 1 for idx, name in enumerate(headers)}


def _apply_column_widths(ws: Any, col_index: dict[str, int]) -> None:
    widths = [
        ("Día", 6),
        ("Fecha / Hora", 18),
        ("Evento", 16),
        ("Previsto", 10),
        ("Fecha", 12),
        ("Comidas", 10),
        ("Siestas", 10),
        ("Min. siesta", 12),
        ("Rutinas", 10),
        ("Previstos", 10),
    ]
    for header, width in widths:
        idx = col_index.get(header)
        if idx is not None:
            letter = ws.cell(row=1, column=idx).column_letter
            ws.column_dimensions[letter].width = width


def _apply_number_formats(ws: Any, col_index: dict[str, int]) -> None:
    formats = {
        "Fecha / Hora": "dd/mm/yyyy hh:mm",
        "Fecha": "dd/mm/yyyy",
        "Min. siesta": "0.0",
    }
    for header, fmt in formats.items():
        idx = col_index.get(header)
        if idx is None:
            continue
        for row in ws.iter_rows(min_row=2):
            row[idx - 1].number_format = fmt


def _format_sheet(ws: Any) -> None:
    """Apply borders, widths and date formats to a worksheet.

    Args:
        ws: openpyxl worksheet.
    """
    _style_header_row(ws)
    _style_body_rows(ws)
    col_index = _get_header_col_index(ws)
    _apply_column_widths(ws, col_index)
    _apply_number_formats(ws, col_index)
