"""Export of normalized records: JSON file, DataFrame summary and Excel sheet."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from dateutil import tz
from openpyxl.styles import Alignment, Border, Font, Side

from cgm_sync.model import NormalizedRecord
from cgm_sync.timestamps import format_instant, utc_now

logger = logging.getLogger("cgm_sync.export")

RECORD_COLUMNS = [
    "datetime",
    "date",
    "time",
    "glucose_mg_dl",
    "glucose_mmol_l",
    "direction",
    "device",
    "source_id",
]

SUMMARY_COLUMNS = [
    "date",
    "glucose_count",
    "glucose_min",
    "glucose_max",
    "glucose_avg",
    "mmol_avg",
]

_HEADER_MAP: dict[str, str] = {
    "datetime": "Date / Time",
    "glucose_mg_dl": "Glucose (mg/dL)",
    "glucose_mmol_l": "Glucose (mmol/L)",
    "direction": "Trend",
    "device": "Device",
    "source_id": "Source ID",
}


@dataclass(frozen=True)
class ExcelLayout:
    """Layout/formatting configuration for the readings sheet."""

    sheet_name: str = "CGM readings"
    summary_sheet_name: str = "Daily summary"


def build_export(
    records: Sequence[NormalizedRecord],
    identity: str | None,
    source: str = "Glooko",
    exported_at: datetime | None = None,
) -> dict[str, Any]:
    """Build the JSON export document for a set of records."""
    return {
        "exportedAt": format_instant(exported_at or utc_now()),
        "source": source,
        "patientId": identity,
        "count": len(records),
        "entries": [r.to_entry() for r in records],
    }


def write_export_json(
    records: Sequence[NormalizedRecord], out_path: Path, identity: str | None
) -> Path:
    """Write records as a JSON export file.

    Args:
        records:  Newest-first normalized records.
        out_path: Destination file.
        identity: Patient identifier recorded in the export.

    Returns:
        The written path.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    doc = build_export(records, identity)
    out_path.write_text(json.dumps(doc, indent=2) + "\n", encoding="utf-8")
    logger.info("Exported %d readings to %s", len(records), out_path)
    return out_path


def records_to_frame(
    records: Sequence[NormalizedRecord], display_timezone: str = "Europe/Helsinki"
) -> pd.DataFrame:
    """Convert records to a DataFrame in chronological order (local time)."""
    if not records:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    local_tz = tz.gettz(display_timezone) or tz.UTC
    df = pd.DataFrame(
        {
            "datetime": pd.to_datetime(
                [r.epoch_millis for r in records], unit="ms", utc=True
            ).tz_convert(local_tz),
            "glucose_mg_dl": [r.value_target_unit for r in records],
            "glucose_mmol_l": [r.value_native_unit for r in records],
            "direction": [r.direction.value for r in records],
            "device": [r.device_label for r in records],
            "source_id": [r.source_id for r in records],
        }
    )
    df["date"] = df["datetime"].dt.date
    df["time"] = df["datetime"].dt.time
    return df[RECORD_COLUMNS].sort_values("datetime").reset_index(drop=True)


def daily_summary(frame: pd.DataFrame) -> pd.DataFrame:
    """Aggregate readings by local day (count/min/max/avg)."""
    if frame.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    g = frame.groupby("date", as_index=False).agg(
        glucose_count=("glucose_mg_dl", "count"),
        glucose_min=("glucose_mg_dl", "min"),
        glucose_max=("glucose_mg_dl", "max"),
        glucose_avg=("glucose_mg_dl", "mean"),
        mmol_avg=("glucose_mmol_l", "mean"),
    )
    g["glucose_avg"] = g["glucose_avg"].round(2)
    g["mmol_avg"] = g["mmol_avg"].round(2)
    return g.sort_values("date").reset_index(drop=True)


def write_records_xlsx(
    frame: pd.DataFrame, out_path: Path, layout: ExcelLayout | None = None
) -> Path:
    """Write readings and their daily summary to a formatted workbook.

    Args:
        frame:    Output of ``records_to_frame``.
        out_path: Destination XLSX path.
        layout:   Sheet naming.

    Returns:
        The written path.
    """
    layout = layout or ExcelLayout()
    out_path.parent.mkdir(parents=True, exist_ok=True)

    summary = daily_summary(frame)
    export_df = frame.copy()
    if not export_df.empty:
        export_df["datetime"] = export_df["datetime"].dt.tz_localize(None)
    export_df = export_df.drop(columns=["date", "time"]).rename(columns=_HEADER_MAP)

    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        export_df.to_excel(writer, index=False, sheet_name=layout.sheet_name)
        summary.to_excel(writer, index=False, sheet_name=layout.summary_sheet_name)
        _format_sheet(writer.book[layout.sheet_name])
        _format_sheet(writer.book[layout.summary_sheet_name])
    logger.info("Wrote %d readings to %s", len(frame), out_path)
    return out_path


def _format_sheet(ws: Any) -> None:
    """Bold bordered header, fixed widths and number formats."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.alignment = center
        cell.border = border
        ws.column_dimensions[cell.column_letter].width = max(
            12, len(str(cell.value)) + 2
        )

    headers = {str(cell.value): idx for idx, cell in enumerate(ws[1])}
    fmt_map = {
        "Date / Time": "dd/mm/yyyy hh:mm",
        "Glucose (mg/dL)": "0",
        "Glucose (mmol/L)": "0.0",
    }
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            cell.alignment = center
            cell.border = border
        for header, fmt in fmt_map.items():
            idx = headers.get(header)
            if idx is not None:
                row[idx].number_format = fmt
