"""
export.py - report export: row formatting, serialization and artifact delivery

Three layers:
 - row mappers (format_*) turn derived analytics into ordered dicts with the
   exact, human-readable column labels used in downloads
 - serializers (to_csv_text / to_json_text / to_xlsx_bytes) and the *_artifact
   builders turn rows or the fleet report into bytes plus a suggested filename
 - deliver() hands an artifact to a sink (Streamlit download button, a
   directory on disk, ...). Failures surface as ExportError; the snapshot the
   rows came from is never modified, so an export can simply be retried.
"""

from dataclasses import dataclass
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional, Sequence
import datetime
import json
import os
import shutil
import tempfile

import pandas as pd

from src.config import get_logger
from src.formatting import filename_timestamp, format_date, format_datetime
from src.models import AnalyticsSnapshot, DateRange, ExpenseEntry, MonthlyBucket, Vehicle, VehicleBreakdown

logger = get_logger(__name__)

FINANCIAL_COLUMNS = ["Date", "Vehicle", "Type", "Description", "Cost",
                     "Liters", "Station", "Service Provider"]
VEHICLE_COLUMNS = [
    "Registration Number",
    "Make",
    "Model",
    "Year",
    "Total Cost",
    "Fuel Cost",
    "Maintenance Cost",
    "Fuel Consumed (L)",
    "Average Fuel Cost per Liter",
    "Fuel Records",
    "Maintenance Records",
]
MONTHLY_COLUMNS = [
    "Month",
    "Fuel Cost",
    "Maintenance Cost",
    "Total Cost",
    "Fuel Consumed (L)",
    "Fuel Records",
    "Maintenance Records",
]

CSV_MIME = "text/csv;charset=utf-8"
JSON_MIME = "application/json;charset=utf-8"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExportError(Exception):
    """Serializing or writing an export artifact failed."""


def _money(value) -> str:
    return f"{float(value or 0):.2f}"


def _liters(value) -> str:
    return f"{float(value or 0):.1f}"


# -----------------------
# Row mappers
# -----------------------
def format_financial_records(entries: Iterable[ExpenseEntry]) -> List[Dict[str, Any]]:
    """
    Date, Vehicle, Type, Description, Cost, then Liters / Station /
    Service Provider only for rows whose source record has a value for them.
    """
    rows = []
    for e in entries:
        row: Dict[str, Any] = {
            "Date": format_date(e.date),
            "Vehicle": e.vehicle_label or "",
            "Type": e.kind,
            "Description": e.description or "",
            "Cost": _money(e.cost),
        }
        if e.liters:
            row["Liters"] = _liters(e.liters)
        if e.station:
            row["Station"] = e.station
        if e.service_provider:
            row["Service Provider"] = e.service_provider
        rows.append(row)
    return rows


def format_vehicle_breakdown(breakdown: Iterable[VehicleBreakdown]) -> List[Dict[str, Any]]:
    return [
        {
            "Registration Number": v.reg_number or "",
            "Make": v.make or "",
            "Model": v.model or "",
            "Year": v.year or "",
            "Total Cost": _money(v.total_cost),
            "Fuel Cost": _money(v.fuel_cost),
            "Maintenance Cost": _money(v.maintenance_cost),
            "Fuel Consumed (L)": _liters(v.liters),
            "Average Fuel Cost per Liter": _money(v.average_fuel_cost_per_liter),
            "Fuel Records": v.fuel_record_count,
            "Maintenance Records": v.maintenance_record_count,
        }
        for v in breakdown
    ]


def format_monthly_trends(monthly: Iterable[MonthlyBucket]) -> List[Dict[str, Any]]:
    return [
        {
            "Month": m.month_label or "",
            "Fuel Cost": _money(m.fuel_cost),
            "Maintenance Cost": _money(m.maintenance_cost),
            "Total Cost": _money(m.total_cost),
            "Fuel Consumed (L)": _liters(m.liters),
            "Fuel Records": m.fuel_record_count,
            "Maintenance Records": m.maintenance_record_count,
        }
        for m in monthly
    ]


def build_fleet_report(snapshot: AnalyticsSnapshot,
                       date_range: Optional[DateRange] = None,
                       now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
    """
    Nested structure for the complete JSON report.

    `date_range` defaults to the range the snapshot was computed for; `now` is
    the generation timestamp written into reportInfo.
    """
    if date_range is None:
        date_range = snapshot.date_range
    if now is None:
        now = datetime.datetime.now()
    return {
        "reportInfo": {
            "generatedAt": format_datetime(now),
            "period": {
                "from": format_date(date_range.start),
                "to": format_date(date_range.end),
            },
        },
        "overview": snapshot.overview.to_dict(),
        "monthlyTrends": format_monthly_trends(snapshot.monthly),
        "vehicleBreakdown": format_vehicle_breakdown(snapshot.vehicle_breakdown),
        "topExpenses": format_financial_records(snapshot.top_expenses),
    }


# -----------------------
# Serialization
# -----------------------
def _columns_for(rows: Sequence[Dict[str, Any]]) -> List[str]:
    """Fixed column order for the row family, keeping only columns some row uses."""
    present = set()
    for r in rows:
        present.update(r.keys())
    for family in (FINANCIAL_COLUMNS, VEHICLE_COLUMNS, MONTHLY_COLUMNS):
        if present and present <= set(family):
            return [c for c in family if c in present]
    # unknown row shape: first-seen order
    ordered: List[str] = []
    for r in rows:
        for key in r.keys():
            if key not in ordered:
                ordered.append(key)
    return ordered


def to_csv_text(rows: Sequence[Dict[str, Any]]) -> str:
    """
    CSV text with a header row. Fields containing a comma, quote or newline are
    quoted with inner quotes doubled; missing values are written as "".
    """
    columns = _columns_for(rows)
    df = pd.DataFrame(list(rows), columns=columns, dtype=object)
    return df.to_csv(index=False, na_rep="", lineterminator="\n")


def to_json_text(report: Any) -> str:
    return json.dumps(report, indent=2, ensure_ascii=False, allow_nan=False)


def to_xlsx_bytes(report: Dict[str, Any]) -> bytes:
    """Workbook with one sheet per fleet-report section."""
    buffer = BytesIO()
    overview = report.get("overview", {}) or {}
    info = report.get("reportInfo", {}) or {}
    period = info.get("period", {}) or {}
    summary = [{"Metric": "Generated At", "Value": info.get("generatedAt", "")},
               {"Metric": "From", "Value": period.get("from", "")},
               {"Metric": "To", "Value": period.get("to", "")}]
    summary += [{"Metric": k, "Value": v} for k, v in overview.items()]
    sections = [
        ("monthly_trends", report.get("monthlyTrends") or []),
        ("vehicle_breakdown", report.get("vehicleBreakdown") or []),
        ("top_expenses", report.get("topExpenses") or []),
    ]
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame(summary, columns=["Metric", "Value"]).to_excel(writer, index=False, sheet_name="overview")
        for sheet_name, rows in sections:
            pd.DataFrame(rows, columns=_columns_for(rows)).to_excel(writer, index=False, sheet_name=sheet_name)
    buffer.seek(0)
    return buffer.getvalue()


# -----------------------
# Artifacts and sinks
# -----------------------
@dataclass(frozen=True)
class ExportArtifact:
    data: bytes
    filename: str
    mime_type: str


def export_filename(report_name: str, extension: str, now: Optional[datetime.datetime] = None) -> str:
    """{report_name}_{yyyy-MM-dd_HH-mm}.{extension}"""
    if now is None:
        now = datetime.datetime.now()
    return f"{report_name}_{filename_timestamp(now)}.{extension}"


def csv_artifact(rows: Sequence[Dict[str, Any]], report_name: str,
                 now: Optional[datetime.datetime] = None) -> Optional[ExportArtifact]:
    """CSV artifact for tabular rows, or None when there is nothing to export."""
    if not rows:
        logger.warning("No data to export for %s", report_name)
        return None
    try:
        text = to_csv_text(rows)
    except Exception as exc:
        logger.exception("Error exporting CSV %s", report_name)
        raise ExportError("Failed to export CSV file") from exc
    return ExportArtifact(text.encode("utf-8"), export_filename(report_name, "csv", now), CSV_MIME)


def json_artifact(report: Any, report_name: str,
                  now: Optional[datetime.datetime] = None) -> Optional[ExportArtifact]:
    if not report:
        logger.warning("No data to export for %s", report_name)
        return None
    try:
        text = to_json_text(report)
    except (TypeError, ValueError) as exc:
        logger.exception("Error exporting JSON %s", report_name)
        raise ExportError("Failed to export JSON file") from exc
    return ExportArtifact(text.encode("utf-8"), export_filename(report_name, "json", now), JSON_MIME)


def xlsx_artifact(report: Dict[str, Any], report_name: str,
                  now: Optional[datetime.datetime] = None) -> Optional[ExportArtifact]:
    if not report:
        logger.warning("No data to export for %s", report_name)
        return None
    try:
        data = to_xlsx_bytes(report)
    except Exception as exc:
        logger.exception("Error exporting XLSX %s", report_name)
        raise ExportError("Failed to export XLSX file") from exc
    return ExportArtifact(data, export_filename(report_name, "xlsx", now), XLSX_MIME)


def record_history_artifact(entries: Sequence[ExpenseEntry], vehicle: Optional[Vehicle] = None,
                            now: Optional[datetime.datetime] = None) -> Optional[ExportArtifact]:
    """CSV of every record in the window; named after the vehicle when scoped to one."""
    if vehicle is not None and vehicle.reg_number:
        report_name = f"{vehicle.reg_number.replace(' ', '_')}_records"
    else:
        report_name = "fleet_records"
    return csv_artifact(format_financial_records(entries), report_name, now=now)


class FileSystemSink:
    """
    Writes artifacts into a directory, atomically (temp file then move).
    The dashboard uses it when FLEET_EXPORT_DIR is set.
    """

    def __init__(self, directory: str):
        self.directory = directory

    def write(self, data: bytes, filename: str, mime_type: str) -> str:
        os.makedirs(self.directory, exist_ok=True)
        target = os.path.abspath(os.path.join(self.directory, filename))
        fd, tmp_path = tempfile.mkstemp(prefix="tmp_export_", dir=os.path.dirname(target))
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            shutil.move(tmp_path, target)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.info("Wrote export %s (%d bytes, %s)", target, len(data), mime_type)
        return target


def deliver(artifact: ExportArtifact, sink) -> Any:
    """
    Hand an artifact to a sink exposing write(data, filename, mime_type).
    Any sink failure is re-raised as ExportError.
    """
    try:
        return sink.write(artifact.data, artifact.filename, artifact.mime_type)
    except ExportError:
        raise
    except Exception as exc:
        logger.exception("Failed to deliver export %s", artifact.filename)
        raise ExportError(f"Failed to export {artifact.filename}") from exc
