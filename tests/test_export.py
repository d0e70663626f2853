import datetime
import io
import json
import os

import pandas as pd
import pytest

from src import export
from src.formatting import format_kes
from src.models import DateRange, ExpenseEntry, FuelRecord, MaintenanceRecord, Vehicle
from src.reports import generate_report

NOW = datetime.datetime(2024, 4, 2, 9, 5, 7)
Q1 = DateRange(datetime.datetime(2024, 1, 1), datetime.datetime(2024, 3, 31, 23, 59, 59, 999999))


def sample_snapshot():
    vehicles = [Vehicle(id="v1", reg_number="KAA 111A", make="Toyota", model="Hilux", year=2019),
                Vehicle(id="v2", reg_number="KBB 222B", make="Isuzu", model="D-Max", year=2021)]
    fuel = [
        FuelRecord(id="f1", vehicle_id="v1", date=datetime.datetime(2024, 1, 15), cost=5000, liters=40,
                   station="Shell, Westlands"),
        FuelRecord(id="f2", vehicle_id="v2", date=datetime.datetime(2024, 2, 3), cost=2500.5, liters=20.25),
    ]
    maintenance = [
        MaintenanceRecord(id="m1", vehicle_id="v2", date=datetime.datetime(2024, 3, 9), cost=7000,
                          description='Replaced "premium" tyres', service_provider="AutoFix"),
    ]
    return generate_report(vehicles, fuel, maintenance, Q1)


def test_format_kes():
    assert format_kes(1234.5) == "KES 1,234.50"
    assert format_kes(0) == "KES 0.00"
    assert format_kes(None) == "KES 0.00"
    assert format_kes(1234567.891) == "KES 1,234,567.89"


def test_financial_rows_include_optional_columns_only_when_present():
    rows = export.format_financial_records(sample_snapshot().top_expenses)
    maintenance_row, fuel_row = rows[0], rows[1]
    assert list(maintenance_row) == ["Date", "Vehicle", "Type", "Description", "Cost", "Service Provider"]
    assert maintenance_row["Date"] == "09-03-2024"
    assert maintenance_row["Cost"] == "7000.00"
    assert list(fuel_row) == ["Date", "Vehicle", "Type", "Description", "Cost", "Liters", "Station"]
    assert fuel_row["Liters"] == "40.0"
    assert fuel_row["Description"] == "Fuel - KAA 111A - 40L"


def test_financial_row_without_date_or_cost():
    entry = ExpenseEntry(kind="Maintenance", date=None, cost=0, vehicle_label="Unknown", description="")
    assert export.format_financial_records([entry]) == [
        {"Date": "", "Vehicle": "Unknown", "Type": "Maintenance", "Description": "", "Cost": "0.00"}
    ]


def test_vehicle_rows_use_fixed_labels():
    rows = export.format_vehicle_breakdown(sample_snapshot().vehicle_breakdown)
    assert list(rows[0]) == export.VEHICLE_COLUMNS
    assert rows[0]["Registration Number"] == "KBB 222B"
    assert rows[0]["Total Cost"] == "9500.50"
    assert rows[0]["Fuel Consumed (L)"] == "20.2"
    assert rows[1]["Average Fuel Cost per Liter"] == "125.00"
    assert rows[1]["Fuel Records"] == 1


def test_csv_quotes_commas_and_doubles_quotes():
    text = export.to_csv_text(export.format_financial_records(sample_snapshot().top_expenses))
    lines = text.splitlines()
    assert lines[0] == "Date,Vehicle,Type,Description,Cost,Liters,Station,Service Provider"
    assert lines[1] == '09-03-2024,KBB 222B,Maintenance,"Replaced ""premium"" tyres - KBB 222B",7000.00,,,AutoFix'
    assert lines[2] == '15-01-2024,KAA 111A,Fuel,Fuel - KAA 111A - 40L,5000.00,40.0,"Shell, Westlands",'


def test_monthly_csv_round_trip():
    monthly_rows = export.format_monthly_trends(sample_snapshot().monthly)
    parsed = pd.read_csv(io.StringIO(export.to_csv_text(monthly_rows)))
    assert list(parsed.columns) == export.MONTHLY_COLUMNS
    assert list(parsed["Month"]) == ["Jan 2024", "Feb 2024", "Mar 2024"]
    for row, (_, back) in zip(monthly_rows, parsed.iterrows()):
        assert float(row["Total Cost"]) == pytest.approx(back["Total Cost"])
        assert float(row["Fuel Consumed (L)"]) == pytest.approx(back["Fuel Consumed (L)"])
        assert row["Fuel Records"] == back["Fuel Records"]


def test_fleet_report_shape():
    snapshot = sample_snapshot()
    report = export.build_fleet_report(snapshot, Q1, now=NOW)
    assert report["reportInfo"] == {
        "generatedAt": "02-04-2024 09:05:07",
        "period": {"from": "01-01-2024", "to": "31-03-2024"},
    }
    assert report["overview"]["totalCost"] == 14500.5
    assert report["overview"]["activeVehicles"] == 2
    assert report["monthlyTrends"] == export.format_monthly_trends(snapshot.monthly)
    assert report["vehicleBreakdown"] == export.format_vehicle_breakdown(snapshot.vehicle_breakdown)
    assert len(report["topExpenses"]) == 3
    assert json.loads(export.to_json_text(report)) == report


def test_export_filename_pattern():
    assert export.export_filename("monthly_trends", "csv", now=NOW) == "monthly_trends_2024-04-02_09-05.csv"


def test_artifacts():
    snapshot = sample_snapshot()
    csv = export.csv_artifact(export.format_monthly_trends(snapshot.monthly), "monthly_trends", now=NOW)
    assert csv.filename == "monthly_trends_2024-04-02_09-05.csv"
    assert csv.mime_type == export.CSV_MIME
    assert csv.data.decode("utf-8").startswith("Month,Fuel Cost,")

    report = export.build_fleet_report(snapshot, now=NOW)
    js = export.json_artifact(report, "comprehensive_fleet_report", now=NOW)
    assert js.filename.endswith(".json")
    xlsx = export.xlsx_artifact(report, "comprehensive_fleet_report", now=NOW)
    assert xlsx.data[:2] == b"PK"
    sheets = pd.read_excel(io.BytesIO(xlsx.data), sheet_name=None)
    assert set(sheets) == {"overview", "monthly_trends", "vehicle_breakdown", "top_expenses"}


def test_empty_rows_produce_no_artifact():
    assert export.csv_artifact([], "top_expenses", now=NOW) is None


def test_filesystem_sink_writes_artifact(tmp_path):
    artifact = export.ExportArtifact(b"a,b\n1,2\n", "x_2024-04-02_09-05.csv", export.CSV_MIME)
    path = export.deliver(artifact, export.FileSystemSink(str(tmp_path)))
    assert os.path.basename(path) == artifact.filename
    with open(path, "rb") as f:
        assert f.read() == artifact.data
    assert [p.name for p in tmp_path.iterdir()] == [artifact.filename]


class _BrokenSink:
    def write(self, data, filename, mime_type):
        raise OSError("disk full")


def test_failed_delivery_raises_export_error_and_keeps_snapshot():
    snapshot = sample_snapshot()
    before = snapshot.vehicle_breakdown[:]
    artifact = export.csv_artifact(export.format_vehicle_breakdown(snapshot.vehicle_breakdown), "vehicle_breakdown")
    with pytest.raises(export.ExportError):
        export.deliver(artifact, _BrokenSink())
    assert snapshot.vehicle_breakdown == before


def test_serialization_failure_raises_export_error(monkeypatch):
    snapshot = sample_snapshot()

    def broken(*args, **kwargs):
        raise RuntimeError("encoder crashed")

    monkeypatch.setattr(export, "to_csv_text", broken)
    with pytest.raises(export.ExportError):
        export.csv_artifact(export.format_monthly_trends(snapshot.monthly), "monthly_trends", now=NOW)

    monkeypatch.setattr(export, "to_xlsx_bytes", broken)
    with pytest.raises(export.ExportError):
        export.xlsx_artifact(export.build_fleet_report(snapshot, now=NOW), "comprehensive_fleet_report", now=NOW)


def test_json_export_refuses_nan():
    with pytest.raises(export.ExportError):
        export.json_artifact({"overview": {"totalCost": float("nan")}}, "comprehensive_fleet_report", now=NOW)


def test_record_history_artifact_lists_every_record():
    vehicle = Vehicle(id="v1", reg_number="KAA 111A", make="Toyota", model="Hilux")
    entries = [
        ExpenseEntry(kind="Maintenance", date=datetime.datetime(2024, 3, 9), cost=7000, vehicle_label="KAA 111A",
                     description="Oil change - KAA 111A", service_provider="AutoFix"),
        ExpenseEntry(kind="Fuel", date=datetime.datetime(2024, 1, 15), cost=5000, vehicle_label="KAA 111A",
                     description="Fuel - KAA 111A - 40L", liters=40, station="Shell, Westlands"),
    ]
    artifact = export.record_history_artifact(entries, vehicle, now=NOW)
    assert artifact.filename == "KAA_111A_records_2024-04-02_09-05.csv"
    lines = artifact.data.decode("utf-8").splitlines()
    assert lines[0] == "Date,Vehicle,Type,Description,Cost,Liters,Station,Service Provider"
    assert lines[1] == "09-03-2024,KAA 111A,Maintenance,Oil change - KAA 111A,7000.00,,,AutoFix"
    assert lines[2] == '15-01-2024,KAA 111A,Fuel,Fuel - KAA 111A - 40L,5000.00,40.0,"Shell, Westlands",'

    fleet = export.record_history_artifact(entries, now=NOW)
    assert fleet.filename == "fleet_records_2024-04-02_09-05.csv"
    assert export.record_history_artifact([], now=NOW) is None
