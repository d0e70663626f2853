"""
components.py - reusable Streamlit components for the reports page

Pure presentation helpers used by the dashboard:
 - display_overview / display_month_comparison: metric cards
 - display_monthly_trends / display_cost_distribution: Altair charts
 - display_vehicle_breakdown / display_top_expenses: tables
 - display_export_menu: download buttons for the CSV / JSON / XLSX exports,
   including the full record history of the window

No numbers are computed here; everything comes from an AnalyticsSnapshot.
"""

from typing import Any, Dict, List, Optional, Sequence
import datetime

import altair as alt
import pandas as pd
import streamlit as st

from src import export
from src.formatting import format_date, format_kes
from src.models import AnalyticsSnapshot, ExpenseEntry, MonthComparison, Vehicle

FUEL_COLOR = "#8884d8"
MAINTENANCE_COLOR = "#82ca9d"
COST_SCALE = alt.Scale(domain=["Fuel", "Maintenance"], range=[FUEL_COLOR, MAINTENANCE_COLOR])


class StreamlitDownloadSink:
    """Artifact sink rendering a download button for each written artifact."""

    def __init__(self, label: str, key: Optional[str] = None):
        self.label = label
        self.key = key

    def write(self, data: bytes, filename: str, mime_type: str):
        return st.download_button(
            label=self.label,
            data=data,
            file_name=filename,
            mime=mime_type,
            key=self.key,
        )


def display_overview(snapshot: AnalyticsSnapshot):
    """Headline cards: total, fuel, maintenance and average cost per liter."""
    o = snapshot.overview
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Cost", format_kes(o.total_cost))
    col2.metric("Fuel Cost", format_kes(o.total_fuel_cost), f"{o.total_liters:,.1f} L", delta_color="off")
    col3.metric("Maintenance Cost", format_kes(o.total_maintenance_cost),
                f"{o.total_maintenance_records} records", delta_color="off")
    col4.metric("Avg Fuel Cost / L", format_kes(o.average_fuel_cost_per_liter))
    st.caption(f"{o.active_vehicles} of {o.total_vehicles} vehicles active in this period")


def display_month_comparison(comparison: MonthComparison):
    st.subheader("This month vs last month")
    col1, col2, col3 = st.columns(3)
    col1.metric("Fuel", format_kes(comparison.current_fuel_cost),
                f"{comparison.fuel_cost_change_pct:+.1f}%", delta_color="inverse")
    col2.metric("Maintenance", format_kes(comparison.current_maintenance_cost),
                f"{comparison.maintenance_cost_change_pct:+.1f}%", delta_color="inverse")
    col3.metric("Fuel consumed", f"{comparison.current_liters:,.1f} L")
    st.caption(
        f"Petrol: {format_kes(comparison.petrol_cost)} ({comparison.petrol_vehicles} vehicles) · "
        f"Diesel: {format_kes(comparison.diesel_cost)} ({comparison.diesel_vehicles} vehicles)"
    )


def display_monthly_trends(snapshot: AnalyticsSnapshot):
    """Stacked monthly bars of fuel vs maintenance cost, plus the table."""
    st.subheader("Monthly Cost Trends")
    if not snapshot.monthly:
        st.info("No months in the selected period.")
        return

    rows = []
    for m in snapshot.monthly:
        rows.append({"month": m.month_start, "label": m.month_label, "category": "Fuel", "amount": m.fuel_cost})
        rows.append({"month": m.month_start, "label": m.month_label, "category": "Maintenance",
                     "amount": m.maintenance_cost})
    df = pd.DataFrame(rows)

    chart = alt.Chart(df).mark_bar().encode(
        x=alt.X("month:T", title="Month", axis=alt.Axis(format="%b %Y", labelAngle=-45)),
        y=alt.Y("amount:Q", title="Cost (KES)"),
        color=alt.Color("category:N", scale=COST_SCALE, legend=alt.Legend(title="Category")),
        tooltip=[
            alt.Tooltip("label:N", title="Month"),
            alt.Tooltip("category:N", title="Category"),
            alt.Tooltip("amount:Q", title="Cost (KES)", format=",.2f"),
        ],
    ).properties(width="container", height=300)
    st.altair_chart(chart, use_container_width=True)

    table = pd.DataFrame(export.format_monthly_trends(snapshot.monthly), columns=export.MONTHLY_COLUMNS)
    st.dataframe(table, use_container_width=True, hide_index=True)


def display_vehicle_breakdown(snapshot: AnalyticsSnapshot):
    st.subheader("Vehicle Cost Breakdown")
    if not snapshot.vehicle_breakdown:
        st.write("No vehicles recorded.")
        return
    st.caption(f"{snapshot.overview.active_vehicles} active vehicles, sorted by total cost")
    rows = []
    for v in snapshot.vehicle_breakdown:
        rows.append({
            "Vehicle": v.display_name,
            "Total Cost": format_kes(v.total_cost),
            "Fuel Cost": format_kes(v.fuel_cost),
            "Maintenance Cost": format_kes(v.maintenance_cost),
            "Fuel (L)": f"{v.liters:,.1f}",
            "Avg / L": format_kes(v.average_fuel_cost_per_liter),
            "Records": f"F: {v.fuel_record_count} / M: {v.maintenance_record_count}",
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def display_cost_distribution(snapshot: AnalyticsSnapshot):
    """Fuel vs maintenance donut with percentage shares."""
    st.subheader("Cost Distribution")
    total = sum(s.value for s in snapshot.cost_distribution)
    if total <= 0:
        st.info("No costs recorded in this period.")
        return
    rows = []
    for share in snapshot.cost_distribution:
        pct = share.value / total * 100
        st.write(f"  {share.label}: {format_kes(share.value)} ({pct:.1f}%)")
        rows.append({"category": share.label, "amount": share.value, "percent": pct})
    df = pd.DataFrame(rows)
    pie = alt.Chart(df).mark_arc(innerRadius=50).encode(
        theta=alt.Theta(field="amount", type="quantitative"),
        color=alt.Color(field="category", type="nominal", scale=COST_SCALE, legend=alt.Legend(title="Category")),
        tooltip=[
            alt.Tooltip("category:N", title="Category"),
            alt.Tooltip("amount:Q", title="Cost (KES)", format=",.2f"),
            alt.Tooltip("percent:Q", title="Share", format=".1f"),
        ],
    ).properties(title="Cost share (KES)")
    st.altair_chart(pie, use_container_width=True)


def display_top_expenses(snapshot: AnalyticsSnapshot):
    st.subheader(f"Top {len(snapshot.top_expenses)} Expenses")
    if not snapshot.top_expenses:
        st.write("No expenses in this period.")
        return
    rows = []
    for e in snapshot.top_expenses:
        rows.append({
            "Date": format_date(e.date),
            "Type": e.kind,
            "Description": e.description,
            "Vehicle": e.vehicle_label,
            "Cost": format_kes(e.cost),
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def _offer(artifact: Optional[export.ExportArtifact], label: str, key: str):
    if artifact is None:
        st.button(label, disabled=True, key=key)
        return
    try:
        export.deliver(artifact, StreamlitDownloadSink(label, key=key))
    except export.ExportError as exc:
        st.error(str(exc))


def _save_to_directory(artifacts: List[export.ExportArtifact], directory: str):
    sink = export.FileSystemSink(directory)
    saved = []
    for artifact in artifacts:
        try:
            saved.append(export.deliver(artifact, sink))
        except export.ExportError as exc:
            st.error(str(exc))
    if saved:
        st.success(f"Saved {len(saved)} files to {directory}")


def display_export_menu(snapshot: AnalyticsSnapshot, now: Optional[datetime.datetime] = None,
                        history: Optional[Sequence[ExpenseEntry]] = None,
                        history_vehicle: Optional[Vehicle] = None,
                        export_dir: str = ""):
    """
    Download buttons for every export. Each artifact is built independently,
    so one failing export does not hide the others.

    `history` is the full record list of the window (optionally for
    `history_vehicle` only); with `export_dir` set, everything can also be
    saved into that directory.
    """
    st.subheader("Export Report")
    if now is None:
        now = datetime.datetime.now()
    builders: List[Dict[str, Any]] = [
        {"label": "Complete Report (JSON)", "key": "export_fleet_json",
         "build": lambda: export.json_artifact(export.build_fleet_report(snapshot, now=now),
                                               "comprehensive_fleet_report", now=now)},
        {"label": "Complete Report (XLSX)", "key": "export_fleet_xlsx",
         "build": lambda: export.xlsx_artifact(export.build_fleet_report(snapshot, now=now),
                                               "comprehensive_fleet_report", now=now)},
        {"label": "Vehicle Breakdown (CSV)", "key": "export_vehicle_csv",
         "build": lambda: export.csv_artifact(export.format_vehicle_breakdown(snapshot.vehicle_breakdown),
                                              "vehicle_breakdown", now=now)},
        {"label": "Monthly Trends (CSV)", "key": "export_monthly_csv",
         "build": lambda: export.csv_artifact(export.format_monthly_trends(snapshot.monthly),
                                              "monthly_trends", now=now)},
        {"label": "Top Expenses (CSV)", "key": "export_top_csv",
         "build": lambda: export.csv_artifact(export.format_financial_records(snapshot.top_expenses),
                                              "top_expenses", now=now)},
    ]
    if history is not None:
        label = "Record History (CSV)"
        if history_vehicle is not None:
            label = f"{history_vehicle.reg_number} Records (CSV)"
        builders.append({"label": label, "key": "export_history_csv",
                         "build": lambda: export.record_history_artifact(history, history_vehicle, now=now)})

    built: List[export.ExportArtifact] = []
    cols = st.columns(len(builders))
    for col, item in zip(cols, builders):
        with col:
            try:
                artifact = item["build"]()
            except export.ExportError as exc:
                st.error(str(exc))
                continue
            if artifact is not None:
                built.append(artifact)
            _offer(artifact, item["label"], item["key"])

    if export_dir and built and st.button(f"Save all to {export_dir}", key="export_save_all"):
        _save_to_directory(built, export_dir)
