"""
dashboard.py - Streamlit reports page

This module wires the UI components (src.ui.components) to the report
session (src.reports.FleetReports). main() builds the period selector, loads
records, regenerates the snapshot and routes the tabs.

Design notes:
 - Keep the dashboard responsible only for UI orchestration and presentation.
 - All aggregation lives in src.analytics / src.reports.
 - The FleetReports session is kept in st.session_state so the last good
   snapshot survives reruns and failed reloads.
"""

import datetime

import streamlit as st

from src import periods
from src.reports import FleetReports
from src.ui import components

SESSION_KEY = "fleet_reports"


def _get_session() -> FleetReports:
    if SESSION_KEY not in st.session_state:
        reports = FleetReports()
        reports.refresh()
        st.session_state[SESSION_KEY] = reports
    return st.session_state[SESSION_KEY]


def _select_period(now: datetime.datetime):
    labels = [label for _, label in periods.PERIOD_PRESETS]
    keys = [key for key, _ in periods.PERIOD_PRESETS]
    choice = st.sidebar.selectbox("Period", options=labels, index=keys.index(periods.YEAR))
    preset = keys[labels.index(choice)]
    if preset != periods.CUSTOM:
        return periods.period_range(preset, now=now)

    default = periods.period_range(periods.YEAR, now=now)
    start = st.sidebar.date_input("From Date", value=default.start.date())
    end = st.sidebar.date_input("To Date", value=default.end.date())
    if start > end:
        st.sidebar.warning("From Date is after To Date; no records will match.")
    return periods.period_range(periods.CUSTOM, now=now, start=start, end=end)


def _select_history_vehicle(vehicles):
    """Vehicle to scope the record-history export to; None means the whole fleet."""
    by_id = {v.id: v for v in vehicles}
    choice = st.selectbox(
        "Record history for",
        options=[""] + list(by_id),
        format_func=lambda vid: by_id[vid].display_name if vid else "All vehicles",
        key="history_vehicle",
    )
    return by_id.get(choice)


def main():
    """
    Streamlit page: sidebar holds the period selector and a reload button;
    the body shows overview cards and one tab per analysis, plus exports.
    """
    st.title("Reports & Analytics")
    st.caption("Comprehensive fleet performance insights and data export")

    reports = _get_session()
    backend_name, backend_msg = reports.storage_status()
    if backend_name == "google_sheets":
        st.sidebar.success(backend_msg)
    else:
        st.sidebar.warning(backend_msg)
        st.sidebar.caption(
            "To read records from Google Sheets, set GOOGLE_SHEET_ID and "
            "GOOGLE_SERVICE_ACCOUNT_JSON in Streamlit app Secrets."
        )
    if st.sidebar.button("Reload data"):
        reports.refresh()

    if reports.error:
        st.error(reports.error)
    if not reports.loaded:
        st.info("No report data loaded yet.")
        return

    now = datetime.datetime.now()
    date_range = _select_period(now)
    snapshot = reports.generate(date_range)

    components.display_overview(snapshot)
    components.display_month_comparison(reports.month_comparison(now))

    tab_monthly, tab_vehicles, tab_distribution, tab_top = st.tabs(
        ["Monthly Trends", "Vehicle Breakdown", "Cost Distribution", "Top Expenses"]
    )
    with tab_monthly:
        components.display_monthly_trends(snapshot)
    with tab_vehicles:
        components.display_vehicle_breakdown(snapshot)
    with tab_distribution:
        components.display_cost_distribution(snapshot)
    with tab_top:
        components.display_top_expenses(snapshot)

    st.markdown("---")
    vehicle = _select_history_vehicle(reports.vehicles)
    history = reports.record_history(date_range, vehicle_id=vehicle.id if vehicle else None)
    components.display_export_menu(snapshot, now=now, history=history, history_vehicle=vehicle,
                                   export_dir=reports.export_dir)


if __name__ == "__main__":
    main()
