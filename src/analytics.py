"""
analytics.py - filtering, aggregation and ranking of fleet cost records

Every function here is pure: it takes in-memory lists and returns new values.
Sparse data never raises. Missing numbers were already coerced to 0.0 by
the models, ratios with a zero denominator come out as 0, and empty inputs give
empty (or zero-valued) outputs.

Rounding follows the reports page: monthly and per-vehicle figures are rounded
(costs 2 dp, liters 1 dp) when built; overview totals stay unrounded.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Set, TypeVar
import datetime

from dateutil.relativedelta import relativedelta

from src.formatting import format_month_label, format_number
from src.models import (
    FUEL,
    MAINTENANCE,
    CostShare,
    DateRange,
    ExpenseEntry,
    FinancialRecord,
    FuelRecord,
    MaintenanceRecord,
    MonthComparison,
    MonthlyBucket,
    Overview,
    Vehicle,
    VehicleBreakdown,
)
from src.periods import month_window

UNKNOWN_VEHICLE = "Unknown"
DEFAULT_TOP_LIMIT = 10

R = TypeVar("R", bound=FinancialRecord)


def filter_by_date_range(records: Iterable[R], date_range: DateRange) -> List[R]:
    """Records dated inside the inclusive range, in input order."""
    return [r for r in records if date_range.contains(r.date)]


def _sum_cost(records: Iterable[FinancialRecord]) -> float:
    return sum((r.cost or 0.0) for r in records)


def _sum_liters(records: Iterable[FuelRecord]) -> float:
    return sum((r.liters or 0.0) for r in records)


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 when the denominator is not positive."""
    if not denominator or denominator <= 0:
        return 0.0
    return numerator / denominator


def active_vehicle_ids(fuel_records: Iterable[FuelRecord],
                       maintenance_records: Iterable[MaintenanceRecord]) -> Set[str]:
    """Ids of vehicles with at least one record of either kind."""
    return {r.vehicle_id for r in fuel_records} | {r.vehicle_id for r in maintenance_records}


def aggregate_overall(fuel_records: Sequence[FuelRecord],
                      maintenance_records: Sequence[MaintenanceRecord],
                      vehicles: Sequence[Vehicle] = ()) -> Overview:
    """
    Fleet-wide totals for an already filtered window.

    `vehicles` is only used for the vehicle counts.
    """
    total_fuel = _sum_cost(fuel_records)
    total_maintenance = _sum_cost(maintenance_records)
    total_liters = _sum_liters(fuel_records)
    seen = active_vehicle_ids(fuel_records, maintenance_records)
    return Overview(
        total_fuel_cost=total_fuel,
        total_maintenance_cost=total_maintenance,
        total_cost=total_fuel + total_maintenance,
        total_liters=total_liters,
        average_fuel_cost_per_liter=safe_ratio(total_fuel, total_liters),
        total_vehicles=len(vehicles),
        active_vehicles=sum(1 for v in vehicles if v.id in seen),
        total_fuel_records=len(fuel_records),
        total_maintenance_records=len(maintenance_records),
    )


def aggregate_by_month(months: Sequence[datetime.datetime],
                       fuel_records: Sequence[FuelRecord],
                       maintenance_records: Sequence[MaintenanceRecord]) -> List[MonthlyBucket]:
    """One bucket per month start, including months with no records."""
    buckets = []
    for month in months:
        window = month_window(month)
        month_fuel = filter_by_date_range(fuel_records, window)
        month_maintenance = filter_by_date_range(maintenance_records, window)
        fuel_cost = _sum_cost(month_fuel)
        maintenance_cost = _sum_cost(month_maintenance)
        buckets.append(MonthlyBucket(
            month_start=window.start,
            month_label=format_month_label(window.start),
            fuel_cost=round(fuel_cost, 2),
            maintenance_cost=round(maintenance_cost, 2),
            total_cost=round(fuel_cost + maintenance_cost, 2),
            liters=round(_sum_liters(month_fuel), 1),
            fuel_record_count=len(month_fuel),
            maintenance_record_count=len(month_maintenance),
        ))
    return buckets


def aggregate_by_vehicle(vehicles: Sequence[Vehicle],
                         fuel_records: Sequence[FuelRecord],
                         maintenance_records: Sequence[MaintenanceRecord]) -> List[VehicleBreakdown]:
    """
    Per-vehicle rollup, most expensive vehicle first.

    The sort is stable, so vehicles with equal totals keep their input order.
    """
    fuel_by_vehicle: Dict[str, List[FuelRecord]] = {}
    for r in fuel_records:
        fuel_by_vehicle.setdefault(r.vehicle_id, []).append(r)
    maintenance_by_vehicle: Dict[str, List[MaintenanceRecord]] = {}
    for r in maintenance_records:
        maintenance_by_vehicle.setdefault(r.vehicle_id, []).append(r)

    rows = []
    for v in vehicles:
        v_fuel = fuel_by_vehicle.get(v.id, [])
        v_maintenance = maintenance_by_vehicle.get(v.id, [])
        fuel_cost = _sum_cost(v_fuel)
        maintenance_cost = _sum_cost(v_maintenance)
        liters = _sum_liters(v_fuel)
        rows.append(VehicleBreakdown(
            vehicle_id=v.id,
            display_name=v.display_name,
            reg_number=v.reg_number,
            make=v.make,
            model=v.model,
            year=v.year,
            fuel_cost=round(fuel_cost, 2),
            maintenance_cost=round(maintenance_cost, 2),
            total_cost=round(fuel_cost + maintenance_cost, 2),
            liters=round(liters, 1),
            average_fuel_cost_per_liter=round(safe_ratio(fuel_cost, liters), 2),
            fuel_record_count=len(v_fuel),
            maintenance_record_count=len(v_maintenance),
        ))
    return sorted(rows, key=lambda row: row.total_cost, reverse=True)


def _vehicle_labels(vehicles: Iterable[Vehicle]) -> Dict[str, str]:
    return {v.id: v.reg_number for v in vehicles}


def expense_entries(fuel_records: Sequence[FuelRecord],
                    maintenance_records: Sequence[MaintenanceRecord],
                    vehicles: Sequence[Vehicle]) -> List[ExpenseEntry]:
    """Flatten fuel then maintenance records into ExpenseEntry rows."""
    labels = _vehicle_labels(vehicles)
    entries = []
    for r in fuel_records:
        label = labels.get(r.vehicle_id) or UNKNOWN_VEHICLE
        entries.append(ExpenseEntry(
            kind=FUEL,
            date=r.date,
            cost=r.cost or 0.0,
            vehicle_label=label,
            description=f"Fuel - {label} - {format_number(r.liters)}L",
            liters=r.liters,
            station=r.station or None,
        ))
    for r in maintenance_records:
        label = labels.get(r.vehicle_id) or UNKNOWN_VEHICLE
        entries.append(ExpenseEntry(
            kind=MAINTENANCE,
            date=r.date,
            cost=r.cost or 0.0,
            vehicle_label=label,
            description=f"{r.description or MAINTENANCE} - {label}",
            service_provider=r.service_provider or None,
        ))
    return entries


def top_expenses(fuel_records: Sequence[FuelRecord],
                 maintenance_records: Sequence[MaintenanceRecord],
                 vehicles: Sequence[Vehicle],
                 limit: int = DEFAULT_TOP_LIMIT) -> List[ExpenseEntry]:
    """Highest-cost records across both kinds; ties keep fuel-then-maintenance order."""
    entries = expense_entries(fuel_records, maintenance_records, vehicles)
    ranked = sorted(entries, key=lambda e: e.cost, reverse=True)
    return ranked[:max(0, limit)]


def record_history(fuel_records: Sequence[FuelRecord],
                   maintenance_records: Sequence[MaintenanceRecord],
                   vehicles: Sequence[Vehicle],
                   vehicle_id: Optional[str] = None) -> List[ExpenseEntry]:
    """
    Every fuel and maintenance record of an already filtered window as
    ExpenseEntry rows, newest first, optionally for one vehicle only.
    Undated records go last.
    """
    if vehicle_id:
        fuel_records = [r for r in fuel_records if r.vehicle_id == vehicle_id]
        maintenance_records = [r for r in maintenance_records if r.vehicle_id == vehicle_id]
    entries = expense_entries(fuel_records, maintenance_records, vehicles)
    dated = sorted((e for e in entries if e.date is not None), key=lambda e: e.date, reverse=True)
    return dated + [e for e in entries if e.date is None]


def cost_distribution(overview: Overview) -> List[CostShare]:
    return [
        CostShare(label=FUEL, value=overview.total_fuel_cost),
        CostShare(label=MAINTENANCE, value=overview.total_maintenance_cost),
    ]


def percent_change(current: float, previous: float) -> float:
    """Change from previous to current in percent; 0 when there is no previous value."""
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


def compare_months(fuel_records: Sequence[FuelRecord],
                   maintenance_records: Sequence[MaintenanceRecord],
                   now: Optional[datetime.datetime] = None) -> MonthComparison:
    """
    Current calendar month against the previous one.

    Fuel cost of the current month is also split by fuel type; anything that
    is not "Diesel" counts as petrol.
    """
    if now is None:
        now = datetime.datetime.now()
    current = month_window(now)
    previous = month_window(current.start - relativedelta(months=1))

    current_fuel = filter_by_date_range(fuel_records, current)
    diesel = [r for r in current_fuel if r.fuel_type == "Diesel"]
    petrol = [r for r in current_fuel if r.fuel_type != "Diesel"]
    current_fuel_cost = _sum_cost(current_fuel)
    current_maintenance_cost = _sum_cost(filter_by_date_range(maintenance_records, current))
    previous_fuel_cost = _sum_cost(filter_by_date_range(fuel_records, previous))
    previous_maintenance_cost = _sum_cost(filter_by_date_range(maintenance_records, previous))

    return MonthComparison(
        current_fuel_cost=current_fuel_cost,
        current_maintenance_cost=current_maintenance_cost,
        current_liters=_sum_liters(current_fuel),
        petrol_cost=_sum_cost(petrol),
        diesel_cost=_sum_cost(diesel),
        petrol_vehicles=len({r.vehicle_id for r in petrol}),
        diesel_vehicles=len({r.vehicle_id for r in diesel}),
        previous_fuel_cost=previous_fuel_cost,
        previous_maintenance_cost=previous_maintenance_cost,
        fuel_cost_change_pct=percent_change(current_fuel_cost, previous_fuel_cost),
        maintenance_cost_change_pct=percent_change(current_maintenance_cost, previous_maintenance_cost),
    )
