"""
models.py - Data model definitions

Source records (vehicles, fuel fill-ups, maintenance events) arrive from the
record store as plain dicts with camelCase keys. They are turned into the
dataclasses below with from_dict(), which tolerates sparse or malformed data:
missing numbers become 0.0 and unreadable dates become None.

Derived entities (MonthlyBucket, VehicleBreakdown, ExpenseEntry, Overview,
AnalyticsSnapshot) are frozen: they are computed once per report and replaced
wholesale on the next run.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional
import datetime
import math


FUEL = "Fuel"
MAINTENANCE = "Maintenance"


def to_float(value: Any, default: float = 0.0) -> float:
    """
    Coerce a numeric-ish value to float; None, "", garbage, NaN and
    infinities give `default`.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result


def to_datetime(value: Any) -> Optional[datetime.datetime]:
    """
    Normalize a record timestamp to a naive datetime.

    Accepts datetime/date objects, ISO strings and pandas Timestamps.
    Timezone-aware values are converted to
    local time so they compare with naive range boundaries.
    """
    if value is None or value == "":
        return None
    if hasattr(value, "to_pydatetime"):
        value = value.to_pydatetime()
    if isinstance(value, datetime.datetime):
        moment = value
    elif isinstance(value, datetime.date):
        moment = datetime.datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.datetime.fromisoformat(text)
        except ValueError:
            return None
    if moment.tzinfo is not None:
        moment = moment.astimezone().replace(tzinfo=None)
    return moment


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


@dataclass
class Vehicle:
    """A tracked vehicle. Referenced by records through vehicle_id."""
    id: str = ""
    reg_number: str = ""
    make: str = ""
    model: str = ""
    year: Any = ""

    @property
    def display_name(self) -> str:
        return f"{self.reg_number} ({self.make} {self.model})"

    @staticmethod
    def from_dict(d: Dict) -> "Vehicle":
        return Vehicle(
            id=_text(d.get("id", "")),
            reg_number=_text(d.get("regNumber", "")),
            make=_text(d.get("make", "")),
            model=_text(d.get("model", "")),
            year=d.get("year", "") or "",
        )


@dataclass
class FinancialRecord:
    """
    Common shape of every cost-bearing record.

    Subclasses set `kind`, which is how the rest of the code tells fuel and
    maintenance records apart.
    """
    kind: ClassVar[str] = ""

    id: str = ""
    vehicle_id: str = ""
    date: Optional[datetime.datetime] = None
    cost: float = 0.0


@dataclass
class FuelRecord(FinancialRecord):
    kind: ClassVar[str] = FUEL

    liters: float = 0.0
    station: str = ""
    notes: str = ""
    fuel_type: str = "Petrol"

    @staticmethod
    def from_dict(d: Dict) -> "FuelRecord":
        return FuelRecord(
            id=_text(d.get("id", "")),
            vehicle_id=_text(d.get("vehicleId", "")),
            date=to_datetime(d.get("date")),
            cost=to_float(d.get("cost")),
            liters=to_float(d.get("liters")),
            station=_text(d.get("station", "")),
            notes=_text(d.get("notes", "")),
            fuel_type=_text(d.get("fuelType", "")) or "Petrol",
        )


@dataclass
class MaintenanceRecord(FinancialRecord):
    kind: ClassVar[str] = MAINTENANCE

    description: str = ""
    service_provider: str = ""

    @staticmethod
    def from_dict(d: Dict) -> "MaintenanceRecord":
        return MaintenanceRecord(
            id=_text(d.get("id", "")),
            vehicle_id=_text(d.get("vehicleId", "")),
            date=to_datetime(d.get("date")),
            cost=to_float(d.get("cost")),
            description=_text(d.get("description", "")),
            service_provider=_text(d.get("serviceProvider", "")),
        )


@dataclass(frozen=True)
class DateRange:
    """Inclusive [start, end] window. An inverted range matches nothing."""
    start: datetime.datetime
    end: datetime.datetime

    @property
    def is_empty(self) -> bool:
        return self.start > self.end

    def contains(self, moment: Optional[datetime.datetime]) -> bool:
        if moment is None:
            return False
        return self.start <= moment <= self.end


@dataclass(frozen=True)
class MonthlyBucket:
    month_start: datetime.datetime
    month_label: str
    fuel_cost: float = 0.0
    maintenance_cost: float = 0.0
    total_cost: float = 0.0
    liters: float = 0.0
    fuel_record_count: int = 0
    maintenance_record_count: int = 0


@dataclass(frozen=True)
class VehicleBreakdown:
    vehicle_id: str
    display_name: str
    reg_number: str = ""
    make: str = ""
    model: str = ""
    year: Any = ""
    fuel_cost: float = 0.0
    maintenance_cost: float = 0.0
    total_cost: float = 0.0
    liters: float = 0.0
    average_fuel_cost_per_liter: float = 0.0
    fuel_record_count: int = 0
    maintenance_record_count: int = 0


@dataclass(frozen=True)
class ExpenseEntry:
    """
    Flattened view of one fuel or maintenance record, used for ranking/export.
    liters/station/service_provider stay None when the source kind lacks them.
    """
    kind: str
    date: Optional[datetime.datetime]
    cost: float
    vehicle_label: str
    description: str
    liters: Optional[float] = None
    station: Optional[str] = None
    service_provider: Optional[str] = None


@dataclass(frozen=True)
class Overview:
    total_fuel_cost: float = 0.0
    total_maintenance_cost: float = 0.0
    total_cost: float = 0.0
    total_liters: float = 0.0
    average_fuel_cost_per_liter: float = 0.0
    total_vehicles: int = 0
    active_vehicles: int = 0
    total_fuel_records: int = 0
    total_maintenance_records: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """camelCase mapping used in the JSON fleet report."""
        return {
            "totalCost": self.total_cost,
            "totalFuelCost": self.total_fuel_cost,
            "totalMaintenanceCost": self.total_maintenance_cost,
            "totalLiters": self.total_liters,
            "averageFuelCostPerLiter": self.average_fuel_cost_per_liter,
            "totalVehicles": self.total_vehicles,
            "activeVehicles": self.active_vehicles,
            "totalFuelRecords": self.total_fuel_records,
            "totalMaintenanceRecords": self.total_maintenance_records,
        }


@dataclass(frozen=True)
class CostShare:
    label: str
    value: float


@dataclass(frozen=True)
class MonthComparison:
    """Current calendar month against the previous one."""
    current_fuel_cost: float = 0.0
    current_maintenance_cost: float = 0.0
    current_liters: float = 0.0
    petrol_cost: float = 0.0
    diesel_cost: float = 0.0
    petrol_vehicles: int = 0
    diesel_vehicles: int = 0
    previous_fuel_cost: float = 0.0
    previous_maintenance_cost: float = 0.0
    fuel_cost_change_pct: float = 0.0
    maintenance_cost_change_pct: float = 0.0


@dataclass(frozen=True)
class AnalyticsSnapshot:
    date_range: DateRange
    overview: Overview
    monthly: List[MonthlyBucket] = field(default_factory=list)
    vehicle_breakdown: List[VehicleBreakdown] = field(default_factory=list)
    top_expenses: List[ExpenseEntry] = field(default_factory=list)
    cost_distribution: List[CostShare] = field(default_factory=list)
