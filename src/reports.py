"""
reports.py - report generation and the dashboard's report session

Responsibilities:
 - generate_report(): the pure pipeline
     filter -> overview -> monthly buckets -> vehicle breakdown
     -> top expenses -> cost distribution
 - FleetReports: holds the records fetched from the store and the last
   computed snapshot for the UI. Records are only replaced when all three
   collections load; a failed or stale fetch leaves the previous data alone.
"""

from typing import List, Optional, Sequence, Tuple
import datetime
import threading

from src import analytics
from src.config import get_logger, load_settings
from src.models import (
    AnalyticsSnapshot,
    DateRange,
    ExpenseEntry,
    FuelRecord,
    MaintenanceRecord,
    MonthComparison,
    Vehicle,
)
from src.periods import months_in_range
from src.storage import FUEL_RECORDS, MAINTENANCE_RECORDS, VEHICLES, get_record_store

logger = get_logger(__name__)

LOAD_ERROR_MESSAGE = "Failed to load reports data. Please try again."


def generate_report(vehicles: Sequence[Vehicle],
                    fuel_records: Sequence[FuelRecord],
                    maintenance_records: Sequence[MaintenanceRecord],
                    date_range: DateRange,
                    top_limit: int = analytics.DEFAULT_TOP_LIMIT) -> AnalyticsSnapshot:
    """
    Build a complete AnalyticsSnapshot for one date range.

    Same inputs always give an equal snapshot; nothing is remembered between calls.
    """
    fuel = analytics.filter_by_date_range(fuel_records, date_range)
    maintenance = analytics.filter_by_date_range(maintenance_records, date_range)

    overview = analytics.aggregate_overall(fuel, maintenance, vehicles)
    monthly = analytics.aggregate_by_month(months_in_range(date_range), fuel, maintenance)
    breakdown = analytics.aggregate_by_vehicle(vehicles, fuel, maintenance)
    top = analytics.top_expenses(fuel, maintenance, vehicles, limit=top_limit)

    return AnalyticsSnapshot(
        date_range=date_range,
        overview=overview,
        monthly=monthly,
        vehicle_breakdown=breakdown,
        top_expenses=top,
        cost_distribution=analytics.cost_distribution(overview),
    )


class FleetReports:
    """
    Report session used by the dashboard. The UI keeps one instance per
    browser session, calls refresh() to (re)load records and generate() when
    the period changes.
    """

    def __init__(self, store=None, top_limit: Optional[int] = None):
        settings = load_settings()
        self.store = store if store is not None else get_record_store(settings)
        self.top_limit = top_limit or settings.top_expenses_limit
        self.export_dir = settings.export_dir
        # committed data from the latest successful fetch
        self.vehicles: List[Vehicle] = []
        self.fuel_records: List[FuelRecord] = []
        self.maintenance_records: List[MaintenanceRecord] = []
        self.loaded = False
        # last computed snapshot; replaced wholesale by generate()
        self.snapshot: Optional[AnalyticsSnapshot] = None
        # user-visible message for the last failed fetch ("" when fine)
        self.error = ""
        self._lock = threading.Lock()
        self._next_ticket = 0
        self._committed_ticket = 0

    def storage_status(self) -> Tuple[str, str]:
        """Return current store name and a short diagnostic message for the UI."""
        describe = getattr(self.store, "describe", None)
        if describe is None:
            return "custom", "Reading records from a custom store."
        return describe()

    def _take_ticket(self) -> int:
        with self._lock:
            self._next_ticket += 1
            return self._next_ticket

    def fetch(self) -> Tuple[List[Vehicle], List[FuelRecord], List[MaintenanceRecord]]:
        """Load all three collections; raises whatever the store raises."""
        vehicles = [Vehicle.from_dict(d) for d in self.store.load_collection(VEHICLES)]
        fuel = [FuelRecord.from_dict(d) for d in self.store.load_collection(FUEL_RECORDS)]
        maintenance = [MaintenanceRecord.from_dict(d) for d in self.store.load_collection(MAINTENANCE_RECORDS)]
        return vehicles, fuel, maintenance

    def refresh(self) -> bool:
        """
        Fetch records and commit them if this is the newest completed fetch.

        Returns True when new data was committed. On failure the error message
        is set and previous records/snapshot stay as they were.
        """
        ticket = self._take_ticket()
        logger.info("Loading fleet records (fetch #%d)", ticket)
        try:
            vehicles, fuel, maintenance = self.fetch()
        except Exception:
            logger.exception("Error fetching reports data (fetch #%d)", ticket)
            with self._lock:
                if ticket > self._committed_ticket:
                    self.error = LOAD_ERROR_MESSAGE
            return False

        with self._lock:
            if ticket < self._committed_ticket:
                logger.info("Discarding stale fetch #%d (already have #%d)", ticket, self._committed_ticket)
                return False
            self.vehicles = vehicles
            self.fuel_records = fuel
            self.maintenance_records = maintenance
            self._committed_ticket = ticket
            self.loaded = True
            self.error = ""
        logger.info(
            "Loaded %d vehicles, %d fuel records, %d maintenance records (fetch #%d)",
            len(vehicles), len(fuel), len(maintenance), ticket,
        )
        return True

    def generate(self, date_range: DateRange) -> AnalyticsSnapshot:
        """Recompute the snapshot for `date_range` from the committed records."""
        with self._lock:
            vehicles = list(self.vehicles)
            fuel = list(self.fuel_records)
            maintenance = list(self.maintenance_records)
        snapshot = generate_report(vehicles, fuel, maintenance, date_range, top_limit=self.top_limit)
        self.snapshot = snapshot
        return snapshot

    def record_history(self, date_range: DateRange, vehicle_id: Optional[str] = None) -> List[ExpenseEntry]:
        """All committed records inside `date_range`, newest first, optionally for one vehicle."""
        with self._lock:
            vehicles = list(self.vehicles)
            fuel = analytics.filter_by_date_range(self.fuel_records, date_range)
            maintenance = analytics.filter_by_date_range(self.maintenance_records, date_range)
        return analytics.record_history(fuel, maintenance, vehicles, vehicle_id=vehicle_id)

    def month_comparison(self,now: Optional[datetime.datetime] = None) -> MonthComparison:
        return analytics.compare_months(self.fuel_records, self.maintenance_records, now=now)
