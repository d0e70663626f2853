import datetime

import pytest

from src.periods import YEAR, period_range
from src.reports import LOAD_ERROR_MESSAGE, FleetReports

NOW = datetime.datetime(2024, 3, 10)

DATA = {
    "vehicles": [
        {"id": "v1", "regNumber": "KAA 111A", "make": "Toyota", "model": "Hilux", "year": 2019},
        {"id": "v2", "regNumber": "KBB 222B", "make": "Isuzu", "model": "D-Max", "year": 2021},
    ],
    "fuelRecords": [
        {"id": "f1", "vehicleId": "v1", "date": "2024-03-02T08:00:00", "cost": 6000, "liters": 30},
        {"id": "f2", "vehicleId": "v2", "date": "2024-01-10T08:00:00", "cost": 1500, "liters": 10},
    ],
    "maintenanceRecords": [
        {"id": "m1", "vehicleId": "v2", "date": "2024-02-11T08:00:00", "cost": 800, "description": "Service"},
    ],
}


class DictStore:
    def __init__(self, data):
        self.data = data
        self.calls = []

    def describe(self):
        return "memory", "Reading records from memory."

    def load_collection(self, name):
        self.calls.append(name)
        return [dict(r) for r in self.data.get(name, [])]


class FailingStore(DictStore):
    def __init__(self, data, fail_on):
        super().__init__(data)
        self.fail_on = fail_on

    def load_collection(self, name):
        if name == self.fail_on:
            raise ConnectionError("store offline")
        return super().load_collection(name)


def test_refresh_and_generate():
    reports = FleetReports(store=DictStore(DATA))
    assert reports.refresh() is True
    assert reports.loaded and reports.error == ""
    assert reports.storage_status() == ("memory", "Reading records from memory.")

    snapshot = reports.generate(period_range(YEAR, now=NOW))
    assert reports.snapshot is snapshot
    assert snapshot.overview.total_cost == 8300
    assert snapshot.overview.average_fuel_cost_per_liter == pytest.approx(7500 / 40)
    assert [v.vehicle_id for v in snapshot.vehicle_breakdown] == ["v1", "v2"]
    assert len(snapshot.monthly) == 12
    assert [s.value for s in snapshot.cost_distribution] == [7500, 800]


def test_generate_twice_gives_equal_snapshots():
    reports = FleetReports(store=DictStore(DATA))
    reports.refresh()
    r = period_range(YEAR, now=NOW)
    assert reports.generate(r) == reports.generate(r)


def test_failed_refresh_keeps_previous_data_and_snapshot():
    store = DictStore(DATA)
    reports = FleetReports(store=store)
    reports.refresh()
    snapshot = reports.generate(period_range(YEAR, now=NOW))

    reports.store = FailingStore({}, fail_on="maintenanceRecords")
    assert reports.refresh() is False
    assert reports.error == LOAD_ERROR_MESSAGE
    assert reports.snapshot is snapshot
    assert len(reports.vehicles) == 2
    assert len(reports.fuel_records) == 2


def test_partial_fetch_is_never_committed():
    reports = FleetReports(store=FailingStore(DATA, fail_on="fuelRecords"))
    assert reports.refresh() is False
    assert not reports.loaded
    assert reports.vehicles == []
    assert reports.snapshot is None


def test_stale_fetch_is_discarded():
    fresh = {"vehicles": [{"id": "fresh"}], "fuelRecords": [], "maintenanceRecords": []}

    class SlowStore(DictStore):
        """Triggers a newer refresh while the first one is still loading."""

        def __init__(self):
            super().__init__(DATA)
            self.nested = False

        def load_collection(self, name):
            if name == "vehicles" and not self.nested:
                self.nested = True
                reports.store = DictStore(fresh)
                assert reports.refresh() is True
                reports.store = self
            return super().load_collection(name)

    reports = FleetReports(store=None, top_limit=5)
    reports.store = SlowStore()
    assert reports.refresh() is False
    assert [v.id for v in reports.vehicles] == ["fresh"]


def test_success_after_failure_clears_error():
    reports = FleetReports(store=FailingStore(DATA, fail_on="vehicles"))
    reports.refresh()
    assert reports.error
    reports.store = DictStore(DATA)
    assert reports.refresh() is True
    assert reports.error == ""


def test_month_comparison_uses_loaded_records():
    reports = FleetReports(store=DictStore(DATA))
    reports.refresh()
    c = reports.month_comparison(now=NOW)
    assert c.current_fuel_cost == 6000
    assert c.previous_maintenance_cost == 800


def test_record_history_covers_the_window():
    reports = FleetReports(store=DictStore(DATA))
    reports.refresh()
    year = period_range(YEAR, now=NOW)
    history = reports.record_history(year)
    assert [e.cost for e in history] == [6000, 800, 1500]
    assert [e.vehicle_label for e in reports.record_history(year, vehicle_id="v2")] == ["KBB 222B", "KBB 222B"]
