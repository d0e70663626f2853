"""
storage.py - read-only record stores feeding the reports

The reports only need three collections: "vehicles", "fuelRecords" and
"maintenanceRecords". Two stores provide them:
 - GoogleSheetsRecordStore: one worksheet per collection, header row first
   (used when GOOGLE_SHEET_ID is configured)
 - JsonRecordStore: a local JSON file {"vehicles": [...], "fuelRecords": [...], ...}

Both return plain dicts; turning them into model objects is the caller's job.
Dated collections come back newest first, like order-by-date-desc store queries.
Any failure is raised as FetchError.
"""

from typing import Any, Dict, List, Optional, Tuple
import ast
import json
import math
import os

from src.config import Settings, get_logger, load_settings
from src.models import to_datetime

# Optional Google Sheets backend imports are lazy/optional; we try to use them
try:
    import gspread
    from google.oauth2.service_account import Credentials
except ImportError:
    gspread = None
    Credentials = None

logger = get_logger(__name__)

VEHICLES = "vehicles"
FUEL_RECORDS = "fuelRecords"
MAINTENANCE_RECORDS = "maintenanceRecords"
COLLECTIONS = (VEHICLES, FUEL_RECORDS, MAINTENANCE_RECORDS)


class FetchError(Exception):
    """A collection could not be loaded from the record store."""


def order_by_date_desc(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Newest first; undated records go last, keeping their relative order."""
    dated = [(to_datetime(r.get("date")), i, r) for i, r in enumerate(records)]
    with_date = [t for t in dated if t[0] is not None]
    without_date = [t[2] for t in dated if t[0] is None]
    with_date.sort(key=lambda t: t[0], reverse=True)
    return [t[2] for t in with_date] + without_date


class JsonRecordStore:
    """Collections kept in a single local JSON file."""

    def __init__(self, path: str):
        self.path = path

    def describe(self) -> Tuple[str, str]:
        return "local_json", f"Reading records from {os.path.abspath(self.path)}."

    def load_collection(self, name: str) -> List[Dict[str, Any]]:
        if name not in COLLECTIONS:
            raise FetchError(f"Unknown collection: {name}")
        if not os.path.exists(self.path):
            logger.info("Data file %s not found; %s is empty", self.path, name)
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise FetchError(f"Could not read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise FetchError(f"{self.path} does not hold a JSON object")
        records = data.get(name) or []
        if not isinstance(records, list):
            raise FetchError(f"Collection {name} in {self.path} is not a list")
        records = [dict(r) for r in records if isinstance(r, dict)]
        if name == VEHICLES:
            return records
        return order_by_date_desc(records)


class GoogleSheetsRecordStore:
    """
    Google Sheets record store.

    Data layout: worksheets named after the collections ("vehicles",
    "fuelRecords", "maintenanceRecords"), each with a header row of field
    names followed by one row per record. Numeric cells are parsed; other
    cells are passed through as stripped strings.
    """

    SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
    NUMERIC_FIELDS = {"cost", "liters", "year", "odometerReading"}

    def __init__(self, settings: Settings, spreadsheet=None):
        self.available = False
        self.reason = ""
        self.sheet_id = settings.google_sheet_id
        self._settings = settings
        self._spreadsheet = spreadsheet

        if self._spreadsheet is not None:
            self.available = True
            return
        if not self.sheet_id:
            self.reason = "GOOGLE_SHEET_ID is not set"
            return
        if gspread is None or Credentials is None:
            self.reason = "Google Sheets dependencies are unavailable"
            return

        try:
            creds = self._build_credentials()
            client = gspread.authorize(creds)
            self._spreadsheet = client.open_by_key(self.sheet_id)
            self.available = True
        except Exception as exc:
            self.available = False
            self.reason = f"Google Sheets init failed ({exc.__class__.__name__})"
            logger.warning("Google Sheets store unavailable: %s", self.reason)

    def _build_credentials(self):
        service_account_json = self._settings.service_account_json
        service_account_file = self._settings.service_account_file

        if service_account_json:
            try:
                info = json.loads(service_account_json)
            except ValueError:
                # tolerate Python-dict style strings often used by mistake in env vars
                info = ast.literal_eval(service_account_json)
            if not isinstance(info, dict):
                raise ValueError("GOOGLE_SERVICE_ACCOUNT_JSON must decode to an object")
            return Credentials.from_service_account_info(info, scopes=self.SCOPES)

        if service_account_file:
            return Credentials.from_service_account_file(service_account_file, scopes=self.SCOPES)

        # Fallback to application default credentials if available.
        import google.auth
        creds, _ = google.auth.default(scopes=self.SCOPES)
        return creds

    def describe(self) -> Tuple[str, str]:
        if self.available:
            return "google_sheets", "Reading records from Google Sheets."
        return "unavailable", f"Google Sheets unavailable: {self.reason}."

    @staticmethod
    def _to_number(value: Any) -> Any:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text.replace(",", ""))
        except ValueError:
            return text
        if not math.isfinite(number):
            # "NaN" / "inf" stay text; the models zero them
            return text
        return int(number) if number.is_integer() and "." not in text else number

    def _rows_to_records(self, values: List[List[Any]]) -> List[Dict[str, Any]]:
        if not values:
            return []
        headers = [str(h).strip() for h in values[0]]
        records = []
        for row in values[1:]:
            if not any(str(c).strip() for c in row):
                continue
            record: Dict[str, Any] = {}
            for idx, header in enumerate(headers):
                if not header:
                    continue
                cell = row[idx] if idx < len(row) else ""
                if header in self.NUMERIC_FIELDS:
                    record[header] = self._to_number(cell)
                else:
                    record[header] = str(cell).strip()
            records.append(record)
        return records

    def load_collection(self, name: str) -> List[Dict[str, Any]]:
        if name not in COLLECTIONS:
            raise FetchError(f"Unknown collection: {name}")
        if not self.available:
            raise FetchError(self.reason or "Google Sheets store is not available")
        try:
            values = self._spreadsheet.worksheet(name).get_all_values() or []
        except Exception as exc:
            raise FetchError(f"Could not read worksheet {name} ({exc.__class__.__name__})") from exc
        records = self._rows_to_records(values)
        if name == VEHICLES:
            return records
        return order_by_date_desc(records)


def get_record_store(settings: Optional[Settings] = None):
    """Google Sheets when configured and reachable, otherwise the local JSON file."""
    if settings is None:
        settings = load_settings()
    if settings.uses_google_sheets:
        store = GoogleSheetsRecordStore(settings)
        if store.available:
            return store
        logger.warning("Falling back to local JSON records: %s", store.reason)
    return JsonRecordStore(settings.data_file)
