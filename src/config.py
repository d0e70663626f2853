"""
config.py - environment-driven settings and logger setup

Settings are read from environment variables. On Streamlit Cloud, app.py copies
the relevant secrets into the environment before anything here is imported.
"""

from dataclasses import dataclass
from typing import Optional
import logging
import os

DEFAULT_DATA_FILE = os.path.join(os.path.dirname(__file__), "..", "data", "fleet_data.json")
DEFAULT_TOP_EXPENSES = 10


def get_logger(name: str) -> logging.Logger:
    """Return a module logger with a single stream handler attached."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
        level = (os.getenv("FLEET_LOG_LEVEL") or "INFO").strip().upper()
        logger.setLevel(getattr(logging, level, logging.INFO))
    return logger


def _env(key: str) -> str:
    return (os.getenv(key) or "").strip()


def _optional_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Settings:
    data_file: str = DEFAULT_DATA_FILE
    google_sheet_id: str = ""
    service_account_json: str = ""
    service_account_file: str = ""
    top_expenses_limit: int = DEFAULT_TOP_EXPENSES
    export_dir: str = ""

    @property
    def uses_google_sheets(self) -> bool:
        return bool(self.google_sheet_id)


def load_settings(environ: Optional[dict] = None) -> Settings:
    """
    Build Settings from the process environment (or an explicit mapping, for tests).
    Empty or malformed values fall back to defaults.
    """
    if environ is not None:
        get = lambda key: (environ.get(key) or "").strip()
    else:
        get = _env
    limit = _optional_int(get("FLEET_TOP_EXPENSES"), DEFAULT_TOP_EXPENSES)
    return Settings(
        data_file=get("FLEET_DATA_FILE") or DEFAULT_DATA_FILE,
        google_sheet_id=get("GOOGLE_SHEET_ID"),
        service_account_json=get("GOOGLE_SERVICE_ACCOUNT_JSON"),
        service_account_file=get("GOOGLE_SERVICE_ACCOUNT_FILE"),
        top_expenses_limit=limit if limit > 0 else DEFAULT_TOP_EXPENSES,
        export_dir=get("FLEET_EXPORT_DIR"),
    )
