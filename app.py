"""
app.py - entrypoint of the fleet reports dashboard

    streamlit run app.py

Secrets configured for the deployment (Google Sheets credentials and the
FLEET_* settings) are exported as environment variables first, because
src.config only reads the environment. The page itself lives in
src.ui.dashboard.
"""
import os
import json as _json
try:
    # explicit environment variables win over secrets
    import streamlit as _st
    _secrets = getattr(_st, "secrets", {}) or {}
    for _k in (
        "GOOGLE_SHEET_ID",
        "GOOGLE_SERVICE_ACCOUNT_JSON",
        "GOOGLE_SERVICE_ACCOUNT_FILE",
        "FLEET_DATA_FILE",
        "FLEET_TOP_EXPENSES",
        "FLEET_EXPORT_DIR",
        "FLEET_LOG_LEVEL",
    ):
        if _k in _secrets and _secrets[_k] and _k not in os.environ:
            os.environ[_k] = str(_secrets[_k])
    # service account given as a [gcp_service_account] table
    if "GOOGLE_SERVICE_ACCOUNT_JSON" not in os.environ and "gcp_service_account" in _secrets:
        _sa = _secrets["gcp_service_account"]
        if _sa:
            os.environ["GOOGLE_SERVICE_ACCOUNT_JSON"] = _json.dumps(dict(_sa))
except Exception:
    # no secrets file: settings come from the environment alone
    pass

from src.ui import dashboard


def main():
    dashboard.main()


if __name__ == "__main__":
    main()
