"""
app.py - minimal entrypoint for Streamlit app

Keep this file tiny so streamlit can import it without side-effects.
Run the app with:
    streamlit run app.py

This module copies Streamlit secrets into the environment (settings are read
from os.environ at import time) and then delegates to
groupledger.ui.dashboard.main().
"""
import json as _json
import os

import streamlit as _st

try:
    _secrets = dict(_st.secrets)
except Exception:
    # no secrets.toml when running locally
    _secrets = {}

for _k in ("GOOGLE_SHEET_ID", "GOOGLE_SERVICE_ACCOUNT_JSON", "GOOGLE_SERVICE_ACCOUNT_FILE",
           "GROUP_LEDGER_CURRENCY", "GROUP_LEDGER_MINOR_DIGITS"):
    if _secrets.get(_k) and _k not in os.environ:
        os.environ[_k] = str(_secrets[_k])
# Also support the standard Streamlit table-style service account secret:
# [gcp_service_account] ...fields...
if "GOOGLE_SERVICE_ACCOUNT_JSON" not in os.environ and _secrets.get("gcp_service_account"):
    os.environ["GOOGLE_SERVICE_ACCOUNT_JSON"] = _json.dumps(dict(_secrets["gcp_service_account"]))

from groupledger.ui import dashboard  # noqa: E402


def main():
    dashboard.main()


if __name__ == "__main__":
    main()
