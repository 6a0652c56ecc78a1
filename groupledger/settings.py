"""
settings.py - environment-driven configuration and logging helpers

Every knob is read once at import time from the environment so the Streamlit
entrypoint (app.py) can copy secrets into os.environ before anything else
imports this module.

    GROUP_LEDGER_DATA_FILE       local JSON file used when Google Sheets is off
    GROUP_LEDGER_CURRENCY        default currency label for new groups
    GROUP_LEDGER_MINOR_DIGITS    decimal places of the ledger minor unit
    GOOGLE_SHEET_ID              spreadsheet key for the Sheets backend
    GOOGLE_SERVICE_ACCOUNT_JSON  inline service-account credentials
    GOOGLE_SERVICE_ACCOUNT_FILE  path to service-account credentials
"""

import logging
import os
import sys
import tempfile

_default_data_file = os.path.join(os.path.dirname(__file__), "..", "data", "groups_data.json")


def running_under_pytest() -> bool:
    return any("pytest" in p for p in sys.argv) or bool(os.getenv("PYTEST_CURRENT_TEST"))


# When running under pytest, use a temp file to keep tests away from real data.
if running_under_pytest():
    DATA_FILE = os.path.join(tempfile.gettempdir(), "tmp_groups_test.json")
else:
    DATA_FILE = os.getenv("GROUP_LEDGER_DATA_FILE") or _default_data_file

DEFAULT_CURRENCY = (os.getenv("GROUP_LEDGER_CURRENCY") or "EUR").strip() or "EUR"


def _int_env(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, default)).strip())
    except ValueError:
        return default


DEFAULT_MINOR_DIGITS = _int_env("GROUP_LEDGER_MINOR_DIGITS", 2)

GOOGLE_ENV_KEYS = ("GOOGLE_SHEET_ID", "GOOGLE_SERVICE_ACCOUNT_JSON", "GOOGLE_SERVICE_ACCOUNT_FILE")


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, attaching a stream handler the first time."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger
