"""
Runtime configuration for the MyAnimeList to Crunchyroll sync.

Values are read from the process environment. A ``.env`` file in the working
directory is overlaid first; variables already exported by the shell win.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv(os.path.join(os.getcwd(), ".env"))


class ConfigError(Exception):
    """Raised when a configuration value is missing or malformed."""


REQUIRED_KEYS = (
    "MAL_USERNAME",
    "MAL_CLIENT_ID",
    "EMAIL",
    "PASSWORD",
    "PREFERRED_AUDIO",
    "CLOCALE",
)


def _get_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"'{name}' must be a number, got '{value}'")


def _get_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"'{name}' must be an integer, got '{value}'")


def _get_log_level(name: str, default: str) -> str:
    value = (os.environ.get(name) or "").strip().upper() or default
    if not isinstance(logging.getLevelName(value), int):
        raise ConfigError(f"'{name}' must be a logging level such as DEBUG or INFO, got '{value}'")
    return value


# --- MyAnimeList ---
MAL_USERNAME = os.environ.get("MAL_USERNAME")
MAL_CLIENT_ID = os.environ.get("MAL_CLIENT_ID")
MAL_API_URL = "https://api.myanimelist.net/v2"
# MAL rejects bursts, keep at least 2 seconds between list pages
MAL_API_DELAY = _get_float("MAL_API_DELAY", 2.0)
MAL_PAGE_SIZE = _get_int("MAL_PAGE_SIZE", 1000)

# --- Crunchyroll ---
EMAIL = os.environ.get("EMAIL")
PASSWORD = os.environ.get("PASSWORD")
PREFERRED_AUDIO = os.environ.get("PREFERRED_AUDIO")
CLOCALE = os.environ.get("CLOCALE")
CRUNCHYROLL_API_URL = "https://www.crunchyroll.com"
# Public client of the Crunchyroll web player
CRUNCHYROLL_CLIENT_ID = os.environ.get("CRUNCHYROLL_CLIENT_ID", "noaihdevm_6iyg0a8l0q")
CRUNCHYROLL_CLIENT_SECRET = os.environ.get("CRUNCHYROLL_CLIENT_SECRET", "")
CRUNCHYROLL_API_DELAY = _get_float("CRUNCHYROLL_API_DELAY", 0.0)

# --- Run behaviour ---
DRY_RUN = _get_bool("DRY_RUN", False)
UNRESOLVED_FILENAME = os.environ.get("UNRESOLVED_FILENAME", "not_found.csv")
HTTP_TIMEOUT = _get_float("HTTP_TIMEOUT", 20.0)

# --- Logging ---
LOG_LEVEL = _get_log_level("LOG_LEVEL", "INFO")
LOG_FILENAME = os.environ.get("LOG_FILENAME") or None


def missing_keys():
    """Return the mandatory keys that are unset or empty in the environment."""
    return [key for key in REQUIRED_KEYS if not os.environ.get(key)]


def check_required():
    """
    Raise `ConfigError` naming every mandatory key that is missing.

    Called once by the entry point before any remote call is made.
    """
    missing = missing_keys()
    if missing:
        names = ", ".join(f"'{key}'" for key in missing)
        raise ConfigError(f"Missing required environment variable(s): {names}")
