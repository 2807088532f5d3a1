import json
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sip_swp_helpers import DEFAULTS, default_settings, normalize_settings
from sip_swp_simulation import LOGGER_NAME


# ======================
# Settings persistence
# ======================
SETTINGS_FILE = "sip_swp_settings.json"
SETTINGS_MAX_AGE_DAYS = 30
TIMESTAMP_KEY = "timestamp"

logger = logging.getLogger(LOGGER_NAME)


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now()
    if now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    return now


def save_settings(settings: Dict[str, Any], path: str = SETTINGS_FILE, now: Optional[datetime] = None) -> bool:
    """Write the last-entered inputs with a save timestamp. Returns False (and warns) on failure."""
    payload = {k: v for k, v in settings.items() if k in DEFAULTS}
    payload[TIMESTAMP_KEY] = _now(now).isoformat()
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        return True
    except (OSError, TypeError, ValueError) as ex:
        logger.warning(f"Could not save settings to {path}: {ex}")
        return False


def _is_stale(stamp: Any, now: datetime) -> bool:
    if not stamp:
        return False
    saved_at = datetime.fromisoformat(str(stamp))
    if saved_at.tzinfo is not None:
        saved_at = saved_at.astimezone().replace(tzinfo=None)
    return saved_at < now - timedelta(days=SETTINGS_MAX_AGE_DAYS)


def load_settings(path: str = SETTINGS_FILE, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Load the saved inputs merged over DEFAULTS.

    Falls back to defaults when the file is missing, unreadable, not a JSON
    object, or older than SETTINGS_MAX_AGE_DAYS.
    """
    if not os.path.exists(path):
        return default_settings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            logger.warning(f"Ignoring settings file {path}: not a JSON object")
            return default_settings()

        stamp = loaded.pop(TIMESTAMP_KEY, None)
        if _is_stale(stamp, _now(now)):
            logger.info(f"Settings in {path} are older than {SETTINGS_MAX_AGE_DAYS} days; using defaults")
            return default_settings()

        return normalize_settings(loaded)
    except (OSError, ValueError) as ex:
        logger.warning(f"Failed to load settings from {path}: {ex}")
        return default_settings()


def clear_settings(path: str = SETTINGS_FILE) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as ex:
        logger.warning(f"Failed to clear settings at {path}: {ex}")


# ----------------------
# Import / export (download + upload on the page)
# ----------------------
def settings_to_json(settings: Dict[str, Any]) -> str:
    return json.dumps({k: settings.get(k, DEFAULTS[k]) for k in DEFAULTS}, indent=2)


def settings_from_json(text: str) -> Dict[str, Any]:
    """Parse an uploaded settings file. Unknown keys are dropped; raises ValueError on bad input."""
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Invalid settings file format.")
    data.pop(TIMESTAMP_KEY, None)
    return normalize_settings(data)
