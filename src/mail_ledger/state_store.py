"""Persisted user preferences.

Only preferences survive a restart.  Session, ledger and sync metadata are
rebuilt by a fresh login and sync every time.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path

import structlog

from .constants import STATE_PATH
from .models import Preferences
from .rules import normalize_scan_settings

logger = structlog.get_logger(__name__)

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def merge_persisted(persisted: object, defaults: Preferences) -> Preferences:
    """Rehydrate preferences from untrusted persisted data.

    Values present and valid in *persisted* win; anything missing or of the
    wrong type falls back to *defaults*.  Scan settings are normalized, so
    malformed rules are dropped instead of failing the load.
    """
    if not isinstance(persisted, dict):
        return defaults

    def flag(snake: str, camel: str, default: bool) -> bool:
        value = persisted.get(snake, persisted.get(camel))
        return value if isinstance(value, bool) else default

    month = persisted.get("selected_month", persisted.get("selectedMonth"))
    if not isinstance(month, str) or not _MONTH_RE.match(month):
        month = defaults.selected_month

    raw_settings = persisted.get("scan_settings", persisted.get("scanSettings"))
    return Preferences(
        dark_mode=flag("dark_mode", "darkMode", defaults.dark_mode),
        notifications_enabled=flag("notifications_enabled", "notificationsEnabled", defaults.notifications_enabled),
        selected_month=month,
        scan_settings=normalize_scan_settings(raw_settings) if raw_settings is not None else defaults.scan_settings,
    )


class PreferencesStore:
    """JSON file holding Preferences."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path or STATE_PATH)

    def load(self) -> Preferences:
        defaults = Preferences()
        if not self.path.exists():
            return defaults
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("state_load_failed", path=str(self.path), error=str(exc))
            return defaults
        return merge_persisted(data, defaults)

    def save(self, preferences: Preferences) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(preferences.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)
        logger.debug("state_saved", path=str(self.path))
