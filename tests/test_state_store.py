"""Tests for the state store module."""

import json

from mail_ledger import rules
from mail_ledger.models import Preferences, ScanSettings
from mail_ledger.state_store import PreferencesStore, merge_persisted


def test_missing_file_gives_defaults(tmp_path):
    assert PreferencesStore(tmp_path / "state.json").load() == Preferences()


def test_save_and_load(tmp_path):
    """Preferences survive a save/load cycle."""
    store = PreferencesStore(tmp_path / "nested" / "state.json")
    settings = rules.add_rule(ScanSettings(days_to_scan=45), "excluded_subject", "Cartola")
    prefs = Preferences(dark_mode=True, notifications_enabled=True, selected_month="2024-03", scan_settings=settings)

    store.save(prefs)
    loaded = store.load()

    assert loaded == prefs
    assert not (tmp_path / "nested" / "state.tmp").exists()


def test_corrupt_file_gives_defaults(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    assert PreferencesStore(path).load() == Preferences()


def test_merge_accepts_camel_case():
    persisted = {
        "darkMode": True,
        "selectedMonth": "2023-12",
        "scanSettings": {"daysToScan": 7, "excludedKeywords": [{"value": "Promo"}]},
    }
    prefs = merge_persisted(persisted, Preferences())
    assert prefs.dark_mode is True
    assert prefs.notifications_enabled is False
    assert prefs.selected_month == "2023-12"
    assert prefs.scan_settings.days_to_scan == 7
    assert [r.value for r in prefs.scan_settings.excluded_keywords] == ["promo"]


def test_merge_rejects_bad_values():
    """Wrong types fall back to defaults field by field."""
    defaults = Preferences(selected_month="2024-10")
    prefs = merge_persisted({"dark_mode": "yes", "selected_month": "2024-13", "scan_settings": "x"}, defaults)
    assert prefs.dark_mode is False
    assert prefs.selected_month == "2024-10"
    assert prefs.scan_settings == ScanSettings()


def test_merge_non_dict():
    defaults = Preferences()
    assert merge_persisted(["junk"], defaults) is defaults


def test_saved_file_is_json(tmp_path):
    path = tmp_path / "state.json"
    PreferencesStore(path).save(Preferences(selected_month="2024-01"))
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["selected_month"] == "2024-01"
    assert data["scan_settings"]["days_to_scan"] == 90
