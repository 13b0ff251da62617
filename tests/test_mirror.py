"""Tests for the SQLite mirror module."""

import pytest

from mail_ledger.errors import MirrorError
from mail_ledger.mirror import LedgerMirror
from mail_ledger.models import FinancialEvent


def make_event(event_id, day="2024-10-24", amount=19843.0):
    return FinancialEvent(
        id=event_id,
        date=day,
        display_date="24 oct",
        amount=amount,
        direction="expense",
        category="transfer",
        source="Banco Santander",
        description="Transferencia realizada",
    )


def test_create_user_is_idempotent(tmp_path):
    """Creating the same external user twice returns one row."""
    with LedgerMirror(db_path=tmp_path / "mirror.db") as mirror:
        first = mirror.create_user("ana@example.com", "Ana", "google-123")
        second = mirror.create_user("ana@example.com", "Ana", "google-123")
        assert first["id"] == second["id"]
        assert len(mirror.list_users()) == 1
        assert mirror.get_user_by_external_id("google-123")["email"] == "ana@example.com"
        assert mirror.get_user_by_external_id("nobody") is None


def test_save_and_load_events(tmp_path):
    """Events round-trip and come back newest first."""
    with LedgerMirror(db_path=tmp_path / "mirror.db") as mirror:
        user = mirror.create_user("ana@example.com", "Ana", "google-123")
        inserted = mirror.create_events(user["id"], [make_event("m1", "2024-10-01"), make_event("m2")])
        loaded = mirror.get_events(user["id"])

    assert inserted == 2
    assert [e.id for e in loaded] == ["m2", "m1"]
    assert loaded[0] == make_event("m2")


def test_duplicate_events_ignored(tmp_path):
    with LedgerMirror(db_path=tmp_path / "mirror.db") as mirror:
        user = mirror.create_user("ana@example.com", "Ana", "google-123")
        assert mirror.create_events(user["id"], [make_event("m1")]) == 1
        assert mirror.create_events(user["id"], [make_event("m1"), make_event("m2")]) == 1
        assert len(mirror.get_events(user["id"])) == 2


def test_events_are_per_user(tmp_path):
    with LedgerMirror(db_path=tmp_path / "mirror.db") as mirror:
        ana = mirror.create_user("ana@example.com", "Ana", "google-1")
        bob = mirror.create_user("bob@example.com", "Bob", "google-2")
        mirror.create_events(ana["id"], [make_event("m1")])
        mirror.create_events(bob["id"], [make_event("m1")])
        assert mirror.delete_event_by_external_id(ana["id"], "m1") is True
        assert mirror.get_events(ana["id"]) == []
        assert len(mirror.get_events(bob["id"])) == 1


def test_delete_missing_event(tmp_path):
    with LedgerMirror(db_path=tmp_path / "mirror.db") as mirror:
        user = mirror.create_user("ana@example.com", "Ana", "google-123")
        assert mirror.delete_event_by_external_id(user["id"], "nope") is False


def test_info_and_clear(tmp_path):
    """Info reports counts; clear wipes everything."""
    db_path = tmp_path / "mirror.db"
    with LedgerMirror(db_path=db_path) as mirror:
        user = mirror.create_user("ana@example.com", "Ana", "google-123")
        mirror.create_events(user["id"], [make_event("m1"), make_event("m2")])

        info = mirror.get_info()
        assert info["user_count"] == 1
        assert info["event_count"] == 2
        assert info["db_file_size"] > 0
        assert info["last_write"] is not None

        mirror.clear()
        info = mirror.get_info()
        assert info["user_count"] == 0
        assert info["event_count"] == 0


def test_persists_across_connections(tmp_path):
    db_path = tmp_path / "mirror.db"
    with LedgerMirror(db_path=db_path) as mirror:
        user = mirror.create_user("ana@example.com", "Ana", "google-123")
        mirror.create_events(user["id"], [make_event("m1")])

    with LedgerMirror(db_path=db_path) as mirror:
        user = mirror.get_user_by_external_id("google-123")
        assert [e.id for e in mirror.get_events(user["id"])] == ["m1"]


def test_closed_mirror_raises_mirror_error(tmp_path):
    mirror = LedgerMirror(db_path=tmp_path / "mirror.db")
    mirror.close()
    with pytest.raises(MirrorError):
        mirror.list_users()


def test_unopenable_path(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file")
    with pytest.raises(MirrorError):
        LedgerMirror(db_path=blocker / "mirror.db")
