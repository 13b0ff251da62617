"""SQLite mirror of the ledger.

The mirror is secondary storage: the engine writes net-new events after each
sync and deletes events the user removes.  Every sqlite failure surfaces as
MirrorError so callers can downgrade it to a warning.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import structlog

from .constants import MIRROR_DB_PATH
from .errors import MirrorError
from .models import FinancialEvent

logger = structlog.get_logger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT NOT NULL UNIQUE,
    email TEXT,
    name TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    email_id TEXT NOT NULL,
    date TEXT,
    display_date TEXT,
    amount REAL,
    direction TEXT,
    category TEXT,
    source TEXT,
    description TEXT,
    created_at TEXT,
    UNIQUE (user_id, email_id),
    FOREIGN KEY (user_id) REFERENCES users(id)
);
"""


class LedgerMirror:
    """Persistent SQLite copy of each user's events."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = Path(db_path or MIRROR_DB_PATH)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            self._create_tables()
        except (OSError, sqlite3.Error) as exc:
            raise MirrorError(f"Cannot open mirror database {self.db_path}: {exc}") from exc

    def _create_tables(self) -> None:
        self._conn.executescript(_CREATE_TABLES_SQL)

    # --- public API ---

    def get_user_by_external_id(self, external_id: str) -> dict | None:
        try:
            row = self._conn.execute(
                "SELECT * FROM users WHERE external_id = ?", (external_id,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise MirrorError(f"Mirror user lookup failed: {exc}") from exc
        return dict(row) if row else None

    def list_users(self) -> list[dict]:
        try:
            rows = self._conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        except sqlite3.Error as exc:
            raise MirrorError(f"Mirror user query failed: {exc}") from exc
        return [dict(r) for r in rows]

    def create_user(self, email: str, name: str, external_id: str) -> dict:
        """Insert a user (or return the existing one with that external id)."""
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT OR IGNORE INTO users (external_id, email, name, created_at) VALUES (?, ?, ?, ?)",
                    (external_id, email, name, datetime.now(timezone.utc).isoformat()),
                )
        except sqlite3.Error as exc:
            raise MirrorError(f"Mirror user creation failed: {exc}") from exc
        user = self.get_user_by_external_id(external_id)
        if user is None:
            raise MirrorError(f"Mirror user {external_id} missing after insert")
        logger.info("mirror_user_created", user_id=user["id"])
        return user

    def create_events(self, user_id: int, events: list[FinancialEvent]) -> int:
        """Insert events, ignoring ones already stored. Returns rows inserted."""
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._conn:
                before = self._conn.total_changes
                self._conn.executemany(
                    "INSERT OR IGNORE INTO events (user_id, email_id, date, display_date, amount, "
                    "direction, category, source, description, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        (
                            user_id,
                            e.id,
                            e.date,
                            e.display_date,
                            e.amount,
                            e.direction,
                            e.category,
                            e.source,
                            e.description,
                            now,
                        )
                        for e in events
                    ],
                )
                inserted = self._conn.total_changes - before
        except sqlite3.Error as exc:
            raise MirrorError(f"Mirror event insert failed: {exc}") from exc
        logger.debug("mirror_events_saved", user_id=user_id, inserted=inserted, offered=len(events))
        return inserted

    def get_events(self, user_id: int) -> list[FinancialEvent]:
        try:
            rows = self._conn.execute(
                "SELECT * FROM events WHERE user_id = ? ORDER BY date DESC, id", (user_id,)
            ).fetchall()
        except sqlite3.Error as exc:
            raise MirrorError(f"Mirror event query failed: {exc}") from exc
        return [
            FinancialEvent(
                id=r["email_id"],
                date=r["date"],
                display_date=r["display_date"] or "",
                amount=r["amount"],
                direction=r["direction"],
                category=r["category"],
                source=r["source"] or "",
                description=r["description"] or "",
            )
            for r in rows
        ]

    def delete_event_by_external_id(self, user_id: int, email_id: str) -> bool:
        try:
            with self._conn:
                cursor = self._conn.execute(
                    "DELETE FROM events WHERE user_id = ? AND email_id = ?", (user_id, email_id)
                )
        except sqlite3.Error as exc:
            raise MirrorError(f"Mirror event delete failed: {exc}") from exc
        return cursor.rowcount > 0

    def clear(self) -> None:
        """Drop and recreate all tables."""
        try:
            self._conn.executescript("DROP TABLE IF EXISTS events;DROP TABLE IF EXISTS users;")
            self._create_tables()
        except sqlite3.Error as exc:
            raise MirrorError(f"Mirror clear failed: {exc}") from exc

    def get_info(self) -> dict:
        """Return mirror statistics."""
        file_size = self.db_path.stat().st_size if self.db_path.exists() else 0
        user_count = self._conn.execute("SELECT COUNT(*) AS c FROM users").fetchone()["c"]
        event_count = self._conn.execute("SELECT COUNT(*) AS c FROM events").fetchone()["c"]
        last_row = self._conn.execute("SELECT MAX(created_at) AS last FROM events").fetchone()
        return {
            "db_file_size": file_size,
            "user_count": user_count,
            "event_count": event_count,
            "last_write": last_row["last"],
        }

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- context manager ---

    def __enter__(self) -> LedgerMirror:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()
