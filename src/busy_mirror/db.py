"""
SQLite persistence for sync tokens and small string properties.
"""

import logging
import sqlite3
import time
from pathlib import Path

from busy_mirror.models import CalendarSyncError

DEFAULT_SOURCE_PROPERTY = "default_source_calendar_id"


class StateDatabase:
    """Manages the SQLite state database.

    Holds one opaque sync token per source calendar plus a key/value
    property table.  No locking of its own: callers hold ``SyncLock``
    while writing.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the state database."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.db_path))
        except (OSError, sqlite3.Error) as e:
            raise CalendarSyncError(f"Cannot open state database {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self._init_schema()

    def _init_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS sync_tokens (
                calendar_id TEXT PRIMARY KEY,
                token TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            );
            CREATE TABLE IF NOT EXISTS properties (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Sync tokens                                                          #
    # ------------------------------------------------------------------ #

    def get_sync_token(self, calendar_id: str) -> str | None:
        row = self.conn.execute(
            "SELECT token FROM sync_tokens WHERE calendar_id = ?", (calendar_id,)
        ).fetchone()
        return row["token"] if row else None

    def set_sync_token(self, calendar_id: str, token: str):
        self.conn.execute(
            "INSERT INTO sync_tokens (calendar_id, token, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(calendar_id) DO UPDATE SET "
            "token = excluded.token, updated_at = excluded.updated_at",
            (calendar_id, token, int(time.time())),
        )

    def clear_sync_token(self, calendar_id: str):
        self.conn.execute("DELETE FROM sync_tokens WHERE calendar_id = ?", (calendar_id,))

    def clear_all_tokens(self) -> int:
        cursor = self.conn.execute("DELETE FROM sync_tokens")
        return cursor.rowcount

    # ------------------------------------------------------------------ #
    # Properties                                                           #
    # ------------------------------------------------------------------ #

    def get_property(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM properties WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_property(self, key: str, value: str):
        self.conn.execute(
            "INSERT INTO properties (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def delete_property(self, key: str):
        self.conn.execute("DELETE FROM properties WHERE key = ?", (key,))

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


def query_tokens(db_path: Path) -> list:
    """
    Return every stored (calendar_id, token, updated_at) row.

    Returns an empty list when the DB file does not exist or has no
    sync_tokens table yet.
    """
    if not db_path.exists():
        return []
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        return conn.execute(
            "SELECT calendar_id, token, updated_at FROM sync_tokens ORDER BY calendar_id"
        ).fetchall()
    except sqlite3.OperationalError as e:
        logging.getLogger(__name__).debug("No token table in %s: %s", db_path, e)
        return []
    finally:
        conn.close()
