"""
SQLite persistence for per-scope incremental sync watermarks.
"""

import sqlite3
import time
from pathlib import Path

from gcal_syncer.models import CalendarSyncError


class WatermarkStore:
    """Manages the SQLite state database holding one watermark per sync scope."""

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
            self.conn.row_factory = sqlite3.Row  # Enable column access by name
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise CalendarSyncError(f"Cannot open state database {self.db_path}: {e}") from e

    def _init_schema(self):
        """Create the watermarks table if it doesn't exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS watermarks (
                scope_id TEXT PRIMARY KEY,
                watermark TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)
        self.conn.commit()

    def load(self) -> dict[str, str]:
        """Return every stored watermark keyed by scope id."""
        try:
            cursor = self.conn.execute("SELECT scope_id, watermark FROM watermarks")
            return {row["scope_id"]: row["watermark"] for row in cursor.fetchall()}
        except sqlite3.Error as e:
            raise CalendarSyncError(f"Failed to load watermarks: {e}") from e

    def get(self, scope_id: str) -> str | None:
        return self.load().get(scope_id)

    def save(self, watermarks: dict[str, str]):
        """Upsert the given watermarks and commit."""
        timestamp = int(time.time())
        try:
            self.conn.executemany(
                "INSERT INTO watermarks (scope_id, watermark, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(scope_id) DO UPDATE SET "
                "watermark = excluded.watermark, updated_at = excluded.updated_at",
                [(scope_id, mark, timestamp) for scope_id, mark in watermarks.items() if mark],
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise CalendarSyncError(f"Failed to save watermarks: {e}") from e

    def clear(self, scope_id: str):
        """Forget a scope's watermark so its next run lists everything."""
        self.conn.execute("DELETE FROM watermarks WHERE scope_id = ?", (scope_id,))
        self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


def query_watermarks(db_path: Path) -> list:
    """
    Return every stored watermark row (scope_id, watermark, updated_at).

    Returns an empty list when the DB file does not exist or has no
    watermarks table yet.
    """
    if not db_path.exists():
        return []
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        tables = {row["name"] for row in conn.execute("SELECT name FROM sqlite_master")}
        if "watermarks" not in tables:
            return []
        cursor = conn.execute(
            "SELECT scope_id, watermark, updated_at FROM watermarks ORDER BY scope_id"
        )
        return cursor.fetchall()
    finally:
        conn.close()
