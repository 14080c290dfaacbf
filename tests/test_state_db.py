"""
Tests for WatermarkStore and query_watermarks in gcal_syncer.db.
"""

import sqlite3

import pytest

from gcal_syncer.db import WatermarkStore
from gcal_syncer.db import query_watermarks
from gcal_syncer.models import CalendarSyncError


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "state" / "watermarks.db"


class TestWatermarkStore:
    def test_creates_parent_directory(self, db_path):
        with WatermarkStore(db_path):
            pass
        assert db_path.exists()

    def test_empty_store(self, db_path):
        with WatermarkStore(db_path) as store:
            assert store.load() == {}
            assert store.get("team") is None

    def test_save_and_load(self, db_path):
        with WatermarkStore(db_path) as store:
            store.save({"team": "2026-03-01T00:00:00Z", "other": "2026-03-02T00:00:00Z"})

        with WatermarkStore(db_path) as store:
            assert store.load() == {
                "team": "2026-03-01T00:00:00Z",
                "other": "2026-03-02T00:00:00Z",
            }

    def test_save_overwrites(self, db_path):
        with WatermarkStore(db_path) as store:
            store.save({"team": "2026-03-01T00:00:00Z"})
            store.save({"team": "2026-03-05T00:00:00Z"})
            assert store.get("team") == "2026-03-05T00:00:00Z"

    def test_save_skips_empty_marks(self, db_path):
        with WatermarkStore(db_path) as store:
            store.save({"team": None, "other": ""})
            assert store.load() == {}

    def test_clear_forgets_one_scope(self, db_path):
        with WatermarkStore(db_path) as store:
            store.save({"team": "a", "other": "b"})
            store.clear("team")
            assert store.load() == {"other": "b"}

    def test_close_is_idempotent(self, db_path):
        store = WatermarkStore(db_path)
        store.connect()
        store.close()
        store.close()
        assert store.conn is None

    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(CalendarSyncError, match="Cannot open state database"):
            WatermarkStore(blocker / "state.db").connect()


class TestQueryWatermarks:
    def test_missing_file(self, tmp_path):
        assert query_watermarks(tmp_path / "absent.db") == []

    def test_missing_table(self, tmp_path):
        path = tmp_path / "other.db"
        sqlite3.connect(path).close()
        assert query_watermarks(path) == []

    def test_rows_sorted_by_scope(self, db_path):
        with WatermarkStore(db_path) as store:
            store.save({"zeta": "z", "alpha": "a"})

        rows = query_watermarks(db_path)

        assert [row["scope_id"] for row in rows] == ["alpha", "zeta"]
        assert rows[0]["watermark"] == "a"
        assert rows[0]["updated_at"] > 0
