"""
Unit tests for StateDatabase: sync token lifecycle and property storage.
"""

from busy_mirror.db import DEFAULT_SOURCE_PROPERTY
from busy_mirror.db import StateDatabase
from busy_mirror.db import query_tokens


class TestSyncTokens:
    def test_absent_initially(self, state_db):
        assert state_db.get_sync_token("cal-a") is None

    def test_set_then_get(self, state_db):
        state_db.set_sync_token("cal-a", "tok-1")
        state_db.commit()
        assert state_db.get_sync_token("cal-a") == "tok-1"

    def test_set_overwrites(self, state_db):
        """A second set replaces the token instead of raising a UNIQUE error."""
        state_db.set_sync_token("cal-a", "tok-1")
        state_db.set_sync_token("cal-a", "tok-2")
        state_db.commit()

        assert state_db.get_sync_token("cal-a") == "tok-2"
        assert len(state_db.conn.execute("SELECT * FROM sync_tokens").fetchall()) == 1

    def test_clear_only_affects_one_calendar(self, state_db):
        state_db.set_sync_token("cal-a", "tok-a")
        state_db.set_sync_token("cal-b", "tok-b")
        state_db.clear_sync_token("cal-a")
        state_db.commit()

        assert state_db.get_sync_token("cal-a") is None
        assert state_db.get_sync_token("cal-b") == "tok-b"

    def test_clear_all_tokens(self, state_db):
        state_db.set_sync_token("cal-a", "tok-a")
        state_db.set_sync_token("cal-b", "tok-b")
        assert state_db.clear_all_tokens() == 2
        state_db.commit()
        assert state_db.get_sync_token("cal-b") is None

    def test_persists_across_connections(self, db_path):
        with StateDatabase(db_path) as db:
            db.set_sync_token("cal-a", "tok-9")
            db.commit()

        with StateDatabase(db_path) as db:
            assert db.get_sync_token("cal-a") == "tok-9"

    def test_uncommitted_token_is_lost(self, db_path):
        """Tokens only advance on commit, so an aborted cycle leaves the old one."""
        with StateDatabase(db_path) as db:
            db.set_sync_token("cal-a", "tok-1")
            db.commit()
            db.set_sync_token("cal-a", "tok-2")

        with StateDatabase(db_path) as db:
            assert db.get_sync_token("cal-a") == "tok-1"


class TestProperties:
    def test_roundtrip_and_delete(self, state_db):
        assert state_db.get_property(DEFAULT_SOURCE_PROPERTY) is None

        state_db.set_property(DEFAULT_SOURCE_PROPERTY, "me@example.com")
        state_db.set_property(DEFAULT_SOURCE_PROPERTY, "other@example.com")
        state_db.commit()
        assert state_db.get_property(DEFAULT_SOURCE_PROPERTY) == "other@example.com"

        state_db.delete_property(DEFAULT_SOURCE_PROPERTY)
        state_db.commit()
        assert state_db.get_property(DEFAULT_SOURCE_PROPERTY) is None


class TestQueryTokens:
    def test_missing_db_returns_empty(self, tmp_path):
        assert query_tokens(tmp_path / "nope.db") == []

    def test_lists_rows(self, state_db, db_path):
        state_db.set_sync_token("cal-b", "tok-b")
        state_db.set_sync_token("cal-a", "tok-a")
        state_db.commit()

        rows = query_tokens(db_path)
        assert [r["calendar_id"] for r in rows] == ["cal-a", "cal-b"]
        assert rows[0]["updated_at"] > 0
