"""Tests for the SQLite snapshot store."""

import sqlite3
from datetime import date

import pytest

from hudline.db import (
    DAY_MS,
    DEDUP_WINDOW_MS,
    SnapshotStore,
    _migrate_db,
    init_db,
)

T0 = 1_760_000_000_000  # an arbitrary fixed "now" in ms


@pytest.fixture
def store(tmp_db):
    with SnapshotStore.open(tmp_db) as s:
        yield s


def _count(tmp_db, table):
    con = sqlite3.connect(tmp_db)
    try:
        return con.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        con.close()


def test_init_db_creates_tables(tmp_db):
    """init_db creates all 4 expected tables."""
    init_db(tmp_db)
    con = sqlite3.connect(tmp_db)
    tables = {
        row[0]
        for row in con.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    }
    con.close()

    assert {"hud_sessions", "usage_daily", "pace_snapshots", "usage_snapshots"} <= tables


def test_init_db_is_idempotent(tmp_db):
    """Calling init_db twice does not raise."""
    init_db(tmp_db)
    init_db(tmp_db)


def test_migrate_adds_session_columns(tmp_db):
    """An old hud_sessions table without git_branch/status gets both columns."""
    con = sqlite3.connect(tmp_db)
    con.execute(
        """CREATE TABLE hud_sessions (
            session_id TEXT PRIMARY KEY,
            initial_cwd TEXT NOT NULL,
            is_root_at_start INTEGER NOT NULL,
            first_seen_at INTEGER NOT NULL,
            last_seen_at INTEGER NOT NULL
        )"""
    )
    con.commit()
    con.close()

    _migrate_db(tmp_db)

    con = sqlite3.connect(tmp_db)
    cols = {row[1] for row in con.execute("PRAGMA table_info(hud_sessions)").fetchall()}
    con.close()
    assert {"git_branch", "status"} <= cols


# ---------------------------------------------------------------------------
# Snapshot dedup
# ---------------------------------------------------------------------------


def test_usage_snapshot_dedup_within_window(store, tmp_db):
    """Two writes less than a minute apart leave exactly one row."""
    assert store.record_usage_snapshot(1.0, now=T0) is True
    assert store.record_usage_snapshot(2.0, now=T0 + 30_000) is False

    rows = store.get_usage_snapshots(1, now=T0 + 30_000)
    assert rows == [{"timestamp": T0, "cost": 1.0}]
    assert _count(tmp_db, "usage_snapshots") == 1


def test_usage_snapshot_written_after_window(store):
    """A write a full dedup window later is recorded."""
    store.record_usage_snapshot(1.0, now=T0)
    assert store.record_usage_snapshot(2.0, now=T0 + DEDUP_WINDOW_MS) is True

    rows = store.get_usage_snapshots(1, now=T0 + DEDUP_WINDOW_MS)
    assert [r["cost"] for r in rows] == [1.0, 2.0]


def test_pace_and_usage_dedup_independently(store):
    """A recent usage sample does not suppress a pace sample."""
    store.record_usage_snapshot(5.0, now=T0)
    assert store.record_pace_snapshot(3.2, now=T0 + 1_000) is True
    assert store.record_pace_snapshot(3.3, now=T0 + 2_000) is False

    assert store.get_pace_snapshots(1, now=T0 + 2_000) == [{"timestamp": T0 + 1_000, "pace": 3.2}]


def test_snapshot_getters_respect_window_and_order(store):
    """Only samples inside the window come back, oldest first."""
    store.record_pace_snapshot(1.0, now=T0 - 3 * DAY_MS)
    store.record_pace_snapshot(2.0, now=T0 - DAY_MS // 2)
    store.record_pace_snapshot(3.0, now=T0)

    rows = store.get_pace_snapshots(1, now=T0)
    assert [r["pace"] for r in rows] == [2.0, 3.0]
    assert rows[0]["timestamp"] < rows[1]["timestamp"]


# ---------------------------------------------------------------------------
# Daily usage
# ---------------------------------------------------------------------------


def test_record_daily_usage_upserts(store, tmp_db):
    """Recording the same date twice keeps one row with the last values."""
    store.record_daily_usage("2026-10-18", 1.0, 10, 5, now=T0)
    store.record_daily_usage("2026-10-18", 12.5, 1000, 500, now=T0 + 1)

    rows = store.get_daily_usage(7, today=date(2026, 10, 18))
    assert len(rows) == 1
    assert rows[0]["cost"] == 12.5
    assert rows[0]["input_tokens"] == 1000
    assert rows[0]["output_tokens"] == 500
    assert rows[0]["updated_at"] == T0 + 1
    assert _count(tmp_db, "usage_daily") == 1


def test_get_daily_usage_window(store):
    """Rows before the cutoff date are excluded; order is ascending."""
    store.record_daily_usage("2026-10-18", 3.0, 0, 0)
    store.record_daily_usage("2026-10-01", 9.0, 0, 0)
    store.record_daily_usage("2026-10-15", 2.0, 0, 0)

    rows = store.get_daily_usage(7, today=date(2026, 10, 18))
    assert [r["date"] for r in rows] == ["2026-10-15", "2026-10-18"]


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------


def test_prune_removes_only_old_rows(store):
    """After pruning at 7 days, nothing older remains and everything newer does."""
    old = T0 - 8 * DAY_MS
    recent = T0 - 6 * DAY_MS
    store.record_usage_snapshot(1.0, now=old)
    store.record_usage_snapshot(2.0, now=recent)
    store.record_pace_snapshot(1.0, now=old)
    store.record_pace_snapshot(2.0, now=recent)

    deleted = store.prune_older_than(7, now=T0)

    assert deleted["usage_snapshots"] == 1
    assert deleted["pace_snapshots"] == 1
    assert [r["timestamp"] for r in store.get_usage_snapshots(30, now=T0)] == [recent]
    assert [r["timestamp"] for r in store.get_pace_snapshots(30, now=T0)] == [recent]


def test_prune_removes_idle_sessions(store):
    """Sessions not seen within the idle window are deleted."""
    store.get_or_create_session_root_status("stale", "/a", "/a", now=T0 - 10 * DAY_MS)
    store.get_or_create_session_root_status("fresh", "/b", "/b", now=T0 - DAY_MS)

    deleted = store.prune_older_than(7, session_idle_days=7, now=T0)

    assert deleted["hud_sessions"] == 1
    assert [s["session_id"] for s in store.get_sessions()] == ["fresh"]


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def test_session_root_status_is_fixed_at_first_sight(store):
    """The first answer sticks even when later calls see a different cwd."""
    assert store.get_or_create_session_root_status("s1", "/repo", "/repo", now=T0) is True
    assert store.get_or_create_session_root_status("s1", "/repo/sub", "/repo", now=T0 + 5) is True

    assert store.get_or_create_session_root_status("s2", "/repo/sub", "/repo", now=T0) is False
    assert store.get_or_create_session_root_status("s2", "/repo", "/repo", now=T0 + 5) is False


def test_session_last_seen_refreshed(store):
    """Each sighting refreshes last_seen_at but not first_seen_at."""
    store.get_or_create_session_root_status("s1", "/repo", "/repo", git_branch="main", now=T0)
    store.get_or_create_session_root_status("s1", "/repo", "/repo", now=T0 + 1_000)

    (session,) = store.get_sessions()
    assert session["first_seen_at"] == T0
    assert session["last_seen_at"] == T0 + 1_000
    assert session["git_branch"] == "main"
    assert session["status"] == "unknown"
    assert session["is_root_at_start"] is True


def test_set_session_status(store):
    """Known sessions get the new status; unknown ones are reported."""
    store.get_or_create_session_root_status("s1", "/repo", "/repo", now=T0)

    assert store.set_session_status("s1", "working", now=T0 + 1) is True
    assert store.get_sessions()[0]["status"] == "working"
    assert store.set_session_status("missing", "waiting") is False


def test_set_session_status_rejects_unknown_status(store):
    with pytest.raises(ValueError):
        store.set_session_status("s1", "sleeping")


def test_get_sessions_most_recent_first(store):
    store.get_or_create_session_root_status("older", "/a", "/a", now=T0)
    store.get_or_create_session_root_status("newer", "/b", "/b", now=T0 + 10)

    assert [s["session_id"] for s in store.get_sessions()] == ["newer", "older"]


# ---------------------------------------------------------------------------
# Unavailable store
# ---------------------------------------------------------------------------


def test_unavailable_store_degrades_to_noops(tmp_path):
    """A store that cannot be opened answers every call with a safe default."""
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")

    with SnapshotStore.open(blocker / "hudline.db") as store:
        assert store.is_connected is False
        assert store.record_usage_snapshot(1.0) is False
        assert store.record_pace_snapshot(1.0) is False
        assert store.record_daily_usage("2026-10-18", 1.0, 1, 1) is False
        assert store.get_usage_snapshots(7) == []
        assert store.get_pace_snapshots(7) == []
        assert store.get_daily_usage(7) == []
        assert store.get_sessions() == []
        assert store.prune_older_than(7) == {}
        # Root status falls back to a live comparison.
        assert store.get_or_create_session_root_status("s", "/repo", "/repo") is True
        assert store.get_or_create_session_root_status("s", "/repo/x", "/repo") is False


def test_sqlite_error_is_swallowed(store):
    """A failing statement is logged and turned into the default."""
    store._con.execute("DROP TABLE usage_snapshots")

    assert store.record_usage_snapshot(1.0, now=T0) is False
    assert store.get_usage_snapshots(1, now=T0) == []


def test_close_releases_connection(tmp_db):
    with SnapshotStore.open(tmp_db) as store:
        assert store.is_connected is True
    assert store.is_connected is False
