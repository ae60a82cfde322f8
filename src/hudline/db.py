"""SQLite snapshot store — session records, daily usage and cost/pace samples.

The status line writes here on every render; the desktop overlay and the
``hudline history`` command only read through the time-window getters.
Every public method of SnapshotStore is best-effort: when the database is
unavailable or a statement fails, it logs to stderr and returns a safe
default instead of raising.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
import time
from datetime import date, timedelta
from pathlib import Path

from hudline.errors import StoreUnavailable

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
DEDUP_WINDOW_MS = 60 * 1000
DEFAULT_RETENTION_DAYS = 7
SESSION_STATUSES = ("working", "waiting", "unknown")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS hud_sessions (
    session_id TEXT PRIMARY KEY,
    initial_cwd TEXT NOT NULL,
    git_branch TEXT,
    status TEXT DEFAULT 'unknown',
    is_root_at_start INTEGER NOT NULL,
    first_seen_at INTEGER NOT NULL,
    last_seen_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS usage_daily (
    date TEXT PRIMARY KEY,
    cost REAL NOT NULL,
    input_tokens INTEGER NOT NULL,
    output_tokens INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS pace_snapshots (
    timestamp INTEGER PRIMARY KEY,
    pace REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS usage_snapshots (
    timestamp INTEGER PRIMARY KEY,
    cost REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_last_seen ON hud_sessions(last_seen_at);
"""


def init_db(db_path: Path) -> None:
    """Create tables if they don't exist, then run any needed migrations."""
    con = sqlite3.connect(db_path)
    try:
        con.executescript(_SCHEMA)
        con.commit()
    finally:
        con.close()
    _migrate_db(db_path)


def _migrate_db(db_path: Path) -> None:
    """Add session columns that may be missing from older databases."""
    con = sqlite3.connect(db_path)
    try:
        cols = {row[1] for row in con.execute("PRAGMA table_info(hud_sessions)").fetchall()}
        if "git_branch" not in cols:
            con.execute("ALTER TABLE hud_sessions ADD COLUMN git_branch TEXT")
        if "status" not in cols:
            con.execute("ALTER TABLE hud_sessions ADD COLUMN status TEXT DEFAULT 'unknown'")
        con.commit()
    finally:
        con.close()


def get_connection(db_path: Path, timeout: float = 2.0) -> sqlite3.Connection:
    """Get a connection with row_factory = sqlite3.Row.

    The short busy timeout keeps a locked database from stalling the prompt.
    """
    con = sqlite3.connect(db_path, timeout=timeout)
    con.row_factory = sqlite3.Row
    return con


def now_ms() -> int:
    return int(time.time() * 1000)


def _best_effort(fallback):
    """Run a store method only when connected; turn sqlite errors into ``fallback``.

    ``fallback`` is called with the method's arguments so it can compute a
    live answer (see get_or_create_session_root_status).
    """

    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            if self._con is None:
                return fallback(self, *args, **kwargs)
            try:
                return method(self, *args, **kwargs)
            except sqlite3.Error as exc:
                logger.warning("snapshot store: %s failed: %s", method.__name__, exc)
                return fallback(self, *args, **kwargs)

        return wrapper

    return decorator


def _false(*args, **kwargs) -> bool:
    return False


def _empty_list(*args, **kwargs) -> list:
    return []


def _empty_dict(*args, **kwargs) -> dict:
    return {}


def _live_root_status(self, session_id, cwd, git_root, git_branch=None, now=None) -> bool:
    return cwd == git_root


class SnapshotStore:
    """Scoped handle on the snapshot database.

    Use ``with SnapshotStore.open(db_path) as store:`` so the connection is
    released on every exit path. A store opened on an unusable path is
    disconnected and all of its methods degrade to no-ops.
    """

    def __init__(self, con: sqlite3.Connection | None):
        self._con = con

    @classmethod
    def open(cls, db_path: Path) -> SnapshotStore:
        try:
            con = _connect(Path(db_path))
        except StoreUnavailable as exc:
            logger.warning("%s", exc)
            return cls(None)
        return cls(con)

    def __enter__(self) -> SnapshotStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_connected(self) -> bool:
        return self._con is not None

    def close(self) -> None:
        if self._con is not None:
            self._con.close()
            self._con = None

    # -- samples ----------------------------------------------------------

    @_best_effort(_false)
    def record_usage_snapshot(self, cost: float, now: int | None = None) -> bool:
        """Record cumulative cost unless a sample was written in the last minute."""
        return self._record_sample("usage_snapshots", "cost", cost, now)

    @_best_effort(_false)
    def record_pace_snapshot(self, pace: float, now: int | None = None) -> bool:
        """Record a pace value unless a sample was written in the last minute."""
        return self._record_sample("pace_snapshots", "pace", pace, now)

    def _record_sample(self, table: str, column: str, value: float, now: int | None) -> bool:
        # Check-then-insert is racy across processes; dedup is best-effort.
        if now is None:
            now = now_ms()
        latest = self._con.execute(
            f"SELECT MAX(timestamp) AS ts FROM {table}"
        ).fetchone()["ts"]
        if latest is not None and latest > now - DEDUP_WINDOW_MS:
            return False
        cur = self._con.execute(
            f"INSERT OR IGNORE INTO {table} (timestamp, {column}) VALUES (?, ?)",
            (now, value),
        )
        self._con.commit()
        return cur.rowcount == 1

    @_best_effort(_empty_list)
    def get_usage_snapshots(self, days: float, now: int | None = None) -> list[dict]:
        """Usage samples from the last ``days`` days, oldest first."""
        return self._samples_since("usage_snapshots", "cost", days, now)

    @_best_effort(_empty_list)
    def get_pace_snapshots(self, days: float, now: int | None = None) -> list[dict]:
        """Pace samples from the last ``days`` days, oldest first."""
        return self._samples_since("pace_snapshots", "pace", days, now)

    def _samples_since(self, table: str, column: str, days: float, now: int | None) -> list[dict]:
        if now is None:
            now = now_ms()
        cutoff = now - int(days * DAY_MS)
        rows = self._con.execute(
            f"SELECT timestamp, {column} FROM {table} WHERE timestamp >= ? ORDER BY timestamp ASC",
            (cutoff,),
        ).fetchall()
        return [dict(r) for r in rows]

    # -- daily usage ------------------------------------------------------

    @_best_effort(_false)
    def record_daily_usage(
        self,
        day: str,
        cost: float,
        input_tokens: int,
        output_tokens: int,
        now: int | None = None,
    ) -> bool:
        """Upsert the totals for ``day`` (YYYY-MM-DD). Last writer wins."""
        if now is None:
            now = now_ms()
        self._con.execute(
            """INSERT INTO usage_daily (date, cost, input_tokens, output_tokens, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(date) DO UPDATE SET
                cost = excluded.cost,
                input_tokens = excluded.input_tokens,
                output_tokens = excluded.output_tokens,
                updated_at = excluded.updated_at""",
            (day, cost, input_tokens, output_tokens, now),
        )
        self._con.commit()
        return True

    @_best_effort(_empty_list)
    def get_daily_usage(self, days: int, today: date | None = None) -> list[dict]:
        """Daily usage rows from the last ``days`` days, oldest first."""
        if today is None:
            today = date.today()
        cutoff = (today - timedelta(days=days)).isoformat()
        rows = self._con.execute(
            """SELECT date, cost, input_tokens, output_tokens, updated_at
            FROM usage_daily
            WHERE date >= ?
            ORDER BY date ASC""",
            (cutoff,),
        ).fetchall()
        return [dict(r) for r in rows]

    # -- sessions ---------------------------------------------------------

    @_best_effort(_live_root_status)
    def get_or_create_session_root_status(
        self,
        session_id: str,
        cwd: str,
        git_root: str,
        git_branch: str | None = None,
        now: int | None = None,
    ) -> bool:
        """Whether the session started at its git root.

        The answer is fixed the first time a session id is seen; later calls
        only refresh last_seen_at.
        """
        if now is None:
            now = now_ms()
        row = self._con.execute(
            "SELECT is_root_at_start FROM hud_sessions WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        if row is not None:
            self._con.execute(
                "UPDATE hud_sessions SET last_seen_at = ? WHERE session_id = ?",
                (now, session_id),
            )
            self._con.commit()
            return row["is_root_at_start"] == 1

        is_root = cwd == git_root
        # OR IGNORE: a concurrent invocation may have inserted the row first.
        self._con.execute(
            """INSERT OR IGNORE INTO hud_sessions (
                session_id, initial_cwd, git_branch, is_root_at_start,
                first_seen_at, last_seen_at
            ) VALUES (?, ?, ?, ?, ?, ?)""",
            (session_id, cwd, git_branch, 1 if is_root else 0, now, now),
        )
        self._con.commit()
        return is_root

    @_best_effort(_false)
    def set_session_status(self, session_id: str, status: str, now: int | None = None) -> bool:
        """Update a known session's status. Returns False for unknown sessions."""
        if status not in SESSION_STATUSES:
            raise ValueError(f"status must be one of {', '.join(SESSION_STATUSES)}")
        if now is None:
            now = now_ms()
        cur = self._con.execute(
            "UPDATE hud_sessions SET status = ?, last_seen_at = ? WHERE session_id = ?",
            (status, now, session_id),
        )
        self._con.commit()
        return cur.rowcount > 0

    @_best_effort(_empty_list)
    def get_sessions(self) -> list[dict]:
        """All tracked sessions, most recently seen first."""
        rows = self._con.execute(
            """SELECT session_id, initial_cwd, git_branch, status, is_root_at_start,
                first_seen_at, last_seen_at
            FROM hud_sessions
            ORDER BY last_seen_at DESC"""
        ).fetchall()
        sessions = []
        for r in rows:
            session = dict(r)
            session["is_root_at_start"] = bool(session["is_root_at_start"])
            sessions.append(session)
        return sessions

    # -- maintenance ------------------------------------------------------

    @_best_effort(_empty_dict)
    def prune_older_than(
        self,
        days: float = DEFAULT_RETENTION_DAYS,
        session_idle_days: float = DEFAULT_RETENTION_DAYS,
        now: int | None = None,
    ) -> dict[str, int]:
        """Delete samples older than ``days`` and sessions idle longer than
        ``session_idle_days``. Returns deleted row counts per table.
        """
        if now is None:
            now = now_ms()
        cutoff = now - int(days * DAY_MS)
        idle_cutoff = now - int(session_idle_days * DAY_MS)
        deleted = {
            "pace_snapshots": self._con.execute(
                "DELETE FROM pace_snapshots WHERE timestamp < ?", (cutoff,)
            ).rowcount,
            "usage_snapshots": self._con.execute(
                "DELETE FROM usage_snapshots WHERE timestamp < ?", (cutoff,)
            ).rowcount,
            "hud_sessions": self._con.execute(
                "DELETE FROM hud_sessions WHERE last_seen_at < ?", (idle_cutoff,)
            ).rowcount,
        }
        self._con.commit()
        return deleted


def _connect(db_path: Path) -> sqlite3.Connection:
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        init_db(db_path)
        return get_connection(db_path)
    except (sqlite3.Error, OSError) as exc:
        raise StoreUnavailable(f"snapshot store unavailable at {db_path}: {exc}") from exc
