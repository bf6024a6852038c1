"""
SQLite database initialization and connection management.

Single responsibility: own the connection, create tables.
All actual queries live in Repository.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from focusledger.config import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
-- Tasks ---------------------------------------------------------------------
CREATE TABLE IF NOT EXISTS tasks (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    name          TEXT    NOT NULL,
    mode          TEXT    NOT NULL DEFAULT 'pomodoro',
    status        TEXT    NOT NULL DEFAULT 'pending',
    created_at    TEXT    NOT NULL,
    updated_at    TEXT    NOT NULL,
    completed_at  TEXT
);

-- Focus sessions (source of truth) ------------------------------------------
CREATE TABLE IF NOT EXISTS focus_sessions (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id        INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    start_time     TEXT    NOT NULL,
    end_time       TEXT,
    break_minutes  INTEGER NOT NULL DEFAULT 0,
    duration_min   INTEGER NOT NULL DEFAULT 0,
    mode           TEXT    NOT NULL
);

-- Daily aggregates (rebuilt wholesale by the daily rollup) ------------------
CREATE TABLE IF NOT EXISTS daily_aggregates (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    date                  TEXT    NOT NULL UNIQUE,
    pomodoro_count        INTEGER NOT NULL DEFAULT 0,
    custom_count          INTEGER NOT NULL DEFAULT 0,
    total_focus_sessions  INTEGER NOT NULL DEFAULT 0,
    pomodoro_minutes      INTEGER NOT NULL DEFAULT 0,
    custom_minutes        INTEGER NOT NULL DEFAULT 0,
    total_focus_minutes   INTEGER NOT NULL DEFAULT 0,
    total_break_minutes   INTEGER NOT NULL DEFAULT 0,
    tomato_harvests       INTEGER NOT NULL DEFAULT 0,
    time_ranges           TEXT    NOT NULL DEFAULT '[]'
);

-- Per-task daily aggregates -------------------------------------------------
CREATE TABLE IF NOT EXISTS event_aggregates (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id         INTEGER NOT NULL,
    date            TEXT    NOT NULL,
    focus_count     INTEGER NOT NULL DEFAULT 0,
    total_minutes   INTEGER NOT NULL DEFAULT 0,
    mode            TEXT    NOT NULL,
    completed       INTEGER NOT NULL DEFAULT 0,
    UNIQUE(task_id, date)
);

-- Indexes for common queries -------------------------------------------------
CREATE INDEX IF NOT EXISTS idx_sessions_task   ON focus_sessions(task_id);
CREATE INDEX IF NOT EXISTS idx_sessions_start  ON focus_sessions(start_time);
CREATE INDEX IF NOT EXISTS idx_event_agg_date  ON event_aggregates(date);
"""


def configure_connection(conn: sqlite3.Connection) -> sqlite3.Connection:
    """Apply row factory and pragmas every connection needs."""
    conn.row_factory = sqlite3.Row          # dict-like rows
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


class Database:
    """Thin wrapper around a SQLite connection."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.conn: Optional[sqlite3.Connection] = None

    # -- lifecycle -----------------------------------------------------------

    def connect(self) -> sqlite3.Connection:
        """Open (or return existing) connection and ensure schema exists."""
        if self.conn is not None:
            return self.conn
        logger.info("Connecting to SQLite at %s", self.db_path)
        self.conn = self._open()
        self._create_tables()
        return self.conn

    def new_connection(self) -> sqlite3.Connection:
        """Independent connection for work on another thread."""
        return self._open()

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed.")

    # -- internal ------------------------------------------------------------

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=10.0,
                               check_same_thread=False)
        configure_connection(conn)
        if str(self.db_path) != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _create_tables(self) -> None:
        assert self.conn is not None
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()
        logger.info("Database schema ensured.")


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Manages the SQLite connection and makes sure all tables exist on startup.
#
# Key pieces:
#   - SCHEMA_SQL: tasks and focus_sessions are the raw log; daily_aggregates
#     and event_aggregates are derived and only written by the rollup engines.
#   - Database.connect(): the foreground connection used by the CLI/UI.
#   - Database.new_connection(): a second connection, owned by the
#     background repair thread.
#
# Data flow:
#   main.build_app() -> Database.connect() -> Repository(conn) -> engines
