"""
Repository: the single place where SQL lives.

Every other module talks to Repository, never to raw SQL. The rollup
engines wrap their read-then-write sequences in Repository.transaction();
aggregate write methods never commit on their own.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from focusledger.errors import StorageError

from .models import DailyAggregate, EventAggregate, FocusSession, Task, TaskStatus
from .timefmt import dump_time_ranges, format_timestamp, load_time_ranges, parse_timestamp

logger = logging.getLogger(__name__)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError as exc:
        logger.error("Stored timestamp %r cannot be parsed", value)
        raise StorageError(f"Corrupt timestamp in database: {value!r}") from exc


class Repository:
    """Data-access layer wrapping a sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ── Transactions ────────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run the block in one write transaction.

        BEGIN IMMEDIATE takes the write lock before the first read, so a
        recompute reads and writes a consistent snapshot. A nested call
        joins the outer transaction.
        """
        if self.conn.in_transaction:
            yield
            return
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self.conn.rollback()
            raise
        else:
            self.conn.commit()

    # ── Tasks ───────────────────────────────────────────────────────────────

    def create_task(self, name: str, mode: str, status: str = TaskStatus.PENDING,
                    now: Optional[datetime] = None) -> Task:
        ts = now or datetime.now()
        completed_at = format_timestamp(ts) if status == TaskStatus.COMPLETED else None
        cur = self.conn.execute(
            "INSERT INTO tasks (name, mode, status, created_at, updated_at, completed_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (name, mode, status, format_timestamp(ts), format_timestamp(ts), completed_at),
        )
        self.conn.commit()
        return self.get_task(cur.lastrowid)

    def get_task(self, task_id: int) -> Optional[Task]:
        row = self.conn.execute(
            "SELECT * FROM tasks WHERE id = ?", (task_id,)
        ).fetchone()
        return self._row_to_task(row) if row else None

    def list_tasks(self) -> List[Task]:
        rows = self.conn.execute(
            "SELECT * FROM tasks ORDER BY updated_at DESC, id DESC"
        ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def get_task_status(self, task_id: int) -> Optional[str]:
        row = self.conn.execute(
            "SELECT status FROM tasks WHERE id = ?", (task_id,)
        ).fetchone()
        return row["status"] if row else None

    def update_task_status(self, task_id: int, status: str,
                           now: Optional[datetime] = None) -> None:
        """Set status; completed_at follows (set on completion, else cleared)."""
        ts = format_timestamp(now or datetime.now())
        completed_at = ts if status == TaskStatus.COMPLETED else None
        self.conn.execute(
            "UPDATE tasks SET status = ?, updated_at = ?, completed_at = ? WHERE id = ?",
            (status, ts, completed_at, task_id),
        )
        self.conn.commit()

    def delete_task(self, task_id: int) -> None:
        """Delete a task; its sessions go with it (ON DELETE CASCADE)."""
        self.conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        self.conn.commit()
        logger.info("Deleted task %d", task_id)

    def count_tasks_completed_on(self, day: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM tasks WHERE substr(completed_at, 1, 10) = ?",
            (day,),
        ).fetchone()
        return row[0]

    # ── Focus sessions ──────────────────────────────────────────────────────

    def create_session(self, task_id: int, mode: str,
                       start_time: datetime) -> FocusSession:
        cur = self.conn.execute(
            "INSERT INTO focus_sessions (task_id, start_time, mode) VALUES (?, ?, ?)",
            (task_id, format_timestamp(start_time), mode),
        )
        self.conn.commit()
        return FocusSession(id=cur.lastrowid, task_id=task_id,
                            start_time=start_time.replace(microsecond=0), mode=mode)

    def complete_session(self, session_id: int, end_time: datetime,
                         break_minutes: int, duration_min: int) -> bool:
        """Close an open session. Returns False if it was not open."""
        cur = self.conn.execute(
            """UPDATE focus_sessions SET
                end_time = ?, break_minutes = ?, duration_min = ?
            WHERE id = ? AND end_time IS NULL""",
            (format_timestamp(end_time), break_minutes, duration_min, session_id),
        )
        self.conn.commit()
        return cur.rowcount == 1

    def get_session(self, session_id: int) -> Optional[FocusSession]:
        row = self.conn.execute(
            "SELECT * FROM focus_sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return self._row_to_session(row) if row else None

    def get_open_session(self, task_id: int) -> Optional[FocusSession]:
        row = self.conn.execute(
            "SELECT * FROM focus_sessions WHERE task_id = ? AND end_time IS NULL "
            "ORDER BY id LIMIT 1",
            (task_id,),
        ).fetchone()
        return self._row_to_session(row) if row else None

    def list_sessions_for_task(self, task_id: int, start_date: str,
                               end_date: str) -> List[FocusSession]:
        rows = self.conn.execute(
            "SELECT * FROM focus_sessions "
            "WHERE task_id = ? AND substr(start_time, 1, 10) BETWEEN ? AND ? "
            "ORDER BY start_time, id",
            (task_id, start_date, end_date),
        ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def list_completed_session_rows(self, day: str) -> List[sqlite3.Row]:
        """
        Raw completed-session rows for one day, in session order, with the
        task name joined in. Timestamps are left as stored so scanners can
        skip rows that fail to parse.
        """
        return self.conn.execute(
            """SELECT s.id, s.task_id, s.start_time, s.end_time,
                      s.break_minutes, s.duration_min, s.mode,
                      t.name AS task_name
            FROM focus_sessions s
            LEFT JOIN tasks t ON s.task_id = t.id
            WHERE substr(s.start_time, 1, 10) = ? AND s.end_time IS NOT NULL
            ORDER BY s.start_time, s.id""",
            (day,),
        ).fetchall()

    def task_day_totals(self, task_id: int, day: str) -> Tuple[int, int]:
        """(completed session count, summed minutes) for a task on a day."""
        row = self.conn.execute(
            """SELECT COUNT(*), COALESCE(SUM(duration_min), 0)
            FROM focus_sessions
            WHERE task_id = ? AND substr(start_time, 1, 10) = ?
              AND end_time IS NOT NULL""",
            (task_id, day),
        ).fetchone()
        return row[0], row[1]

    def count_distinct_tasks_on(self, day: str) -> int:
        row = self.conn.execute(
            """SELECT COUNT(DISTINCT task_id) FROM focus_sessions
            WHERE substr(start_time, 1, 10) = ? AND end_time IS NOT NULL""",
            (day,),
        ).fetchone()
        return row[0]

    def session_totals(self, mode: Optional[str] = None) -> Tuple[int, int]:
        """All-time (completed session count, summed minutes), optionally by mode."""
        query = ("SELECT COUNT(*), COALESCE(SUM(duration_min), 0) "
                 "FROM focus_sessions WHERE end_time IS NOT NULL")
        params: list = []
        if mode is not None:
            query += " AND mode = ?"
            params.append(mode)
        row = self.conn.execute(query, params).fetchone()
        return row[0], row[1]

    # ── Daily aggregates ────────────────────────────────────────────────────

    def upsert_daily_aggregate(self, agg: DailyAggregate) -> None:
        """Replace every column of the row for agg.date. Caller commits."""
        self.conn.execute(
            """INSERT INTO daily_aggregates (
                date, pomodoro_count, custom_count, total_focus_sessions,
                pomodoro_minutes, custom_minutes, total_focus_minutes,
                total_break_minutes, tomato_harvests, time_ranges
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(date) DO UPDATE SET
                pomodoro_count = excluded.pomodoro_count,
                custom_count = excluded.custom_count,
                total_focus_sessions = excluded.total_focus_sessions,
                pomodoro_minutes = excluded.pomodoro_minutes,
                custom_minutes = excluded.custom_minutes,
                total_focus_minutes = excluded.total_focus_minutes,
                total_break_minutes = excluded.total_break_minutes,
                tomato_harvests = excluded.tomato_harvests,
                time_ranges = excluded.time_ranges""",
            (
                agg.date,
                agg.pomodoro_count,
                agg.custom_count,
                agg.total_focus_sessions,
                agg.pomodoro_minutes,
                agg.custom_minutes,
                agg.total_focus_minutes,
                agg.total_break_minutes,
                agg.tomato_harvests,
                dump_time_ranges(agg.time_ranges),
            ),
        )

    def get_daily_aggregate(self, day: str) -> Optional[DailyAggregate]:
        row = self.conn.execute(
            "SELECT * FROM daily_aggregates WHERE date = ?", (day,)
        ).fetchone()
        return self._row_to_daily(row) if row else None

    def list_daily_aggregates(self, start_date: str,
                              end_date: str) -> List[DailyAggregate]:
        rows = self.conn.execute(
            "SELECT * FROM daily_aggregates WHERE date BETWEEN ? AND ? ORDER BY date",
            (start_date, end_date),
        ).fetchall()
        return [self._row_to_daily(r) for r in rows]

    def list_active_day_minutes(self, start_date: str,
                                before_date: str) -> List[int]:
        """total_focus_minutes of days in [start_date, before_date) with focus."""
        rows = self.conn.execute(
            """SELECT total_focus_minutes FROM daily_aggregates
            WHERE date >= ? AND date < ? AND total_focus_minutes > 0
            ORDER BY date""",
            (start_date, before_date),
        ).fetchall()
        return [r[0] for r in rows]

    def has_focus_on(self, day: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM daily_aggregates WHERE date = ? AND total_focus_minutes > 0",
            (day,),
        ).fetchone()
        return row is not None

    # ── Event aggregates ────────────────────────────────────────────────────

    def get_event_aggregate(self, task_id: int, day: str) -> Optional[EventAggregate]:
        row = self.conn.execute(
            "SELECT * FROM event_aggregates WHERE task_id = ? AND date = ?",
            (task_id, day),
        ).fetchone()
        return self._row_to_event(row) if row else None

    def upsert_event_aggregate(self, agg: EventAggregate) -> None:
        """Caller commits."""
        self.conn.execute(
            """INSERT INTO event_aggregates
                (task_id, date, focus_count, total_minutes, mode, completed)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(task_id, date) DO UPDATE SET
                focus_count = excluded.focus_count,
                total_minutes = excluded.total_minutes,
                mode = excluded.mode,
                completed = excluded.completed""",
            (agg.task_id, agg.date, agg.focus_count, agg.total_minutes,
             agg.mode, int(agg.completed)),
        )

    def delete_event_aggregate(self, task_id: int, day: str) -> None:
        """Caller commits."""
        self.conn.execute(
            "DELETE FROM event_aggregates WHERE task_id = ? AND date = ?",
            (task_id, day),
        )

    def list_event_aggregates(self, start_date: str, end_date: str,
                              task_id: Optional[int] = None) -> List[EventAggregate]:
        query = "SELECT * FROM event_aggregates WHERE date BETWEEN ? AND ?"
        params: list = [start_date, end_date]
        if task_id is not None:
            query += " AND task_id = ?"
            params.append(task_id)
        query += " ORDER BY date, task_id"
        rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_event(r) for r in rows]

    def distinct_event_task_ids(self, start_date: str, end_date: str) -> List[int]:
        rows = self.conn.execute(
            "SELECT DISTINCT task_id FROM event_aggregates "
            "WHERE date BETWEEN ? AND ? ORDER BY task_id",
            (start_date, end_date),
        ).fetchall()
        return [r[0] for r in rows]

    def count_completed_event_tasks_on(self, day: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(DISTINCT task_id) FROM event_aggregates "
            "WHERE date = ? AND completed = 1",
            (day,),
        ).fetchone()
        return row[0]

    # ── Row mappers ─────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"], name=row["name"], mode=row["mode"],
            status=row["status"],
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
            completed_at=_parse_dt(row["completed_at"]),
        )

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> FocusSession:
        return FocusSession(
            id=row["id"], task_id=row["task_id"],
            start_time=_parse_dt(row["start_time"]),
            end_time=_parse_dt(row["end_time"]),
            break_minutes=row["break_minutes"] or 0,
            duration_min=row["duration_min"] or 0,
            mode=row["mode"],
        )

    @staticmethod
    def _row_to_daily(row: sqlite3.Row) -> DailyAggregate:
        return DailyAggregate(
            id=row["id"], date=row["date"],
            pomodoro_count=row["pomodoro_count"],
            custom_count=row["custom_count"],
            total_focus_sessions=row["total_focus_sessions"],
            pomodoro_minutes=row["pomodoro_minutes"],
            custom_minutes=row["custom_minutes"],
            total_focus_minutes=row["total_focus_minutes"],
            total_break_minutes=row["total_break_minutes"],
            tomato_harvests=row["tomato_harvests"],
            time_ranges=load_time_ranges(row["time_ranges"]),
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> EventAggregate:
        return EventAggregate(
            id=row["id"], task_id=row["task_id"], date=row["date"],
            focus_count=row["focus_count"],
            total_minutes=row["total_minutes"],
            mode=row["mode"],
            completed=bool(row["completed"]),
        )


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The Repository is the ONLY place raw SQL queries live. Engines and
#   services call methods like repo.task_day_totals() instead of writing SQL.
#
# Key methods:
#   - Tasks / sessions: the raw log and its task collaborator.
#   - upsert_daily_aggregate / upsert_event_aggregate: whole-row replace via
#     ON CONFLICT ... DO UPDATE. Only the rollup engines call these, inside
#     transaction().
#   - list_completed_session_rows(): raw rows for the daily scan, ordered by
#     start time; open sessions (end_time IS NULL) are filtered in SQL.
#
# Data flow:
#   Engine -> repo.transaction() -> reads -> upsert -> commit (or rollback)
