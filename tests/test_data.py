"""Unit tests for the data layer (database, repository, time formats)."""

import sqlite3
import pytest
from datetime import datetime, timedelta, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from focusledger.data.database import Database, SCHEMA_SQL
from focusledger.data.repository import Repository
from focusledger.data.models import DailyAggregate, SessionMode, TaskStatus
from focusledger.data import timefmt
from focusledger.errors import StorageError, ValidationError


@pytest.fixture
def repo():
    """Create an in-memory database for testing."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Repository(conn)


START = datetime(2024, 3, 1, 9, 0, 0)


class TestDatabase:
    def test_connect_creates_tables(self):
        db = Database(db_path=Path(":memory:"))
        conn = db.connect()
        names = {r["name"] for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"tasks", "focus_sessions", "daily_aggregates",
                "event_aggregates"} <= names
        assert db.connect() is conn
        db.close()
        assert db.conn is None

    def test_file_database_reopens(self, tmp_path):
        path = tmp_path / "ledger.db"
        db = Database(db_path=path)
        Repository(db.connect()).create_task("Write", SessionMode.CUSTOM)
        db.close()

        db2 = Database(db_path=path)
        tasks = Repository(db2.connect()).list_tasks()
        assert [t.name for t in tasks] == ["Write"]
        db2.close()


class TestTask:
    def test_create_task(self, repo: Repository):
        task = repo.create_task("Fix bug #42", SessionMode.POMODORO, now=START)
        assert task.id is not None
        assert task.name == "Fix bug #42"
        assert task.status == TaskStatus.PENDING
        assert task.created_at == START
        assert task.completed_at is None

    def test_completed_at_follows_status(self, repo: Repository):
        task = repo.create_task("Essay", SessionMode.CUSTOM, now=START)
        done_at = START + timedelta(days=2)

        repo.update_task_status(task.id, TaskStatus.COMPLETED, now=done_at)
        assert repo.get_task(task.id).completed_at == done_at
        assert repo.count_tasks_completed_on("2024-03-03") == 1

        repo.update_task_status(task.id, TaskStatus.PENDING, now=done_at)
        assert repo.get_task(task.id).completed_at is None
        assert repo.count_tasks_completed_on("2024-03-03") == 0

    def test_get_task_status_missing(self, repo: Repository):
        assert repo.get_task_status(999) is None

    def test_delete_task_cascades_sessions(self, repo: Repository):
        task = repo.create_task("Temp", SessionMode.POMODORO)
        s = repo.create_session(task.id, SessionMode.POMODORO, START)
        repo.delete_task(task.id)
        assert repo.get_task(task.id) is None
        assert repo.get_session(s.id) is None


class TestSession:
    def test_create_and_complete(self, repo: Repository):
        task = repo.create_task("Read", SessionMode.POMODORO)
        s = repo.create_session(task.id, SessionMode.POMODORO, START)
        assert s.is_open
        assert repo.get_open_session(task.id).id == s.id

        end = START + timedelta(minutes=30)
        assert repo.complete_session(s.id, end, 5, 25) is True

        stored = repo.get_session(s.id)
        assert stored.end_time == end
        assert stored.break_minutes == 5
        assert stored.duration_min == 25
        assert repo.get_open_session(task.id) is None

    def test_complete_only_once(self, repo: Repository):
        task = repo.create_task("Read", SessionMode.POMODORO)
        s = repo.create_session(task.id, SessionMode.POMODORO, START)
        end = START + timedelta(minutes=25)
        assert repo.complete_session(s.id, end, 0, 25) is True
        assert repo.complete_session(s.id, end + timedelta(minutes=5), 0, 30) is False
        assert repo.get_session(s.id).duration_min == 25

    def test_list_sessions_for_task(self, repo: Repository):
        task = repo.create_task("Read", SessionMode.POMODORO)
        for day in range(3):
            repo.create_session(task.id, SessionMode.POMODORO,
                                START + timedelta(days=day))
        sessions = repo.list_sessions_for_task(task.id, "2024-03-02", "2024-03-03")
        assert [s.start_time.day for s in sessions] == [2, 3]

    def test_timestamps_stored_canonically(self, repo: Repository):
        task = repo.create_task("Read", SessionMode.POMODORO)
        repo.create_session(task.id, SessionMode.POMODORO,
                            START.replace(microsecond=123456))
        raw = repo.conn.execute("SELECT start_time FROM focus_sessions").fetchone()[0]
        assert raw == "2024-03-01T09:00:00"

    def test_corrupt_session_timestamp_is_storage_error(self, repo: Repository):
        task = repo.create_task("Read", SessionMode.POMODORO)
        repo.conn.execute(
            "INSERT INTO focus_sessions (task_id, start_time, mode) VALUES (?, ?, ?)",
            (task.id, "2024-03-01 at nine", SessionMode.POMODORO),
        )
        session_id = repo.conn.execute("SELECT MAX(id) FROM focus_sessions").fetchone()[0]
        with pytest.raises(StorageError):
            repo.get_session(session_id)
        with pytest.raises(StorageError):
            repo.list_sessions_for_task(task.id, "2024-03-01", "2024-03-01")


class TestDailyAggregate:
    def test_upsert_replaces_row(self, repo: Repository):
        with repo.transaction():
            repo.upsert_daily_aggregate(DailyAggregate(
                date="2024-03-01", total_focus_sessions=1, total_focus_minutes=25,
                time_ranges=["09:00~09:25"]))
        with repo.transaction():
            repo.upsert_daily_aggregate(DailyAggregate(
                date="2024-03-01", total_focus_sessions=2, total_focus_minutes=50,
                time_ranges=["09:00~09:25", "10:00~10:25"]))

        rows = repo.list_daily_aggregates("2024-03-01", "2024-03-01")
        assert len(rows) == 1
        assert rows[0].total_focus_minutes == 50
        assert rows[0].time_ranges == ["09:00~09:25", "10:00~10:25"]
        assert repo.has_focus_on("2024-03-01")
        assert not repo.has_focus_on("2024-03-02")

    def test_corrupt_time_ranges_load_as_empty(self, repo: Repository):
        with repo.transaction():
            repo.upsert_daily_aggregate(DailyAggregate(date="2024-03-01",
                                                       total_focus_minutes=10))
        repo.conn.execute(
            "UPDATE daily_aggregates SET time_ranges = 'not json' WHERE date = ?",
            ("2024-03-01",))
        repo.conn.commit()
        assert repo.get_daily_aggregate("2024-03-01").time_ranges == []

    def test_active_day_minutes_excludes_end(self, repo: Repository):
        with repo.transaction():
            for day, minutes in [("2024-03-01", 30), ("2024-03-02", 0),
                                 ("2024-03-03", 60), ("2024-03-04", 90)]:
                repo.upsert_daily_aggregate(DailyAggregate(
                    date=day, total_focus_minutes=minutes))
        assert repo.list_active_day_minutes("2024-03-01", "2024-03-04") == [30, 60]


class TestTransaction:
    def test_rollback_on_error(self, repo: Repository):
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.upsert_daily_aggregate(DailyAggregate(date="2024-03-01"))
                raise RuntimeError("boom")
        assert repo.get_daily_aggregate("2024-03-01") is None
        assert not repo.conn.in_transaction

    def test_nested_joins_outer(self, repo: Repository):
        with repo.transaction():
            with repo.transaction():
                repo.upsert_daily_aggregate(DailyAggregate(date="2024-03-01"))
            assert repo.conn.in_transaction
        assert repo.get_daily_aggregate("2024-03-01") is not None


class TestTimeFormats:
    def test_parse_date_rejects_garbage(self):
        with pytest.raises(ValidationError):
            timefmt.parse_date("2024-13-01")
        with pytest.raises(ValidationError):
            timefmt.parse_date("03/01/2024")

    def test_parse_date_requires_zero_padding(self):
        for value in ("2024-3-1", "2024-03-1", "2024-3-01", " 2024-03-01", "2024-03-01 "):
            with pytest.raises(ValidationError):
                timefmt.parse_date(value)
        assert timefmt.parse_date("2024-03-01").isoformat() == "2024-03-01"

    def test_validate_range(self):
        timefmt.validate_range("2024-03-01", "2024-03-01")
        with pytest.raises(ValidationError):
            timefmt.validate_range("2024-03-02", "2024-03-01")

    def test_iter_dates_crosses_month(self):
        assert list(timefmt.iter_dates("2024-02-28", "2024-03-01")) == [
            "2024-02-28", "2024-02-29", "2024-03-01"]

    def test_parse_timestamp_legacy_layouts(self):
        expected = datetime(2024, 3, 1, 9, 0, 0)
        assert timefmt.parse_timestamp("2024-03-01T09:00:00") == expected
        assert timefmt.parse_timestamp("2024-03-01 09:00:00") == expected
        assert timefmt.parse_timestamp("2024-03-01T09:00:00.5") == expected.replace(microsecond=500000)

    def test_parse_timestamp_offsets_become_local_naive(self):
        utc_nine = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
        local = utc_nine.astimezone().replace(tzinfo=None)

        assert timefmt.parse_timestamp("2024-03-01T09:00:00Z") == local
        assert timefmt.parse_timestamp("2024-03-01T10:00:00+01:00") == local
        assert timefmt.parse_timestamp("2024-03-01T09:00:00.5Z") == local.replace(microsecond=500000)
        nanos = timefmt.parse_timestamp("2024-03-01T09:00:00.123456789Z")
        assert nanos == local.replace(microsecond=123456)
        assert nanos.tzinfo is None

    def test_parse_timestamp_invalid(self):
        with pytest.raises(ValueError):
            timefmt.parse_timestamp("yesterday morning")
        with pytest.raises(ValueError):
            timefmt.parse_timestamp("")

    def test_time_range_and_start_hour(self):
        tr = timefmt.format_time_range(9, 0, 9, 25)
        assert tr == "09:00~09:25"
        assert timefmt.range_start(tr) == "09:00"
        assert timefmt.range_start_hour(tr) == 9
        assert timefmt.range_start_hour("xx:00~09:25") == -1
        assert timefmt.range_start_hour("") == -1

    def test_load_time_ranges_tolerates_bad_values(self):
        assert timefmt.load_time_ranges('["09:00~09:25"]') == ["09:00~09:25"]
        assert timefmt.load_time_ranges("") == []
        assert timefmt.load_time_ranges("{broken") == []
        assert timefmt.load_time_ranges('{"a": 1}') == []
