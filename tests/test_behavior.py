"""Unit tests for the behavior feature extractor and its text export."""

import sqlite3
import pytest
from datetime import datetime, timedelta
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from focusledger.analytics.behavior import (
    BehaviorFeatureExtractor, compare_to_average, extract_time_features,
    hour_label, render_text,
)
from focusledger.analytics.daily_rollup import DailyRollupEngine
from focusledger.analytics.streaks import StreakCalculator
from focusledger.data.database import SCHEMA_SQL
from focusledger.data.models import DailyAggregate, SessionMode, TaskStatus, Verdict
from focusledger.data.repository import Repository
from focusledger.data.timefmt import format_time_range, range_start_hour
from focusledger.errors import StorageError, ValidationError


DAY = "2024-03-10"
BASE = datetime(2024, 3, 10)


@pytest.fixture
def repo():
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Repository(conn)


@pytest.fixture
def extractor(repo):
    return BehaviorFeatureExtractor(repo, StreakCalculator(repo))


def _add_session(repo, task_id, start, minutes, mode=SessionMode.POMODORO, break_min=0):
    s = repo.create_session(task_id, mode, start)
    repo.complete_session(s.id, start + timedelta(minutes=minutes + break_min),
                          break_min, minutes)


@pytest.fixture
def busy_day(repo):
    """Four sessions on DAY, a 100-minute day before it, and an old outlier."""
    writing = repo.create_task("Writing", SessionMode.POMODORO)
    review = repo.create_task("Review", SessionMode.CUSTOM)

    _add_session(repo, writing.id, BASE.replace(hour=9), 25, break_min=5)
    _add_session(repo, writing.id, BASE.replace(hour=9, minute=40), 25)
    _add_session(repo, review.id, BASE.replace(hour=11), 60, mode=SessionMode.CUSTOM)
    _add_session(repo, writing.id, BASE.replace(hour=14, minute=10), 25)
    repo.update_task_status(writing.id, TaskStatus.COMPLETED,
                            now=BASE.replace(hour=18))

    with repo.transaction():
        repo.upsert_daily_aggregate(DailyAggregate(
            date="2024-03-09", pomodoro_count=1, total_focus_sessions=1,
            pomodoro_minutes=100, total_focus_minutes=100,
            time_ranges=["20:00~21:40"]))
        # Outside the 7-day window, must not move the average
        repo.upsert_daily_aggregate(DailyAggregate(
            date="2024-03-02", total_focus_sessions=1, total_focus_minutes=1000))
    DailyRollupEngine(repo).recompute(DAY)
    return writing, review


class TestCompareToAverage:
    def test_better(self):
        verdict, ratio = compare_to_average(121, 100.0)
        assert verdict == Verdict.BETTER
        assert ratio == pytest.approx(1.21)

    def test_lower_boundary_is_same(self):
        verdict, ratio = compare_to_average(80, 100.0)
        assert verdict == Verdict.SAME
        assert ratio == pytest.approx(0.8)

    def test_upper_boundary_is_same(self):
        assert compare_to_average(120, 100.0)[0] == Verdict.SAME

    def test_worse(self):
        assert compare_to_average(79, 100.0)[0] == Verdict.WORSE

    def test_no_baseline(self):
        assert compare_to_average(50, None) == (Verdict.SAME, 1.0)
        assert compare_to_average(50, 0.0) == (Verdict.SAME, 1.0)


class TestTimeFeatures:
    def test_round_trip_range(self):
        tr = format_time_range(9, 0, 9, 25)
        assert tr == "09:00~09:25"
        assert range_start_hour(tr) == 9

    def test_hour_label(self):
        assert hour_label(9) == "09:00-10:00"
        assert hour_label(23) == "23:00-24:00"

    def test_peak_and_best(self):
        ranges = ["09:00~09:25", "09:30~09:55", "14:00~14:25",
                  "14:30~14:55", "16:00~16:25"]
        first, last, peaks, best = extract_time_features(ranges)
        assert first == "09:00"
        assert last == "16:00"
        assert peaks == ["09:00-10:00", "14:00-15:00"]
        # tie between 9 and 14 goes to the earlier hour
        assert best == "09:00-10:00"

    def test_no_peak_with_single_sessions(self):
        _, _, peaks, best = extract_time_features(["08:00~08:25", "13:00~13:25"])
        assert peaks == []
        assert best == "08:00-09:00"

    def test_empty(self):
        assert extract_time_features([]) == ("", "", [], "")

    def test_malformed_ranges_ignored(self):
        first, _, peaks, best = extract_time_features(["junk", "10:00~10:25"])
        assert first == ""
        assert peaks == []
        assert best == "10:00-11:00"


class TestExtract:
    def test_full_feature(self, extractor, busy_day):
        f = extractor.extract(DAY)
        assert f.total_focus_minutes == 135
        assert f.session_count == 4
        assert f.avg_session_length == pytest.approx(33.75)
        assert f.pomodoro_ratio == pytest.approx(0.75)
        assert f.break_ratio == pytest.approx(5 / 135)
        assert f.first_focus_time == "09:00"
        assert f.last_focus_time == "14:10"
        assert f.peak_hours == ["09:00-10:00"]
        assert f.best_hour == "09:00-10:00"
        assert f.task_diversity == 2
        assert f.completed_tasks == 1
        assert f.compared_to_avg == Verdict.BETTER
        assert f.compared_to_avg_ratio == pytest.approx(1.35)
        assert f.streak_days == 2

    def test_session_details(self, extractor, busy_day):
        sessions = extractor.extract(DAY).sessions
        assert [s.time_range for s in sessions] == [
            "09:00~09:30", "09:40~10:05", "11:00~12:00", "14:10~14:35"]
        assert sessions[0].task_name == "Writing"
        assert sessions[0].break_minutes == 5
        assert sessions[2].task_name == "Review"
        assert sessions[2].mode == SessionMode.CUSTOM

    def test_absent_day_is_empty(self, extractor):
        f = extractor.extract("2024-04-01")
        assert f.total_focus_minutes == 0
        assert f.session_count == 0
        assert f.compared_to_avg == Verdict.SAME
        assert f.compared_to_avg_ratio == 1.0
        assert f.peak_hours == []
        assert f.sessions == []

    def test_zeroed_day_matches_absent_day(self, repo, extractor):
        DailyRollupEngine(repo).recompute("2024-04-01")
        zeroed = extractor.extract("2024-04-01").to_dict()
        absent = extractor.extract("2024-04-02").to_dict()
        zeroed.pop("date")
        absent.pop("date")
        assert zeroed == absent

    def test_no_history_defaults_to_same(self, repo, extractor):
        task = repo.create_task("Solo", SessionMode.POMODORO)
        _add_session(repo, task.id, datetime(2024, 5, 1, 9), 25)
        DailyRollupEngine(repo).recompute("2024-05-01")
        f = extractor.extract("2024-05-01")
        assert f.compared_to_avg == Verdict.SAME
        assert f.compared_to_avg_ratio == 1.0
        assert f.streak_days == 1

    def test_secondary_lookup_failure_degrades(self, repo, extractor, busy_day):
        def broken(day):
            raise sqlite3.OperationalError("database is locked")

        repo.count_distinct_tasks_on = broken
        f = extractor.extract(DAY)
        assert f.task_diversity == 0
        assert f.total_focus_minutes == 135

    def test_aggregate_read_failure_raises(self, repo, extractor):
        def broken(day):
            raise sqlite3.OperationalError("database is locked")

        repo.get_daily_aggregate = broken
        with pytest.raises(StorageError):
            extractor.extract(DAY)

    def test_bad_date(self, extractor):
        with pytest.raises(ValidationError):
            extractor.extract("10/03/2024")
        with pytest.raises(ValidationError):
            extractor.extract("2024-3-10")

    def test_reading_does_not_recompute(self, repo, extractor, busy_day):
        writing, _ = busy_day
        _add_session(repo, writing.id, BASE.replace(hour=20), 25)
        assert extractor.extract(DAY).session_count == 4


class TestRangeAndSummary:
    def test_range_has_one_feature_per_day(self, extractor, busy_day):
        features = extractor.extract_range("2024-03-08", DAY)
        assert [f.date for f in features] == ["2024-03-08", "2024-03-09", DAY]
        assert [f.total_focus_minutes for f in features] == [0, 100, 135]
        assert all(f.sessions == [] for f in features)

    def test_range_rejects_reversed_dates(self, extractor):
        with pytest.raises(ValidationError):
            extractor.extract_range(DAY, "2024-03-01")

    def test_weekly_summary(self, extractor, busy_day):
        summary = extractor.weekly_summary(DAY)
        assert summary.start_date == "2024-03-04"
        assert summary.days == 7
        assert summary.total_focus_minutes == 235
        assert summary.avg_daily_minutes == 33
        assert summary.total_sessions == 5
        assert summary.best_day.date == DAY


class TestExportText:
    def test_sections(self, extractor, busy_day):
        text = extractor.export_text(DAY)
        assert text.startswith("# Focus behavior report - 2024-03-10\n")
        for heading in ("## Totals", "## Time of day", "## Tasks",
                        "## Compared to the last 7 days", "## Consistency",
                        "## Sessions"):
            assert heading in text
        assert "- Total focus time: 135 min" in text
        assert "- Verdict: better (+35.0%)" in text
        assert "- Streak: 2 days" in text
        assert "1. 09:00 - 09:30 | pomodoro | 25 min | task: Writing" in text
        assert "3. 11:00 - 12:00 | custom | 60 min | task: Review" in text

    def test_empty_day(self, extractor):
        text = extractor.export_text("2024-04-01")
        assert "- Total focus time: 0 min" in text
        assert "- Peak hours: none" in text
        assert "(no completed sessions)" in text

    def test_render_matches_feature(self, extractor, busy_day):
        f = extractor.extract(DAY)
        assert render_text(f) == extractor.export_text(DAY)
