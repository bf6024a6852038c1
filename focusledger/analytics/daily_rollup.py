"""
Daily Rollup Engine: rebuilds one date's DailyAggregate from the session log.

Every recompute is a full replace: the aggregate is a pure function of the
completed sessions that started on that date, so running it twice with no
new sessions stores identical values.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List

from focusledger.data.models import DailyAggregate, SessionMode
from focusledger.data.repository import Repository
from focusledger.data.timefmt import parse_date, parse_timestamp, time_range_between
from focusledger.errors import StorageError

logger = logging.getLogger(__name__)


class DailyRollupEngine:
    """Recomputes and upserts the DailyAggregate for a single date."""

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    def recompute(self, day: str) -> DailyAggregate:
        """
        Rebuild the aggregate for ``day`` (YYYY-MM-DD) and store it.

        A day without completed sessions is stored as an all-zero row.
        Raises ValidationError for a malformed date and StorageError when
        the store fails; in the latter case nothing is written.
        """
        parse_date(day)
        try:
            with self.repo.transaction():
                rows = self.repo.list_completed_session_rows(day)
                agg = self.build(day, rows)
                self.repo.upsert_daily_aggregate(agg)
        except sqlite3.Error as exc:
            logger.error("Daily rollup for %s failed: %s", day, exc)
            raise StorageError(f"Daily rollup for {day} failed") from exc

        logger.info(
            "Daily rollup %s: %d sessions (pomodoro=%d, custom=%d), %d min",
            day, agg.total_focus_sessions, agg.pomodoro_count,
            agg.custom_count, agg.total_focus_minutes,
        )
        return agg

    @staticmethod
    def build(day: str, rows: List[sqlite3.Row]) -> DailyAggregate:
        """Fold completed-session rows into an aggregate. No I/O."""
        agg = DailyAggregate(date=day)
        ranges: List[str] = []

        for row in rows:
            try:
                start = parse_timestamp(row["start_time"])
                end = parse_timestamp(row["end_time"])
            except ValueError as exc:
                logger.warning("Skipping session %s on %s: %s", row["id"], day, exc)
                continue

            duration = row["duration_min"] or 0
            if row["mode"] == SessionMode.POMODORO:
                agg.pomodoro_count += 1
                agg.pomodoro_minutes += duration
                agg.tomato_harvests += 1
            else:
                agg.custom_count += 1
                agg.custom_minutes += duration

            agg.total_focus_sessions += 1
            agg.total_focus_minutes += duration
            agg.total_break_minutes += row["break_minutes"] or 0
            ranges.append(time_range_between(start, end))

        agg.time_ranges = ranges
        return agg


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Turns the raw session log for one date into the per-day counters the
#   dashboard and the behavior extractor read.
#
# Key rules:
#   - Only completed sessions count (the SQL filters end_time IS NULL).
#   - One harvest per completed pomodoro-mode session, regardless of length.
#   - Rows whose timestamps do not parse are skipped with a warning.
#   - Read and upsert share one BEGIN IMMEDIATE transaction; any sqlite
#     error rolls it back and surfaces as StorageError.
#
# Data flow:
#   SessionService.complete_session() / RepairService -> recompute(day) ->
#   list_completed_session_rows -> build() -> upsert_daily_aggregate
