"""
Behavior Feature Extractor: per-day feature vectors for the analytics UI
and the AI-facing export.

Features are computed on demand from the stored DailyAggregate, the
session log and task metadata; nothing here writes to the database.
Reading never triggers a recompute: a stale aggregate yields a stale
feature until the next rollup.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from typing import List, Optional, Tuple

import numpy as np

from focusledger.analytics.streaks import StreakCalculator
from focusledger.data.models import (
    BehaviorFeature, SessionDetail, Verdict, WeeklySummary,
)
from focusledger.data.repository import Repository
from focusledger.data.timefmt import (
    iter_dates, parse_date, parse_timestamp, range_start, range_start_hour,
    shift_date, time_range_between, validate_range,
)
from focusledger.errors import StorageError

logger = logging.getLogger(__name__)

TRAILING_WINDOW_DAYS = 7
BETTER_RATIO = 1.2
WORSE_RATIO = 0.8
PEAK_HOUR_MIN_SESSIONS = 2
UNKNOWN_TASK_NAME = "Unknown task"


# ── Pure helpers ────────────────────────────────────────────────────────────

def compare_to_average(today_minutes: int,
                       avg_minutes: Optional[float]) -> Tuple[str, float]:
    """
    Verdict and ratio of today against the trailing average.

    ratio > 1.2 is better, ratio < 0.8 is worse, anything else (both
    boundaries included) is the same. No baseline means ('same', 1.0).
    """
    if not avg_minutes:
        return Verdict.SAME, 1.0
    ratio = today_minutes / avg_minutes
    if ratio > BETTER_RATIO:
        return Verdict.BETTER, ratio
    if ratio < WORSE_RATIO:
        return Verdict.WORSE, ratio
    return Verdict.SAME, ratio


def hour_label(hour: int) -> str:
    """9 -> '09:00-10:00'"""
    return f"{hour:02d}:00-{hour + 1:02d}:00"


def extract_time_features(time_ranges: List[str]) -> Tuple[str, str, List[str], str]:
    """
    (first focus, last focus, peak hours, best hour) from a day's ranges.

    First/last are the start times of the first and last range in session
    order. Peak hours have at least two sessions starting in them, listed
    in ascending order. The best hour has the most sessions; ties go to
    the earliest hour.
    """
    if not time_ranges:
        return "", "", [], ""

    first = range_start(time_ranges[0])
    last = range_start(time_ranges[-1])

    hour_counts = Counter()
    for tr in time_ranges:
        hour = range_start_hour(tr)
        if hour >= 0:
            hour_counts[hour] += 1

    if not hour_counts:
        return first, last, [], ""

    peak_hours = [hour_label(h) for h in sorted(hour_counts)
                  if hour_counts[h] >= PEAK_HOUR_MIN_SESSIONS]
    best = min(hour_counts, key=lambda h: (-hour_counts[h], h))
    return first, last, peak_hours, hour_label(best)


def empty_feature(day: str) -> BehaviorFeature:
    """All-zero feature for a day without focus data."""
    return BehaviorFeature(date=day)


# ── Extractor ───────────────────────────────────────────────────────────────

class BehaviorFeatureExtractor:
    """Composes aggregates, session detail and streaks into BehaviorFeature."""

    def __init__(self, repo: Repository, streaks: StreakCalculator) -> None:
        self.repo = repo
        self.streaks = streaks

    # ── Public API ──────────────────────────────────────────────────────────

    def extract(self, day: str, include_sessions: bool = True) -> BehaviorFeature:
        """
        Feature vector for ``day``.

        A day with no stored aggregate, or an all-zero one, returns the
        empty feature. Only a failure to read the aggregate itself raises
        (StorageError); secondary lookups degrade to zero with a log line.
        """
        parse_date(day)
        try:
            stat = self.repo.get_daily_aggregate(day)
        except sqlite3.Error as exc:
            raise StorageError(f"Reading daily aggregate for {day} failed") from exc

        if stat is None or stat.is_empty:
            logger.debug("No focus data for %s, returning empty feature", day)
            return empty_feature(day)

        first, last, peak_hours, best_hour = extract_time_features(stat.time_ranges)
        verdict, ratio = compare_to_average(stat.total_focus_minutes,
                                            self.trailing_average(day))

        sessions = stat.total_focus_sessions
        feature = BehaviorFeature(
            date=day,
            total_focus_minutes=stat.total_focus_minutes,
            session_count=sessions,
            avg_session_length=stat.total_focus_minutes / sessions,
            pomodoro_ratio=stat.pomodoro_count / sessions,
            break_ratio=(stat.total_break_minutes / stat.total_focus_minutes
                         if stat.total_focus_minutes > 0 else 0.0),
            first_focus_time=first,
            last_focus_time=last,
            peak_hours=peak_hours,
            best_hour=best_hour,
            task_diversity=self._count_or_zero(self.repo.count_distinct_tasks_on, day),
            completed_tasks=self._count_or_zero(self.repo.count_tasks_completed_on, day),
            compared_to_avg=verdict,
            compared_to_avg_ratio=ratio,
            streak_days=self.streaks.streak_best_effort(day),
            sessions=self.session_details(day) if include_sessions else [],
        )

        logger.info("Behavior feature %s: %d min, %d sessions, pomodoro %.1f%%, %s",
                    day, feature.total_focus_minutes, feature.session_count,
                    feature.pomodoro_ratio * 100, feature.compared_to_avg)
        return feature

    def extract_range(self, start_date: str, end_date: str,
                      include_sessions: bool = False) -> List[BehaviorFeature]:
        """One feature per day, inclusive. Days that fail are logged and skipped."""
        validate_range(start_date, end_date)
        features: List[BehaviorFeature] = []
        for day in iter_dates(start_date, end_date):
            try:
                features.append(self.extract(day, include_sessions=include_sessions))
            except StorageError as exc:
                logger.error("Behavior feature for %s failed: %s", day, exc)
        return features

    def export_text(self, day: str) -> str:
        """Human/AI-readable report for ``day``."""
        return render_text(self.extract(day, include_sessions=True))

    def weekly_summary(self, end_date: str) -> WeeklySummary:
        """Totals over the seven days ending at ``end_date``."""
        start_date = shift_date(end_date, -(TRAILING_WINDOW_DAYS - 1))
        features = self.extract_range(start_date, end_date)

        summary = WeeklySummary(start_date=start_date, end_date=end_date,
                                days=len(features))
        if not features:
            return summary

        summary.total_focus_minutes = sum(f.total_focus_minutes for f in features)
        summary.total_sessions = sum(f.session_count for f in features)
        summary.avg_daily_minutes = summary.total_focus_minutes // len(features)
        # max() keeps the first of equal elements, i.e. the earliest day
        summary.best_day = max(features, key=lambda f: f.total_focus_minutes)
        return summary

    # ── Building blocks ─────────────────────────────────────────────────────

    def trailing_average(self, day: str) -> Optional[float]:
        """
        Mean total minutes over the active days in the 7 days before
        ``day`` (exclusive). None when there is no such day.
        """
        window_start = shift_date(day, -TRAILING_WINDOW_DAYS)
        try:
            minutes = self.repo.list_active_day_minutes(window_start, day)
        except sqlite3.Error as exc:
            logger.warning("Trailing average for %s unavailable: %s", day, exc)
            return None
        if not minutes:
            return None
        return float(np.mean(minutes))

    def session_details(self, day: str) -> List[SessionDetail]:
        """Completed sessions of ``day`` in order, with task names resolved."""
        try:
            rows = self.repo.list_completed_session_rows(day)
        except sqlite3.Error as exc:
            logger.warning("Session details for %s unavailable: %s", day, exc)
            return []

        details: List[SessionDetail] = []
        for row in rows:
            try:
                start = parse_timestamp(row["start_time"])
                end = parse_timestamp(row["end_time"])
            except ValueError as exc:
                logger.warning("Skipping session %s in details: %s", row["id"], exc)
                continue
            details.append(SessionDetail(
                start_time=row["start_time"],
                end_time=row["end_time"],
                time_range=time_range_between(start, end),
                duration_min=row["duration_min"] or 0,
                break_minutes=row["break_minutes"] or 0,
                mode=row["mode"],
                task_id=row["task_id"],
                task_name=row["task_name"] or UNKNOWN_TASK_NAME,
            ))
        return details

    @staticmethod
    def _count_or_zero(query, day: str) -> int:
        try:
            return query(day)
        except sqlite3.Error as exc:
            logger.warning("%s(%s) failed, using 0: %s", query.__name__, day, exc)
            return 0


# ── Text export ─────────────────────────────────────────────────────────────

def render_text(feature: BehaviorFeature) -> str:
    """Format a feature as a sectioned report. No logic beyond formatting."""
    change_pct = (feature.compared_to_avg_ratio - 1) * 100
    lines = [
        f"# Focus behavior report - {feature.date}",
        "",
        "## Totals",
        f"- Total focus time: {feature.total_focus_minutes} min",
        f"- Sessions: {feature.session_count}",
        f"- Average session length: {feature.avg_session_length:.0f} min",
        f"- Pomodoro share: {feature.pomodoro_ratio * 100:.1f}%",
        "",
        "## Time of day",
        f"- First focus: {feature.first_focus_time or '-'}",
        f"- Last focus: {feature.last_focus_time or '-'}",
        f"- Best hour: {feature.best_hour or '-'}",
        f"- Peak hours: {', '.join(feature.peak_hours) or 'none'}",
        "",
        "## Tasks",
        f"- Distinct tasks: {feature.task_diversity}",
        f"- Tasks completed: {feature.completed_tasks}",
        f"- Break ratio: {feature.break_ratio * 100:.1f}%",
        "",
        "## Compared to the last 7 days",
        f"- Verdict: {feature.compared_to_avg} ({change_pct:+.1f}%)",
        "",
        "## Consistency",
        f"- Streak: {feature.streak_days} days",
        "",
        "## Sessions",
    ]
    if not feature.sessions:
        lines.append("(no completed sessions)")
    for i, s in enumerate(feature.sessions, start=1):
        start, _, end = s.time_range.partition("~")
        lines.append(
            f"{i}. {start} - {end} | {s.mode} | {s.duration_min} min | task: {s.task_name}"
        )
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Builds the per-day "behavior feature" the analytics view and the AI
#   export consume: totals, ratios, time-of-day shape, task spread, trend
#   against the previous week and the current streak.
#
# Key pieces:
#   - extract_time_features(): bins the start hour of each "HH:MM~HH:MM"
#     range with a Counter; peak = hours with >= 2 sessions, best = the
#     busiest hour (earliest wins a tie).
#   - compare_to_average(): strict > 1.2 / < 0.8 thresholds, so exactly
#     0.8 or 1.2 stays "same".
#   - trailing_average(): numpy mean over the active days in the previous
#     seven, today excluded.
#   - render_text(): formatting only; everything it prints is already in
#     the BehaviorFeature.
#
# Data flow:
#   StatsService.extract_behavior_feature(day) -> extract() ->
#   get_daily_aggregate + session log + StreakCalculator -> BehaviorFeature
