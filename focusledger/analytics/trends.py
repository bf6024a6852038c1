"""
Trend reporting over stored aggregates.

Read-only views for the statistics screens (pomodoro totals, yesterday's
summary, all-time summary, per-task workload trend) plus a small
next-day forecast of focus minutes.

Forecast strategy (same tiering the session predictor used):
  1. >= 8 active days in the window -> least-squares line, next point
  2. >= 3 active days               -> exponential moving average
  3. otherwise                      -> None (insufficient data)
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import Dict, List, Optional

import numpy as np

from focusledger.analytics.streaks import StreakCalculator
from focusledger.data.models import (
    DailyAggregate, DailySummary, OverallSummary, PomodoroStats, SessionMode,
    TrendPoint,
)
from focusledger.data.repository import Repository
from focusledger.data.timefmt import (
    iter_dates, range_start_hour, shift_date, validate_range,
)

logger = logging.getLogger(__name__)

MIN_SAMPLES_FOR_REGRESSION = 8
MIN_SAMPLES_FOR_AVERAGE = 3
DEFAULT_FORECAST_WINDOW = 14
SUMMARY_TREND_DAYS = 7


class TrendAnalyzer:

    def __init__(self, repo: Repository, streaks: StreakCalculator) -> None:
        self.repo = repo
        self.streaks = streaks

    # ── Reports ─────────────────────────────────────────────────────────────

    def pomodoro_stats(self, start_date: str, end_date: str) -> PomodoroStats:
        """Harvest totals, best harvest day and start-hour distribution."""
        validate_range(start_date, end_date)
        stats = self.repo.list_daily_aggregates(start_date, end_date)

        result = PomodoroStats()
        hours: Counter = Counter()
        for stat in stats:
            result.total_harvests += stat.tomato_harvests
            best = result.best_day
            if stat.tomato_harvests > (best.tomato_harvests if best else 0):
                result.best_day = stat
            result.trend.append(TrendPoint(
                date=stat.date,
                pomodoro_count=stat.pomodoro_count,
                tomato_harvests=stat.tomato_harvests,
                pomodoro_minutes=stat.pomodoro_minutes,
            ))
            for tr in stat.time_ranges:
                hour = range_start_hour(tr)
                if hour >= 0:
                    hours[hour] += 1

        result.hour_distribution = {h: hours[h] for h in sorted(hours)}
        return result

    def daily_summary(self, today: str) -> DailySummary:
        """Yesterday's aggregate plus the trend for [today-7, today]."""
        yesterday = shift_date(today, -1)
        stat = self.repo.get_daily_aggregate(yesterday) or DailyAggregate(date=yesterday)

        trend = []
        for day_stat in self.repo.list_daily_aggregates(
                shift_date(today, -SUMMARY_TREND_DAYS), today):
            trend.append(TrendPoint(
                date=day_stat.date,
                total_focus_minutes=day_stat.total_focus_minutes,
                pomodoro_minutes=day_stat.pomodoro_minutes,
                custom_minutes=day_stat.custom_minutes,
                pomodoro_count=day_stat.pomodoro_count,
                tomato_harvests=day_stat.tomato_harvests,
                completed_tasks=self.repo.count_completed_event_tasks_on(day_stat.date),
            ))
        return DailySummary(yesterday=stat, week_trend=trend)

    def overall_summary(self, today: str) -> OverallSummary:
        pomodoro_sessions, _ = self.repo.session_totals(SessionMode.POMODORO)
        _, total_minutes = self.repo.session_totals()
        return OverallSummary(
            total_pomodoro_sessions=pomodoro_sessions,
            total_focus_minutes=total_minutes,
            total_focus_hours=total_minutes / 60.0,
            streak_days=self.streaks.streak(today),
        )

    def event_trend(self, start_date: str, end_date: str) -> List[TrendPoint]:
        """Minutes per date summed over every task's EventAggregate."""
        validate_range(start_date, end_date)
        per_day: Dict[str, int] = defaultdict(int)
        for agg in self.repo.list_event_aggregates(start_date, end_date):
            per_day[agg.date] += agg.total_minutes
        return [TrendPoint(date=d, total_focus_minutes=m)
                for d, m in sorted(per_day.items())]

    # ── Forecast ────────────────────────────────────────────────────────────

    def daily_minutes(self, start_date: str, end_date: str) -> List[int]:
        """Total minutes for every day in range; absent days count as 0."""
        stored = {s.date: s.total_focus_minutes
                  for s in self.repo.list_daily_aggregates(start_date, end_date)}
        return [stored.get(day, 0) for day in iter_dates(start_date, end_date)]

    def forecast_next_day(self, end_date: str,
                          window: int = DEFAULT_FORECAST_WINDOW) -> Optional[float]:
        """Predicted focus minutes for the day after ``end_date``."""
        start_date = shift_date(end_date, -(window - 1))
        values = self.daily_minutes(start_date, end_date)
        active = [v for v in values if v > 0]

        if len(active) >= MIN_SAMPLES_FOR_REGRESSION:
            prediction = self._linear_regression_predict(values, float(np.mean(active)))
        elif len(active) >= MIN_SAMPLES_FOR_AVERAGE:
            prediction = self._exponential_moving_average(active)
        else:
            logger.debug("Forecast for %s: only %d active days", end_date, len(active))
            return None

        logger.info("Forecast after %s: %.1f min (%d active days)",
                    end_date, prediction, len(active))
        return prediction

    @staticmethod
    def _linear_regression_predict(values: List[int], mean_val: float) -> float:
        """
        Fit y = mx + b over day index and predict the next index.
        Clamped to [0.5 * mean, 2 * mean] of the active days.
        """
        x = np.arange(len(values), dtype=float)
        y = np.array(values, dtype=float)

        A = np.vstack([x, np.ones(len(x))]).T
        m, b = np.linalg.lstsq(A, y, rcond=None)[0]

        prediction = m * len(values) + b
        return float(max(mean_val * 0.5, min(prediction, mean_val * 2.0)))

    @staticmethod
    def _exponential_moving_average(values: List[int], alpha: float = 0.3) -> float:
        """alpha=0.3: the most recent value contributes 30%."""
        ema = float(values[0])
        for v in values[1:]:
            ema = alpha * v + (1 - alpha) * ema
        return ema


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Read-only reporting on top of daily_aggregates / event_aggregates for
#   the statistics screens, and a next-day forecast of focus minutes.
#
# Key design decisions:
#   - Absent days are zero-filled before regression; the clamp uses the mean
#     of active days only.
#   - Nothing here writes; stale aggregates stay stale until a rollup runs.
#
# Data flow:
#   StatsService -> TrendAnalyzer.<report>() -> Repository reads -> dataclasses
