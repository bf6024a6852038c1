"""
Stats Service: the read/recompute API the host application calls.

Thin facade over the analytics engines: validates inputs, converts storage
failures into StorageError and keeps callers away from engine wiring.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from focusledger.analytics.behavior import BehaviorFeatureExtractor
from focusledger.analytics.completion import CompletionRateCalculator
from focusledger.analytics.daily_rollup import DailyRollupEngine
from focusledger.analytics.event_rollup import EventRollupEngine
from focusledger.analytics.streaks import StreakCalculator
from focusledger.analytics.trends import TrendAnalyzer
from focusledger.data.models import (
    BehaviorFeature, CompletionStats, DailyAggregate, DailySummary,
    EventAggregate, OverallSummary, PomodoroStats, TrendPoint, WeeklySummary,
)
from focusledger.data.repository import Repository
from focusledger.data.timefmt import iter_dates, parse_date, validate_range
from focusledger.errors import StorageError

logger = logging.getLogger(__name__)


class StatsService:

    def __init__(self, repo: Repository, daily: DailyRollupEngine,
                 events: EventRollupEngine, streaks: StreakCalculator,
                 completion: CompletionRateCalculator,
                 behavior: BehaviorFeatureExtractor,
                 trends: TrendAnalyzer) -> None:
        self.repo = repo
        self.daily = daily
        self.events = events
        self.streaks = streaks
        self.completion = completion
        self.behavior = behavior
        self.trends = trends

    # ── Rollups ─────────────────────────────────────────────────────────────

    def recompute_daily(self, day: str) -> DailyAggregate:
        return self.daily.recompute(day)

    def recompute_event(self, task_id: int, day: str) -> Optional[EventAggregate]:
        return self.events.recompute(task_id, day)

    # ── Reads ───────────────────────────────────────────────────────────────

    def get_daily_aggregates(self, start_date: str, end_date: str,
                             fill_missing: bool = False) -> List[DailyAggregate]:
        """
        Stored aggregates in [start_date, end_date], ascending by date.

        With ``fill_missing`` every date in the range is present; dates
        without a stored row come back all-zero.
        """
        validate_range(start_date, end_date)
        try:
            stored = self.repo.list_daily_aggregates(start_date, end_date)
        except sqlite3.Error as exc:
            raise StorageError(f"Reading daily aggregates {start_date}..{end_date} failed") from exc
        if not fill_missing:
            return stored
        by_date = {agg.date: agg for agg in stored}
        return [by_date.get(day) or DailyAggregate(date=day)
                for day in iter_dates(start_date, end_date)]

    def get_event_aggregates(self, start_date: str, end_date: str,
                             task_id: Optional[int] = None) -> List[EventAggregate]:
        validate_range(start_date, end_date)
        try:
            return self.repo.list_event_aggregates(start_date, end_date, task_id)
        except sqlite3.Error as exc:
            raise StorageError(f"Reading event aggregates {start_date}..{end_date} failed") from exc

    def completion_rate(self, start_date: str, end_date: str) -> CompletionStats:
        return self.completion.completion_rate(start_date, end_date)

    def streak(self, reference_date: str) -> int:
        return self.streaks.streak(reference_date)

    # ── Behavior features ───────────────────────────────────────────────────

    def extract_behavior_feature(self, day: str) -> BehaviorFeature:
        return self.behavior.extract(day)

    def extract_behavior_feature_range(self, start_date: str,
                                       end_date: str) -> List[BehaviorFeature]:
        return self.behavior.extract_range(start_date, end_date)

    def export_behavior_feature_as_text(self, day: str) -> str:
        return self.behavior.export_text(day)

    def weekly_summary(self, end_date: str) -> WeeklySummary:
        return self.behavior.weekly_summary(end_date)

    # ── Summaries ───────────────────────────────────────────────────────────

    def pomodoro_stats(self, start_date: str, end_date: str) -> PomodoroStats:
        return self._read(self.trends.pomodoro_stats, start_date, end_date)

    def daily_summary(self, today: str) -> DailySummary:
        parse_date(today)
        return self._read(self.trends.daily_summary, today)

    def overall_summary(self, today: str) -> OverallSummary:
        parse_date(today)
        return self._read(self.trends.overall_summary, today)

    def event_trend(self, start_date: str, end_date: str) -> List[TrendPoint]:
        return self._read(self.trends.event_trend, start_date, end_date)

    def forecast_next_day(self, end_date: str) -> Optional[float]:
        parse_date(end_date)
        return self._read(self.trends.forecast_next_day, end_date)

    @staticmethod
    def _read(query, *args):
        try:
            return query(*args)
        except sqlite3.Error as exc:
            logger.error("%s%r failed: %s", query.__name__, args, exc)
            raise StorageError(f"{query.__name__} failed") from exc
