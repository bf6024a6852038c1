"""Streak Calculator: consecutive days with focus time ending at a date."""

from __future__ import annotations

import logging
import sqlite3
from datetime import timedelta

from focusledger.data.repository import Repository
from focusledger.data.timefmt import format_date, parse_date
from focusledger.errors import StreakWalkError

logger = logging.getLogger(__name__)

# Hard bound on the backward walk so sparse histories cannot scan forever.
MAX_STREAK_DAYS = 366


class StreakCalculator:

    def __init__(self, repo: Repository, max_days: int = MAX_STREAK_DAYS) -> None:
        self.repo = repo
        self.max_days = max_days

    def streak(self, reference_date: str) -> int:
        """
        Walk backward from ``reference_date`` counting days whose
        DailyAggregate has total focus minutes > 0.

        Returns 0 when the reference day itself has no focus time. A bad
        date raises ValidationError; a failed day query raises
        StreakWalkError carrying the days counted so far.
        """
        start = parse_date(reference_date)
        days = 0
        for offset in range(self.max_days):
            day = format_date(start - timedelta(days=offset))
            try:
                active = self.repo.has_focus_on(day)
            except sqlite3.Error as exc:
                raise StreakWalkError(
                    f"Streak walk from {reference_date} stopped at {day}: {exc}", days
                ) from exc
            if not active:
                break
            days += 1
        return days

    def streak_best_effort(self, reference_date: str) -> int:
        """Like streak(), but a failed walk logs and returns the partial count."""
        try:
            return self.streak(reference_date)
        except StreakWalkError as exc:
            logger.warning("%s (using partial streak %d)", exc, exc.days)
            return exc.days
