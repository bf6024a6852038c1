"""
Completion-Rate Calculator.

Completion reflects each task's CURRENT status, not its status during the
range: a task finished today counts as completed for any past week it was
active in.
"""

from __future__ import annotations

import logging
import sqlite3

from focusledger.data.models import CompletionStats, TaskStatus
from focusledger.data.repository import Repository
from focusledger.data.timefmt import parse_date

logger = logging.getLogger(__name__)


def format_rate(completed: int, total: int) -> str:
    """4 tasks, 1 completed -> '25.00%'; no tasks -> '0.00%'."""
    if total == 0:
        return "0.00%"
    return f"{completed / total * 100:.2f}%"


class CompletionRateCalculator:

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    def completion_rate(self, start_date: str, end_date: str) -> CompletionStats:
        """
        Distinct tasks with an EventAggregate in [start_date, end_date] and
        how many of them are completed now.

        Malformed dates raise ValidationError. Storage failures are logged
        and degrade to the zero result.
        """
        parse_date(start_date)
        parse_date(end_date)
        try:
            task_ids = self.repo.distinct_event_task_ids(start_date, end_date)
            completed = 0
            for task_id in task_ids:
                status = self.repo.get_task_status(task_id)
                if status is None:
                    # task deleted since; still active in range, never completed
                    continue
                if status == TaskStatus.COMPLETED:
                    completed += 1
        except sqlite3.Error as exc:
            logger.error("Completion rate %s..%s failed, reporting zero: %s",
                         start_date, end_date, exc)
            return CompletionStats()

        total = len(task_ids)
        return CompletionStats(
            total=total,
            completed=completed,
            rate=format_rate(completed, total),
        )
