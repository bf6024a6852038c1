"""Event Rollup Engine: per-task, per-day focus aggregate."""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from focusledger.data.models import EventAggregate, TaskStatus
from focusledger.data.repository import Repository
from focusledger.data.timefmt import parse_date
from focusledger.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)


class EventRollupEngine:
    """
    Recomputes the EventAggregate for one (task, date).

    The completed flag mirrors the task's status at recompute time, so it
    is a task-level fact copied onto every date the task touched.
    """

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    def recompute(self, task_id: int, day: str) -> Optional[EventAggregate]:
        """
        Upsert the aggregate, or delete it when the task has no completed
        sessions that day. Returns the stored row, or None when no row
        remains.
        """
        parse_date(day)
        try:
            with self.repo.transaction():
                task = self.repo.get_task(task_id)
                if task is None:
                    raise NotFoundError(f"Task {task_id} not found")

                focus_count, total_minutes = self.repo.task_day_totals(task_id, day)
                existing = self.repo.get_event_aggregate(task_id, day)

                if focus_count == 0:
                    if existing is not None:
                        self.repo.delete_event_aggregate(task_id, day)
                        logger.info("Removed empty event aggregate task=%d date=%s",
                                    task_id, day)
                    return None

                agg = EventAggregate(
                    task_id=task_id,
                    date=day,
                    focus_count=focus_count,
                    total_minutes=total_minutes,
                    mode=task.mode,
                    completed=task.status == TaskStatus.COMPLETED,
                )
                self.repo.upsert_event_aggregate(agg)
        except sqlite3.Error as exc:
            logger.error("Event rollup task=%d date=%s failed: %s", task_id, day, exc)
            raise StorageError(f"Event rollup for task {task_id} on {day} failed") from exc

        logger.debug("Event rollup task=%d date=%s: count=%d minutes=%d completed=%s",
                     task_id, day, agg.focus_count, agg.total_minutes, agg.completed)
        return agg
