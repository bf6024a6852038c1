"""
Session Service: orchestrates the lifecycle of a focus session.

Handles: start focusing on a task, complete the session, task status
transitions, and keeping the day's aggregates current when a session ends.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from focusledger.analytics.daily_rollup import DailyRollupEngine
from focusledger.analytics.event_rollup import EventRollupEngine
from focusledger.data.models import FocusSession, SessionMode, Task, TaskStatus
from focusledger.data.repository import Repository
from focusledger.data.timefmt import format_date, parse_date
from focusledger.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def focus_minutes(start: datetime, end: datetime, break_minutes: int) -> int:
    """Whole minutes from start to end, minus the break, never below 0."""
    elapsed = int((end - start).total_seconds() // 60)
    return max(0, elapsed - break_minutes)


class SessionService:
    """
    Manages focus sessions and the tasks they belong to.

    A task has at most ONE open session. Task status transitions:
        pending → in_progress (start) → pending | completed (complete)
    """

    def __init__(self, repo: Repository, daily: DailyRollupEngine,
                 events: EventRollupEngine,
                 clock: Callable[[], datetime] = datetime.now) -> None:
        self.repo = repo
        self.daily = daily
        self.events = events
        self.clock = clock

    # ── Task management ─────────────────────────────────────────────────────

    def create_task(self, name: str, mode: str = SessionMode.POMODORO) -> Task:
        name = name.strip()
        if not name:
            raise ValidationError("Task name must not be empty")
        if mode not in SessionMode.ALL:
            raise ValidationError(f"Unknown mode {mode!r}")
        task = self.repo.create_task(name, mode, now=self.clock())
        logger.info("Task %d created: %s (%s)", task.id, task.name, task.mode)
        return task

    def get_task(self, task_id: int) -> Task:
        task = self.repo.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def list_tasks(self) -> List[Task]:
        return self.repo.list_tasks()

    def set_task_status(self, task_id: int, status: str) -> Task:
        if status not in TaskStatus.ALL:
            raise ValidationError(f"Unknown status {status!r}")
        self.get_task(task_id)
        self.repo.update_task_status(task_id, status, now=self.clock())
        return self.get_task(task_id)

    def delete_task(self, task_id: int) -> None:
        self.get_task(task_id)
        self.repo.delete_task(task_id)

    # ── Session lifecycle ───────────────────────────────────────────────────

    def start_session(self, task_id: int, mode: Optional[str] = None) -> FocusSession:
        """Open a session for the task, or return the one already open."""
        task = self.get_task(task_id)
        mode = mode or task.mode
        if mode not in SessionMode.ALL:
            raise ValidationError(f"Unknown mode {mode!r}")

        existing = self.repo.get_open_session(task_id)
        if existing is not None:
            logger.info("Task %d already has open session %d", task_id, existing.id)
            return existing

        now = self.clock()
        self.repo.update_task_status(task_id, TaskStatus.IN_PROGRESS, now=now)
        session = self.repo.create_session(task_id, mode, now)
        logger.info("Session %d started for task %d (%s)", session.id, task_id, mode)
        return session

    def complete_session(self, session_id: int, break_minutes: int = 0,
                         mark_task_completed: bool = False) -> FocusSession:
        """
        Close an open session and refresh the aggregates of its start day.

        Daily rollup runs first, then the event rollup for (task, day).
        A rollup failure propagates; the session stays completed and the
        next recompute or repair pass brings the aggregates up to date.
        """
        if break_minutes < 0:
            raise ValidationError("break_minutes must be >= 0")

        session = self.repo.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        if not session.is_open:
            raise ConflictError(f"Session {session_id} is already completed")

        end = self.clock()
        duration = focus_minutes(session.start_time, end, break_minutes)
        if not self.repo.complete_session(session_id, end, break_minutes, duration):
            raise ConflictError(f"Session {session_id} is already completed")

        task_id = session.task_id
        if mark_task_completed:
            self.repo.update_task_status(task_id, TaskStatus.COMPLETED, now=end)
        elif self.repo.get_open_session(task_id) is None:
            self.repo.update_task_status(task_id, TaskStatus.PENDING, now=end)

        day = format_date(session.start_time.date())
        self.daily.recompute(day)
        self.events.recompute(task_id, day)

        logger.info("Session %d completed: %d min focus, %d min break",
                    session_id, duration, break_minutes)
        return self.repo.get_session(session_id)

    # ── Queries ─────────────────────────────────────────────────────────────

    def get_open_session(self, task_id: int) -> Optional[FocusSession]:
        return self.repo.get_open_session(task_id)

    def list_sessions_for_task(self, task_id: int, start_date: str,
                               end_date: str) -> List[FocusSession]:
        parse_date(start_date)
        parse_date(end_date)
        return self.repo.list_sessions_for_task(task_id, start_date, end_date)


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Owns the write side of the session log: tasks, opening and closing
#   focus sessions, and the task status changes that go with them.
#
# Key rules:
#   - start_session() is idempotent per task: a second start returns the
#     open session instead of creating another.
#   - complete_session() sets end_time, break and duration in one UPDATE
#     guarded by "end_time IS NULL", so a session closes exactly once.
#   - The day recomputed is the session's START day; a session running
#     past midnight stays on the day it began.
#
# Data flow:
#   CLI "complete" -> complete_session() -> repo.complete_session ->
#   DailyRollupEngine.recompute(day) -> EventRollupEngine.recompute(task, day)
