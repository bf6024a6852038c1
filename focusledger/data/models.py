"""
Data models for FocusLedger.

Plain dataclasses for database rows and for the derived results the
analytics layer hands to callers. No SQL and no I/O here.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional


class SessionMode:
    """Focus mode of a task or session."""
    POMODORO = "pomodoro"
    CUSTOM = "custom"

    ALL = (POMODORO, CUSTOM)


class TaskStatus:
    """Lifecycle status of a task."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    ALL = (PENDING, IN_PROGRESS, COMPLETED)


class Verdict:
    """Outcome of comparing a day against its trailing average."""
    BETTER = "better"
    SAME = "same"
    WORSE = "worse"


# ── Raw log ─────────────────────────────────────────────────────────────────

@dataclass
class Task:
    """A to-do item that focus sessions are tracked against."""
    id: Optional[int] = None
    name: str = ""
    mode: str = SessionMode.POMODORO
    status: str = TaskStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class FocusSession:
    """
    One bounded work interval.

    end_time is None while the session is open. break_minutes and
    duration_min are set together with end_time, once.
    """
    id: Optional[int] = None
    task_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    break_minutes: int = 0
    duration_min: int = 0
    mode: str = SessionMode.POMODORO

    @property
    def is_open(self) -> bool:
        return self.end_time is None


# ── Aggregates ──────────────────────────────────────────────────────────────

@dataclass
class DailyAggregate:
    """One row per calendar date, rebuilt from completed sessions."""
    date: str = ""
    pomodoro_count: int = 0
    custom_count: int = 0
    total_focus_sessions: int = 0
    pomodoro_minutes: int = 0
    custom_minutes: int = 0
    total_focus_minutes: int = 0
    total_break_minutes: int = 0
    tomato_harvests: int = 0
    time_ranges: List[str] = field(default_factory=list)
    id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.total_focus_sessions == 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("id")
        return data


@dataclass
class EventAggregate:
    """Focus activity of one task on one date."""
    task_id: int = 0
    date: str = ""
    focus_count: int = 0
    total_minutes: int = 0
    mode: str = SessionMode.POMODORO
    completed: bool = False
    id: Optional[int] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("id")
        return data


@dataclass
class CompletionStats:
    """Distinct tasks active in a range and how many are completed now."""
    total: int = 0
    completed: int = 0
    rate: str = "0.00%"

    def to_dict(self) -> dict:
        return asdict(self)


# ── Behavior features ───────────────────────────────────────────────────────

@dataclass
class SessionDetail:
    """A completed session as shown to people and to the AI export."""
    start_time: str = ""
    end_time: str = ""
    time_range: str = ""
    duration_min: int = 0
    break_minutes: int = 0
    mode: str = ""
    task_id: int = 0
    task_name: str = ""


@dataclass
class BehaviorFeature:
    """Derived, never-persisted feature vector for one date."""
    date: str = ""

    total_focus_minutes: int = 0
    session_count: int = 0
    avg_session_length: float = 0.0
    pomodoro_ratio: float = 0.0
    break_ratio: float = 0.0

    first_focus_time: str = ""
    last_focus_time: str = ""
    peak_hours: List[str] = field(default_factory=list)
    best_hour: str = ""

    task_diversity: int = 0
    completed_tasks: int = 0

    compared_to_avg: str = Verdict.SAME
    compared_to_avg_ratio: float = 1.0

    streak_days: int = 0

    sessions: List[SessionDetail] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class WeeklySummary:
    """Roll-up of seven consecutive behavior features."""
    start_date: str = ""
    end_date: str = ""
    days: int = 0
    total_focus_minutes: int = 0
    avg_daily_minutes: int = 0
    total_sessions: int = 0
    best_day: Optional[BehaviorFeature] = None

    def to_dict(self) -> dict:
        return asdict(self)


# ── Reporting rows ──────────────────────────────────────────────────────────

@dataclass
class TrendPoint:
    """One day in a trend series; unused metrics stay 0."""
    date: str = ""
    total_focus_minutes: int = 0
    pomodoro_minutes: int = 0
    custom_minutes: int = 0
    pomodoro_count: int = 0
    tomato_harvests: int = 0
    completed_tasks: int = 0


@dataclass
class PomodoroStats:
    total_harvests: int = 0
    best_day: Optional[DailyAggregate] = None
    trend: List[TrendPoint] = field(default_factory=list)
    hour_distribution: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DailySummary:
    yesterday: DailyAggregate = field(default_factory=DailyAggregate)
    week_trend: List[TrendPoint] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OverallSummary:
    total_pomodoro_sessions: int = 0
    total_focus_minutes: int = 0
    total_focus_hours: float = 0.0
    streak_days: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Defines the shape of every object the system stores or returns.
#
# Key classes:
#   - Task / FocusSession: the raw log. A session is open until end_time
#     is set; aggregates only ever look at closed sessions.
#   - DailyAggregate / EventAggregate: derived rows, a pure function of the
#     closed sessions for their date (and, for events, the task's status).
#   - BehaviorFeature and the summary classes: computed on demand, never
#     written to the database.
#
# Data flow:
#   SessionService writes FocusSession -> rollup engines write aggregates ->
#   BehaviorFeatureExtractor / trends read aggregates and build features.
