from .database import Database
from .models import (
    BehaviorFeature, CompletionStats, DailyAggregate, EventAggregate,
    FocusSession, SessionMode, Task, TaskStatus,
)
from .repository import Repository

__all__ = [
    "Database", "Repository", "Task", "FocusSession", "DailyAggregate",
    "EventAggregate", "CompletionStats", "BehaviorFeature", "SessionMode",
    "TaskStatus",
]
