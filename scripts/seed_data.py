"""
Seed Data Generator: creates realistic fake focus history for development.

Run: python scripts/seed_data.py [days]
"""

import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from focusledger.analytics.daily_rollup import DailyRollupEngine
from focusledger.analytics.event_rollup import EventRollupEngine
from focusledger.config import load_settings
from focusledger.data.database import Database
from focusledger.data.models import SessionMode, TaskStatus
from focusledger.data.repository import Repository
from focusledger.data.timefmt import format_date
from focusledger.services.session_service import focus_minutes


TASKS = {
    "Backend API": SessionMode.POMODORO,
    "Bug Fixing": SessionMode.POMODORO,
    "Code Review": SessionMode.CUSTOM,
    "Documentation": SessionMode.POMODORO,
    "Linear Algebra": SessionMode.CUSTOM,
    "Reading Textbook": SessionMode.POMODORO,
}


def seed(days: int = 30) -> None:
    db = Database(load_settings().db_path)
    repo = Repository(db.connect())
    daily = DailyRollupEngine(repo)
    events = EventRollupEngine(repo)

    base_date = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0) \
        - timedelta(days=days)

    task_ids = []
    for name, mode in TASKS.items():
        task = repo.create_task(name, mode, now=base_date)
        task_ids.append(task.id)

    # ── Generate sessions ───────────────────────────────────────────────
    touched = set()
    session_count = 0
    for i in range(days):
        # Roughly one day in five has no focus at all
        if random.random() < 0.2:
            continue

        cursor = base_date + timedelta(days=i, hours=random.randint(8, 11),
                                       minutes=random.randint(0, 59))
        for _ in range(random.randint(1, 6)):
            task_id = random.choice(task_ids)
            task = repo.get_task(task_id)
            length = 25 if task.mode == SessionMode.POMODORO else random.randint(20, 90)
            break_min = random.choice([0, 0, 5, 10])
            end = cursor + timedelta(minutes=length + break_min)

            session = repo.create_session(task_id, task.mode, cursor)
            repo.complete_session(session.id, end, break_min,
                                  focus_minutes(cursor, end, break_min))
            touched.add((task_id, format_date(cursor.date())))
            session_count += 1

            cursor = end + timedelta(minutes=random.randint(5, 90))

    # A couple of tasks get finished along the way
    for task_id in random.sample(task_ids, 2):
        repo.update_task_status(task_id, TaskStatus.COMPLETED,
                                now=base_date + timedelta(days=random.randint(1, days)))

    # ── Rollups ─────────────────────────────────────────────────────────
    for i in range(days + 1):
        daily.recompute(format_date((base_date + timedelta(days=i)).date()))
    for task_id, day in sorted(touched):
        events.recompute(task_id, day)

    db.close()
    print(f"Seeded {session_count} sessions across {len(task_ids)} tasks over {days} days.")


if __name__ == "__main__":
    count = int(sys.argv[1]) if len(sys.argv) > 1 else 30
    seed(count)


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this script does:
#   Generates a month of plausible focus history so the reports have
#   something to show: a handful of tasks, 1-6 sessions on most days,
#   occasional breaks, and a few empty days that break the streak.
#
# Key points:
#   - Sessions are written through Repository, then every day is rolled
#     up with the same engines the application uses.
#   - Pomodoro sessions are 25 minutes; custom ones vary between 20 and 90.
