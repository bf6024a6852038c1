"""
FocusLedger: focus-session statistics engine.
Entry point: wires every component and exposes the command line.
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict, dataclass, is_dataclass
from datetime import date
from pathlib import Path
from typing import List, Optional

# Ensure the package is importable when run from another directory
sys.path.insert(0, str(Path(__file__).resolve().parent))

from focusledger.analytics import (
    BehaviorFeatureExtractor, CompletionRateCalculator, DailyRollupEngine,
    EventRollupEngine, StreakCalculator, TrendAnalyzer,
)
from focusledger.config import Settings, load_settings
from focusledger.data.database import Database
from focusledger.data.models import SessionMode
from focusledger.data.repository import Repository
from focusledger.errors import FocusLedgerError
from focusledger.services import (
    RepairService, SessionService, StatsService, start_background_repair,
)

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))
    logging.basicConfig(
        level=settings.log_level_value,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


# ── Composition root ────────────────────────────────────────────────────────

@dataclass
class App:
    database: Database
    sessions: SessionService
    stats: StatsService
    repair: RepairService


def build_app(database: Database) -> App:
    """Construct every component explicitly over one connection."""
    repo = Repository(database.connect())
    daily = DailyRollupEngine(repo)
    events = EventRollupEngine(repo)
    streaks = StreakCalculator(repo)
    stats = StatsService(
        repo, daily, events, streaks,
        completion=CompletionRateCalculator(repo),
        behavior=BehaviorFeatureExtractor(repo, streaks),
        trends=TrendAnalyzer(repo, streaks),
    )
    return App(
        database=database,
        sessions=SessionService(repo, daily, events),
        stats=stats,
        repair=RepairService(daily),
    )


# ── CLI ─────────────────────────────────────────────────────────────────────

def _today() -> str:
    return date.today().isoformat()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="focusledger",
                                     description="Focus-session statistics")
    parser.add_argument("--no-repair", action="store_true",
                        help="Skip the background repair pass at startup")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("task", help="Create a task")
    p.add_argument("name")
    p.add_argument("--mode", choices=SessionMode.ALL, default=SessionMode.POMODORO)

    p = sub.add_parser("start", help="Start (or resume) a focus session")
    p.add_argument("task_id", type=int)
    p.add_argument("--mode", choices=SessionMode.ALL)

    p = sub.add_parser("complete", help="Complete a focus session")
    p.add_argument("session_id", type=int)
    p.add_argument("--break", dest="break_minutes", type=int, default=0)
    p.add_argument("--done", action="store_true", help="Mark the task completed")

    p = sub.add_parser("recompute", help="Recompute aggregates for a date")
    p.add_argument("date")
    p.add_argument("--task", type=int, help="Recompute the task's event aggregate instead")

    p = sub.add_parser("repair", help="Recompute the most recent N days now")
    p.add_argument("--days", type=int)

    p = sub.add_parser("daily", help="Daily aggregates in a date range")
    p.add_argument("start")
    p.add_argument("end")
    p.add_argument("--fill", action="store_true", help="Include zero rows for missing dates")

    p = sub.add_parser("events", help="Event aggregates in a date range")
    p.add_argument("start")
    p.add_argument("end")
    p.add_argument("--task", type=int)

    p = sub.add_parser("completion", help="Task completion rate in a date range")
    p.add_argument("start")
    p.add_argument("end")

    p = sub.add_parser("streak", help="Consecutive focus days ending at a date")
    p.add_argument("date", nargs="?")

    p = sub.add_parser("features", help="Behavior features for a date or range")
    p.add_argument("date")
    p.add_argument("--to", dest="end")

    p = sub.add_parser("export", help="Behavior report as text")
    p.add_argument("date")

    p = sub.add_parser("summary", help="Summary reports")
    p.add_argument("kind", choices=("daily", "overall", "weekly", "pomodoro",
                                    "trend", "forecast"))
    p.add_argument("--date", help="Reference date (default: today)")
    p.add_argument("--start", help="Range start for pomodoro/trend")

    return parser


def _to_jsonable(value):
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value


def run_command(app: App, settings: Settings, args: argparse.Namespace):
    """Dispatch one parsed command. Returns a str (printed as-is) or data for JSON."""
    cmd = args.command
    stats = app.stats

    if cmd == "task":
        return app.sessions.create_task(args.name, args.mode)
    if cmd == "start":
        return app.sessions.start_session(args.task_id, args.mode)
    if cmd == "complete":
        return app.sessions.complete_session(args.session_id, args.break_minutes,
                                             mark_task_completed=args.done)
    if cmd == "recompute":
        if args.task is not None:
            return stats.recompute_event(args.task, args.date)
        return stats.recompute_daily(args.date)
    if cmd == "repair":
        days = args.days if args.days is not None else settings.repair_days
        return {"repaired_days": app.repair.run(days)}
    if cmd == "daily":
        return stats.get_daily_aggregates(args.start, args.end, fill_missing=args.fill)
    if cmd == "events":
        return stats.get_event_aggregates(args.start, args.end, args.task)
    if cmd == "completion":
        return stats.completion_rate(args.start, args.end)
    if cmd == "streak":
        day = args.date or _today()
        return {"date": day, "streak_days": stats.streak(day)}
    if cmd == "features":
        if args.end:
            return stats.extract_behavior_feature_range(args.date, args.end)
        return stats.extract_behavior_feature(args.date)
    if cmd == "export":
        return stats.export_behavior_feature_as_text(args.date)

    # summary
    day = args.date or _today()
    start = args.start or day
    if args.kind == "daily":
        return stats.daily_summary(day)
    if args.kind == "overall":
        return stats.overall_summary(day)
    if args.kind == "weekly":
        return stats.weekly_summary(day)
    if args.kind == "pomodoro":
        return stats.pomodoro_stats(start, day)
    if args.kind == "trend":
        return stats.event_trend(start, day)
    return {"date": day, "forecast_next_day_minutes": stats.forecast_next_day(day)}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
    except FocusLedgerError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    setup_logging(settings)
    logger.info("Starting FocusLedger (db=%s)", settings.db_path)

    database = Database(settings.db_path)
    app = build_app(database)
    repair_thread = None
    if settings.repair_on_start and not args.no_repair and args.command != "repair":
        repair_thread = start_background_repair(database, settings.repair_days,
                                                settings.repair_delay_sec)

    try:
        result = run_command(app, settings, args)
    except FocusLedgerError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    else:
        if isinstance(result, str):
            print(result, end="")
        else:
            print(json.dumps(_to_jsonable(result), indent=2, ensure_ascii=False, default=str))
        return 0
    finally:
        database.close()
        # The output is already printed; let the repair finish before exit
        if repair_thread is not None:
            repair_thread.join()


if __name__ == "__main__":
    sys.exit(main())


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The entry point. Loads settings, sets up logging, builds every
#   component by hand (no container), optionally schedules the background
#   repair, then runs one CLI command and prints the result.
#
# Key points:
#   - build_app() is the only place that knows how the pieces fit; tests
#     build the same graph over an in-memory database.
#   - Logging goes to the console and, unless disabled, to a file.
#   - Output is JSON, except `export`, which prints the text report.
#   - The repair thread has its own connection and runs alongside the
#     command; main() joins it after the result is printed so a one-shot
#     command still heals the recent days before the process exits.
