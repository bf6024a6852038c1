"""
Repair Service: heals daily aggregates left stale by a crash.

At startup the host re-runs the daily rollup for the most recent N days,
one date at a time, on a background thread so the foreground stays usable.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import date
from typing import Optional

from focusledger.analytics.daily_rollup import DailyRollupEngine
from focusledger.config import DEFAULT_REPAIR_DAYS
from focusledger.data.database import Database
from focusledger.data.repository import Repository
from focusledger.data.timefmt import format_date, shift_date
from focusledger.errors import FocusLedgerError

logger = logging.getLogger(__name__)


class RepairService:

    def __init__(self, daily: DailyRollupEngine) -> None:
        self.daily = daily

    def run(self, days: int = DEFAULT_REPAIR_DAYS, today: Optional[str] = None) -> int:
        """
        Recompute today and the ``days - 1`` dates before it, newest first.

        A failing date is logged and skipped. Returns how many dates were
        repaired successfully.
        """
        today = today or format_date(date.today())
        logger.info("Repairing daily aggregates for the last %d days", days)

        repaired = 0
        for offset in range(days):
            day = shift_date(today, -offset)
            try:
                self.daily.recompute(day)
            except FocusLedgerError as exc:
                logger.error("Repair of %s failed: %s", day, exc)
                continue
            repaired += 1

        logger.info("Repair finished: %d of %d days recomputed", repaired, days)
        return repaired


def start_background_repair(database: Database, days: int = DEFAULT_REPAIR_DAYS,
                            delay_sec: float = 1.0) -> threading.Thread:
    """
    Run RepairService on a daemon thread with its own connection.

    The thread sleeps ``delay_sec`` first so startup finishes before the
    repair takes the write lock.
    """

    def _worker() -> None:
        time.sleep(delay_sec)
        conn = database.new_connection()
        try:
            RepairService(DailyRollupEngine(Repository(conn))).run(days)
        finally:
            conn.close()

    thread = threading.Thread(target=_worker, daemon=True, name="focusledger-repair")
    thread.start()
    logger.info("Background repair scheduled in %.1fs", delay_sec)
    return thread


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Re-runs the daily rollup over a recent window so any aggregate that a
#   crash left half-updated matches the session log again.
#
# Key points:
#   - Sequential: one date at a time, newest first, never in parallel.
#   - Per-date failures are logged at ERROR and the pass moves on.
#   - The background thread opens its own sqlite connection; the
#     foreground connection is never used from two threads.
#
# Data flow:
#   main.py -> start_background_repair(database) -> thread ->
#   RepairService.run() -> DailyRollupEngine.recompute(day) x N
