from .repair_service import RepairService, start_background_repair
from .session_service import SessionService
from .stats_service import StatsService

__all__ = ["SessionService", "StatsService", "RepairService", "start_background_repair"]
