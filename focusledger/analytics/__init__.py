from .behavior import BehaviorFeatureExtractor, compare_to_average, render_text
from .completion import CompletionRateCalculator
from .daily_rollup import DailyRollupEngine
from .event_rollup import EventRollupEngine
from .streaks import StreakCalculator
from .trends import TrendAnalyzer

__all__ = [
    "DailyRollupEngine", "EventRollupEngine", "StreakCalculator",
    "CompletionRateCalculator", "BehaviorFeatureExtractor", "TrendAnalyzer",
    "compare_to_average", "render_text",
]
