"""Reading statistics and streaks."""

from .analytics import StatsAggregator
from .streaks import calculate_streaks

__all__ = [
    "StatsAggregator",
    "calculate_streaks",
]
