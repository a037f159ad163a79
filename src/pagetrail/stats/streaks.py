"""Reading streaks derived from days with logged pages."""

import logging
from datetime import date, timedelta
from typing import Iterable

from ..db.schemas import StreakStats

logger = logging.getLogger(__name__)


def _parse_days(values: Iterable[str]) -> list[date]:
    days = set()
    for value in values:
        try:
            days.add(date.fromisoformat(value))
        except (TypeError, ValueError):
            logger.warning("Skipping malformed progress date %r in streak computation", value)
    return sorted(days)


def calculate_streaks(active_days: Iterable[str], today: date) -> StreakStats:
    """Calculate current and longest streaks.

    Args:
        active_days: ``YYYY-MM-DD`` days with at least one page read
        today: The caller's current calendar day

    Returns:
        StreakStats. The current streak is anchored on ``today``, or on
        yesterday when nothing was read yet today; it is 0 otherwise.
    """
    days = _parse_days(active_days)
    if not days:
        return StreakStats()

    longest = 1
    run = 1
    for previous, current in zip(days, days[1:]):
        if current - previous == timedelta(days=1):
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    day_set = set(days)
    anchor = today if today in day_set else today - timedelta(days=1)
    current_streak = 0
    while anchor in day_set:
        current_streak += 1
        anchor -= timedelta(days=1)

    return StreakStats(
        current_streak=current_streak,
        longest_streak=longest,
        total_days_active=len(days),
        last_activity_date=days[-1].isoformat(),
    )
