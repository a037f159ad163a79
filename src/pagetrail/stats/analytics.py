"""Reading statistics.

Counts and sums derived from sessions and progress logs. Year, month and
day breakdowns skip rows whose stored date is not a strict ``YYYY-MM-DD``
value; all-time totals do not, so a total can exceed the sum of its
yearly buckets when legacy rows are malformed.

"Today", "this month" and "this year" are resolved in the caller's
timezone and then compared against the stored calendar-day strings.
"""

import logging
import math
from datetime import date, timedelta
from typing import Optional, Union

from ..config import get_config, today_in
from ..db.schemas import (
    BooksReadStats,
    DailyActivity,
    OverviewStats,
    PagesReadStats,
    SessionStatus,
    StreakStats,
)
from ..db.sqlite import Database, get_db
from ..db.stores import ProgressStore, SessionStore
from .streaks import calculate_streaks

logger = logging.getLogger(__name__)

DateLike = Union[date, str]


def _to_iso(value: DateLike) -> str:
    return value if isinstance(value, str) else value.isoformat()


class StatsAggregator:
    """Read-side statistics over the session and progress stores."""

    def __init__(
        self,
        db: Optional[Database] = None,
        session_store: Optional[SessionStore] = None,
        progress_store: Optional[ProgressStore] = None,
    ):
        """Initialize stats aggregator.

        Args:
            db: Database instance
            session_store: Session data access, defaults to one over ``db``
            progress_store: Progress data access, defaults to one over ``db``
        """
        self.db = db or get_db()
        self.sessions = session_store or SessionStore(self.db)
        self.progress = progress_store or ProgressStore(self.db)

    # -------------------------------------------------------------------------
    # Books
    # -------------------------------------------------------------------------

    def count_completed_by_year(self, year: int) -> int:
        return self.sessions.count_completed_by_year(year)

    def count_completed_by_year_month(self, year: int, month: int) -> int:
        return self.sessions.count_completed_by_year_month(year, month)

    def count_completed_total(self) -> int:
        """All ``read`` sessions, archived ones included, with no date filter."""
        return self.sessions.count_by_status(SessionStatus.READ, active_only=False)

    def count_currently_reading(self) -> int:
        return self.sessions.count_by_status(SessionStatus.READING, active_only=True)

    # -------------------------------------------------------------------------
    # Pages
    # -------------------------------------------------------------------------

    def get_total_pages_read(self) -> int:
        return self.progress.get_total_pages_read()

    def get_pages_read_by_year(self, year: int) -> int:
        return self.progress.get_pages_read_by_year(year)

    def get_pages_read_by_year_month(self, year: int, month: int) -> int:
        return self.progress.get_pages_read_by_year_month(year, month)

    def get_pages_read_by_date(self, progress_date: DateLike) -> int:
        return self.progress.get_pages_read_by_date(_to_iso(progress_date))

    def get_highest_current_page_for_active_sessions(self, book_id: str) -> int:
        return self.progress.get_highest_current_page_for_active_sessions(book_id)

    def recalculate_percentages_for_book(self, book_id: str, new_total_pages: int) -> int:
        """Recompute progress percentages of the book's active reading sessions.

        All entries are updated in one transaction or none are.

        Returns:
            Number of progress entries updated
        """
        updated = self.db.with_transaction(
            lambda s: self.progress.recalculate_percentages_for_book(
                book_id, new_total_pages, session=s
            )
        )
        logger.info(
            "Recalculated %d progress entries of book %s against %d pages",
            updated,
            book_id,
            new_total_pages,
        )
        return updated

    def get_activity_calendar(
        self, start_date: DateLike, end_date: DateLike
    ) -> list[DailyActivity]:
        """Pages read per calendar day in ``[start_date, end_date]``, oldest first."""
        rows = self.progress.get_daily_pages(_to_iso(start_date), _to_iso(end_date))
        return [DailyActivity(date=day, pages_read=pages) for day, pages in rows]

    def get_average_pages_per_day(
        self,
        start_date: Optional[DateLike] = None,
        timezone: Optional[str] = None,
    ) -> int:
        """Average pages per day with logged progress since ``start_date``.

        Args:
            start_date: First day of the window (default: the configured
                number of days before today in ``timezone``)
            timezone: IANA timezone name (default: configured timezone)

        Returns:
            Total pages divided by the number of distinct days with entries,
            rounded half up; 0 when nothing was logged in the window
        """
        config = get_config()
        if start_date is None:
            today = today_in(timezone or config.timezone)
            start_date = today - timedelta(days=config.avg_window_days)

        daily = self.progress.get_daily_pages(_to_iso(start_date))
        if not daily:
            return 0

        total = sum(pages for _, pages in daily)
        average = total / len(daily)
        logger.debug(
            "Average pages per day since %s: %d pages over %d days",
            _to_iso(start_date),
            total,
            len(daily),
        )
        return math.floor(average + 0.5)

    # -------------------------------------------------------------------------
    # Composites
    # -------------------------------------------------------------------------

    def get_overview(self, timezone: Optional[str] = None) -> OverviewStats:
        """Dashboard summary with day, month and year boundaries in ``timezone``."""
        timezone = timezone or get_config().timezone
        today = today_in(timezone)

        books_read = BooksReadStats(
            total=self.count_completed_total(),
            this_year=self.count_completed_by_year(today.year),
            this_month=self.count_completed_by_year_month(today.year, today.month),
        )
        pages_read = PagesReadStats(
            total=self.get_total_pages_read(),
            this_year=self.get_pages_read_by_year(today.year),
            this_month=self.get_pages_read_by_year_month(today.year, today.month),
            today=self.get_pages_read_by_date(today),
        )
        window_start = today - timedelta(days=get_config().avg_window_days)
        overview = OverviewStats(
            books_read=books_read,
            currently_reading=self.count_currently_reading(),
            pages_read=pages_read,
            avg_pages_per_day=self.get_average_pages_per_day(window_start, timezone),
        )

        logger.debug(
            "Stats overview for %s (%s): %d books this year, %d this month",
            today.isoformat(),
            timezone,
            books_read.this_year,
            books_read.this_month,
        )
        return overview

    def get_streak(self, timezone: Optional[str] = None) -> StreakStats:
        """Consecutive-day reading streaks, anchored on today in ``timezone``."""
        timezone = timezone or get_config().timezone
        return calculate_streaks(self.progress.get_active_days(), today_in(timezone))
