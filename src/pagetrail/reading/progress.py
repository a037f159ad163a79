"""Progress logging and editing.

Every new or edited entry passes the timeline check before it is
written. ``pages_read`` of each entry is kept equal to the pages advanced
since the chronologically previous entry of the same session.
"""

import logging
import math
from datetime import date
from typing import Optional

import pydantic
from sqlalchemy.orm import Session

from ..config import today_in
from ..calculations import calculate_page_from_percentage, calculate_percentage
from ..db.models import Book, utc_now
from ..db.schemas import (
    BookResponse,
    ProgressLogCreate,
    ProgressLogResponse,
    ProgressLogUpdate,
    SessionStatus,
)
from ..db.sqlite import Database, get_db
from ..db.stores import ProgressStore, SessionStore
from ..errors import InvalidStateError, NotFoundError, ValidationError
from .validation import TimelineValidator

logger = logging.getLogger(__name__)

__all__ = [
    "ProgressTracker",
    "calculate_percentage",
    "calculate_page_from_percentage",
]


def _is_iso_day(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except (TypeError, ValueError):
        return False
    return len(value) == 10


class ProgressTracker:
    """Logs, edits and deletes progress entries."""

    def __init__(
        self,
        db: Optional[Database] = None,
        session_store: Optional[SessionStore] = None,
        progress_store: Optional[ProgressStore] = None,
        validator: Optional[TimelineValidator] = None,
    ):
        """Initialize progress tracker.

        Args:
            db: Database instance
            session_store: Session data access, defaults to one over ``db``
            progress_store: Progress data access, defaults to one over ``db``
            validator: Timeline validator, defaults to one over ``progress_store``
        """
        self.db = db or get_db()
        self.sessions = session_store or SessionStore(self.db)
        self.progress = progress_store or ProgressStore(self.db)
        self.validator = validator or TimelineValidator(self.progress)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_progress_for_session(self, session_id: str) -> list[ProgressLogResponse]:
        """Get a session's progress entries, most recent first."""
        with self.db.transaction() as s:
            if not self.sessions.get(session_id, session=s):
                raise NotFoundError("Session", session_id)
            return [
                ProgressLogResponse.model_validate(e)
                for e in self.progress.find_by_session(session_id, session=s)
            ]

    def get_progress_for_active_session(self, book_id: str) -> list[ProgressLogResponse]:
        """Get progress of the book's active session; empty when there is none."""
        with self.db.transaction() as s:
            self._require_book(book_id, s)
            active = self.sessions.find_active_by_book(book_id, session=s)
            if not active:
                return []
            return [
                ProgressLogResponse.model_validate(e)
                for e in self.progress.find_by_session(active.id, session=s)
            ]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def log_progress(
        self,
        book_id: str,
        *,
        current_page: Optional[int] = None,
        current_percentage: Optional[float] = None,
        progress_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> ProgressLogResponse:
        """Log progress for the book's active reading session.

        Args:
            book_id: Book ID
            current_page: Page reached
            current_percentage: Percentage reached (instead of a page)
            progress_date: Calendar day of the reading (default: today in the
                configured timezone)
            notes: Optional notes

        Returns:
            The created progress entry

        Raises:
            NotFoundError: If the book does not exist
            InvalidStateError: If the book has no active ``reading`` session
            ValidationError: If the value breaks the session's timeline
        """
        try:
            data = ProgressLogCreate(
                current_page=current_page,
                current_percentage=current_percentage,
                progress_date=progress_date,
                notes=notes,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

        with self.db.transaction() as s:
            book = self._require_book(book_id, s)

            active = self.sessions.find_active_by_book(book_id, session=s)
            if not active:
                raise InvalidStateError(
                    "No active reading session found. Please set a reading status first."
                )
            if active.status != SessionStatus.READING.value:
                raise InvalidStateError(
                    f"Can only log progress for books with 'reading' status, not '{active.status}'"
                )

            day = (data.progress_date or today_in()).isoformat()
            page, percentage = self._resolve(book, data.current_page, data.current_percentage)
            is_percentage = data.current_percentage is not None

            result = self.validator.validate_new_entry(
                active.id,
                day,
                percentage if is_percentage else page,
                is_percentage,
                session=s,
            )
            if not result.valid:
                raise ValidationError(result.error, result)

            entry = self.progress.create(
                book_id=book_id,
                session_id=active.id,
                current_page=page,
                current_percentage=percentage,
                progress_date=day,
                pages_read=0,
                notes=data.notes,
                session=s,
            )
            self._recompute_pages_read(active.id, s)
            self.sessions.update(active.id, session=s, updated_at=utc_now())

            if book.total_pages and percentage >= 100:
                self.sessions.update(
                    active.id,
                    session=s,
                    status=SessionStatus.READ,
                    completed_date=day,
                    is_active=False,
                )
                logger.info(
                    "Book %s reached 100%%, session #%d completed", book_id, active.session_number
                )

            logger.info("Logged progress for book %s: page %d on %s", book_id, page, day)
            return ProgressLogResponse.model_validate(entry)

    def edit_progress(
        self,
        entry_id: str,
        *,
        current_page: Optional[int] = None,
        current_percentage: Optional[float] = None,
        progress_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> ProgressLogResponse:
        """Edit an existing progress entry, re-running the timeline check.

        Fields left as None keep their stored value.

        Raises:
            NotFoundError: If the entry, its session or its book does not exist
            ValidationError: If the new value breaks the session's timeline
        """
        try:
            update = ProgressLogUpdate(
                current_page=current_page,
                current_percentage=current_percentage,
                progress_date=progress_date,
                notes=notes,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

        with self.db.transaction() as s:
            entry = self.progress.get(entry_id, session=s)
            if not entry:
                raise NotFoundError("Progress entry", entry_id)
            if not self.sessions.get(entry.session_id, session=s):
                raise NotFoundError("Session", entry.session_id)
            book = self._require_book(entry.book_id, s)

            day = update.progress_date.isoformat() if update.progress_date else entry.progress_date
            is_percentage = update.current_percentage is not None
            if update.current_page is not None or is_percentage:
                page, percentage = self._resolve(book, update.current_page, update.current_percentage)
            else:
                page = entry.current_page
                percentage = (
                    calculate_percentage(page, book.total_pages)
                    if book.total_pages
                    else entry.current_percentage
                )

            result = self.validator.validate_edit(
                entry.id,
                entry.session_id,
                day,
                percentage if is_percentage else page,
                is_percentage,
                session=s,
            )
            if not result.valid:
                raise ValidationError(result.error, result)

            entry = self.progress.update(
                entry_id,
                session=s,
                current_page=page,
                current_percentage=percentage,
                progress_date=day,
                notes=update.notes if update.notes is not None else entry.notes,
            )
            self._recompute_pages_read(entry.session_id, s)
            logger.info("Edited progress entry %s: page %d on %s", entry_id, page, day)
            return ProgressLogResponse.model_validate(entry)

    def delete_progress(self, entry_id: str) -> None:
        """Delete a progress entry.

        Raises:
            NotFoundError: If the entry does not exist
        """
        with self.db.transaction() as s:
            entry = self.progress.get(entry_id, session=s)
            if not entry:
                raise NotFoundError("Progress entry", entry_id)
            session_id = entry.session_id
            self.progress.delete(entry_id, session=s)
            s.flush()
            self._recompute_pages_read(session_id, s)
            logger.info("Deleted progress entry %s", entry_id)

    def update_total_pages(self, book_id: str, total_pages: int) -> BookResponse:
        """Change a book's page count and recompute active progress percentages.

        Raises:
            NotFoundError: If the book does not exist
            ValidationError: If the count is not positive or is below progress
                already logged in the active session
        """
        if not total_pages or total_pages <= 0:
            raise ValidationError("Total pages must be a positive number")

        with self.db.transaction() as s:
            self._require_book(book_id, s)

            highest = self.progress.get_highest_current_page_for_active_sessions(book_id, session=s)
            if highest > total_pages:
                raise ValidationError(
                    f"Cannot reduce page count to {total_pages}. "
                    f"You've already logged progress up to page {highest} "
                    f"in your current reading session."
                )

            book = self.db.update_book(book_id, session=s, total_pages=total_pages)
            updated = self.progress.recalculate_percentages_for_book(book_id, total_pages, session=s)
            logger.info(
                "Updated total pages of book %s to %d, recalculated %d progress entries",
                book_id,
                total_pages,
                updated,
            )
            return BookResponse.model_validate(book)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_book(self, book_id: str, s: Session) -> Book:
        book = self.db.get_book(book_id, session=s)
        if not book:
            raise NotFoundError("Book", book_id)
        return book

    @staticmethod
    def _resolve(
        book: Book, current_page: Optional[int], current_percentage: Optional[float]
    ) -> tuple[int, int]:
        """Turn a page or a percentage into a (page, percentage) pair."""
        total = book.total_pages
        if current_page is not None:
            if total and current_page > total:
                raise ValidationError(
                    f"Page {current_page} is beyond the book's {total} pages"
                )
            return current_page, calculate_percentage(current_page, total)
        if total:
            page = calculate_page_from_percentage(current_percentage, total)
            return page, calculate_percentage(page, total)
        # No page count to convert against
        return 0, math.floor(current_percentage)

    def _recompute_pages_read(self, session_id: str, s: Session) -> None:
        entries = [
            e for e in self.progress.find_by_session(session_id, session=s)
            if _is_iso_day(e.progress_date)
        ]
        entries.sort(key=lambda e: (e.progress_date, e.current_page))
        previous_page = None
        for entry in entries:
            if previous_page is None:
                entry.pages_read = entry.current_page
            else:
                entry.pages_read = max(0, entry.current_page - previous_page)
            previous_page = entry.current_page
        s.flush()
