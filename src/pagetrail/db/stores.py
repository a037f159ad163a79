"""Data access for reading sessions and progress logs.

``SessionStore`` and ``ProgressStore`` are the only code that queries the
``reading_sessions`` and ``progress_logs`` tables. Services receive them
through their constructors. ``ProgressStoreProtocol`` is the read surface
the timeline validator needs, so it can run over any store.

Every method takes an optional SQLAlchemy ``session``. When given, the
call joins the caller's transaction; otherwise it runs in its own
transaction and returns detached objects.
"""

from typing import Any, Callable, Optional, Protocol, TypeVar

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from ..calculations import calculate_percentage
from .models import Base, ProgressLog, ReadingSession
from .schemas import SessionStatus
from .sqlite import Database

T = TypeVar("T")

# Strict YYYY-MM-DD shape; rows failing it are left out of date-scoped queries
DATE_GLOB = "[0-9][0-9][0-9][0-9]-[0-9][0-9]-[0-9][0-9]"


def well_formed_date(column):
    """SQL condition: ``column`` holds a strict ``YYYY-MM-DD`` value."""
    return column.op("GLOB")(DATE_GLOB)


def in_year(column, year: int):
    return and_(well_formed_date(column), column.like(f"{year:04d}-%"))


def in_year_month(column, year: int, month: int):
    return and_(well_formed_date(column), column.like(f"{year:04d}-{month:02d}-%"))


# ============================================================================
# Interfaces
# ============================================================================


class ProgressStoreProtocol(Protocol):
    def find_before_date(self, session_id: str, progress_date: str,
                         exclude_id: Optional[str] = None,
                         session: Optional[Session] = None) -> list[ProgressLog]: ...

    def find_after_date(self, session_id: str, progress_date: str,
                        exclude_id: Optional[str] = None,
                        session: Optional[Session] = None) -> list[ProgressLog]: ...


# ============================================================================
# SQLAlchemy implementations
# ============================================================================


class _Store:
    def __init__(self, db: Database):
        self.db = db

    def _run(self, fn: Callable[[Session], T], session: Optional[Session]) -> T:
        if session:
            return fn(session)
        with self.db.transaction() as s:
            result = fn(s)
            if isinstance(result, Base):
                s.expunge(result)
            elif isinstance(result, list):
                for item in result:
                    if isinstance(item, Base):
                        s.expunge(item)
            return result


class SessionStore(_Store):
    """Persisted reading sessions."""

    def get(self, session_id: str, session: Optional[Session] = None) -> Optional[ReadingSession]:
        """Get a session by ID."""
        return self._run(lambda s: s.get(ReadingSession, session_id), session)

    def find_active_by_book(
        self, book_id: str, session: Optional[Session] = None
    ) -> Optional[ReadingSession]:
        """Get the book's active session, if any."""

        def _get(s: Session) -> Optional[ReadingSession]:
            stmt = (
                select(ReadingSession)
                .where(ReadingSession.book_id == book_id, ReadingSession.is_active.is_(True))
                .order_by(ReadingSession.session_number.desc())
            )
            return s.execute(stmt).scalars().first()

        return self._run(_get, session)

    def find_all_by_book(
        self, book_id: str, session: Optional[Session] = None
    ) -> list[ReadingSession]:
        """Get all sessions for a book, highest session number first."""

        def _get(s: Session) -> list[ReadingSession]:
            stmt = (
                select(ReadingSession)
                .where(ReadingSession.book_id == book_id)
                .order_by(ReadingSession.session_number.desc())
            )
            return list(s.execute(stmt).scalars().all())

        return self._run(_get, session)

    def find_latest_by_book(
        self, book_id: str, session: Optional[Session] = None
    ) -> Optional[ReadingSession]:
        """Get the session with the highest session number."""

        def _get(s: Session) -> Optional[ReadingSession]:
            stmt = (
                select(ReadingSession)
                .where(ReadingSession.book_id == book_id)
                .order_by(ReadingSession.session_number.desc())
                .limit(1)
            )
            return s.execute(stmt).scalar_one_or_none()

        return self._run(_get, session)

    def find_by_status(
        self,
        status: SessionStatus,
        active_only: bool = True,
        session: Optional[Session] = None,
    ) -> list[ReadingSession]:
        """Get one representative session per book with the given status.

        When a book has several matching sessions (repeated ``read``
        sessions after re-reads), the most recently completed one is kept.
        Sessions whose completion date is not a strict ``YYYY-MM-DD`` value
        rank below every well-formed one.
        """

        def _get(s: Session) -> list[ReadingSession]:
            stmt = select(ReadingSession).where(ReadingSession.status == status.value)
            if active_only:
                stmt = stmt.where(ReadingSession.is_active.is_(True))
            stmt = stmt.order_by(
                well_formed_date(ReadingSession.completed_date).desc(),
                ReadingSession.completed_date.desc(),
                ReadingSession.session_number.desc(),
            )
            representatives: dict[str, ReadingSession] = {}
            for row in s.execute(stmt).scalars().all():
                representatives.setdefault(row.book_id, row)
            return list(representatives.values())

        return self._run(_get, session)

    def next_session_number(self, book_id: str, session: Optional[Session] = None) -> int:
        """Get the session number a new session for the book should take."""

        def _get(s: Session) -> int:
            stmt = select(func.max(ReadingSession.session_number)).where(
                ReadingSession.book_id == book_id
            )
            current = s.execute(stmt).scalar()
            return (current or 0) + 1

        return self._run(_get, session)

    def has_completed_reads(self, book_id: str, session: Optional[Session] = None) -> bool:
        """Check whether the book has ever been finished."""

        def _get(s: Session) -> bool:
            stmt = select(func.count(ReadingSession.id)).where(
                ReadingSession.book_id == book_id,
                ReadingSession.status == SessionStatus.READ.value,
            )
            return (s.execute(stmt).scalar() or 0) > 0

        return self._run(_get, session)

    def create(
        self,
        book_id: str,
        session_number: int,
        status: SessionStatus,
        session: Optional[Session] = None,
        **fields: Any,
    ) -> ReadingSession:
        """Create a new session. ``is_active`` defaults to True."""

        def _create(s: Session) -> ReadingSession:
            fields.setdefault("is_active", True)
            db_session = ReadingSession(
                book_id=book_id,
                session_number=session_number,
                status=status.value,
                **fields,
            )
            s.add(db_session)
            s.flush()
            return db_session

        return self._run(_create, session)

    def update(
        self, session_id: str, session: Optional[Session] = None, **fields: Any
    ) -> Optional[ReadingSession]:
        """Update columns of a session."""

        def _update(s: Session) -> Optional[ReadingSession]:
            db_session = s.get(ReadingSession, session_id)
            if not db_session:
                return None
            for field, value in fields.items():
                if isinstance(value, SessionStatus):
                    value = value.value
                setattr(db_session, field, value)
            s.flush()
            return db_session

        return self._run(_update, session)

    def archive(self, session_id: str, session: Optional[Session] = None) -> Optional[ReadingSession]:
        """Archive a session (set is_active = False)."""
        return self.update(session_id, session=session, is_active=False)

    # ------------------------------------------------------------------------
    # Read-next queue
    # ------------------------------------------------------------------------

    def find_read_next_queue(self, session: Optional[Session] = None) -> list[ReadingSession]:
        """Get active read-next sessions in queue order."""

        def _get(s: Session) -> list[ReadingSession]:
            stmt = (
                select(ReadingSession)
                .where(
                    ReadingSession.status == SessionStatus.READ_NEXT.value,
                    ReadingSession.is_active.is_(True),
                )
                .order_by(
                    ReadingSession.read_next_order.is_(None),
                    ReadingSession.read_next_order.asc(),
                    ReadingSession.created_at.asc(),
                )
            )
            return list(s.execute(stmt).scalars().all())

        return self._run(_get, session)

    def next_read_next_order(self, session: Optional[Session] = None) -> int:
        """Get the queue position after the current last one (0 when empty)."""

        def _get(s: Session) -> int:
            stmt = select(func.coalesce(func.max(ReadingSession.read_next_order), -1)).where(
                ReadingSession.status == SessionStatus.READ_NEXT.value,
                ReadingSession.is_active.is_(True),
            )
            return s.execute(stmt).scalar() + 1

        return self._run(_get, session)

    # ------------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------------

    def count_by_status(
        self,
        status: SessionStatus,
        active_only: bool = True,
        session: Optional[Session] = None,
    ) -> int:
        """Count sessions with a status, without any date filter."""

        def _count(s: Session) -> int:
            stmt = select(func.count(ReadingSession.id)).where(
                ReadingSession.status == status.value
            )
            if active_only:
                stmt = stmt.where(ReadingSession.is_active.is_(True))
            return s.execute(stmt).scalar() or 0

        return self._run(_count, session)

    def count_completed_by_year(self, year: int, session: Optional[Session] = None) -> int:
        """Count ``read`` sessions completed in a year. Malformed dates are skipped."""

        def _count(s: Session) -> int:
            stmt = select(func.count(ReadingSession.id)).where(
                ReadingSession.status == SessionStatus.READ.value,
                in_year(ReadingSession.completed_date, year),
            )
            return s.execute(stmt).scalar() or 0

        return self._run(_count, session)

    def count_completed_by_year_month(
        self, year: int, month: int, session: Optional[Session] = None
    ) -> int:
        """Count ``read`` sessions completed in a month. Malformed dates are skipped."""

        def _count(s: Session) -> int:
            stmt = select(func.count(ReadingSession.id)).where(
                ReadingSession.status == SessionStatus.READ.value,
                in_year_month(ReadingSession.completed_date, year, month),
            )
            return s.execute(stmt).scalar() or 0

        return self._run(_count, session)


class ProgressStore(_Store):
    """Persisted progress logs."""

    def get(self, entry_id: str, session: Optional[Session] = None) -> Optional[ProgressLog]:
        """Get a progress entry by ID."""
        return self._run(lambda s: s.get(ProgressLog, entry_id), session)

    def find_by_session(
        self, session_id: str, session: Optional[Session] = None
    ) -> list[ProgressLog]:
        """Get a session's progress entries, most recent first."""

        def _get(s: Session) -> list[ProgressLog]:
            stmt = (
                select(ProgressLog)
                .where(ProgressLog.session_id == session_id)
                .order_by(ProgressLog.progress_date.desc(), ProgressLog.created_at.desc())
            )
            return list(s.execute(stmt).scalars().all())

        return self._run(_get, session)

    def find_before_date(
        self,
        session_id: str,
        progress_date: str,
        exclude_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> list[ProgressLog]:
        """Get a session's entries dated strictly before ``progress_date``."""

        def _get(s: Session) -> list[ProgressLog]:
            stmt = select(ProgressLog).where(
                ProgressLog.session_id == session_id,
                well_formed_date(ProgressLog.progress_date),
                ProgressLog.progress_date < progress_date,
            )
            if exclude_id is not None:
                stmt = stmt.where(ProgressLog.id != exclude_id)
            stmt = stmt.order_by(ProgressLog.progress_date.desc())
            return list(s.execute(stmt).scalars().all())

        return self._run(_get, session)

    def find_after_date(
        self,
        session_id: str,
        progress_date: str,
        exclude_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> list[ProgressLog]:
        """Get a session's entries dated strictly after ``progress_date``."""

        def _get(s: Session) -> list[ProgressLog]:
            stmt = select(ProgressLog).where(
                ProgressLog.session_id == session_id,
                well_formed_date(ProgressLog.progress_date),
                ProgressLog.progress_date > progress_date,
            )
            if exclude_id is not None:
                stmt = stmt.where(ProgressLog.id != exclude_id)
            stmt = stmt.order_by(ProgressLog.progress_date.asc())
            return list(s.execute(stmt).scalars().all())

        return self._run(_get, session)

    def has_progress(self, session_id: str, session: Optional[Session] = None) -> bool:
        """Check if any progress was logged for a session."""

        def _get(s: Session) -> bool:
            stmt = select(func.count(ProgressLog.id)).where(ProgressLog.session_id == session_id)
            return (s.execute(stmt).scalar() or 0) > 0

        return self._run(_get, session)

    def create(
        self,
        book_id: str,
        session_id: str,
        current_page: int,
        current_percentage: int,
        progress_date: str,
        pages_read: int,
        notes: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> ProgressLog:
        """Create a new progress entry."""

        def _create(s: Session) -> ProgressLog:
            entry = ProgressLog(
                book_id=book_id,
                session_id=session_id,
                current_page=current_page,
                current_percentage=current_percentage,
                progress_date=progress_date,
                pages_read=pages_read,
                notes=notes,
            )
            s.add(entry)
            s.flush()
            return entry

        return self._run(_create, session)

    def update(
        self, entry_id: str, session: Optional[Session] = None, **fields: Any
    ) -> Optional[ProgressLog]:
        """Update columns of a progress entry."""

        def _update(s: Session) -> Optional[ProgressLog]:
            entry = s.get(ProgressLog, entry_id)
            if not entry:
                return None
            for field, value in fields.items():
                setattr(entry, field, value)
            s.flush()
            return entry

        return self._run(_update, session)

    def delete(self, entry_id: str, session: Optional[Session] = None) -> bool:
        """Delete a progress entry."""

        def _delete(s: Session) -> bool:
            entry = s.get(ProgressLog, entry_id)
            if not entry:
                return False
            s.delete(entry)
            return True

        return self._run(_delete, session)

    # ------------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------------

    def get_total_pages_read(self, session: Optional[Session] = None) -> int:
        """Sum of pages read over every entry, malformed dates included."""

        def _sum(s: Session) -> int:
            stmt = select(func.coalesce(func.sum(ProgressLog.pages_read), 0))
            return s.execute(stmt).scalar() or 0

        return self._run(_sum, session)

    def get_pages_read_by_year(self, year: int, session: Optional[Session] = None) -> int:
        def _sum(s: Session) -> int:
            stmt = select(func.coalesce(func.sum(ProgressLog.pages_read), 0)).where(
                in_year(ProgressLog.progress_date, year)
            )
            return s.execute(stmt).scalar() or 0

        return self._run(_sum, session)

    def get_pages_read_by_year_month(
        self, year: int, month: int, session: Optional[Session] = None
    ) -> int:
        def _sum(s: Session) -> int:
            stmt = select(func.coalesce(func.sum(ProgressLog.pages_read), 0)).where(
                in_year_month(ProgressLog.progress_date, year, month)
            )
            return s.execute(stmt).scalar() or 0

        return self._run(_sum, session)

    def get_pages_read_by_date(self, progress_date: str, session: Optional[Session] = None) -> int:
        def _sum(s: Session) -> int:
            stmt = select(func.coalesce(func.sum(ProgressLog.pages_read), 0)).where(
                well_formed_date(ProgressLog.progress_date),
                ProgressLog.progress_date == progress_date,
            )
            return s.execute(stmt).scalar() or 0

        return self._run(_sum, session)

    def get_daily_pages(
        self,
        start_date: str,
        end_date: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> list[tuple[str, int]]:
        """Pages read per calendar day in ``[start_date, end_date]``, oldest first."""

        def _get(s: Session) -> list[tuple[str, int]]:
            stmt = select(
                ProgressLog.progress_date,
                func.coalesce(func.sum(ProgressLog.pages_read), 0),
            ).where(
                well_formed_date(ProgressLog.progress_date),
                ProgressLog.progress_date >= start_date,
            )
            if end_date is not None:
                stmt = stmt.where(ProgressLog.progress_date <= end_date)
            stmt = stmt.group_by(ProgressLog.progress_date).order_by(
                ProgressLog.progress_date.asc()
            )
            return [(day, int(pages)) for day, pages in s.execute(stmt).all()]

        return self._run(_get, session)

    def get_active_days(self, session: Optional[Session] = None) -> list[str]:
        """Distinct well-formed days with at least one page read, oldest first."""

        def _get(s: Session) -> list[str]:
            stmt = (
                select(ProgressLog.progress_date)
                .where(
                    well_formed_date(ProgressLog.progress_date),
                    ProgressLog.pages_read > 0,
                )
                .distinct()
                .order_by(ProgressLog.progress_date.asc())
            )
            return list(s.execute(stmt).scalars().all())

        return self._run(_get, session)

    def get_highest_current_page_for_active_sessions(
        self, book_id: str, session: Optional[Session] = None
    ) -> int:
        """Highest page logged in the book's active ``reading`` session, or 0."""

        def _get(s: Session) -> int:
            stmt = (
                select(func.max(ProgressLog.current_page))
                .join(ReadingSession, ProgressLog.session_id == ReadingSession.id)
                .where(
                    ProgressLog.book_id == book_id,
                    ReadingSession.is_active.is_(True),
                    ReadingSession.status == SessionStatus.READING.value,
                )
            )
            return s.execute(stmt).scalar() or 0

        return self._run(_get, session)

    def recalculate_percentages_for_book(
        self, book_id: str, new_total_pages: int, session: Optional[Session] = None
    ) -> int:
        """Recompute percentages of entries in the book's active ``reading`` sessions.

        Archived sessions are left untouched.

        Returns:
            Number of progress entries updated
        """

        def _recalculate(s: Session) -> int:
            stmt = (
                select(ProgressLog)
                .join(ReadingSession, ProgressLog.session_id == ReadingSession.id)
                .where(
                    ReadingSession.book_id == book_id,
                    ReadingSession.is_active.is_(True),
                    ReadingSession.status == SessionStatus.READING.value,
                )
            )
            updated = 0
            for entry in s.execute(stmt).scalars().all():
                entry.current_percentage = calculate_percentage(entry.current_page, new_total_pages)
                updated += 1
            s.flush()
            return updated

        return self._run(_recalculate, session)
