"""Reading session lifecycle.

A book has at most one active session: its current attempt, in any of
``to-read``, ``read-next`` or ``reading``. Finishing (``read``) or
abandoning (``dnf``) a session archives it. Archived sessions are never
modified again; re-reading creates a new session numbered one past the
highest existing number.
"""

import logging
from datetime import date
from typing import Optional, Union

import pydantic
from sqlalchemy.orm import Session

from ..config import today_in
from ..db.models import ReadingSession
from ..db.schemas import (
    ReadingSessionResponse,
    SessionStatus,
    StatusUpdate,
    TERMINAL_STATUSES,
    StatusUpdateResult,
)
from ..db.sqlite import Database, get_db
from ..db.stores import ProgressStore, SessionStore
from ..errors import (
    InvalidStateError,
    NoCompletedSessionError,
    NotArchivedError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Moving an in-progress read back to one of these is a "backward movement"
PLANNING_STATUSES = (SessionStatus.TO_READ, SessionStatus.READ_NEXT)


def _to_response(db_session: ReadingSession) -> ReadingSessionResponse:
    return ReadingSessionResponse.model_validate(db_session)


class SessionManager:
    """Manages status transitions and the sessions behind them."""

    def __init__(
        self,
        db: Optional[Database] = None,
        session_store: Optional[SessionStore] = None,
        progress_store: Optional[ProgressStore] = None,
    ):
        """Initialize session manager.

        Args:
            db: Database instance (transactions and book lookups)
            session_store: Session data access, defaults to one over ``db``
            progress_store: Progress data access, defaults to one over ``db``
        """
        self.db = db or get_db()
        self.sessions = session_store or SessionStore(self.db)
        self.progress = progress_store or ProgressStore(self.db)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_session(self, session_id: str) -> ReadingSessionResponse:
        """Get a session by ID.

        Raises:
            NotFoundError: If the session does not exist
        """
        with self.db.transaction() as s:
            return _to_response(self._require_session(session_id, s))

    def get_active_session(self, book_id: str) -> Optional[ReadingSessionResponse]:
        """Get the book's active session, or None."""
        with self.db.transaction() as s:
            self._require_book(book_id, s)
            active = self.sessions.find_active_by_book(book_id, session=s)
            return _to_response(active) if active else None

    def get_sessions_for_book(self, book_id: str) -> list[ReadingSessionResponse]:
        """Get every session of a book, newest first."""
        with self.db.transaction() as s:
            self._require_book(book_id, s)
            return [_to_response(r) for r in self.sessions.find_all_by_book(book_id, session=s)]

    def get_sessions_by_status(
        self, status: Union[SessionStatus, str], active_only: bool = True
    ) -> list[ReadingSessionResponse]:
        """Get one session per book in the given status.

        A book finished several times is represented by its most recently
        completed session.
        """
        with self.db.transaction() as s:
            rows = self.sessions.find_by_status(SessionStatus(status), active_only, session=s)
            return [_to_response(r) for r in rows]

    def get_read_next_queue(self) -> list[ReadingSessionResponse]:
        """Get the read-next queue in order."""
        with self.db.transaction() as s:
            return [_to_response(r) for r in self.sessions.find_read_next_queue(session=s)]

    # -------------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------------

    def set_status(
        self,
        book_id: str,
        status: Union[SessionStatus, str],
        *,
        started_date: Optional[date] = None,
        completed_date: Optional[date] = None,
        dnf_date: Optional[date] = None,
        review: Optional[str] = None,
        rating: Optional[int] = None,
    ) -> StatusUpdateResult:
        """Change a book's reading status.

        Creates the book's first session when it has none, otherwise updates
        the active one. ``read`` and ``dnf`` archive the session.

        Args:
            book_id: Book ID
            status: New status
            started_date: Start date when entering ``reading`` (default: today)
            completed_date: Completion date for ``read`` (default: today)
            dnf_date: Abandon date for ``dnf`` (default: today)
            review: Review text to store on the session
            rating: Rating to store on the book

        Returns:
            StatusUpdateResult with the resulting session

        Raises:
            NotFoundError: If the book does not exist
            ValidationError: If the status or rating is not acceptable
        """
        try:
            update = StatusUpdate(
                status=status,
                started_date=started_date,
                completed_date=completed_date,
                dnf_date=dnf_date,
                review=review,
                rating=rating,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

        with self.db.transaction() as s:
            self._require_book(book_id, s)
            result = self._apply_status(book_id, update, s)
            if update.rating is not None:
                self.db.update_book(book_id, session=s, rating=update.rating)
            return result

    def _apply_status(self, book_id: str, update: StatusUpdate, s: Session) -> StatusUpdateResult:
        today = today_in()
        new_status = update.status
        active = self.sessions.find_active_by_book(book_id, session=s)

        if active is None and new_status in TERMINAL_STATUSES:
            latest = self.sessions.find_latest_by_book(book_id, session=s)
            if latest and latest.status == new_status.value:
                # Finishing an already archived session again is a no-op
                return StatusUpdateResult(session=_to_response(latest))

        is_backward = (
            active is not None
            and active.status == SessionStatus.READING.value
            and new_status in PLANNING_STATUSES
        )
        if is_backward and self.progress.has_progress(active.id, session=s):
            self.sessions.archive(active.id, session=s)
            fields = {}
            if new_status == SessionStatus.READ_NEXT:
                fields["read_next_order"] = self.sessions.next_read_next_order(session=s)
            new_session = self.sessions.create(
                book_id, active.session_number + 1, new_status, session=s, **fields
            )
            logger.info(
                "Archived session #%d of book %s and started #%d as %s",
                active.session_number,
                book_id,
                new_session.session_number,
                new_status.value,
            )
            return StatusUpdateResult(
                session=_to_response(new_session),
                session_archived=True,
                archived_session_number=active.session_number,
            )

        values: dict = {"status": new_status}
        has_start = active is not None and active.started_date
        if new_status == SessionStatus.READING and not has_start:
            values["started_date"] = (update.started_date or today).isoformat()
        if new_status == SessionStatus.READ:
            if not has_start:
                values["started_date"] = (update.started_date or today).isoformat()
            values["completed_date"] = (update.completed_date or today).isoformat()
            values["is_active"] = False
        if new_status == SessionStatus.DNF:
            values["dnf_date"] = (update.dnf_date or today).isoformat()
            values["is_active"] = False
        if update.review is not None:
            values["review"] = update.review

        was_queued = active is not None and active.status == SessionStatus.READ_NEXT.value
        if new_status == SessionStatus.READ_NEXT and not was_queued:
            values["read_next_order"] = self.sessions.next_read_next_order(session=s)
        elif was_queued and new_status != SessionStatus.READ_NEXT:
            values["read_next_order"] = None

        if active is not None:
            result = self.sessions.update(active.id, session=s, **values)
            if was_queued and new_status != SessionStatus.READ_NEXT:
                self._reindex(s)
        else:
            number = self.sessions.next_session_number(book_id, session=s)
            status_value = values.pop("status")
            values.setdefault("is_active", True)
            result = self.sessions.create(book_id, number, status_value, session=s, **values)
            logger.info("Created session #%d for book %s as %s", number, book_id, new_status.value)

        if not result.is_active:
            logger.info(
                "Archived session #%d of book %s as %s",
                result.session_number,
                book_id,
                new_status.value,
            )
        return StatusUpdateResult(session=_to_response(result))

    def start_reread(self, book_id: str) -> ReadingSessionResponse:
        """Start a new read-through of a finished book.

        Returns:
            The new active ``reading`` session

        Raises:
            NotFoundError: If the book does not exist
            NotArchivedError: If the book still has an active session
            NoCompletedSessionError: If the book was never finished
            InvalidStateError: If the latest session ended as ``dnf``
        """
        with self.db.transaction() as s:
            self._require_book(book_id, s)

            active = self.sessions.find_active_by_book(book_id, session=s)
            if active is not None:
                raise NotArchivedError(
                    f"Cannot start re-read: session #{active.session_number} is still active "
                    f"with status '{active.status}'"
                )

            if not self.sessions.has_completed_reads(book_id, session=s):
                raise NoCompletedSessionError("Cannot start re-read: no completed reads found")

            latest = self.sessions.find_latest_by_book(book_id, session=s)
            if latest.status != SessionStatus.READ.value:
                raise InvalidStateError(
                    f"Cannot start re-read: latest session must be 'read', not '{latest.status}'"
                )

            new_session = self.sessions.create(
                book_id,
                latest.session_number + 1,
                SessionStatus.READING,
                session=s,
                started_date=today_in().isoformat(),
            )
            logger.info("Started re-read #%d of book %s", new_session.session_number, book_id)
            return _to_response(new_session)

    def update_session_dates(
        self,
        session_id: str,
        started_date: Optional[date] = None,
        completed_date: Optional[date] = None,
    ) -> ReadingSessionResponse:
        """Correct the start or completion date of a session."""
        values = {}
        if started_date is not None:
            values["started_date"] = started_date.isoformat()
        if completed_date is not None:
            values["completed_date"] = completed_date.isoformat()

        with self.db.transaction() as s:
            db_session = self._require_session(session_id, s)
            if completed_date is not None and db_session.status != SessionStatus.READ.value:
                raise InvalidStateError(
                    f"Only 'read' sessions have a completion date, session is '{db_session.status}'"
                )
            if values:
                db_session = self.sessions.update(session_id, session=s, **values)
            return _to_response(db_session)

    # -------------------------------------------------------------------------
    # Read-next queue
    # -------------------------------------------------------------------------

    def _require_read_next(self, session_id: str, s: Session) -> ReadingSession:
        target = self._require_session(session_id, s)
        if target.status != SessionStatus.READ_NEXT.value:
            raise InvalidStateError(
                f"Session must be in 'read-next' status to reorder, not '{target.status}'"
            )
        return target

    def move_to_top(self, session_id: str) -> None:
        """Move a read-next session to position 0, shifting the rest down.

        Raises:
            NotFoundError: If the session does not exist
            InvalidStateError: If the session is not ``read-next``
        """
        with self.db.transaction() as s:
            target = self._require_read_next(session_id, s)
            if target.read_next_order == 0:
                return

            others = [
                q for q in self.sessions.find_read_next_queue(session=s) if q.id != target.id
            ]
            target.read_next_order = 0
            for position, queued in enumerate(others, start=1):
                queued.read_next_order = position
            s.flush()
            logger.info("Moved session %s to the top of the read-next queue", session_id)

    def move_to_bottom(self, session_id: str) -> None:
        """Move a read-next session behind every other queued session.

        Raises:
            NotFoundError: If the session does not exist
            InvalidStateError: If the session is not ``read-next``
        """
        with self.db.transaction() as s:
            target = self._require_read_next(session_id, s)
            queue = self.sessions.find_read_next_queue(session=s)
            if queue and queue[-1].id == target.id:
                return

            others = [q for q in queue if q.id != target.id]
            for position, queued in enumerate(others):
                queued.read_next_order = position
            target.read_next_order = len(others)
            s.flush()
            logger.info("Moved session %s to the bottom of the read-next queue", session_id)

    def reorder_read_next(self, ordered_session_ids: list[str]) -> list[ReadingSessionResponse]:
        """Reorder the queue; listed sessions first, the rest keep their relative order.

        Raises:
            NotFoundError: If a listed session does not exist
            InvalidStateError: If a listed session is not queued
        """
        with self.db.transaction() as s:
            listed = []
            for session_id in ordered_session_ids:
                queued = self._require_session(session_id, s)
                if queued.status != SessionStatus.READ_NEXT.value or not queued.is_active:
                    raise InvalidStateError(
                        f"Session {session_id} is not in the read-next queue"
                    )
                listed.append(queued)

            listed_ids = {q.id for q in listed}
            rest = [q for q in self.sessions.find_read_next_queue(session=s) if q.id not in listed_ids]
            for position, queued in enumerate(listed + rest):
                queued.read_next_order = position
            s.flush()
            logger.info("Reordered read-next queue (%d sessions)", len(listed) + len(rest))
            return [_to_response(q) for q in listed + rest]

    def reindex_read_next(self) -> None:
        """Renumber the read-next queue to 0..n-1, closing any gaps."""
        with self.db.transaction() as s:
            self._reindex(s)

    def _reindex(self, s: Session) -> None:
        for position, queued in enumerate(self.sessions.find_read_next_queue(session=s)):
            queued.read_next_order = position
        s.flush()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_book(self, book_id: str, s: Session):
        book = self.db.get_book(book_id, session=s)
        if not book:
            raise NotFoundError("Book", book_id)
        return book

    def _require_session(self, session_id: str, s: Session) -> ReadingSession:
        db_session = self.sessions.get(session_id, session=s)
        if not db_session:
            raise NotFoundError("Session", session_id)
        return db_session
