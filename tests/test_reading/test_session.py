"""Tests for reading session lifecycle management."""

from datetime import date

import pytest

from pagetrail.db.models import Book
from pagetrail.db.schemas import SessionStatus
from pagetrail.db.sqlite import Database
from pagetrail.db.stores import SessionStore
from pagetrail.errors import (
    InvalidStateError,
    NoCompletedSessionError,
    NotArchivedError,
    NotFoundError,
    ValidationError,
)
from pagetrail.reading import session as session_module
from pagetrail.reading.progress import ProgressTracker
from pagetrail.reading.session import SessionManager


class TestSetStatus:
    """Tests for status changes on a book."""

    def test_first_status_creates_session(self, manager: SessionManager, book: Book):
        """Test that a book without sessions gets session #1."""
        result = manager.set_status(book.id, SessionStatus.TO_READ)

        assert result.session.session_number == 1
        assert result.session.status == SessionStatus.TO_READ
        assert result.session.is_active is True
        assert result.session_archived is False

    def test_unknown_book(self, manager: SessionManager):
        with pytest.raises(NotFoundError, match="Book not found"):
            manager.set_status("missing", SessionStatus.READING)

    def test_status_accepts_string(self, manager: SessionManager, book: Book):
        result = manager.set_status(book.id, "read-next")
        assert result.session.status == SessionStatus.READ_NEXT

    def test_unknown_status_string(self, manager: SessionManager, book: Book):
        with pytest.raises(ValidationError):
            manager.set_status(book.id, "finished")

    def test_reading_sets_started_date(self, manager: SessionManager, book: Book):
        manager.set_status(book.id, SessionStatus.TO_READ)

        result = manager.set_status(
            book.id, SessionStatus.READING, started_date=date(2025, 11, 1)
        )

        assert result.session.session_number == 1
        assert result.session.started_date == "2025-11-01"

    def test_reading_keeps_existing_started_date(self, manager: SessionManager, book: Book):
        manager.set_status(book.id, SessionStatus.READING, started_date=date(2025, 11, 1))

        result = manager.set_status(
            book.id, SessionStatus.READING, started_date=date(2025, 12, 1)
        )

        assert result.session.started_date == "2025-11-01"

    def test_read_archives_session(self, manager: SessionManager, book: Book):
        manager.set_status(book.id, SessionStatus.READING, started_date=date(2025, 11, 1))

        result = manager.set_status(
            book.id, SessionStatus.READ, completed_date=date(2025, 11, 20), review="Great"
        )

        assert result.session.status == SessionStatus.READ
        assert result.session.is_active is False
        assert result.session.completed_date == "2025-11-20"
        assert result.session.started_date == "2025-11-01"
        assert result.session.review == "Great"
        assert manager.get_active_session(book.id) is None

    def test_read_fills_missing_started_date(self, manager: SessionManager, book: Book):
        result = manager.set_status(
            book.id,
            SessionStatus.READ,
            started_date=date(2025, 10, 1),
            completed_date=date(2025, 10, 30),
        )

        assert result.session.started_date == "2025-10-01"
        assert result.session.completed_date == "2025-10-30"

    def test_dnf_archives_session(self, manager: SessionManager, book: Book):
        manager.set_status(book.id, SessionStatus.READING)

        result = manager.set_status(book.id, SessionStatus.DNF, dnf_date=date(2025, 11, 3))

        assert result.session.status == SessionStatus.DNF
        assert result.session.dnf_date == "2025-11-03"
        assert result.session.is_active is False

    def test_completion_is_idempotent(
        self, manager: SessionManager, session_store: SessionStore, book: Book
    ):
        """Test that finishing an already finished book changes nothing."""
        first = manager.set_status(
            book.id, SessionStatus.READ, completed_date=date(2025, 11, 20)
        )

        again = manager.set_status(
            book.id, SessionStatus.READ, completed_date=date(2025, 12, 1)
        )

        assert again.session.id == first.session.id
        assert again.session.completed_date == "2025-11-20"
        assert len(session_store.find_all_by_book(book.id)) == 1

    def test_status_after_completion_starts_new_session(
        self, manager: SessionManager, book: Book
    ):
        manager.set_status(book.id, SessionStatus.READ, completed_date=date(2025, 11, 20))

        result = manager.set_status(book.id, SessionStatus.TO_READ)

        assert result.session.session_number == 2
        assert result.session.is_active is True

    def test_rating_is_stored_on_book(self, manager: SessionManager, db: Database, book: Book):
        manager.set_status(book.id, SessionStatus.READ, rating=4)

        assert db.get_book(book.id).rating == 4

    def test_rating_out_of_range(self, manager: SessionManager, db: Database, book: Book):
        with pytest.raises(ValidationError):
            manager.set_status(book.id, SessionStatus.READ, rating=6)

        assert manager.get_sessions_for_book(book.id) == []


class TestBackwardMovement:
    """Tests for moving an in-progress read back to planning statuses."""

    def test_backward_with_progress_archives_and_starts_new_session(
        self, manager: SessionManager, tracker: ProgressTracker, book: Book
    ):
        manager.set_status(book.id, SessionStatus.READING, started_date=date(2025, 11, 1))
        tracker.log_progress(book.id, current_page=40, progress_date=date(2025, 11, 2))

        result = manager.set_status(book.id, SessionStatus.TO_READ)

        assert result.session_archived is True
        assert result.archived_session_number == 1
        assert result.session.session_number == 2
        assert result.session.status == SessionStatus.TO_READ
        assert result.session.is_active is True

        sessions = manager.get_sessions_for_book(book.id)
        archived = sessions[1]
        assert archived.session_number == 1
        assert archived.status == SessionStatus.READING
        assert archived.is_active is False

    def test_backward_to_read_next_joins_queue(
        self, manager: SessionManager, tracker: ProgressTracker, book: Book
    ):
        manager.set_status(book.id, SessionStatus.READING)
        tracker.log_progress(book.id, current_page=40, progress_date=date(2025, 11, 2))

        result = manager.set_status(book.id, SessionStatus.READ_NEXT)

        assert result.session.read_next_order == 0
        assert [s.id for s in manager.get_read_next_queue()] == [result.session.id]

    def test_backward_without_progress_updates_in_place(
        self, manager: SessionManager, book: Book
    ):
        started = manager.set_status(book.id, SessionStatus.READING)

        result = manager.set_status(book.id, SessionStatus.TO_READ)

        assert result.session_archived is False
        assert result.session.id == started.session.id
        assert result.session.session_number == 1


class TestStartReread:
    """Tests for re-reading finished books."""

    def test_reread_creates_next_session(
        self, manager: SessionManager, book: Book, frozen_clock, configured_timezone
    ):
        configured_timezone("America/New_York")
        manager.set_status(book.id, SessionStatus.READ, completed_date=date(2025, 11, 20))

        session = manager.start_reread(book.id)

        assert session.session_number == 2
        assert session.status == SessionStatus.READING
        assert session.is_active is True
        assert session.started_date == "2026-03-01"

        previous = manager.get_sessions_for_book(book.id)[1]
        assert previous.status == SessionStatus.READ
        assert previous.is_active is False

    def test_reread_numbering_follows_highest(self, manager: SessionManager, book: Book):
        manager.set_status(book.id, SessionStatus.READ, completed_date=date(2024, 1, 1))
        manager.start_reread(book.id)
        manager.set_status(book.id, SessionStatus.READ, completed_date=date(2025, 1, 1))

        session = manager.start_reread(book.id)

        assert session.session_number == 3

    def test_reread_with_active_session(self, manager: SessionManager, book: Book):
        manager.set_status(book.id, SessionStatus.READING)

        with pytest.raises(NotArchivedError):
            manager.start_reread(book.id)

    def test_reread_never_finished(self, manager: SessionManager, book: Book):
        with pytest.raises(NoCompletedSessionError):
            manager.start_reread(book.id)

    def test_reread_after_dnf(self, manager: SessionManager, book: Book):
        manager.set_status(book.id, SessionStatus.READ, completed_date=date(2024, 1, 1))
        manager.start_reread(book.id)
        manager.set_status(book.id, SessionStatus.DNF)

        with pytest.raises(InvalidStateError, match="latest session must be 'read'"):
            manager.start_reread(book.id)

    def test_reread_unknown_book(self, manager: SessionManager):
        with pytest.raises(NotFoundError):
            manager.start_reread("missing")


class TestDefaultDates:
    """Omitted dates default to today in the configured timezone."""

    @pytest.mark.parametrize(
        "zone, expected",
        [("Pacific/Kiritimati", "2026-03-02"), ("America/New_York", "2026-03-01")],
    )
    def test_reading_started_date(
        self, manager: SessionManager, book: Book, frozen_clock, configured_timezone, zone, expected
    ):
        configured_timezone(zone)

        result = manager.set_status(book.id, SessionStatus.READING)

        assert result.session.started_date == expected

    def test_read_dates(
        self, manager: SessionManager, book: Book, frozen_clock, configured_timezone
    ):
        configured_timezone("Pacific/Kiritimati")

        result = manager.set_status(book.id, SessionStatus.READ)

        assert result.session.started_date == "2026-03-02"
        assert result.session.completed_date == "2026-03-02"

    def test_dnf_date(self, manager: SessionManager, book: Book, frozen_clock, configured_timezone):
        configured_timezone("Pacific/Kiritimati")
        manager.set_status(book.id, SessionStatus.READING, started_date=date(2026, 2, 1))

        result = manager.set_status(book.id, SessionStatus.DNF)

        assert result.session.dnf_date == "2026-03-02"

    def test_reread_started_date(
        self, manager: SessionManager, book: Book, frozen_clock, configured_timezone
    ):
        configured_timezone("Pacific/Kiritimati")
        manager.set_status(book.id, SessionStatus.READ, completed_date=date(2026, 2, 20))

        assert manager.start_reread(book.id).started_date == "2026-03-02"


class TestReadNextQueue:
    """Tests for read-next queue ordering."""

    @pytest.fixture
    def queued(self, manager: SessionManager, make_book):
        return [
            manager.set_status(make_book(title).id, SessionStatus.READ_NEXT).session
            for title in ("A", "B", "C")
        ]

    def test_orders_assigned_in_sequence(self, queued):
        assert [s.read_next_order for s in queued] == [0, 1, 2]

    def test_leaving_queue_reindexes(self, manager: SessionManager, queued):
        result = manager.set_status(queued[1].book_id, SessionStatus.READING)

        assert result.session.read_next_order is None
        queue = manager.get_read_next_queue()
        assert [s.id for s in queue] == [queued[0].id, queued[2].id]
        assert [s.read_next_order for s in queue] == [0, 1]

    def test_move_to_top(self, manager: SessionManager, queued):
        manager.move_to_top(queued[2].id)

        queue = manager.get_read_next_queue()
        assert [s.id for s in queue] == [queued[2].id, queued[0].id, queued[1].id]
        assert [s.read_next_order for s in queue] == [0, 1, 2]

    def test_move_to_top_already_first(self, manager: SessionManager, queued):
        manager.move_to_top(queued[0].id)

        assert [s.id for s in manager.get_read_next_queue()] == [s.id for s in queued]

    def test_move_to_top_wrong_status(self, manager: SessionManager, book: Book):
        session = manager.set_status(book.id, SessionStatus.TO_READ).session

        with pytest.raises(InvalidStateError, match="read-next"):
            manager.move_to_top(session.id)

    def test_move_to_top_unknown_session(self, manager: SessionManager):
        with pytest.raises(NotFoundError):
            manager.move_to_top("missing")

    def test_move_to_bottom(self, manager: SessionManager, queued):
        manager.move_to_bottom(queued[0].id)

        queue = manager.get_read_next_queue()
        assert [s.id for s in queue] == [queued[1].id, queued[2].id, queued[0].id]
        assert [s.read_next_order for s in queue] == [0, 1, 2]

    def test_move_to_bottom_already_last(self, manager: SessionManager, queued):
        manager.move_to_bottom(queued[2].id)

        queue = manager.get_read_next_queue()
        assert [s.id for s in queue] == [s.id for s in queued]
        assert [s.read_next_order for s in queue] == [0, 1, 2]

    def test_move_to_bottom_wrong_status(self, manager: SessionManager, book: Book):
        session = manager.set_status(book.id, SessionStatus.READING).session

        with pytest.raises(InvalidStateError, match="read-next"):
            manager.move_to_bottom(session.id)

    def test_move_to_bottom_unknown_session(self, manager: SessionManager):
        with pytest.raises(NotFoundError):
            manager.move_to_bottom("missing")

    def test_move_to_bottom_rolls_back_on_failure(
        self, manager: SessionManager, queued, monkeypatch
    ):
        """Test that a failure before commit leaves the queue untouched."""

        def boom(*args, **kwargs):
            raise RuntimeError("interrupted")

        monkeypatch.setattr(session_module.logger, "info", boom)

        with pytest.raises(RuntimeError):
            manager.move_to_bottom(queued[0].id)

        queue = manager.get_read_next_queue()
        assert [s.id for s in queue] == [s.id for s in queued]
        assert [s.read_next_order for s in queue] == [0, 1, 2]

    def test_reorder(self, manager: SessionManager, queued):
        reordered = manager.reorder_read_next([queued[1].id])

        assert [s.id for s in reordered] == [queued[1].id, queued[0].id, queued[2].id]
        assert [s.read_next_order for s in manager.get_read_next_queue()] == [0, 1, 2]

    def test_reorder_rejects_unqueued(self, manager: SessionManager, queued, book: Book):
        other = manager.set_status(book.id, SessionStatus.TO_READ).session

        with pytest.raises(InvalidStateError):
            manager.reorder_read_next([other.id, queued[0].id])

        # Nothing changed
        assert [s.id for s in manager.get_read_next_queue()] == [s.id for s in queued]

    def test_reindex_closes_gaps(
        self, manager: SessionManager, session_store: SessionStore, queued
    ):
        session_store.update(queued[1].id, read_next_order=7)
        session_store.update(queued[2].id, read_next_order=9)

        manager.reindex_read_next()

        assert [s.read_next_order for s in manager.get_read_next_queue()] == [0, 1, 2]


class TestQueries:
    """Tests for session lookups."""

    def test_get_session(self, manager: SessionManager, book: Book):
        created = manager.set_status(book.id, SessionStatus.TO_READ).session

        assert manager.get_session(created.id).id == created.id

    def test_get_unknown_session(self, manager: SessionManager):
        with pytest.raises(NotFoundError, match="Session not found: missing"):
            manager.get_session("missing")

    def test_sessions_by_status_one_per_book(
        self, manager: SessionManager, book: Book, make_book
    ):
        manager.set_status(book.id, SessionStatus.READ, completed_date=date(2024, 3, 1))
        manager.start_reread(book.id)
        latest = manager.set_status(
            book.id, SessionStatus.READ, completed_date=date(2025, 3, 1)
        ).session
        manager.set_status(make_book("Emma").id, SessionStatus.READING)

        finished = manager.get_sessions_by_status(SessionStatus.READ, active_only=False)

        assert [s.id for s in finished] == [latest.id]
        assert len(manager.get_sessions_by_status("reading")) == 1


class TestUpdateSessionDates:
    """Tests for correcting session dates."""

    def test_update_dates(self, manager: SessionManager, book: Book):
        session = manager.set_status(
            book.id, SessionStatus.READ, completed_date=date(2025, 11, 20)
        ).session

        updated = manager.update_session_dates(
            session.id, started_date=date(2025, 10, 1), completed_date=date(2025, 11, 21)
        )

        assert updated.started_date == "2025-10-01"
        assert updated.completed_date == "2025-11-21"

    def test_completed_date_requires_read(self, manager: SessionManager, book: Book):
        session = manager.set_status(book.id, SessionStatus.READING).session

        with pytest.raises(InvalidStateError):
            manager.update_session_dates(session.id, completed_date=date(2025, 11, 21))
