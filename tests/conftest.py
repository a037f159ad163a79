"""Pytest configuration and shared fixtures.

This module provides fixtures for testing pagetrail: a temporary SQLite
database per test, the stores and services built over it, and helpers for
inserting raw rows (including legacy rows with malformed dates).
"""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from pagetrail import config as config_module
from pagetrail.config import reset_config
from pagetrail.db.models import Book, ProgressLog, ReadingSession
from pagetrail.db.schemas import BookCreate, SessionStatus
from pagetrail.db.sqlite import Database, reset_db
from pagetrail.db.stores import ProgressStore, SessionStore
from pagetrail.reading.progress import ProgressTracker
from pagetrail.reading.session import SessionManager
from pagetrail.stats.analytics import StatsAggregator


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    os.environ["PAGETRAIL_DB_PATH"] = str(temp_db_path)

    database = Database(str(temp_db_path))
    database.create_tables()
    yield database

    # Cleanup
    database.engine.dispose()
    reset_db()
    reset_config()
    if "PAGETRAIL_DB_PATH" in os.environ:
        del os.environ["PAGETRAIL_DB_PATH"]


# ============================================================================
# Store and Service Fixtures
# ============================================================================


@pytest.fixture
def session_store(db: Database) -> SessionStore:
    return SessionStore(db)


@pytest.fixture
def progress_store(db: Database) -> ProgressStore:
    return ProgressStore(db)


@pytest.fixture
def manager(db: Database, session_store: SessionStore, progress_store: ProgressStore) -> SessionManager:
    """Session manager wired to the test database."""
    return SessionManager(db=db, session_store=session_store, progress_store=progress_store)


@pytest.fixture
def tracker(db: Database, session_store: SessionStore, progress_store: ProgressStore) -> ProgressTracker:
    """Progress tracker wired to the test database."""
    return ProgressTracker(db=db, session_store=session_store, progress_store=progress_store)


@pytest.fixture
def stats(db: Database, session_store: SessionStore, progress_store: ProgressStore) -> StatsAggregator:
    """Stats aggregator wired to the test database."""
    return StatsAggregator(db=db, session_store=session_store, progress_store=progress_store)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def book(db: Database) -> Book:
    """A 300-page book with no sessions."""
    return db.create_book(BookCreate(title="Dune", author="Frank Herbert", total_pages=300))


@pytest.fixture
def make_book(db: Database) -> Callable[..., Book]:
    """Factory for additional books."""

    def _make(title: str = "Another Book", total_pages: Optional[int] = 300) -> Book:
        return db.create_book(BookCreate(title=title, total_pages=total_pages))

    return _make


@pytest.fixture
def add_session(db: Database) -> Callable[..., ReadingSession]:
    """Insert a raw reading session row, bypassing the lifecycle rules."""

    def _add(
        book_id: str,
        session_number: int = 1,
        status: SessionStatus = SessionStatus.READING,
        is_active: bool = True,
        **fields,
    ) -> ReadingSession:
        with db.transaction() as s:
            row = ReadingSession(
                book_id=book_id,
                session_number=session_number,
                status=status.value,
                is_active=is_active,
                **fields,
            )
            s.add(row)
            s.flush()
            s.expunge(row)
            return row

    return _add


@pytest.fixture
def add_progress(db: Database) -> Callable[..., ProgressLog]:
    """Insert a raw progress row; ``progress_date`` is stored as given."""

    def _add(
        reading_session: ReadingSession,
        progress_date: str,
        current_page: int = 0,
        current_percentage: int = 0,
        pages_read: int = 0,
    ) -> ProgressLog:
        with db.transaction() as s:
            row = ProgressLog(
                book_id=reading_session.book_id,
                session_id=reading_session.id,
                current_page=current_page,
                current_percentage=current_percentage,
                progress_date=progress_date,
                pages_read=pages_read,
            )
            s.add(row)
            s.flush()
            s.expunge(row)
            return row

    return _add


# ============================================================================
# Clock Fixtures
# ============================================================================

# 20:00 UTC on 2026-03-01: still March 1st in New York, already March 2nd
# in Kiritimati (UTC+14).
FROZEN_INSTANT = datetime(2026, 3, 1, 20, 0, tzinfo=timezone.utc)


class _FrozenDatetime(datetime):
    @classmethod
    def now(cls, tz=None):
        return FROZEN_INSTANT.astimezone(tz)


@pytest.fixture
def frozen_clock(monkeypatch) -> datetime:
    """Pin the clock behind ``today_in`` to ``FROZEN_INSTANT``."""
    monkeypatch.setattr(config_module, "datetime", _FrozenDatetime)
    return FROZEN_INSTANT


@pytest.fixture
def configured_timezone(monkeypatch) -> Callable[[str], None]:
    """Set PAGETRAIL_TIMEZONE and reload the config."""

    def _set(name: str) -> None:
        monkeypatch.setenv("PAGETRAIL_TIMEZONE", name)
        reset_config()

    return _set
