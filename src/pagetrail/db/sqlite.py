"""SQLite database operations.

Handles the database connection, transaction scoping and book lookups.
Session and progress data access lives in ``stores``.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional, TypeVar, Union

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .models import Base, Book
from .schemas import BookCreate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Database:
    """Database connection and transaction manager."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """Open the SQLite database at ``db_path``.

        ``None`` uses the configured PAGETRAIL_DB_PATH. ``":memory:"`` gives
        a private in-memory database; otherwise missing parent directories
        are created.
        """
        in_memory = str(db_path) == ":memory:"
        self.db_path = get_config().db_path if db_path is None else Path(db_path)

        engine_options: dict = {"connect_args": {"check_same_thread": False}}
        if in_memory:
            # A single shared connection, or each session gets an empty database
            engine_options["poolclass"] = StaticPool
            url = "sqlite://"
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{self.db_path}"

        self.engine = create_engine(url, **engine_options)
        event.listen(self.engine, "connect", _enable_foreign_keys)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Open a session that commits on success and rolls back on any error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def with_transaction(self, fn: Callable[[Session], T]) -> T:
        """Run ``fn`` inside a single transaction and return its result.

        Either every write made by ``fn`` is committed or none is.
        """
        with self.transaction() as session:
            return fn(session)

    # ========================================================================
    # Book Operations
    # ========================================================================

    def create_book(self, book: BookCreate, session: Optional[Session] = None) -> Book:
        """Create a new book record."""

        def _create(s: Session) -> Book:
            db_book = Book(
                title=book.title,
                author=book.author,
                total_pages=book.total_pages,
                rating=book.rating,
            )
            s.add(db_book)
            s.flush()
            return db_book

        if session:
            return _create(session)
        else:
            with self.transaction() as s:
                db_book = _create(s)
                s.expunge(db_book)
                return db_book

    def get_book(self, book_id: str, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID."""

        def _get(s: Session) -> Optional[Book]:
            return s.get(Book, book_id)

        if session:
            return _get(session)
        else:
            with self.transaction() as s:
                db_book = _get(s)
                if db_book:
                    s.expunge(db_book)
                return db_book

    def update_book(
        self, book_id: str, session: Optional[Session] = None, **fields
    ) -> Optional[Book]:
        """Update columns of a book record."""

        def _update(s: Session) -> Optional[Book]:
            db_book = s.get(Book, book_id)
            if not db_book:
                return None
            for field, value in fields.items():
                setattr(db_book, field, value)
            s.flush()
            return db_book

        if session:
            return _update(session)
        else:
            with self.transaction() as s:
                db_book = _update(s)
                if db_book:
                    s.expunge(db_book)
                return db_book


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
        logger.debug("Opened database at %s", _db.db_path)
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
