"""Database module for local SQLite storage."""

from .models import Book, ProgressLog, ReadingSession
from .schemas import BookCreate, SessionStatus
from .sqlite import Database, get_db
from .stores import ProgressStore, SessionStore

__all__ = [
    "Book",
    "ProgressLog",
    "ReadingSession",
    "BookCreate",
    "SessionStatus",
    "Database",
    "get_db",
    "ProgressStore",
    "SessionStore",
]
