"""SQLAlchemy ORM models for the local SQLite database.

Tables:
- books: Minimal book records (page count and rating)
- reading_sessions: One row per read-through attempt of a book
- progress_logs: Individual progress observations within a session

All calendar days are stored as ``YYYY-MM-DD`` text, never as timestamps.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import SessionStatus


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Book(Base):
    """Book model - the only book fields the reading core depends on."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[Optional[str]] = mapped_column(String(500))
    total_pages: Mapped[Optional[int]] = mapped_column(Integer)
    # Books own the rating; sessions never carry one
    rating: Mapped[Optional[int]] = mapped_column(Integer)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(26), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(26), default=utc_now, onupdate=utc_now)

    # Relationships
    sessions: Mapped[list["ReadingSession"]] = relationship(
        "ReadingSession", back_populates="book", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', total_pages={self.total_pages})>"


class ReadingSession(Base):
    """Reading session model - one read-through attempt of a book."""

    __tablename__ = "reading_sessions"
    __table_args__ = (UniqueConstraint("book_id", "session_number"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.TO_READ.value, index=True
    )

    # Dates
    started_date: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date
    completed_date: Mapped[Optional[str]] = mapped_column(String(10))
    dnf_date: Mapped[Optional[str]] = mapped_column(String(10))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    review: Mapped[Optional[str]] = mapped_column(Text)
    read_next_order: Mapped[Optional[int]] = mapped_column(Integer)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(26), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(26), default=utc_now, onupdate=utc_now)

    # Relationships
    book: Mapped["Book"] = relationship("Book", back_populates="sessions")
    progress_logs: Mapped[list["ProgressLog"]] = relationship(
        "ProgressLog", back_populates="session", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<ReadingSession(id={self.id}, book_id={self.book_id}, "
            f"number={self.session_number}, status={self.status}, active={self.is_active})>"
        )


class ProgressLog(Base):
    """Progress log model - one observation of how far into a book the reader got."""

    __tablename__ = "progress_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("reading_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    current_page: Mapped[int] = mapped_column(Integer, default=0)
    current_percentage: Mapped[int] = mapped_column(Integer, default=0)
    progress_date: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    pages_read: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(26), default=utc_now)

    # Relationships
    session: Mapped["ReadingSession"] = relationship(
        "ReadingSession", back_populates="progress_logs"
    )

    def __repr__(self) -> str:
        return (
            f"<ProgressLog(id={self.id}, session_id={self.session_id}, "
            f"date={self.progress_date}, page={self.current_page})>"
        )
