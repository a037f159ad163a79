"""Pydantic schemas for data validation.

Request models validate caller input before it reaches the stores;
response models are built from ORM rows with ``from_attributes``.
Stored dates are surfaced as the raw ``YYYY-MM-DD`` text so that legacy
malformed values can still be read back without failing validation.
"""

from datetime import date
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SessionStatus(str, Enum):
    """Reading status of a session."""

    TO_READ = "to-read"
    READ_NEXT = "read-next"
    READING = "reading"
    READ = "read"
    DNF = "dnf"  # Did not finish


# Statuses that archive the session when entered
TERMINAL_STATUSES = (SessionStatus.READ, SessionStatus.DNF)


# ============================================================================
# Books
# ============================================================================


class BookCreate(BaseModel):
    """Schema for creating a book record."""

    title: str = Field(..., min_length=1)
    author: Optional[str] = None
    total_pages: Optional[int] = Field(None, gt=0)
    rating: Optional[int] = Field(None, ge=1, le=5)


class BookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    author: Optional[str] = None
    total_pages: Optional[int] = None
    rating: Optional[int] = None


# ============================================================================
# Sessions
# ============================================================================


class StatusUpdate(BaseModel):
    """Schema for a status change on a book."""

    status: SessionStatus
    started_date: Optional[date] = None
    completed_date: Optional[date] = None
    dnf_date: Optional[date] = None
    review: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)


class ReadingSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    book_id: str
    session_number: int
    status: SessionStatus
    is_active: bool
    started_date: Optional[str] = None
    completed_date: Optional[str] = None
    dnf_date: Optional[str] = None
    review: Optional[str] = None
    read_next_order: Optional[int] = None


class StatusUpdateResult(BaseModel):
    """Outcome of a status change."""

    session: ReadingSessionResponse
    session_archived: bool = False
    archived_session_number: Optional[int] = None


# ============================================================================
# Progress
# ============================================================================


class ProgressLogCreate(BaseModel):
    """Schema for logging new progress. Exactly one of page or percentage."""

    current_page: Optional[int] = Field(None, ge=0, description="Absolute page reached")
    current_percentage: Optional[float] = Field(None, ge=0, le=100)
    progress_date: Optional[date] = None  # defaults to today in the service
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_progress_input(self):
        has_page = self.current_page is not None
        has_percentage = self.current_percentage is not None
        if not has_page and not has_percentage:
            raise ValueError("Either current_page or current_percentage is required")
        if has_page and has_percentage:
            raise ValueError("Provide only one of: current_page or current_percentage")
        return self


class ProgressLogUpdate(BaseModel):
    """Schema for editing an existing progress entry. All fields optional."""

    current_page: Optional[int] = Field(None, ge=0)
    current_percentage: Optional[float] = Field(None, ge=0, le=100)
    progress_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_progress_input(self):
        if self.current_page is not None and self.current_percentage is not None:
            raise ValueError("Provide only one of: current_page or current_percentage")
        return self


class ProgressLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    book_id: str
    session_id: str
    current_page: int
    current_percentage: int
    progress_date: str
    pages_read: int
    notes: Optional[str] = None


class ConflictingEntry(BaseModel):
    """The stored entry that a rejected progress value collides with."""

    id: str
    type: Literal["before", "after"]
    progress: float
    date: str  # short display form, e.g. "Nov 5, 2025"


class ValidationResult(BaseModel):
    """Outcome of a timeline check."""

    valid: bool
    error: Optional[str] = None
    conflicting_entry: Optional[ConflictingEntry] = None


# ============================================================================
# Statistics
# ============================================================================


class BooksReadStats(BaseModel):
    total: int = 0
    this_year: int = 0
    this_month: int = 0


class PagesReadStats(BaseModel):
    total: int = 0
    this_year: int = 0
    this_month: int = 0
    today: int = 0


class OverviewStats(BaseModel):
    """Dashboard summary."""

    books_read: BooksReadStats
    currently_reading: int = 0
    pages_read: PagesReadStats
    avg_pages_per_day: int = 0


class DailyActivity(BaseModel):
    date: str
    pages_read: int


class StreakStats(BaseModel):
    """Consecutive-day reading activity."""

    current_streak: int = 0
    longest_streak: int = 0
    total_days_active: int = 0
    last_activity_date: Optional[str] = None
