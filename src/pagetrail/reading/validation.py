"""Timeline validation for progress entries.

Progress within a session must never decrease as the calendar date
increases. A new or edited value is checked against the highest value
recorded before its date and the lowest value recorded after it. Equal
values are always accepted.
"""

from datetime import date
from typing import Optional, Union

from sqlalchemy.orm import Session

from ..db.models import ProgressLog
from ..db.schemas import ConflictingEntry, ValidationResult
from ..db.stores import ProgressStoreProtocol

DateLike = Union[date, str]


def format_display_date(value: DateLike) -> str:
    """Format a calendar day for messages, e.g. ``Nov 5, 2025``.

    Values that are not valid ISO dates are returned unchanged.
    """
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value)
        except ValueError:
            return value
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def format_progress(value: float, is_percentage: bool) -> str:
    """Render a progress value: ``page 100`` or ``50.0%``."""
    if is_percentage:
        return f"{value:.1f}%"
    return f"page {int(value)}"


def _to_iso(value: DateLike) -> str:
    return value if isinstance(value, str) else value.isoformat()


class TimelineValidator:
    """Checks progress values against the rest of a session's timeline.

    Pure decision logic: it reads the progress store and never writes.
    """

    def __init__(self, progress_store: ProgressStoreProtocol):
        self.progress = progress_store

    def validate_new_entry(
        self,
        session_id: str,
        progress_date: DateLike,
        progress_value: float,
        is_percentage: bool = False,
        session: Optional[Session] = None,
    ) -> ValidationResult:
        """Validate a progress value about to be logged on ``progress_date``.

        Args:
            session_id: Reading session the entry belongs to
            progress_date: Calendar day of the entry
            progress_value: Page number, or percentage when ``is_percentage``
            is_percentage: Compare percentages instead of pages
            session: Optional open database session to read through

        Returns:
            ValidationResult; ``conflicting_entry`` is set when invalid
        """
        return self._validate(session_id, progress_date, progress_value, is_percentage, None, session)

    def validate_edit(
        self,
        entry_id: str,
        session_id: str,
        progress_date: DateLike,
        progress_value: float,
        is_percentage: bool = False,
        session: Optional[Session] = None,
    ) -> ValidationResult:
        """Validate an edit of ``entry_id``.

        Identical to ``validate_new_entry`` except the entry under edit is
        left out of both bounds, so editing a session's only entry is
        always valid.
        """
        return self._validate(
            session_id, progress_date, progress_value, is_percentage, entry_id, session
        )

    def _validate(
        self,
        session_id: str,
        progress_date: DateLike,
        progress_value: float,
        is_percentage: bool,
        exclude_id: Optional[str],
        session: Optional[Session],
    ) -> ValidationResult:
        day = _to_iso(progress_date)

        def value_of(entry: ProgressLog) -> float:
            return entry.current_percentage if is_percentage else entry.current_page

        entries_before = self.progress.find_before_date(
            session_id, day, exclude_id=exclude_id, session=session
        )
        if entries_before:
            lower_bound = max(value_of(e) for e in entries_before)
            if progress_value < lower_bound:
                # Entries come newest first, so this is the latest day holding the bound
                conflicting = next(e for e in entries_before if value_of(e) == lower_bound)
                return self._invalid(
                    "Progress must be at least", conflicting, lower_bound, "before", is_percentage
                )

        entries_after = self.progress.find_after_date(
            session_id, day, exclude_id=exclude_id, session=session
        )
        if entries_after:
            upper_bound = min(value_of(e) for e in entries_after)
            if progress_value > upper_bound:
                conflicting = next(e for e in entries_after if value_of(e) == upper_bound)
                return self._invalid(
                    "Progress cannot exceed", conflicting, upper_bound, "after", is_percentage
                )

        return ValidationResult(valid=True)

    @staticmethod
    def _invalid(
        prefix: str,
        conflicting: ProgressLog,
        bound: float,
        kind: str,
        is_percentage: bool,
    ) -> ValidationResult:
        display_date = format_display_date(conflicting.progress_date)
        return ValidationResult(
            valid=False,
            error=(
                f"{prefix} {format_progress(bound, is_percentage)} "
                f"(your progress on {display_date})"
            ),
            conflicting_entry=ConflictingEntry(
                id=conflicting.id,
                type=kind,
                progress=bound,
                date=display_date,
            ),
        )
