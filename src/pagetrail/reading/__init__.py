"""Reading session lifecycle, timeline validation and progress logging."""

from .session import SessionManager
from .progress import (
    ProgressTracker,
    calculate_page_from_percentage,
    calculate_percentage,
)
from .validation import TimelineValidator, format_display_date

__all__ = [
    "SessionManager",
    "ProgressTracker",
    "calculate_page_from_percentage",
    "calculate_percentage",
    "TimelineValidator",
    "format_display_date",
]
