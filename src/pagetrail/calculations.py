"""Page and percentage arithmetic shared by progress logging and stats.

Percentages are always floored so that only the last page reaches 100%.
"""

import math


def calculate_percentage(current_page: int, total_pages: int) -> int:
    """Percentage of the book reached at ``current_page``.

    Returns 0 for a non-positive page count and never more than 100.
    """
    if not total_pages or total_pages <= 0:
        return 0
    return min(100, math.floor(current_page / total_pages * 100))


def calculate_page_from_percentage(percentage: float, total_pages: int) -> int:
    """Page reached at ``percentage`` of a ``total_pages`` book."""
    if not total_pages or total_pages <= 0:
        return 0
    return math.floor(percentage / 100 * total_pages)
