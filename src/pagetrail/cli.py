"""Command-line interface for pagetrail.

Built with Typer for commands and Rich for output. Commands address books,
sessions and progress entries by ID; ``add-book`` prints the new book's ID.
"""

import logging
from datetime import date
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db import get_db
from .db.schemas import BookCreate, SessionStatus
from .errors import PagetrailError, ValidationError
from .reading import ProgressTracker, SessionManager, format_display_date
from .stats import StatsAggregator

# Create the main app
app = typer.Typer(
    name="pagetrail",
    help="Track reading sessions and daily page progress.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def fail(error: PagetrailError) -> NoReturn:
    """Print a typed error and exit with status 1."""
    print_error(escape(str(error)))
    if isinstance(error, ValidationError) and error.conflicting_entry:
        entry = error.conflicting_entry
        print_info(f"Conflicting entry {entry.id} ({entry.type}, {entry.date})")
    raise typer.Exit(1)


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` option value."""
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        print_error(f"Invalid date: {value} (expected YYYY-MM-DD)")
        raise typer.Exit(1)


@app.callback()
def main_callback() -> None:
    """Track reading sessions and daily page progress."""
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================================
# Book and Status Commands
# ============================================================================


@app.command("add-book")
def add_book(
    title: str = typer.Argument(..., help="Book title"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author"),
    pages: Optional[int] = typer.Option(None, "--pages", "-p", help="Total pages"),
) -> None:
    """Add a book to track."""
    try:
        book_data = BookCreate(title=title, author=author, total_pages=pages)
    except ValueError as e:
        print_error(escape(str(e)))
        raise typer.Exit(1)

    book = get_db().create_book(book_data)
    print_success(f"Added: {book.title}")
    console.print(f"  ID: {book.id}")


@app.command()
def status(
    book_id: str = typer.Argument(..., help="Book ID"),
    new_status: SessionStatus = typer.Argument(..., help="New reading status"),
    on: Optional[str] = typer.Option(
        None, "--date", "-d", help="Date of the change (YYYY-MM-DD, default: today)"
    ),
    review: Optional[str] = typer.Option(None, "--review", help="Review text"),
    rating: Optional[int] = typer.Option(None, "--rating", "-r", help="Rating 1-5"),
) -> None:
    """Set a book's reading status."""
    change_date = parse_date(on)
    manager = SessionManager(get_db())

    try:
        result = manager.set_status(
            book_id,
            new_status,
            started_date=change_date if new_status == SessionStatus.READING else None,
            completed_date=change_date if new_status == SessionStatus.READ else None,
            dnf_date=change_date if new_status == SessionStatus.DNF else None,
            review=review,
            rating=rating,
        )
    except PagetrailError as e:
        fail(e)

    session = result.session
    if result.session_archived:
        print_info(
            f"Session #{result.archived_session_number} archived with its progress"
        )
    print_success(f"Session #{session.session_number} is now {session.status.value}")


@app.command()
def reread(book_id: str = typer.Argument(..., help="Book ID")) -> None:
    """Start re-reading a finished book."""
    manager = SessionManager(get_db())
    try:
        session = manager.start_reread(book_id)
    except PagetrailError as e:
        fail(e)
    print_success(f"Started read #{session.session_number} on {session.started_date}")


# ============================================================================
# Progress Commands
# ============================================================================


@app.command()
def log(
    book_id: str = typer.Argument(..., help="Book ID"),
    page: Optional[int] = typer.Option(None, "--page", "-p", help="Page reached"),
    percent: Optional[float] = typer.Option(None, "--percent", help="Percentage reached"),
    on: Optional[str] = typer.Option(
        None, "--date", "-d", help="Date (YYYY-MM-DD, default: today)"
    ),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Notes"),
) -> None:
    """Log reading progress for a book's active session."""
    progress_date = parse_date(on)
    tracker = ProgressTracker(get_db())

    try:
        entry = tracker.log_progress(
            book_id,
            current_page=page,
            current_percentage=percent,
            progress_date=progress_date,
            notes=notes,
        )
    except PagetrailError as e:
        fail(e)

    print_success(
        f"Logged page {entry.current_page} ({entry.current_percentage}%) "
        f"on {format_display_date(entry.progress_date)}"
    )
    console.print(f"  Pages read: {entry.pages_read}")
    console.print(f"  Entry ID: {entry.id}")


@app.command()
def edit(
    entry_id: str = typer.Argument(..., help="Progress entry ID"),
    page: Optional[int] = typer.Option(None, "--page", "-p", help="New page"),
    percent: Optional[float] = typer.Option(None, "--percent", help="New percentage"),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="New date (YYYY-MM-DD)"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="New notes"),
) -> None:
    """Edit a progress entry."""
    progress_date = parse_date(on)
    tracker = ProgressTracker(get_db())

    try:
        entry = tracker.edit_progress(
            entry_id,
            current_page=page,
            current_percentage=percent,
            progress_date=progress_date,
            notes=notes,
        )
    except PagetrailError as e:
        fail(e)

    print_success(
        f"Entry now at page {entry.current_page} "
        f"on {format_display_date(entry.progress_date)}"
    )


# ============================================================================
# Read-next Queue Commands
# ============================================================================


@app.command()
def queue() -> None:
    """Show the read-next queue."""
    db = get_db()
    sessions = SessionManager(db).get_read_next_queue()
    if not sessions:
        print_info("The read-next queue is empty.")
        return

    table = Table(title="Read Next", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Title", style="cyan", max_width=40)
    table.add_column("Session ID", style="dim")

    for session in sessions:
        book = db.get_book(session.book_id)
        table.add_row(
            str(session.read_next_order),
            book.title if book else session.book_id,
            session.id,
        )

    console.print(table)


@app.command()
def top(session_id: str = typer.Argument(..., help="Read-next session ID")) -> None:
    """Move a session to the top of the read-next queue."""
    try:
        SessionManager(get_db()).move_to_top(session_id)
    except PagetrailError as e:
        fail(e)
    print_success("Moved to the top of the queue")


@app.command()
def bottom(session_id: str = typer.Argument(..., help="Read-next session ID")) -> None:
    """Move a session to the bottom of the read-next queue."""
    try:
        SessionManager(get_db()).move_to_bottom(session_id)
    except PagetrailError as e:
        fail(e)
    print_success("Moved to the bottom of the queue")


# ============================================================================
# Statistics Commands
# ============================================================================


@app.command()
def overview(
    tz: Optional[str] = typer.Option(None, "--tz", help="IANA timezone (default: configured)"),
) -> None:
    """Show reading statistics."""
    stats = StatsAggregator(get_db()).get_overview(tz)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("")
    table.add_column("Total", justify="right")
    table.add_column("This year", justify="right")
    table.add_column("This month", justify="right")
    table.add_column("Today", justify="right")
    table.add_row(
        "Books read",
        str(stats.books_read.total),
        str(stats.books_read.this_year),
        str(stats.books_read.this_month),
        "-",
    )
    table.add_row(
        "Pages read",
        str(stats.pages_read.total),
        str(stats.pages_read.this_year),
        str(stats.pages_read.this_month),
        str(stats.pages_read.today),
    )

    console.print(Panel(table, title="Overview"))
    console.print(f"Currently reading: {stats.currently_reading}")
    console.print(f"Average pages per day: {stats.avg_pages_per_day}")


@app.command()
def calendar(
    start: str = typer.Argument(..., help="First day (YYYY-MM-DD)"),
    end: str = typer.Argument(..., help="Last day (YYYY-MM-DD)"),
) -> None:
    """Show pages read per day."""
    start_date = parse_date(start)
    end_date = parse_date(end)
    days = StatsAggregator(get_db()).get_activity_calendar(start_date, end_date)
    if not days:
        print_info("No reading logged in this range.")
        return

    table = Table(title="Reading Activity", show_header=True, header_style="bold magenta")
    table.add_column("Date")
    table.add_column("Pages", justify="right")
    for day in days:
        table.add_row(day.date, str(day.pages_read))
    console.print(table)


@app.command()
def streak(
    tz: Optional[str] = typer.Option(None, "--tz", help="IANA timezone (default: configured)"),
) -> None:
    """Show the reading streak."""
    stats = StatsAggregator(get_db()).get_streak(tz)
    console.print(f"Current streak: {stats.current_streak} days")
    console.print(f"Longest streak: {stats.longest_streak} days")
    console.print(f"Days active: {stats.total_days_active}")
    if stats.last_activity_date:
        console.print(f"Last read: {format_display_date(stats.last_activity_date)}")


# ============================================================================
# Version Command
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"pagetrail version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
