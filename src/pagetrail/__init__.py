"""Reading session tracking, progress timelines and reading statistics."""

__version__ = "0.1.0"
