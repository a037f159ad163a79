"""Main entry point for ``python -m pagetrail``."""

from pagetrail.cli import main

if __name__ == "__main__":
    main()
