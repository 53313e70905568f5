"""DateTime utility functions for taskboard."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Current UTC time as a naive datetime.

    Timestamps are stored naive-UTC so they round-trip unchanged through
    SQLite, which has no timezone-aware column type.

    Returns:
        Naive datetime in UTC
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
