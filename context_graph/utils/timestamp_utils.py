"""
Timestamp utilities for consistent time handling across the graph.
"""

from datetime import datetime, timezone
from typing import Optional


def to_iso_str(moment: Optional[datetime] = None) -> str:
    """Render a moment as a fixed-width UTC ISO-8601 string.

    Fixed width keeps lexicographic order equal to chronological order, which
    the graph relies on when sorting by timestamp.

    Args:
        moment: Datetime to render (optional, uses current time if None)

    Returns:
        ISO-8601 string with microseconds and a +00:00 offset
    """
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec='microseconds')


def not_before(candidate: str, floor: Optional[str]) -> str:
    """Return candidate, or floor when candidate would move time backwards."""
    if floor is not None and candidate < floor:
        return floor
    return candidate
