# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the admission engine.

Design Decisions:
-----------------
1. All timestamps are stored in UTC (PostgreSQL TIMESTAMPTZ)
2. All Python datetimes are timezone-aware (with timezone.utc)
3. Naive datetimes coming from callers are assumed to be UTC

Usage:
------
    from admission_engine.utils.datetime import utc_now

    # For Pydantic model defaults
    timestamp: datetime = Field(default_factory=utc_now)
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def within_window(
    at: datetime,
    start: datetime | None,
    end: datetime | None,
) -> bool:
    """Check whether an instant falls inside an optional closed window.

    Either bound may be None, meaning unbounded on that side.

    Args:
        at: The instant to check.
        start: Window start (inclusive) or None.
        end: Window end (inclusive) or None.

    Returns:
        True if ``start <= at <= end`` for the bounds that are set.
    """
    at_utc = ensure_utc(at)
    if start is not None and at_utc < ensure_utc(start):
        return False
    if end is not None and at_utc > ensure_utc(end):
        return False
    return True


def days_between(earlier: datetime, later: datetime) -> float:
    """Return the fractional number of days from earlier to later.

    Args:
        earlier: Start instant.
        later: End instant.

    Returns:
        Days elapsed (negative if later precedes earlier).
    """
    delta = ensure_utc(later) - ensure_utc(earlier)
    return delta.total_seconds() / 86400
