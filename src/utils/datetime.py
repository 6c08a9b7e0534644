# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for Adeline Brain.

All timestamps are stored in UTC (PostgreSQL TIMESTAMPTZ) and every Python
datetime handled by the mastery engine and job runner is timezone-aware.

Usage:
------
    from src.utils.datetime import utc_now, days_from_now

    # For review scheduling
    next_review_at = days_from_now(1)

    # For SQLAlchemy model defaults
    created_at = Column(DateTime(timezone=True), default=utc_now)
"""

from datetime import datetime, timedelta, timezone

SECONDS_PER_DAY = 24 * 60 * 60


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
        Naive datetimes are assumed to already be UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def days_ago(days: float, reference: datetime | None = None) -> datetime:
    """Get a datetime N days before the reference (default: now)."""
    return (reference or utc_now()) - timedelta(days=days)


def days_from_now(days: float, reference: datetime | None = None) -> datetime:
    """Get a datetime N days after the reference (default: now)."""
    return (reference or utc_now()) + timedelta(days=days)


def elapsed_days(start: datetime, end: datetime | None = None) -> float:
    """Fractional days elapsed between two datetimes.

    Args:
        start: Start of the interval.
        end: End of the interval, defaults to now.

    Returns:
        Elapsed days, negative if start is after end.
    """
    start_utc = ensure_utc(start)
    end_utc = ensure_utc(end) if end is not None else utc_now()
    return (end_utc - start_utc).total_seconds() / SECONDS_PER_DAY


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: The datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()
