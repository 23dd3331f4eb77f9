"""Time utilities for scheduling scans in the low-traffic window."""
from datetime import datetime, timedelta, timezone
from typing import Optional


# Lowest global network activity: 02:00-06:59 UTC
OPTIMAL_WINDOW_START_HOUR = 2
OPTIMAL_WINDOW_END_HOUR = 6
OPTIMAL_SCAN_HOUR = 3


def _utc_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def is_optimal_scan_time(now: Optional[datetime] = None) -> bool:
    """
    Check if a scan should run now.

    Args:
        now: Reference time (defaults to current UTC time; naive values are UTC)

    Returns:
        True between 02:00 and 06:59 UTC
    """
    hour = _utc_now(now).hour
    return OPTIMAL_WINDOW_START_HOUR <= hour <= OPTIMAL_WINDOW_END_HOUR


def next_optimal_scan_time(now: Optional[datetime] = None, hour: int = OPTIMAL_SCAN_HOUR) -> datetime:
    """
    Get the next scheduled scan time.

    Args:
        now: Reference time (defaults to current UTC time)
        hour: UTC hour of the daily scan

    Returns:
        Today's ``hour``:00 UTC if still ahead, otherwise tomorrow's
    """
    current = _utc_now(now)
    candidate = current.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= current:
        candidate += timedelta(days=1)
    return candidate
