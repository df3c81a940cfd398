# src/reward_gate/db/time.py
"""Time utilities for database models and day bucketing."""

from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def day_bucket(moment: datetime) -> str:
    """Return the UTC calendar day (YYYY-MM-DD) containing `moment`."""
    return moment.astimezone(UTC).strftime("%Y-%m-%d")


def next_utc_midnight_ms(moment: datetime) -> int:
    """Return the epoch milliseconds at which the day bucket of `moment` resets."""
    start = moment.astimezone(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    return int((start + timedelta(days=1)).timestamp() * 1000)
