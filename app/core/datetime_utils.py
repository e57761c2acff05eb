"""Centralized datetime utilities for consistent timezone handling.

All functions return naive UTC datetimes for database compatibility
(SQLAlchemy models store naive UTC).

Usage:
    from app.core.datetime_utils import utc_now, is_expired, get_expiry

    # Connect attempts live for a bounded window
    attempt.expires_at = get_expiry(seconds=300)
    if is_expired(attempt.expires_at):
        raise ConnectTimeoutError()

    # Provider timestamps
    expires_at = expiry_from_seconds(token_data.get("expires_in"))
    created_at = from_slack_ts("1706745600.000200")
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Returns naive datetime for database compatibility.
    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def is_expired(expires_at: datetime) -> bool:
    """Check if a timestamp has expired.

    Args:
        expires_at: Expiry timestamp (naive UTC)

    Returns:
        True if current time is past expires_at
    """
    return utc_now() > expires_at


def get_expiry(seconds: int = 0, minutes: int = 0, hours: int = 0, days: int = 0) -> datetime:
    """Get future expiry datetime.

    Args:
        seconds: Seconds to add to now
        minutes: Minutes to add to now
        hours: Hours to add to now
        days: Days to add to now

    Returns:
        Naive UTC datetime representing the expiry point
    """
    delta = timedelta(seconds=seconds, minutes=minutes, hours=hours, days=days)
    return utc_now() + delta


def expiry_from_seconds(expires_in: int | str | None) -> datetime | None:
    """Turn an OAuth ``expires_in`` value into an absolute expiry.

    Providers that issue non-expiring tokens (Slack) omit the field,
    in which case None is returned.
    """
    if expires_in in (None, ""):
        return None
    try:
        return get_expiry(seconds=int(expires_in))
    except (TypeError, ValueError):
        return None


def from_slack_ts(ts: str) -> datetime:
    """Convert a Slack message ``ts`` ("1706745600.000200") to naive UTC."""
    return datetime.fromtimestamp(float(ts), UTC).replace(tzinfo=None)
