"""UTC datetime utilities."""

from datetime import UTC, date, datetime


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(UTC)


def utc_today() -> date:
    return utc_now().date()


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """A NULL expiry never expires; otherwise expired once `expires_at <= now`."""
    if expires_at is None:
        return False
    return expires_at <= (now or utc_now())
