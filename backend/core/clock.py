from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_now() -> datetime:
    """Request-scoped "now". Tests override this dependency to freeze time."""
    return utcnow()


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    aware = ensure_aware(value)
    return aware.astimezone(timezone.utc) if aware else None
