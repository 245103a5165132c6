"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from databases that drop tzinfo"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_before(moment: datetime, minutes: int) -> datetime:
    """Start of a trailing window ending at `moment`"""
    return moment - timedelta(minutes=minutes)
