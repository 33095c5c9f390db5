from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value) -> datetime | None:
    """Coerce a stored timestamp to an aware UTC datetime; None if it is not a datetime.
    Why available: Firestore returns DatetimeWithNanoseconds, the memory store returns plain datetimes, and a malformed record may hold anything."""
    if not isinstance(value, datetime):
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
