from datetime import datetime, timezone


def serialize_optional_utc_datetime(dt: datetime | None) -> str | None:
    """Render as ISO 8601 in UTC, e.g. 2025-12-03T10:30:00+00:00.

    Naive values are stored as UTC by the ODM and are tagged rather than converted.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc).isoformat()
    return dt.astimezone(timezone.utc).isoformat()
