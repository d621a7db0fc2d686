from datetime import datetime, timezone
from typing import Any


def parse_mongo_datetime(v: Any) -> Any:
    """Normalize stored datetimes to aware UTC values.

    Handles Extended JSON as written by mongoimport/mongosh, both the
    ``{'$date': '2024-11-01T08:00:00Z'}`` form and ``{'$date': {'$numberLong': '...'}}``.
    Anything else is left for pydantic to validate.
    """
    if isinstance(v, dict) and "$date" in v:
        raw = v["$date"]
        if isinstance(raw, dict):
            raw = int(raw.get("$numberLong", 0))
        if isinstance(raw, (int, float)):
            return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
        v = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v
