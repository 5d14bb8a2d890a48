import re
from datetime import datetime, timedelta, timezone
from typing import Optional

_UNITS = {"d": "days", "h": "hours", "m": "minutes", "s": "seconds"}


def parse_duration(duration_str: str) -> timedelta:
    """Parses a duration string like '14d' or '1h30m' into a timedelta object."""
    if not duration_str:
        return timedelta()

    parts = re.findall(r"(\d+)([dhms])", duration_str)
    if not parts or "".join([p[0] + p[1] for p in parts]) != duration_str:
        raise ValueError(f"Invalid duration format: {duration_str}")

    duration_dict: dict = {}
    for value, unit in parts:
        key = _UNITS[unit]
        duration_dict[key] = duration_dict.get(key, 0) + int(value)

    return timedelta(**duration_dict)


def format_duration(duration: timedelta) -> str:
    """Renders a timedelta in the same notation parse_duration accepts."""
    seconds = int(duration.total_seconds())
    if seconds <= 0:
        return "0s"
    out = []
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60), ("s", 1)):
        value, seconds = divmod(seconds, size)
        if value:
            out.append(f"{value}{unit}")
    return "".join(out)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parses an RFC3339 timestamp as written by the API server."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
