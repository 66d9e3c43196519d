from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIME_ZONE = "UTC"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_iso(raw) -> Optional[datetime]:
    """Lenient ISO-8601 parse; naive values are taken as UTC. None when unparseable."""
    if not raw or not isinstance(raw, str):
        return None
    s = raw.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_valid_time_zone(name) -> bool:
    if not name or not isinstance(name, str):
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def resolve_time_zone(name) -> str:
    return name if is_valid_time_zone(name) else DEFAULT_TIME_ZONE


def format_local_timestamp(dt: datetime, time_zone: str) -> str:
    # e.g. "2026-10-19 14:03:27 CEST"
    name = resolve_time_zone(time_zone)
    tz = timezone.utc if name == DEFAULT_TIME_ZONE else ZoneInfo(name)
    local = dt.astimezone(tz)
    return local.strftime("%Y-%m-%d %H:%M:%S %Z")
