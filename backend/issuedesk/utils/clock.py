from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes even for timezone-aware columns; treat them as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace('+00:00', 'Z')


def parse_iso(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))

__all__ = ['utc_now', 'ensure_utc', 'format_iso', 'parse_iso']
