# Overview: UTC clock, timestamp serialisation and day-window helpers.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def days_ago(dt: datetime, days: int) -> datetime:
    """Midnight `days` days before dt."""
    return start_of_day(dt) - timedelta(days=days)


def format_ticket_timestamp(dt: datetime) -> str:
    """dd/mm/yyyy HH:MM:SS, the layout printed on kitchen tickets."""
    return dt.strftime("%d/%m/%Y %H:%M:%S")
