# Overview: Order status machine and queue priority rules.

from __future__ import annotations

from datetime import datetime

from .models.orders import STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED

# completed -> cancelled is the one terminal-to-terminal move: an order that
# was already handed over can still be voided, and is flagged as such.
ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: {STATUS_CANCELLED},
    STATUS_CANCELLED: set(),
}

PRIORITY_URGENT = "urgent"
PRIORITY_WARNING = "warning"
PRIORITY_NORMAL = "normal"

URGENT_AFTER_MINUTES = 30
WARNING_AFTER_MINUTES = 15


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def is_editable(status: str) -> bool:
    """Line items may only change while the kitchen has not finished the order."""
    return status == STATUS_PENDING


def elapsed_minutes(created_at: datetime, now: datetime) -> int:
    return int((now - created_at).total_seconds() // 60)


def classify_priority(created_at: datetime, now: datetime) -> str:
    minutes = elapsed_minutes(created_at, now)
    if minutes > URGENT_AFTER_MINUTES:
        return PRIORITY_URGENT
    if minutes > WARNING_AFTER_MINUTES:
        return PRIORITY_WARNING
    return PRIORITY_NORMAL


def format_elapsed(created_at: datetime, now: datetime) -> str:
    """'1h 5m' past the hour, '12m' below it."""
    minutes = max(elapsed_minutes(created_at, now), 0)
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"
