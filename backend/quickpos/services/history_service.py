# Overview: Service-layer read of completed orders for the history screen.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Order
from ..models.orders import STATUS_COMPLETED
from ..time_utils import utcnow, days_ago
from ..validation import ValidationError
from .order_service import scope_orders
from .session_service import SessionContext

HISTORY_LIMIT = 100
HISTORY_PERIODS = ("today", "week", "all")


def history_window_start(period: str, now: datetime) -> datetime | None:
    if period == "today":
        return days_ago(now, 0)
    if period == "week":
        return days_ago(now, 7)
    if period == "all":
        return None
    raise ValidationError(f"period must be one of: {', '.join(HISTORY_PERIODS)}")


def list_history(ctx: SessionContext, period: str = "today", now: datetime | None = None) -> list[Order]:
    """Completed orders, newest first, capped at HISTORY_LIMIT."""
    now = now or utcnow()
    start = history_window_start(period, now)

    query = scope_orders(
        ctx,
        db.session.query(Order).filter(Order.status == STATUS_COMPLETED),
    )
    if query is None:
        return []
    if start is not None:
        query = query.filter(Order.created_at >= start)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(HISTORY_LIMIT).all()
