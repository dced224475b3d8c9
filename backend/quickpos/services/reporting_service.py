# Overview: Service-layer aggregation for the manager dashboards; revenue, volumes and alerts.

"""
Reporting

Revenue figures only count completed orders. Windows start at midnight
(server time, UTC) and are open-ended, matching the dashboard filters:
today, yesterday, the last 7 days and the last 30 days.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Branch, Category, Order, OrderItem, Product
from ..models.orders import STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED
from ..time_utils import utcnow, to_utc_z, days_ago
from ..validation import ValidationError

DASHBOARD_PERIODS = ("today", "yesterday", "week", "month")
BRANCH_TIME_RANGES = ("today", "week", "month")
TOP_ITEMS_LIMIT = 5
UNCATEGORIZED = "Uncategorized"

REVENUE_DROP_ALERT_PCT = 20.0
PENDING_ALERT_THRESHOLD = 10

_PERIOD_DAYS = {"today": 0, "yesterday": 1, "week": 7, "month": 30}
_RANGE_LABELS = {"today": "day", "week": "week", "month": "month"}


def window_start(period: str, now: datetime) -> datetime:
    try:
        return days_ago(now, _PERIOD_DAYS[period])
    except KeyError:
        raise ValidationError(f"period must be one of: {', '.join(DASHBOARD_PERIODS)}") from None


def _completed_since(start: datetime | None, end: datetime | None = None, branch_id: int | None = None):
    query = db.session.query(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_cents), 0),
    ).filter(Order.status == STATUS_COMPLETED)
    if start is not None:
        query = query.filter(Order.created_at >= start)
    if end is not None:
        query = query.filter(Order.created_at < end)
    if branch_id is not None:
        query = query.filter(Order.branch_id == branch_id)
    count, revenue = query.one()
    return int(count or 0), int(revenue or 0)


def top_items(start: datetime, branch_id: int | None = None, limit: int = TOP_ITEMS_LIMIT) -> list[dict]:
    """Best sellers by revenue, grouped on the snapshot product name."""
    revenue = func.sum(OrderItem.price_cents * OrderItem.quantity)
    query = (
        db.session.query(
            OrderItem.product_name.label("name"),
            func.sum(OrderItem.quantity).label("quantity"),
            revenue.label("revenue_cents"),
        )
        .join(Order, OrderItem.order_id == Order.id)
        .filter(Order.status == STATUS_COMPLETED, Order.created_at >= start)
    )
    if branch_id is not None:
        query = query.filter(Order.branch_id == branch_id)
    rows = (
        query.group_by(OrderItem.product_name)
        .order_by(revenue.desc(), OrderItem.product_name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "name": row.name,
            "quantity": int(row.quantity or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]


def dashboard_stats(period: str = "today", now: datetime | None = None, branch_id: int | None = None) -> dict:
    now = now or utcnow()
    start = window_start(period, now)

    order_count, revenue = _completed_since(start, branch_id=branch_id)

    cancelled = db.session.query(func.count(Order.id)).filter(
        Order.status == STATUS_CANCELLED,
        Order.created_at >= start,
    )
    if branch_id is not None:
        cancelled = cancelled.filter(Order.branch_id == branch_id)

    return {
        "period": period,
        "start": to_utc_z(start),
        "branch_id": branch_id,
        "revenue_cents": revenue,
        "order_count": order_count,
        "average_order_cents": (revenue // order_count) if order_count else 0,
        "cancelled_count": int(cancelled.scalar() or 0),
        "top_items": top_items(start, branch_id=branch_id),
    }


def _previous_window(time_range: str, today: datetime) -> tuple[datetime, datetime]:
    """The window of equal length right before the current one."""
    if time_range == "today":
        return today - timedelta(days=1), today
    days = _PERIOD_DAYS[time_range]
    return today - timedelta(days=2 * days), today - timedelta(days=days)


def branch_stats(now: datetime | None = None, time_range: str = "today") -> list[dict]:
    """Per-branch revenue and volume, plus the previous period for comparison."""
    if time_range not in BRANCH_TIME_RANGES:
        raise ValidationError(f"time_range must be one of: {', '.join(BRANCH_TIME_RANGES)}")
    now = now or utcnow()
    today = days_ago(now, 0)
    prev_start, prev_end = _previous_window(time_range, today)

    stats = []
    for branch in db.session.query(Branch).order_by(Branch.name.asc(), Branch.id.asc()).all():
        today_orders, today_revenue = _completed_since(today, branch_id=branch.id)
        week_orders, week_revenue = _completed_since(days_ago(now, 7), branch_id=branch.id)
        month_orders, month_revenue = _completed_since(days_ago(now, 30), branch_id=branch.id)
        total_orders, total_revenue = _completed_since(None, branch_id=branch.id)
        prev_orders, prev_revenue = _completed_since(prev_start, prev_end, branch_id=branch.id)
        pending = (
            db.session.query(func.count(Order.id))
            .filter(Order.branch_id == branch.id, Order.status == STATUS_PENDING)
            .scalar()
        )
        stats.append(
            {
                "branch": branch.to_dict(),
                "today_revenue_cents": today_revenue,
                "week_revenue_cents": week_revenue,
                "month_revenue_cents": month_revenue,
                "total_revenue_cents": total_revenue,
                "today_orders": today_orders,
                "week_orders": week_orders,
                "month_orders": month_orders,
                "total_orders": total_orders,
                "pending_orders": int(pending or 0),
                "previous_period_revenue_cents": prev_revenue,
                "previous_period_orders": prev_orders,
            }
        )
    return stats


def revenue_trends(now: datetime | None = None, days: int = 30) -> list[dict]:
    """Daily completed revenue for the last `days` days, oldest first, today included."""
    if days < 1:
        raise ValidationError("days must be >= 1")
    now = now or utcnow()
    today = days_ago(now, 0)
    start = today - timedelta(days=days - 1)

    day_expr = func.strftime("%Y-%m-%d", Order.created_at)
    rows = (
        db.session.query(
            day_expr.label("day"),
            func.count(Order.id).label("orders"),
            func.coalesce(func.sum(Order.total_cents), 0).label("revenue_cents"),
        )
        .filter(Order.status == STATUS_COMPLETED, Order.created_at >= start)
        .group_by("day")
        .all()
    )
    by_day = {row.day: row for row in rows}

    trends = []
    for offset in range(days):
        day = (start + timedelta(days=offset)).strftime("%Y-%m-%d")
        row = by_day.get(day)
        trends.append(
            {
                "date": day,
                "revenue_cents": int(row.revenue_cents) if row else 0,
                "orders": int(row.orders) if row else 0,
            }
        )
    return trends


def category_sales() -> list[dict]:
    """
    Revenue and line count per category, highest revenue first.

    Items whose product (or its category) no longer exists are reported
    under "Uncategorized". Cancelled orders are left out.
    """
    rows = (
        db.session.query(
            Category.name.label("category"),
            OrderItem.price_cents,
            OrderItem.quantity,
        )
        .select_from(OrderItem)
        .join(Order, OrderItem.order_id == Order.id)
        .outerjoin(Product, OrderItem.product_id == Product.id)
        .outerjoin(Category, Product.category_id == Category.id)
        .filter(Order.status != STATUS_CANCELLED)
        .all()
    )

    totals: dict[str, dict] = {}
    for row in rows:
        name = row.category or UNCATEGORIZED
        bucket = totals.setdefault(name, {"category": name, "revenue_cents": 0, "orders": 0})
        bucket["revenue_cents"] += row.price_cents * row.quantity
        bucket["orders"] += 1

    return sorted(totals.values(), key=lambda b: (-b["revenue_cents"], b["category"]))


def _current_revenue(stat: dict, time_range: str) -> int:
    return stat[f"{time_range}_revenue_cents"]


def alerts(stats: list[dict], time_range: str = "today") -> list[str]:
    """Human-readable warnings for branches that need a manager's attention."""
    messages = []
    for stat in stats:
        name = stat["branch"]["name"]
        previous = stat["previous_period_revenue_cents"]
        if previous > 0:
            change_pct = (_current_revenue(stat, time_range) - previous) / previous * 100.0
            if change_pct < -REVENUE_DROP_ALERT_PCT:
                messages.append(
                    f"{name}: Revenue dropped by {abs(change_pct):.1f}% compared to previous {_RANGE_LABELS[time_range]}"
                )
        if stat["pending_orders"] > PENDING_ALERT_THRESHOLD:
            messages.append(f"{name}: {stat['pending_orders']} pending orders - high volume")
    return messages
