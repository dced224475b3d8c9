"""Dashboard aggregates."""

from datetime import datetime

import pytest

from quickpos.extensions import db
from quickpos.models import Order, OrderItem
from quickpos.services import reporting_service
from quickpos.validation import ValidationError

NOW = datetime(2026, 5, 20, 15, 0, 0)


def _order(branch, number, created_at, items, status="completed"):
    order = Order(
        order_number=number,
        branch_id=branch.id,
        status=status,
        created_at=created_at,
        total_cents=sum(price * qty for _, price, qty, _ in items),
    )
    for name, price, qty, product_id in items:
        order.items.append(OrderItem(product_name=name, price_cents=price, quantity=qty, product_id=product_id))
    db.session.add(order)
    db.session.commit()
    return order


@pytest.fixture
def sales(branch, other_branch, menu):
    burger, soda = menu["burger"].id, menu["soda"].id
    _order(branch, 1, datetime(2026, 5, 20, 9, 0), [("Burger", 4500, 2, burger), ("Soda", 1250, 1, soda)])
    _order(branch, 2, datetime(2026, 5, 20, 10, 0), [("Soda", 1250, 4, soda)])
    _order(branch, 3, datetime(2026, 5, 19, 12, 0), [("Burger", 4500, 1, burger)])
    _order(branch, 4, datetime(2026, 5, 20, 11, 0), [("Burger", 4500, 1, burger)], status="cancelled")
    _order(branch, 5, datetime(2026, 5, 20, 12, 0), [("Burger", 4500, 1, burger)], status="pending")
    _order(other_branch, 6, datetime(2026, 5, 20, 13, 0), [("Old Special", 2000, 1, 9999)])


def test_window_start():
    assert reporting_service.window_start("today", NOW) == datetime(2026, 5, 20)
    assert reporting_service.window_start("yesterday", NOW) == datetime(2026, 5, 19)
    assert reporting_service.window_start("week", NOW) == datetime(2026, 5, 13)
    assert reporting_service.window_start("month", NOW) == datetime(2026, 4, 20)
    with pytest.raises(ValidationError):
        reporting_service.window_start("year", NOW)


def test_dashboard_today(sales):
    stats = reporting_service.dashboard_stats("today", now=NOW)

    assert stats["revenue_cents"] == 10250 + 5000 + 2000
    assert stats["order_count"] == 3
    assert stats["average_order_cents"] == 17250 // 3
    assert stats["cancelled_count"] == 1
    assert stats["top_items"][0] == {"name": "Burger", "quantity": 2, "revenue_cents": 9000}
    assert [i["name"] for i in stats["top_items"]] == ["Burger", "Soda", "Old Special"]


def test_dashboard_for_one_branch(sales, branch):
    stats = reporting_service.dashboard_stats("yesterday", now=NOW, branch_id=branch.id)
    assert stats["order_count"] == 3
    assert stats["revenue_cents"] == 10250 + 5000 + 4500


def test_dashboard_empty(db_session):
    stats = reporting_service.dashboard_stats("today", now=NOW)
    assert stats["order_count"] == 0
    assert stats["average_order_cents"] == 0
    assert stats["top_items"] == []


def test_branch_stats(sales, branch):
    stats = reporting_service.branch_stats(now=NOW, time_range="today")
    centre = next(s for s in stats if s["branch"]["id"] == branch.id)

    assert centre["today_revenue_cents"] == 15250
    assert centre["today_orders"] == 2
    assert centre["total_revenue_cents"] == 19750
    assert centre["pending_orders"] == 1
    assert centre["previous_period_revenue_cents"] == 4500
    assert centre["previous_period_orders"] == 1


def test_revenue_trends(sales):
    trends = reporting_service.revenue_trends(now=NOW, days=3)

    assert [t["date"] for t in trends] == ["2026-05-18", "2026-05-19", "2026-05-20"]
    assert [t["orders"] for t in trends] == [0, 1, 3]
    assert trends[-1]["revenue_cents"] == 17250


def test_category_sales(sales):
    rows = reporting_service.category_sales()
    by_name = {r["category"]: r for r in rows}

    assert by_name["Burgers"]["revenue_cents"] == 9000 + 4500 + 4500
    assert by_name["Drinks"]["revenue_cents"] == 6250
    assert by_name["Uncategorized"]["revenue_cents"] == 2000
    assert rows[0]["category"] == "Burgers"


def _stat(name, current, previous, pending=0):
    return {
        "branch": {"name": name},
        "today_revenue_cents": current,
        "previous_period_revenue_cents": previous,
        "pending_orders": pending,
    }


def test_alerts():
    messages = reporting_service.alerts(
        [
            _stat("Centre", 7000, 10000),
            _stat("Marina", 9000, 10000, pending=11),
            _stat("Maarif", 0, 0, pending=10),
        ],
        "today",
    )
    assert messages == [
        "Centre: Revenue dropped by 30.0% compared to previous day",
        "Marina: 11 pending orders - high volume",
    ]
