"""Completed-order history."""

from datetime import datetime

import pytest

from quickpos.extensions import db
from quickpos.models import Order
from quickpos.services import history_service
from quickpos.validation import ValidationError

NOW = datetime(2026, 5, 20, 15, 0, 0)


def _order(branch, number, created_at, status="completed"):
    order = Order(order_number=number, branch_id=branch.id, status=status, total_cents=1000, created_at=created_at)
    db.session.add(order)
    db.session.commit()
    return order


@pytest.fixture
def orders(branch, other_branch):
    _order(branch, 1, datetime(2026, 5, 20, 9, 0))
    _order(branch, 2, datetime(2026, 5, 20, 11, 0))
    _order(branch, 3, datetime(2026, 5, 16, 11, 0))
    _order(branch, 4, datetime(2026, 4, 1, 11, 0))
    _order(branch, 5, datetime(2026, 5, 20, 12, 0), status="pending")
    _order(other_branch, 6, datetime(2026, 5, 20, 10, 0))


def test_today_newest_first(manager_ctx, orders):
    result = history_service.list_history(manager_ctx, "today", now=NOW)
    assert [o.order_number for o in result] == [2, 6, 1]


def test_week_and_all(manager_ctx, orders):
    week = history_service.list_history(manager_ctx, "week", now=NOW)
    everything = history_service.list_history(manager_ctx, "all", now=NOW)

    assert [o.order_number for o in week] == [2, 6, 1, 3]
    assert [o.order_number for o in everything] == [2, 6, 1, 3, 4]


def test_cashier_history_is_branch_scoped(cashier_ctx, orders):
    result = history_service.list_history(cashier_ctx, "all", now=NOW)
    assert 6 not in [o.order_number for o in result]


def test_unknown_period(manager_ctx, db_session):
    with pytest.raises(ValidationError):
        history_service.list_history(manager_ctx, "decade", now=NOW)
