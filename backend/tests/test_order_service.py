"""Kitchen queue, edit buffer and status transitions."""

from datetime import timedelta

import pytest

from quickpos.extensions import db
from quickpos.models import Order, OrderItem, OrderAuditLog
from quickpos.services import order_service
from quickpos.services.order_service import (
    ConfirmationRequired,
    OrderNotFoundError,
    OrderPermissionError,
    OrderStateError,
)
from quickpos.services.session_service import SessionContext
from quickpos.signals import orders_changed
from quickpos.time_utils import utcnow
from quickpos.validation import ValidationError


def make_order(branch, number, items, status="pending", minutes_ago=0):
    order = Order(
        order_number=number,
        branch_id=branch.id,
        status=status,
        total_cents=sum(price * qty for _, price, qty, _ in items),
        created_at=utcnow() - timedelta(minutes=minutes_ago),
    )
    for name, price, qty, product_id in items:
        order.items.append(OrderItem(product_name=name, price_cents=price, quantity=qty, product_id=product_id))
    db.session.add(order)
    db.session.commit()
    return order


@pytest.fixture
def burger_soda_order(branch, menu):
    return make_order(
        branch,
        1,
        [("Burger", 4500, 2, menu["burger"].id), ("Soda", 1250, 3, menu["soda"].id)],
    )


# =============================================================================
# Queue
# =============================================================================

def test_pending_queue_is_oldest_first_with_priority(manager_ctx, branch):
    now = utcnow()
    make_order(branch, 1, [("Soda", 1250, 1, None)], minutes_ago=5)
    make_order(branch, 2, [("Soda", 1250, 1, None)], minutes_ago=40)
    make_order(branch, 3, [("Soda", 1250, 1, None)], minutes_ago=20)
    make_order(branch, 4, [("Soda", 1250, 1, None)], status="completed", minutes_ago=60)

    queue = order_service.load_pending(manager_ctx, now=now)

    assert [o["order_number"] for o in queue] == [2, 3, 1]
    assert [o["priority"] for o in queue] == ["urgent", "warning", "normal"]
    assert queue[0]["branch_name"] == "Centre"
    assert queue[0]["items"][0]["product_name"] == "Soda"


def test_cashier_sees_own_branch_only(cashier_ctx, branch, other_branch):
    make_order(branch, 1, [("Soda", 1250, 1, None)])
    make_order(other_branch, 2, [("Soda", 1250, 1, None)])

    queue = order_service.load_pending(cashier_ctx)

    assert [o["order_number"] for o in queue] == [1]


def test_cashier_without_branch_sees_everything(cashier, branch, other_branch):
    make_order(branch, 1, [("Soda", 1250, 1, None)])
    make_order(other_branch, 2, [("Soda", 1250, 1, None)])
    ctx = SessionContext(user=cashier, session=None, role="cashier", branch_id=None)

    assert len(order_service.load_pending(ctx)) == 2


def test_unknown_role_sees_nothing(cashier, branch, caplog):
    make_order(branch, 1, [("Soda", 1250, 1, None)])
    ctx = SessionContext(user=cashier, session=None, role="waiter", branch_id=branch.id)

    assert order_service.load_pending(ctx) == []
    assert "unknown role" in caplog.text


def test_get_order_respects_branch(other_cashier, burger_soda_order):
    ctx = SessionContext.for_user(other_cashier)
    with pytest.raises(OrderNotFoundError):
        order_service.get_order(ctx, burger_soda_order.id)


# =============================================================================
# Editing
# =============================================================================

def test_edit_remove_line_and_commit(manager_ctx, burger_soda_order):
    assert burger_soda_order.total_cents == 12750
    buffer = order_service.begin_edit(manager_ctx, burger_soda_order.id)
    soda_line = next(i for i in buffer.items if i.product_name == "Soda")
    assert soda_line.quantity == 3

    buffer.edit_quantity(soda_line.id, 0)
    assert buffer.total_cents() == 12750 - 1250 * 3
    order = order_service.commit_edit(manager_ctx, buffer)

    assert [(i.product_name, i.quantity) for i in order.items] == [("Burger", 2)]
    assert order.total_cents == 9000

    audit = db.session.query(OrderAuditLog).filter_by(order_id=order.id, action="updated").one()
    assert audit.details["new_total_cents"] == 9000
    assert audit.details["item_count"] == 1


def test_add_product_increments_existing_line(manager_ctx, burger_soda_order, menu):
    buffer = order_service.begin_edit(manager_ctx, burger_soda_order.id)

    buffer.add_product(menu["burger"])

    burger = next(i for i in buffer.items if i.product_id == menu["burger"].id)
    assert burger.quantity == 3
    assert len(buffer.items) == 2


def test_add_new_product_gets_temporary_line(manager_ctx, burger_soda_order, menu):
    buffer = order_service.begin_edit(manager_ctx, burger_soda_order.id)

    line = buffer.add_product(menu["fries"])

    assert line.id.startswith("temp-")
    assert line.quantity == 1
    order = order_service.commit_edit(manager_ctx, buffer)
    assert order.total_cents == 9000 + 3750 + 1500
    assert {i.product_name for i in order.items} == {"Burger", "Soda", "Fries"}


def test_empty_edit_is_rejected_without_writes(manager_ctx, burger_soda_order):
    buffer = order_service.begin_edit(manager_ctx, burger_soda_order.id)
    for item in list(buffer.items):
        buffer.edit_quantity(item.id, 0)

    with pytest.raises(ValidationError):
        order_service.commit_edit(manager_ctx, buffer)

    db.session.expire_all()
    order = db.session.get(Order, burger_soda_order.id)
    assert len(order.items) == 2
    assert order.total_cents == 12750


def test_buffer_is_detached_until_commit(manager_ctx, burger_soda_order):
    buffer = order_service.begin_edit(manager_ctx, burger_soda_order.id)
    buffer.edit_quantity(buffer.items[0].id, 9)

    db.session.expire_all()
    assert db.session.get(Order, burger_soda_order.id).items[0].quantity == 2

    buffer.cancel()
    assert buffer.is_empty()


def test_cashier_cannot_edit(cashier_ctx, burger_soda_order):
    with pytest.raises(OrderPermissionError):
        order_service.begin_edit(cashier_ctx, burger_soda_order.id)


def test_completed_order_cannot_be_edited(manager_ctx, branch):
    order = make_order(branch, 1, [("Soda", 1250, 1, None)], status="completed")
    with pytest.raises(OrderStateError):
        order_service.begin_edit(manager_ctx, order.id)


def test_buffer_from_payload_keeps_snapshot_prices(manager_ctx, burger_soda_order, menu):
    burger_item = burger_soda_order.items[0]
    buffer = order_service.buffer_from_payload(
        manager_ctx,
        burger_soda_order.id,
        [
            {"id": str(burger_item.id), "quantity": 1, "price_cents": 1},
            {"id": "temp-abc", "product_id": menu["fries"].id, "quantity": 2},
        ],
    )

    assert [(i.product_name, i.price_cents, i.quantity) for i in buffer.items] == [
        ("Burger", 4500, 1),
        ("Fries", 1500, 2),
    ]
    assert buffer.total_cents() == 7500


def test_buffer_from_payload_rejects_repeated_item_id(manager_ctx, burger_soda_order):
    burger_item = burger_soda_order.items[0]
    lines = [{"id": str(burger_item.id), "quantity": 1}, {"id": burger_item.id, "quantity": 1}]

    with pytest.raises(ValidationError) as exc:
        order_service.buffer_from_payload(manager_ctx, burger_soda_order.id, lines)
    assert exc.value.details == {"id": burger_item.id}

    db.session.expire_all()
    order = db.session.get(Order, burger_soda_order.id)
    assert len(order.items) == 2
    assert order.total_cents == 12750


@pytest.mark.parametrize("new_line_first", [True, False])
def test_buffer_from_payload_merges_new_line_into_existing_product(manager_ctx, burger_soda_order, menu, new_line_first):
    burger_item = burger_soda_order.items[0]
    existing = {"id": str(burger_item.id), "quantity": 2}
    new = {"id": "temp-1", "product_id": menu["burger"].id, "quantity": 1}
    lines = [new, existing] if new_line_first else [existing, new]

    buffer = order_service.buffer_from_payload(manager_ctx, burger_soda_order.id, lines)

    assert [(i.id, i.product_name, i.quantity) for i in buffer.items] == [(str(burger_item.id), "Burger", 3)]
    order = order_service.commit_edit(manager_ctx, buffer)
    assert [(i.product_name, i.quantity) for i in order.items] == [("Burger", 3)]
    assert order.total_cents == 4500 * 3


# =============================================================================
# Transitions
# =============================================================================

def test_complete_sets_timestamp_and_audits(cashier_ctx, burger_soda_order):
    order = order_service.complete_order(cashier_ctx, burger_soda_order.id)

    assert order.status == "completed"
    assert order.completed_at is not None
    audit = db.session.query(OrderAuditLog).filter_by(order_id=order.id, action="completed").one()
    assert (audit.previous_status, audit.new_status) == ("pending", "completed")


def test_complete_missing_order(manager_ctx, db_session):
    with pytest.raises(OrderNotFoundError):
        order_service.complete_order(manager_ctx, 999)


def test_cancel_requires_confirmation(manager_ctx, burger_soda_order):
    with pytest.raises(ConfirmationRequired):
        order_service.cancel_order(manager_ctx, burger_soda_order.id)
    assert db.session.get(Order, burger_soda_order.id).status == "pending"


def test_cancel_pending_order(manager_ctx, burger_soda_order):
    order = order_service.cancel_order(manager_ctx, burger_soda_order.id, confirmed=True)

    assert order.status == "cancelled"
    assert order.cancelled_by == manager_ctx.user_id
    assert order.cancelled_at is not None
    assert order.was_ready_when_cancelled is False


def test_cancel_completed_order_flags_ready(manager_ctx, cashier_ctx, burger_soda_order):
    order_service.complete_order(cashier_ctx, burger_soda_order.id)

    order = order_service.cancel_order(manager_ctx, burger_soda_order.id, confirmed=True)

    assert order.was_ready_when_cancelled is True
    audit = db.session.query(OrderAuditLog).filter_by(order_id=order.id, action="cancelled").one()
    assert audit.previous_status == "completed"
    assert audit.details["was_ready_when_cancelled"] is True


def test_cashier_cannot_cancel(cashier_ctx, burger_soda_order):
    with pytest.raises(OrderPermissionError):
        order_service.cancel_order(cashier_ctx, burger_soda_order.id, confirmed=True)


@pytest.mark.parametrize("status", ["completed", "cancelled"])
def test_terminal_orders_cannot_complete(manager_ctx, branch, status):
    order = make_order(branch, 1, [("Soda", 1250, 1, None)], status=status)
    with pytest.raises(OrderStateError):
        order_service.complete_order(manager_ctx, order.id)


def test_cancelled_order_cannot_be_cancelled_again(manager_ctx, branch):
    order = make_order(branch, 1, [("Soda", 1250, 1, None)], status="cancelled")
    with pytest.raises(OrderStateError):
        order_service.cancel_order(manager_ctx, order.id, confirmed=True)


def test_committed_changes_emit_signal(manager_ctx, burger_soda_order):
    received = []

    def listener(order_id, action):
        received.append((order_id, action))

    with orders_changed.connected_to(listener):
        order_service.complete_order(manager_ctx, burger_soda_order.id)

    assert received == [(burger_soda_order.id, "completed")]
