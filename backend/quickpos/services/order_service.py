# Overview: Service-layer operations for the kitchen queue; pending orders, edits and status changes.

"""
Order Queue / Editor

Status machine: pending -> completed | cancelled, plus completed -> cancelled.
Line items change only while an order is pending.

Edits happen in an OrderEditBuffer, a detached copy of the order's items.
Nothing is persisted until commit_edit(), which replaces the items and the
total in one transaction. Queue reloads never touch a buffer.

Access rules:
- managers see every branch, and are the only role that may edit or cancel
- cashiers see and complete orders of their own branch only
- an unknown role sees nothing
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order, OrderItem
from ..models.auth import ROLE_MANAGER, ROLE_CASHIER
from ..models.orders import STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED
from ..order_state import can_transition, is_editable, classify_priority, format_elapsed
from ..signals import notify_order_changed
from ..time_utils import utcnow, to_utc_z
from ..validation import ValidationError, parse_quantity
from .audit_service import (
    AuditOutbox,
    OrderEvent,
    ACTION_UPDATED,
    ACTION_COMPLETED,
    ACTION_CANCELLED,
)
from .catalog_service import get_product
from .concurrency import lock_for_update, run_with_retry
from .session_service import SessionContext

logger = logging.getLogger(__name__)

CANCEL_WARNING = "Cancel this order? This action cannot be undone."
EMPTY_ORDER_MESSAGE = "An order must keep at least one item"
TEMP_ID_PREFIX = "temp-"


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OrderNotFoundError(OrderError):
    pass


class OrderStateError(OrderError):
    """The order's status does not allow the requested operation."""


class OrderPermissionError(OrderError):
    pass


class ConfirmationRequired(OrderError):
    """Irreversible operation attempted without explicit confirmation."""


# =============================================================================
# Scoping
# =============================================================================

def scope_orders(ctx: SessionContext, query):
    """
    Apply role-based branch filtering to an Order query.

    Returns None for an unknown role; callers treat that as "nothing visible".
    A cashier without a branch is not filtered.
    """
    if ctx.role == ROLE_MANAGER:
        return query
    if ctx.role == ROLE_CASHIER:
        if ctx.branch_id is not None:
            return query.filter(Order.branch_id == ctx.branch_id)
        return query
    logger.warning("Order access denied: unknown role %r for user %s", ctx.role, ctx.user_id)
    return None


def _require_manager(ctx: SessionContext, action: str) -> None:
    if not ctx.is_manager:
        raise OrderPermissionError(f"Only managers may {action} orders")


def _load_order(ctx: SessionContext, order_id: int, *, for_update: bool = False) -> Order:
    query = scope_orders(ctx, db.session.query(Order).filter(Order.id == order_id))
    if query is None:
        raise OrderNotFoundError("Order not found")
    if for_update:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise OrderNotFoundError("Order not found")
    return order


def get_order(ctx: SessionContext, order_id: int) -> Order:
    return _load_order(ctx, order_id)


def order_visible(ctx: SessionContext, order_id) -> bool:
    """Whether `ctx` may see the order; used to filter live-update events."""
    query = scope_orders(ctx, db.session.query(Order.id).filter(Order.id == order_id))
    return query is not None and query.first() is not None


# =============================================================================
# Queue
# =============================================================================

def queue_entry(order: Order, now) -> dict:
    data = order.to_dict(include_items=True)
    data["branch_name"] = order.branch.name if order.branch else None
    data["priority"] = classify_priority(order.created_at, now)
    data["elapsed"] = format_elapsed(order.created_at, now)
    return data


def load_pending(ctx: SessionContext, now=None) -> list[dict]:
    """Pending orders, oldest first, as queue entries."""
    now = now or utcnow()
    query = scope_orders(
        ctx,
        db.session.query(Order).filter(Order.status == STATUS_PENDING),
    )
    if query is None:
        return []
    orders = query.order_by(Order.created_at.asc(), Order.id.asc()).all()
    logger.debug("Loaded %s pending orders for user %s (%s)", len(orders), ctx.user_id, ctx.role)
    return [queue_entry(order, now) for order in orders]


# =============================================================================
# Editing
# =============================================================================

@dataclass
class BufferedItem:
    id: str
    product_id: int | None
    product_name: str
    price_cents: int
    quantity: int

    @property
    def is_new(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.price_cents * self.quantity,
        }


@dataclass
class OrderEditBuffer:
    """Detached, editable copy of a pending order's items."""
    order_id: int
    order_number: int
    items: list[BufferedItem] = field(default_factory=list)

    @classmethod
    def from_order(cls, order: Order) -> "OrderEditBuffer":
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            items=[
                BufferedItem(
                    id=str(item.id),
                    product_id=item.product_id,
                    product_name=item.product_name,
                    price_cents=item.price_cents,
                    quantity=item.quantity,
                )
                for item in order.items
            ],
        )

    def _find(self, item_id: str) -> BufferedItem | None:
        item_id = str(item_id)
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def edit_quantity(self, item_id, quantity: int) -> None:
        """Set a line's quantity; zero or less removes the line."""
        item = self._find(item_id)
        if item is None:
            return
        if quantity <= 0:
            self.items.remove(item)
        else:
            item.quantity = quantity

    def add_product(self, product) -> BufferedItem:
        """One more of `product`: bump its line, or append a new line at 1."""
        for item in self.items:
            if item.product_id == product.id:
                item.quantity += 1
                return item
        item = BufferedItem(
            id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}",
            product_id=product.id,
            product_name=product.name,
            price_cents=product.price_cents,
            quantity=1,
        )
        self.items.append(item)
        return item

    def total_cents(self) -> int:
        return sum(item.price_cents * item.quantity for item in self.items)

    def is_empty(self) -> bool:
        return not self.items

    def cancel(self) -> None:
        self.items.clear()

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "items": [item.to_dict() for item in self.items],
            "total_cents": self.total_cents(),
        }

    @classmethod
    def from_payload(cls, order: Order, lines) -> "OrderEditBuffer":
        """
        Rebuild a buffer from client-held lines.

        Existing lines are matched to the order's persisted items by id so the
        snapshot name/price cannot be altered by the client; each persisted id
        may appear once. New lines (temp ids or no id) must name a product and
        take its current name and price. New lines are merged after every
        existing line has been placed, so a new line for a product that is
        already on the order adds to that line whatever the payload order.
        """
        if not isinstance(lines, list):
            raise ValidationError("items must be a list")

        persisted = {str(item.id): item for item in order.items}
        seen: set[str] = set()
        new_lines: list[tuple[dict, int]] = []
        buffer = cls(order_id=order.id, order_number=order.order_number)
        for raw in lines:
            if not isinstance(raw, dict):
                raise ValidationError("Each item must be an object")
            quantity = parse_quantity(raw.get("quantity"))

            raw_id = raw.get("id")
            existing = persisted.get(str(raw_id)) if raw_id is not None else None
            if existing is None:
                if quantity > 0:
                    new_lines.append((raw, quantity))
                continue

            key = str(existing.id)
            if key in seen:
                raise ValidationError("Duplicate item id", details={"id": raw_id})
            seen.add(key)
            if quantity > 0:
                buffer.items.append(
                    BufferedItem(
                        id=key,
                        product_id=existing.product_id,
                        product_name=existing.product_name,
                        price_cents=existing.price_cents,
                        quantity=quantity,
                    )
                )

        for raw, quantity in new_lines:
            product = get_product(raw.get("product_id"))
            if product is None or not product.available:
                raise ValidationError("Product is not available", details={"product_id": raw.get("product_id")})
            line = buffer.add_product(product)
            line.quantity = line.quantity - 1 + quantity
        return buffer


def _editable_order(ctx: SessionContext, order_id: int) -> Order:
    _require_manager(ctx, "edit")
    order = _load_order(ctx, order_id)
    if not is_editable(order.status):
        raise OrderStateError(f"Cannot edit a {order.status} order", details={"status": order.status})
    return order


def begin_edit(ctx: SessionContext, order_id: int) -> OrderEditBuffer:
    return OrderEditBuffer.from_order(_editable_order(ctx, order_id))


def buffer_from_payload(ctx: SessionContext, order_id: int, lines) -> OrderEditBuffer:
    """Edit buffer submitted by a client in one request."""
    return OrderEditBuffer.from_payload(_editable_order(ctx, order_id), lines)


def commit_edit(ctx: SessionContext, buffer: OrderEditBuffer) -> Order:
    """
    Replace the order's items with the buffer and recompute the total.

    Items and total change in one transaction; the `updated` audit event is
    written after commit.
    """
    _require_manager(ctx, "edit")
    if buffer.is_empty():
        raise ValidationError(EMPTY_ORDER_MESSAGE)

    def _op() -> Order:
        order = _load_order(ctx, buffer.order_id, for_update=True)
        if not is_editable(order.status):
            raise OrderStateError(f"Cannot edit a {order.status} order")

        order.items = [
            OrderItem(
                product_id=item.product_id,
                product_name=item.product_name,
                price_cents=item.price_cents,
                quantity=item.quantity,
            )
            for item in buffer.items
        ]
        order.total_cents = buffer.total_cents()
        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except SQLAlchemyError as exc:
        logger.exception("Failed to save changes to order %s", buffer.order_id)
        raise OrderError("The changes could not be saved, please try again") from exc

    outbox = AuditOutbox()
    outbox.add(
        OrderEvent(
            order_id=order.id,
            action=ACTION_UPDATED,
            previous_status=STATUS_PENDING,
            new_status=STATUS_PENDING,
            user_id=ctx.user_id,
            user_role=ctx.role,
            details={
                "updated_at": to_utc_z(utcnow()),
                "new_total_cents": order.total_cents,
                "item_count": len(buffer.items),
                "items_changed": True,
            },
        )
    )
    outbox.flush()
    notify_order_changed(order.id, ACTION_UPDATED)
    return order


# =============================================================================
# Transitions
# =============================================================================

def _transition(ctx: SessionContext, order_id: int, target: str, apply, audit_details) -> Order:
    def _op() -> tuple[Order, str]:
        order = _load_order(ctx, order_id, for_update=True)
        previous = order.status
        if not can_transition(previous, target):
            raise OrderStateError(
                f"Cannot change a {previous} order to {target}",
                details={"status": previous},
            )
        apply(order, previous)
        db.session.commit()
        return order, previous

    try:
        order, previous = run_with_retry(_op)
    except SQLAlchemyError as exc:
        logger.exception("Failed to set order %s to %s", order_id, target)
        raise OrderError(f"The order could not be marked {target}, please try again") from exc

    outbox = AuditOutbox()
    outbox.add(
        OrderEvent(
            order_id=order.id,
            action=target,
            previous_status=previous,
            new_status=target,
            user_id=ctx.user_id,
            user_role=ctx.role,
            details=audit_details(order, previous),
        )
    )
    outbox.flush()
    notify_order_changed(order.id, target)
    return order


def complete_order(ctx: SessionContext, order_id: int) -> Order:
    """Mark a pending order as served."""
    def apply(order: Order, previous: str) -> None:
        order.status = STATUS_COMPLETED
        order.completed_at = utcnow()

    return _transition(
        ctx,
        order_id,
        ACTION_COMPLETED,
        apply,
        lambda order, previous: {"completed_at": to_utc_z(order.completed_at)},
    )


def cancel_order(ctx: SessionContext, order_id: int, confirmed: bool = False) -> Order:
    """
    Cancel a pending or already completed order (managers only).

    Requires confirmed=True. was_ready_when_cancelled records whether the
    order had already been completed.
    """
    _require_manager(ctx, "cancel")
    if not confirmed:
        raise ConfirmationRequired(CANCEL_WARNING, details={"confirm_required": True})

    def apply(order: Order, previous: str) -> None:
        order.status = STATUS_CANCELLED
        order.cancelled_at = utcnow()
        order.cancelled_by = ctx.user_id
        order.was_ready_when_cancelled = previous == STATUS_COMPLETED

    return _transition(
        ctx,
        order_id,
        ACTION_CANCELLED,
        apply,
        lambda order, previous: {
            "cancelled_at": to_utc_z(order.cancelled_at),
            "was_ready_when_cancelled": order.was_ready_when_cancelled,
        },
    )
