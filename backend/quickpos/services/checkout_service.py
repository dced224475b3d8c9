# Overview: Service-layer checkout; turns a cart into a pending order.

"""
Checkout

A cart becomes a pending order with one item row per cart line. Name and
price are copied onto the item rows so later catalog edits never change the
order.

Order number, order row and item rows are written in a single transaction:
any failure rolls back all three and leaves the caller's cart untouched so
the cashier can retry. The `created` audit event and the ticket print run
only after the commit, and neither can undo the order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from ..cart import Cart
from ..extensions import db
from ..models import Branch, Order, OrderItem, Product
from ..models.orders import STATUS_PENDING
from ..signals import notify_order_changed
from ..validation import ValidationError
from .audit_service import AuditOutbox, OrderEvent, ACTION_CREATED
from .concurrency import run_with_retry
from .order_number_service import next_order_number
from .print_service import PrintDispatcher, PrintResult, print_order
from .session_service import SessionContext

logger = logging.getLogger(__name__)

EMPTY_CART_MESSAGE = "Cart is empty, add at least one product before checkout"
MAX_BIP_LENGTH = 32


class CheckoutError(Exception):
    """Raised when an order could not be saved."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class CheckoutResult:
    ok: bool
    message: str
    order: Order | None = None
    print_result: PrintResult | None = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "message": self.message,
            "order": self.order.to_dict(include_items=True) if self.order else None,
            "print": self.print_result.to_dict() if self.print_result else None,
        }


def resolve_branch_id(ctx: SessionContext) -> int:
    """The user's branch, else the first branch created."""
    if ctx.branch_id is not None:
        return ctx.branch_id
    branch = db.session.query(Branch).order_by(Branch.created_at.asc(), Branch.id.asc()).first()
    if branch is None:
        raise CheckoutError("No branch configured, an order cannot be recorded")
    return branch.id


def normalize_bip_reference(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > MAX_BIP_LENGTH:
        raise ValidationError(f"bip_reference exceeds max length {MAX_BIP_LENGTH}")
    return text


def sellable_products(product_ids) -> dict[int, Product]:
    """Available products among the given ids, keyed by id."""
    ids = {pid for pid in product_ids if isinstance(pid, int) and not isinstance(pid, bool)}
    if not ids:
        return {}
    rows = (
        db.session.query(Product)
        .filter(Product.id.in_(ids), Product.available.is_(True))
        .all()
    )
    return {p.id: p for p in rows}


def build_cart(lines) -> Cart:
    """Cart from an API payload; unknown or unavailable products are rejected."""
    if not isinstance(lines, list):
        raise ValidationError("items must be a list")
    products = sellable_products(line.get("product_id") for line in lines if isinstance(line, dict))
    return Cart.from_payload(lines, products)


def _insert_order(ctx: SessionContext, cart: Cart, bip_reference: str | None) -> Order:
    def _op() -> Order:
        branch_id = resolve_branch_id(ctx)
        order = Order(
            order_number=next_order_number(),
            total_cents=cart.total(),
            status=STATUS_PENDING,
            branch_id=branch_id,
            bip_reference=bip_reference,
            created_by_user_id=ctx.user_id,
        )
        for line in cart:
            order.items.append(
                OrderItem(
                    product_id=line.product.id,
                    product_name=line.product.name,
                    price_cents=line.product.price_cents,
                    quantity=line.quantity,
                )
            )
        db.session.add(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def checkout(
    ctx: SessionContext,
    cart: Cart,
    bip_reference=None,
    *,
    user_agent: str | None = None,
    dispatcher: PrintDispatcher | None = None,
) -> CheckoutResult:
    """
    Submit the cart as a pending order, log it, clear the cart and print.

    An empty cart is not an error: it returns ok=False without touching the
    database. Persistence failures raise CheckoutError with the cart intact.
    """
    if cart.is_empty():
        return CheckoutResult(ok=False, message=EMPTY_CART_MESSAGE)

    bip_reference = normalize_bip_reference(bip_reference)

    try:
        order = _insert_order(ctx, cart, bip_reference)
    except CheckoutError:
        raise
    except SQLAlchemyError as exc:
        logger.exception("Checkout failed for user %s", ctx.user_id)
        raise CheckoutError("The order could not be saved, please try again") from exc

    outbox = AuditOutbox()
    outbox.add(
        OrderEvent(
            order_id=order.id,
            action=ACTION_CREATED,
            previous_status=None,
            new_status=STATUS_PENDING,
            user_id=ctx.user_id,
            user_role=ctx.role,
            details={
                "order_number": order.order_number,
                "total_cents": order.total_cents,
                "item_count": len(order.items),
                "bip_reference": bip_reference,
            },
        )
    )
    outbox.flush()
    notify_order_changed(order.id, ACTION_CREATED)

    cart.clear()

    print_result = print_order(order, user_agent=user_agent, dispatcher=dispatcher)

    return CheckoutResult(
        ok=True,
        message=f"Order #{order.order_number} created",
        order=order,
        print_result=print_result,
    )
