# Overview: Allocation of sequential order numbers from a server-side counter.

from __future__ import annotations

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, OrderSequence

ORDER_SEQUENCE_NAME = "orders"


def _bump() -> int | None:
    """Increment the counter in one UPDATE and return the number it handed out."""
    stmt = (
        update(OrderSequence)
        .where(OrderSequence.name == ORDER_SEQUENCE_NAME)
        .values(next_number=OrderSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    db.session.flush()
    current = (
        db.session.query(OrderSequence.next_number)
        .filter_by(name=ORDER_SEQUENCE_NAME)
        .scalar()
    )
    return current - 1


def next_order_number() -> int:
    """
    Allocate the next order number inside the caller's transaction.

    The counter row is seeded from max(order_number) the first time, so
    databases that predate the counter continue their numbering. Numbers
    are unique (orders.order_number is UNIQUE) but not gap-free: a rolled
    back checkout gives its number back, a committed-then-failed one does not.
    """
    allocated = _bump()
    if allocated is not None:
        return allocated

    highest = db.session.query(func.max(Order.order_number)).scalar() or 0
    seq = OrderSequence(name=ORDER_SEQUENCE_NAME, next_number=highest + 2)
    try:
        with db.session.begin_nested():
            db.session.add(seq)
        return highest + 1
    except IntegrityError:
        # Another terminal seeded the counter first
        allocated = _bump()
        if allocated is None:
            raise
        return allocated
