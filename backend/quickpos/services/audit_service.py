# Overview: Service-layer operations for the order audit trail.

"""
Order audit trail.

Order operations describe what they did as OrderEvent values collected in an
AuditOutbox. The outbox is flushed only after the order change has committed,
and each event is written in its own transaction. A failed write is logged
and dropped: the audit trail is observability, never a reason to undo or
block an order change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import OrderAuditLog

logger = logging.getLogger(__name__)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_COMPLETED = "completed"
ACTION_CANCELLED = "cancelled"
AUDIT_ACTIONS = (ACTION_CREATED, ACTION_UPDATED, ACTION_COMPLETED, ACTION_CANCELLED)


@dataclass(frozen=True)
class OrderEvent:
    order_id: int
    action: str
    previous_status: str | None = None
    new_status: str | None = None
    user_id: int | None = None
    user_role: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


def record_event(event: OrderEvent) -> OrderAuditLog | None:
    """Write one audit row in its own transaction. Returns None on failure."""
    if event.action not in AUDIT_ACTIONS:
        logger.warning("Ignoring audit event with unknown action %r for order %s", event.action, event.order_id)
        return None

    row = OrderAuditLog(
        order_id=event.order_id,
        action=event.action,
        previous_status=event.previous_status,
        new_status=event.new_status,
        user_id=event.user_id,
        user_role=event.user_role,
        details=dict(event.details),
    )
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to write audit log for order %s (%s)", event.order_id, event.action)
        return None
    return row


class AuditOutbox:
    """Collects events during an order operation; flush() after commit."""

    def __init__(self) -> None:
        self._events: list[OrderEvent] = []

    def add(self, event: OrderEvent) -> None:
        self._events.append(event)

    @property
    def pending(self) -> list[OrderEvent]:
        return list(self._events)

    def discard(self) -> None:
        self._events.clear()

    def flush(self) -> int:
        """Write queued events; returns how many were stored."""
        written = 0
        events, self._events = self._events, []
        for event in events:
            if record_event(event) is not None:
                written += 1
        return written


def list_order_audit(order_id: int) -> list[OrderAuditLog]:
    return (
        db.session.query(OrderAuditLog)
        .filter_by(order_id=order_id)
        .order_by(OrderAuditLog.created_at.asc(), OrderAuditLog.id.asc())
        .all()
    )
