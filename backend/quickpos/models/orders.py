from __future__ import annotations

from ..extensions import db
from quickpos.time_utils import to_utc_z, utcnow

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)


class Order(db.Model):
    """
    Customer order.

    Lifecycle: created `pending` by checkout, line items editable only while
    pending, then `completed` or `cancelled`. A completed order can still be
    cancelled (flagged with was_ready_when_cancelled); nothing leaves
    `cancelled`.

    total_cents always equals the sum of the order's items.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_branch_status", "branch_id", "status"),
        db.CheckConstraint("total_cents >= 0", name="ck_orders_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # Pager/buzzer handed to the customer
    bip_reference = db.Column(db.String(32), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cancellation audit trail
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    was_ready_when_cancelled = db.Column(db.Boolean, nullable=False, default=False)

    branch = db.relationship("Branch", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "total_cents": self.total_cents,
            "status": self.status,
            "branch_id": self.branch_id,
            "bip_reference": self.bip_reference,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by": self.cancelled_by,
            "was_ready_when_cancelled": self.was_ready_when_cancelled,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Line item on an order.

    product_name and price_cents are snapshots taken at order time;
    product_id is a soft reference and may dangle after a product is deleted.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        db.CheckConstraint("price_cents >= 0", name="ck_order_items_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=True, index=True)

    product_name = db.Column(db.String(128), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class OrderAuditLog(db.Model):
    """
    Append-only trail of order state changes.

    IMMUTABLE: Records are never updated or deleted. Rows are written after
    the order change commits, so a missing row never implies a missing change.
    """
    __tablename__ = "order_audit_logs"
    __table_args__ = (
        db.Index("ix_order_audit_logs_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # No FK: the trail outlives deleted orders
    order_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(16), nullable=False, index=True)  # created, updated, completed, cancelled
    previous_status = db.Column(db.String(16), nullable=True)
    new_status = db.Column(db.String(16), nullable=True)

    user_id = db.Column(db.Integer, nullable=True)
    user_role = db.Column(db.String(16), nullable=True)

    details = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "action": self.action,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "user_id": self.user_id,
            "user_role": self.user_role,
            "details": self.details or {},
            "created_at": to_utc_z(self.created_at),
        }


class OrderSequence(db.Model):
    """
    Server-side counter for order numbers.

    Allocation is a single UPDATE on this row, so concurrent checkouts
    never share a number.
    """
    __tablename__ = "order_sequences"

    name = db.Column(db.String(32), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
