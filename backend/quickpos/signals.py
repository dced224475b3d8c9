# Overview: Change notifications for the orders table.

"""
Live-update hooks for the kitchen queue.

Every committed order mutation sends `orders_changed` with the order id and
the action. Subscribers (queue screens, tests) respond by reloading; reloads
replace the whole pending list, so duplicate or out-of-order notifications
are harmless.

OrderChangeSubscription buffers notifications for one listener, typically
the /api/orders/stream response. Senders run in other request threads, so
the buffer is a thread-safe queue.
"""

from __future__ import annotations

import queue

from blinker import Namespace

_signals = Namespace()

orders_changed = _signals.signal("orders-changed")


def notify_order_changed(order_id: int, action: str) -> None:
    orders_changed.send(order_id, action=action)


class OrderChangeSubscription:
    """Collects {"order_id", "action"} dicts from the moment it is created."""

    def __init__(self) -> None:
        self._changes: queue.Queue = queue.Queue()
        self.closed = False
        orders_changed.connect(self._receive, weak=False)

    def _receive(self, order_id, action=None) -> None:
        self._changes.put({"order_id": order_id, "action": action})

    def get(self, timeout: float) -> dict | None:
        """Next change, or None if nothing arrived within `timeout` seconds."""
        try:
            return self._changes.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        if not self.closed:
            orders_changed.disconnect(self._receive)
            self.closed = True
