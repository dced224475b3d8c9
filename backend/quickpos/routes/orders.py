# Overview: Flask API routes for order operations; parses input and returns JSON responses.

"""
Orders API routes

Checkout, kitchen queue, live change stream, edits, status changes, reprint,
history and the per-order audit trail. Every route runs with the caller's
SessionContext (g.session_context); branch scoping and role rules live in the
services.
"""

from flask import Blueprint, request, jsonify, g, current_app, json, stream_with_context

from ..extensions import db
from ..models.auth import ROLE_MANAGER
from ..services import checkout_service, order_service, history_service, audit_service
from ..services.checkout_service import CheckoutError
from ..services.order_service import (
    OrderError,
    OrderNotFoundError,
    OrderStateError,
    OrderPermissionError,
    ConfirmationRequired,
)
from ..services.print_service import print_order
from ..signals import OrderChangeSubscription
from ..validation import ValidationError
from ..decorators import require_auth, require_role


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_error(e: OrderError):
    if isinstance(e, OrderNotFoundError):
        status = 404
    elif isinstance(e, OrderPermissionError):
        status = 403
    elif isinstance(e, OrderStateError):
        status = 409
    elif isinstance(e, ConfirmationRequired):
        status = 400
    else:
        status = 500
    return jsonify({"error": str(e), "details": e.details}), status


@orders_bp.post("/checkout")
@require_auth
def checkout_route():
    """
    Submit a cart as a new pending order and print its ticket.

    Body: {"items": [{"product_id": 1, "quantity": 2}], "bip_reference": "12"}
    """
    try:
        data = request.get_json(silent=True) or {}
        cart = checkout_service.build_cart(data.get("items", []))

        result = checkout_service.checkout(
            g.session_context,
            cart,
            data.get("bip_reference"),
            user_agent=request.headers.get("User-Agent"),
        )
        if not result.ok:
            return jsonify({"error": result.message, **result.to_dict()}), 400

        return jsonify(result.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except CheckoutError as e:
        return jsonify({"error": str(e), "details": e.details}), 500
    except Exception:
        current_app.logger.exception("Failed to check out order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/pending")
@require_auth
def pending_route():
    """Kitchen queue: pending orders, oldest first, with priority."""
    try:
        orders = order_service.load_pending(g.session_context)
        return jsonify({"orders": orders, "count": len(orders)}), 200
    except Exception:
        current_app.logger.exception("Failed to load pending orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/stream")
@require_auth
def stream_route():
    """
    Server-sent events for kitchen screens.

    Each committed change the caller may see arrives as
    `event: order` / `data: {"order_id": 12, "action": "completed"}`; clients
    reload the queue on every event. A comment line is sent every
    ORDER_STREAM_KEEPALIVE seconds while nothing changes.
    """
    ctx = g.session_context
    keepalive = current_app.config["ORDER_STREAM_KEEPALIVE"]
    subscription = OrderChangeSubscription()

    @stream_with_context
    def events():
        try:
            yield "retry: 3000\n\n"
            while True:
                change = subscription.get(timeout=keepalive)
                if change is None:
                    yield ": keepalive\n\n"
                    continue
                visible = order_service.order_visible(ctx, change["order_id"])
                # release the read transaction while the stream waits
                db.session.rollback()
                if visible:
                    yield f"event: order\ndata: {json.dumps(change)}\n\n"
        finally:
            subscription.close()

    response = current_app.response_class(events(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    response.call_on_close(subscription.close)
    return response


@orders_bp.get("/history")
@require_auth
def history_route():
    """Completed orders. Query: period=today|week|all (default today)."""
    try:
        period = request.args.get("period", "today")
        orders = history_service.list_history(g.session_context, period)
        return jsonify({
            "period": period,
            "orders": [o.to_dict(include_items=True) for o in orders],
            "count": len(orders),
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to load order history")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.session_context, order_id)
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/edit")
@require_auth
@require_role(ROLE_MANAGER)
def begin_edit_route(order_id: int):
    """Editable snapshot of a pending order's items."""
    try:
        buffer = order_service.begin_edit(g.session_context, order_id)
        return jsonify({"buffer": buffer.to_dict()}), 200
    except OrderError as e:
        return _order_error(e)


@orders_bp.put("/<int:order_id>/items")
@require_auth
@require_role(ROLE_MANAGER)
def commit_edit_route(order_id: int):
    """
    Save an edit.

    Body: {"items": [{"id": "12", "quantity": 2}, {"id": "temp-...", "product_id": 4, "quantity": 1}]}
    Lines with quantity 0 are removed; the order must keep at least one line.
    """
    try:
        data = request.get_json(silent=True) or {}
        buffer = order_service.buffer_from_payload(g.session_context, order_id, data.get("items"))
        order = order_service.commit_edit(g.session_context, buffer)
        return jsonify({"order": order.to_dict(include_items=True)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to save order edit")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/complete")
@require_auth
def complete_route(order_id: int):
    try:
        order = order_service.complete_order(g.session_context, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to complete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_role(ROLE_MANAGER)
def cancel_route(order_id: int):
    """Cancel an order. Irreversible, so the body must carry {"confirm": true}."""
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(
            g.session_context,
            order_id,
            confirmed=data.get("confirm") is True,
        )
        return jsonify({"order": order.to_dict()}), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/print")
@require_auth
def print_route(order_id: int):
    """
    (Re)print an order's ticket.

    Printing never changes the order; a failed print is reported with a
    remediation message in the response body.
    """
    try:
        order = order_service.get_order(g.session_context, order_id)
        result = print_order(order, user_agent=request.headers.get("User-Agent"))
        return jsonify({"print": result.to_dict()}), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to print order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/audit")
@require_auth
@require_role(ROLE_MANAGER)
def audit_route(order_id: int):
    try:
        order_service.get_order(g.session_context, order_id)
        entries = audit_service.list_order_audit(order_id)
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to load order audit")
        return jsonify({"error": "Internal server error"}), 500
