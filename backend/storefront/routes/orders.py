# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/storefront/routes/orders.py
"""
Order API Routes

DESIGN:
- Checkout: any authenticated user places an order for themselves
- Listing: admins see every order, customers only their own
- Status updates and notes: admin only
- All state rules live in order_service; routes only parse and map errors

ERRORS:
- 400 client input, 403 role, 404 not found, 503 storage failure
- Body is always {"error": message, "kind": kind}
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import UserRole
from ..services import order_service
from ..decorators import require_auth, require_role
from ..validation import DOMAIN_ERRORS, error_body


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _error_response(exc):
    return jsonify(error_body(exc)), exc.http_status


# =============================================================================
# CHECKOUT
# =============================================================================

@orders_bp.post("/")
@require_auth
def create_order_route():
    """
    Place an order for the authenticated user.

    Request body:
    {
        "line_items": [{"product_id": 1, "quantity": 2, "unit_price_cents": 49900}],
        "total_cents": 99800,
        "shipping_address": {"recipient_name": "...", "city": "...", ...},
        "payment_method": "upi",            (cod | upi | card | netbanking, default cod)
        "payment_details": {"upi_id": "a@bank", "note": "..."},
        "payment_confirmed": true           (required for online methods)
    }

    Returns:
        201: Order created
        400: Invalid input or prepaid payment not completed
        503: Storage failure
    """
    try:
        data = request.get_json(silent=True) or {}

        order = order_service.create_order(
            buyer_id=g.current_user.id,
            line_items=data.get("line_items"),
            total_cents=data.get("total_cents"),
            shipping_address=data.get("shipping_address"),
            payment_method=data.get("payment_method"),
            payment_details=data.get("payment_details"),
            payment_confirmed=data.get("payment_confirmed", False),
        )

        current_app.logger.info(
            "Order %s placed by user %s (payment=%s/%s)",
            order.id, g.current_user.id, order.payment.method.value, order.payment.status.value,
        )
        return jsonify({"order": order.to_dict()}), 201

    except DOMAIN_ERRORS as e:
        if e.http_status >= 500:
            current_app.logger.exception("Failed to create order")
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error", "kind": "internal"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@orders_bp.get("/")
@require_auth
def list_orders_route():
    """
    List orders visible to the caller.

    Admins: every order, each with its buyer.
    Customers: their own orders.
    """
    try:
        user = g.current_user
        orders = order_service.list_orders(user)
        return jsonify({
            "orders": [o.to_dict(include_buyer=user.is_privileged) for o in orders]
        }), 200

    except DOMAIN_ERRORS as e:
        current_app.logger.exception("Failed to list orders")
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error", "kind": "internal"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    """Get one order (customers: own orders only)."""
    try:
        user = g.current_user
        order = order_service.get_order(order_id, user)
        return jsonify({"order": order.to_dict(include_buyer=user.is_privileged)}), 200

    except DOMAIN_ERRORS as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error", "kind": "internal"}), 500


# =============================================================================
# LIFECYCLE (ADMIN)
# =============================================================================

@orders_bp.put("/<int:order_id>/status")
@require_auth
@require_role(UserRole.ADMIN)
def update_order_status_route(order_id: int):
    """
    Set an order's status.

    Request body: {"status": "shipped"}

    Cancelling a paid prepaid order refunds it automatically.

    Returns:
        200: Updated order
        400: Invalid status
        403: Not an admin
        404: Order not found
        503: Storage failure or persistent write conflict
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")

        if not status:
            return jsonify({"error": "status required", "kind": "client_input"}), 400

        order = order_service.update_order_status(order_id, status, actor_user_id=g.current_user.id)

        current_app.logger.info(
            "Order %s set to %s by user %s (payment=%s)",
            order.id, status, g.current_user.id, order.payment.status.value,
        )
        return jsonify({"order": order.to_dict(include_buyer=True)}), 200

    except DOMAIN_ERRORS as e:
        if e.http_status >= 500:
            current_app.logger.exception("Failed to update order status")
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error", "kind": "internal"}), 500


@orders_bp.post("/<int:order_id>/notes")
@require_auth
@require_role(UserRole.ADMIN)
def add_order_note_route(order_id: int):
    """
    Append a note to an order's update history.

    Request body: {"message": "...", "title": "..." (optional)}
    """
    try:
        data = request.get_json(silent=True) or {}

        order = order_service.add_order_note(
            order_id,
            data.get("message"),
            title=data.get("title"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"order": order.to_dict(include_buyer=True)}), 201

    except DOMAIN_ERRORS as e:
        if e.http_status >= 500:
            current_app.logger.exception("Failed to add order note")
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add order note")
        return jsonify({"error": "Internal server error", "kind": "internal"}), 500
