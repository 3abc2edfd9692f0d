# Overview: Flask API routes for customer order operations; parses input and returns JSON responses.

"""
Order API routes (customer side)

Every route acts on behalf of g.current_user. Reads are owner-scoped and
answer 404 for orders of other users; writes answer 403.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import cart_service, order_service, payment_evidence_service
from ..services.order_lifecycle import InvalidTransitionError, LifecycleError
from ..services.order_service import (
    ConcurrentModificationError,
    EmptyCartError,
    OrderCreationError,
    OrderItemsCreationError,
    OrderNotFoundError,
    OrderValidationError,
    UnauthorizedOrderAccessError,
)
from ..services.payment_evidence_service import PaymentEvidenceError
from ..decorators import require_auth


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

TRUTHY = {"1", "true", "yes", "on"}


def order_error_response(e: Exception):
    """Map service-layer order errors to (json, status). Returns None for unknown errors."""
    if isinstance(e, (OrderCreationError, OrderItemsCreationError)):
        return jsonify({"error": str(e), "reason": e.reason}), 502
    if isinstance(e, (EmptyCartError, OrderValidationError, PaymentEvidenceError)):
        return jsonify({"error": str(e)}), 400
    if isinstance(e, OrderNotFoundError):
        return jsonify({"error": "Order not found"}), 404
    if isinstance(e, UnauthorizedOrderAccessError):
        return jsonify({"error": "Permission denied", "message": str(e)}), 403
    if isinstance(e, (InvalidTransitionError, ConcurrentModificationError)):
        return jsonify({"error": str(e)}), 409
    if isinstance(e, LifecycleError):
        return jsonify({"error": str(e)}), 400
    return None


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Place an order from the current cart.

    Request body:
    {
        "shipping_address": "..." | {...},   // required
        "billing_address": ...,              // optional, defaults to shipping
        "shipping_pincode": "560001",
        "customer_name": "...", "customer_phone": "...", "customer_email": "...",
        "payment_method": "upi" | "cod",
        "notes": "...",
        "checkout_key": "..."                // or Idempotency-Key header
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        user = g.current_user

        cart = cart_service.get_cart_snapshot(user.id)
        order = order_service.create_order(
            user_id=user.id,
            cart=cart,
            shipping_address=data.get("shipping_address"),
            billing_address=data.get("billing_address"),
            shipping_pincode=data.get("shipping_pincode"),
            customer_name=data.get("customer_name") or user.full_name,
            customer_phone=data.get("customer_phone") or user.phone,
            customer_email=data.get("customer_email") or user.email,
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
            checkout_key=request.headers.get("Idempotency-Key") or data.get("checkout_key"),
        )

        return jsonify({"order": order.to_dict()}), 201

    except Exception as e:
        response = order_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Current user's orders, newest first.

    Query params:
    - full: include full detail (items + status history)
    - limit: cap (defaults to ORDER_LIST_LIMIT / ORDER_FULL_LIST_LIMIT)
    """
    full = request.args.get("full", "").lower() in TRUTHY
    limit = request.args.get("limit", type=int)
    if limit is not None and limit <= 0:
        return jsonify({"error": "limit must be positive"}), 400

    orders = order_service.get_user_orders(g.current_user.id, limit=limit, full=full)
    if full:
        payload = [order.to_dict() for order in orders]
    else:
        payload = [order.to_summary_dict() for order in orders]

    return jsonify({"orders": payload, "count": len(payload)}), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    order = order_service.get_order(order_id, user_id=g.current_user.id)
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.patch("/<int:order_id>/status")
@require_auth
def update_status_route(order_id: int):
    """
    Change an order's status.

    Owners may cancel early orders; operators with MANAGE_ORDERS may do any
    transition the configured policy allows.

    Request body: {"status": "cancelled", "notes": "...", "expected_version": 3}
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        order = order_service.update_order_status(
            order_id,
            status,
            actor_user_id=g.current_user.id,
            notes=data.get("notes"),
            expected_version=data.get("expected_version"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except Exception as e:
        response = order_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(
            order_id,
            actor_user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except Exception as e:
        response = order_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/payment-evidence")
@require_auth
def submit_payment_evidence_route(order_id: int):
    """
    Submit proof of a prepaid transfer.

    multipart/form-data: transaction_id (text), screenshot (image file)
    """
    try:
        order = payment_evidence_service.submit_payment_evidence(
            order_id,
            request.form.get("transaction_id"),
            request.files.get("screenshot"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"order": order.to_dict()}), 200

    except Exception as e:
        response = order_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to submit payment evidence")
        return jsonify({"error": "Internal server error"}), 500
