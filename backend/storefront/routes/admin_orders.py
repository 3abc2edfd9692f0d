# Overview: Flask API routes for the operator order console; parses input and returns JSON responses.

"""Admin order API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import admin_order_service
from ..decorators import require_auth, require_permission
from ..permissions import MANAGE_ORDERS, VIEW_ORDERS
from .orders import TRUTHY, order_error_response


admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin/orders")


@admin_orders_bp.get("")
@require_auth
@require_permission(VIEW_ORDERS)
def list_orders_route():
    """
    Search all orders.

    Query params: status, payment_method, payment_status, search,
    date_from, date_to (YYYY-MM-DD or ISO-8601), include_incomplete,
    limit (default 200, max 500), offset
    """
    try:
        args = request.args
        orders = admin_order_service.search_orders(
            g.current_user.id,
            status=args.get("status"),
            payment_method=args.get("payment_method"),
            payment_status=args.get("payment_status"),
            search=args.get("search"),
            date_from=args.get("date_from"),
            date_to=args.get("date_to"),
            include_incomplete=args.get("include_incomplete", "").lower() in TRUTHY,
            limit=args.get("limit", default=200, type=int),
            offset=args.get("offset", default=0, type=int),
        )
        payload = []
        for order in orders:
            data = order.to_dict(include_history=False)
            data["needs_verification"] = admin_order_service.needs_verification(order)
            payload.append(data)

        return jsonify({"orders": payload, "count": len(payload)}), 200

    except Exception as e:
        response = order_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.get("/stats")
@require_auth
@require_permission(VIEW_ORDERS)
def order_stats_route():
    try:
        return jsonify({"stats": admin_order_service.order_stats(g.current_user.id)}), 200
    except Exception as e:
        response = order_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to compute order stats")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.get("/<int:order_id>")
@require_auth
@require_permission(VIEW_ORDERS)
def get_order_route(order_id: int):
    """Order detail with parsed payment evidence for verification."""
    try:
        return jsonify({"order": admin_order_service.order_review(order_id, g.current_user.id)}), 200
    except Exception as e:
        response = order_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_permission(MANAGE_ORDERS)
def update_status_route(order_id: int):
    """
    Move an order to a new status (verification, fulfilment, corrections).

    Request body: {"status": "confirmed", "notes": "...", "expected_version": 3}
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        admin_order_service.change_status(
            order_id,
            status,
            actor_user_id=g.current_user.id,
            notes=data.get("notes"),
            expected_version=data.get("expected_version"),
        )
        return jsonify({"order": admin_order_service.order_review(order_id, g.current_user.id)}), 200

    except Exception as e:
        response = order_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
