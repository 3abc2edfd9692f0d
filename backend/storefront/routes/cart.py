# Overview: Flask API routes for the shopping cart; parses input and returns JSON responses.

"""Cart API routes (the current user's cart only)"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import cart_service
from ..services.cart_service import CartError
from ..decorators import require_auth


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _cart_payload(user_id: int) -> dict:
    lines = cart_service.get_cart_snapshot(user_id)
    return {
        "items": [line.to_dict() for line in lines],
        "total_amount_cents": cart_service.cart_total_cents(lines),
    }


@cart_bp.get("")
@require_auth
def get_cart_route():
    return jsonify(_cart_payload(g.current_user.id)), 200


@cart_bp.post("/items")
@require_auth
def add_item_route():
    """
    Add a product to the cart.

    Request body: {"product_id": 1, "quantity": 2}
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get("product_id")
        quantity = data.get("quantity", 1)

        if not product_id:
            return jsonify({"error": "product_id required"}), 400

        cart_service.add_to_cart(g.current_user.id, product_id, quantity)
        return jsonify(_cart_payload(g.current_user.id)), 201

    except CartError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/items/<int:product_id>")
@require_auth
def remove_item_route(product_id: int):
    try:
        removed = cart_service.remove_from_cart(g.current_user.id, product_id)
        if not removed:
            return jsonify({"error": "Item not in cart"}), 404
        return jsonify(_cart_payload(g.current_user.id)), 200

    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500
