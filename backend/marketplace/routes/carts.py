# Overview: Flask API routes for the caller's cart.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_role
from ..errors import MarketplaceError, error_response
from ..models.auth import ROLE_GUEST
from ..services import cart_service
from ..validation import json_body

carts_bp = Blueprint("carts", __name__, url_prefix="/carts")


def _cart_response(user_id: int):
    items = cart_service.get_cart(user_id)
    return jsonify({
        "items": [item.to_dict() for item in items],
        "total": cart_service.cart_total(items),
    })


@carts_bp.get("")
@require_role(ROLE_GUEST)
def get_cart_route():
    try:
        return _cart_response(g.current_user.id), 200
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.post("/items/<int:product_id>")
@require_role(ROLE_GUEST)
def add_item_route(product_id: int):
    try:
        data = json_body()
        cart_service.add_item(g.current_user.id, product_id, data.get("quantity", 1))
        return _cart_response(g.current_user.id), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add item to cart")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.patch("/items/<int:product_id>")
@require_role(ROLE_GUEST)
def update_item_route(product_id: int):
    try:
        data = json_body()
        cart_service.update_item(g.current_user.id, product_id, data.get("quantity"))
        return _cart_response(g.current_user.id), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.delete("/items/<int:product_id>")
@require_role(ROLE_GUEST)
def remove_item_route(product_id: int):
    try:
        cart_service.remove_item(g.current_user.id, product_id)
        return _cart_response(g.current_user.id), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500
