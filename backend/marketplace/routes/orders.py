# Overview: Flask API routes for orders; parses input and returns JSON responses.

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import rate_limit_and_record, require_role
from ..errors import MarketplaceError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_GUEST
from ..services import order_service
from ..validation import json_body, parse_id, parse_positive_int, require_fields

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


@orders_bp.post("")
@rate_limit_and_record(5, timedelta(hours=1))
@require_role(ROLE_GUEST)
def create_order_route():
    """Create a pending order from the cart. Query: shipping_id."""
    try:
        shipping_id = parse_id(request.args.get("shipping_id"), "shipping_id")
        order = order_service.create_order(g.current_user, shipping_id)
        return jsonify(order.to_dict()), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/confirm")
@rate_limit_and_record(5, timedelta(hours=1))
@require_role(ROLE_GUEST)
def confirm_order_route(order_id: int):
    """Compute tax, create the payment intent and return its client secret."""
    try:
        confirmation = order_service.confirm_order(g.current_user, order_id)
        return jsonify(confirmation.to_dict()), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_role(ROLE_ADMIN)
def list_orders_route():
    try:
        page = parse_positive_int(request.args.get("page"), "page", 1)
        limit = parse_positive_int(request.args.get("limit"), "limit", 50)
        orders, total = order_service.list_orders(page=page, limit=limit, status=request.args.get("status"))
        return jsonify({
            "orders": [o.to_dict(include_items=False) for o in orders],
            "page": page,
            "limit": limit,
            "total": total,
        }), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/mine")
@require_role(ROLE_GUEST)
def list_my_orders_route():
    try:
        orders = order_service.list_user_orders(g.current_user)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except Exception:
        current_app.logger.exception("Failed to list user orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/owner")
@require_role(ROLE_GUEST)
def get_owned_order_route(order_id: int):
    try:
        order = order_service.get_order_for_owner(g.current_user, order_id)
        return jsonify(order.to_dict()), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/public")
def get_public_order_route(order_id: int):
    """Order status lookup by id alone; exposes no address or user data."""
    try:
        order = order_service.get_order_public(order_id)
        return jsonify(order.to_public_dict()), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load public order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_role(ROLE_ADMIN)
def update_order_status_route(order_id: int):
    try:
        data = json_body()
        (status,) = require_fields(data, "status")
        order = order_service.advance_status(order_id, status)
        return jsonify(order.to_dict()), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order %s status", order_id)
        return jsonify({"error": "Internal server error"}), 500
