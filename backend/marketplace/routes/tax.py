# Overview: Flask API route for local tax estimates.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_role
from ..errors import MarketplaceError, error_response
from ..models.auth import ROLE_GUEST
from ..services import cart_service, tax_service

tax_bp = Blueprint("tax", __name__, url_prefix="/tax")


@tax_bp.get("/estimate")
@require_role(ROLE_GUEST)
def estimate_route():
    """Estimated tax on the caller's cart for ?country=&state=."""
    try:
        address = {
            "country": request.args.get("country"),
            "state": request.args.get("state") or None,
        }
        items = [
            {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "tax_code": item.product.tax_code if item.product else None,
            }
            for item in cart_service.get_cart(g.current_user.id)
        ]
        return jsonify({"tax_amount": tax_service.estimate_tax(address, items)}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to estimate tax")
        return jsonify({"error": "Internal server error"}), 500
