# Overview: Flask API routes for shipping addresses.

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify

from ..decorators import rate_limit_and_record, require_role
from ..errors import MarketplaceError, error_response
from ..models.auth import ROLE_GUEST
from ..services import address_service
from ..validation import json_body

addresses_bp = Blueprint("addresses", __name__, url_prefix="/addresses")


@addresses_bp.post("")
@rate_limit_and_record(10, timedelta(hours=1))
@require_role(ROLE_GUEST)
def create_address_route():
    """Store a shipping address. 422 when the destination is not served."""
    try:
        address, created = address_service.create_address(g.current_user.id, json_body())
        return jsonify(address.to_dict()), 201 if created else 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create address")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.get("")
@require_role(ROLE_GUEST)
def list_addresses_route():
    try:
        addresses = address_service.list_addresses(g.current_user.id)
        return jsonify({"addresses": [a.to_dict() for a in addresses]}), 200
    except Exception:
        current_app.logger.exception("Failed to list addresses")
        return jsonify({"error": "Internal server error"}), 500
