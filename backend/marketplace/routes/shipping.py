# Overview: Admin routes for shipping zones and exclusions.

from flask import Blueprint, current_app, jsonify

from ..decorators import require_role
from ..errors import MarketplaceError, error_response
from ..models.auth import ROLE_ADMIN
from ..services import shipping_service
from ..validation import json_body, require_fields

shipping_bp = Blueprint("shipping", __name__, url_prefix="/shipping-zones")


@shipping_bp.get("")
@require_role(ROLE_ADMIN)
def list_zones_route():
    try:
        return jsonify({"zones": [z.to_dict() for z in shipping_service.list_zones()]}), 200
    except Exception:
        current_app.logger.exception("Failed to list shipping zones")
        return jsonify({"error": "Internal server error"}), 500


@shipping_bp.post("")
@require_role(ROLE_ADMIN)
def create_zone_route():
    try:
        data = json_body()
        (country,) = require_fields(data, "country")
        zone = shipping_service.create_zone(country, data.get("state"), data.get("postal_code"))
        return jsonify(zone.to_dict()), 201
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create shipping zone")
        return jsonify({"error": "Internal server error"}), 500


@shipping_bp.delete("/<int:zone_id>")
@require_role(ROLE_ADMIN)
def delete_zone_route(zone_id: int):
    try:
        shipping_service.delete_zone(zone_id)
        return jsonify({"message": "Deleted"}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete shipping zone %s", zone_id)
        return jsonify({"error": "Internal server error"}), 500


@shipping_bp.get("/excluded")
@require_role(ROLE_ADMIN)
def list_exclusions_route():
    try:
        return jsonify({"exclusions": [e.to_dict() for e in shipping_service.list_exclusions()]}), 200
    except Exception:
        current_app.logger.exception("Failed to list shipping exclusions")
        return jsonify({"error": "Internal server error"}), 500


@shipping_bp.post("/excluded")
@require_role(ROLE_ADMIN)
def create_exclusion_route():
    try:
        data = json_body()
        country, postal_code = require_fields(data, "country", "postal_code")
        exclusion = shipping_service.create_exclusion(country, postal_code)
        return jsonify(exclusion.to_dict()), 201
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create shipping exclusion")
        return jsonify({"error": "Internal server error"}), 500


@shipping_bp.delete("/excluded/<int:exclusion_id>")
@require_role(ROLE_ADMIN)
def delete_exclusion_route(exclusion_id: int):
    try:
        shipping_service.delete_exclusion(exclusion_id)
        return jsonify({"message": "Deleted"}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete shipping exclusion %s", exclusion_id)
        return jsonify({"error": "Internal server error"}), 500
