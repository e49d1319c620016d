# Overview: Flask API routes for email-verified registration and admin invitations.

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify

from ..decorators import rate_limit_and_record, require_role
from ..errors import MarketplaceError, error_response
from ..models.auth import ROLE_ADMIN
from ..services import auth_service, email_service, register_service
from ..validation import json_body, require_fields

register_bp = Blueprint("register", __name__, url_prefix="/register")


@register_bp.post("")
@rate_limit_and_record(2, timedelta(hours=1))
def register_route():
    """Start a registration; the confirmation code is emailed."""
    try:
        data = json_body()
        (email,) = require_fields(data, "email")

        pending, code = register_service.register(email)
        email_service.send_registration_code(pending.email, code)
        return jsonify({"message": "Registration code sent"}), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@register_bp.post("/confirm")
@rate_limit_and_record(5, timedelta(hours=1))
def register_confirm_route():
    try:
        data = json_body()
        email, code, password = require_fields(data, "email", "registration_code", "password")

        user = register_service.confirm(email, code, password)
        return jsonify(auth_service.issue_tokens(user)), 201

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm registration")
        return jsonify({"error": "Internal server error"}), 500


@register_bp.post("/invite")
@require_role(ROLE_ADMIN)
def invite_route():
    """Create an invited user with a role; the registration code is emailed."""
    try:
        data = json_body()
        email, role = require_fields(data, "email", "role")

        user, code = register_service.invite(email, role)
        email_service.send_invitation(user.email, code)
        current_app.logger.info("Admin %s invited %s as %s", g.current_user.id, user.email, user.role)
        return jsonify(user.to_dict()), 201

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to invite user")
        return jsonify({"error": "Internal server error"}), 500


@register_bp.post("/invite/confirm")
@rate_limit_and_record(5, timedelta(hours=1))
def invite_confirm_route():
    try:
        data = json_body()
        code, password = require_fields(data, "registration_code", "password")

        user = register_service.confirm_invite(code, password)
        return jsonify(auth_service.issue_tokens(user)), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to accept invitation")
        return jsonify({"error": "Internal server error"}), 500
