# Overview: Flask API routes for sessions, guests, password resets and user lookups.

# backend/marketplace/routes/users.py
"""
User session routes.

SECURITY:
- Login and guest creation are rate limited per client IP
- Refresh tokens rotate on every use; the presented token is revoked
- Logout revokes every refresh token of the user
- Password reset requests answer 200 whether or not the email is known
- User listing is admin only; email existence checks are rate limited
"""

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import rate_limit_and_record, require_auth, require_role
from ..errors import MarketplaceError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_GUEST
from ..services import (
    auth_service,
    email_service,
    password_service,
    refresh_service,
    token_service,
)
from ..validation import json_body, parse_positive_int, require_fields

users_bp = Blueprint("users", __name__, url_prefix="/users")


@users_bp.post("/login")
@rate_limit_and_record(10, timedelta(minutes=15))
def login_route():
    try:
        data = json_body()
        email, password = require_fields(data, "email", "password")

        user = auth_service.authenticate(email, password)
        if not user:
            current_app.logger.warning("Failed login for %s", email)
            return jsonify({"error": "Invalid credentials"}), 401

        return jsonify(auth_service.issue_tokens(user)), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/refresh-token")
def refresh_token_route():
    """Exchange a refresh token for a new access token and a new refresh token."""
    try:
        data = json_body()
        (secret,) = require_fields(data, "refresh_token")
        if not isinstance(secret, str):
            return jsonify({"error": "Invalid token"}), 401

        user, new_secret = refresh_service.rotate_refresh_token(secret)
        return jsonify({
            "access_token": token_service.issue_access_token(user),
            "refresh_token": new_secret,
        }), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refresh token")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/logout")
@require_auth
def logout_route():
    try:
        revoked = refresh_service.revoke_all(g.current_user.id)
        current_app.logger.info("User %s logged out; %s refresh tokens revoked", g.current_user.id, revoked)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("")
@require_role(ROLE_ADMIN)
def list_users_route():
    try:
        page = parse_positive_int(request.args.get("page"), "page", 1)
        limit = parse_positive_int(request.args.get("limit"), "limit", 100)
        users, total = auth_service.list_users(page=page, limit=limit)
        return jsonify({
            "users": [u.to_dict() for u in users],
            "page": page,
            "limit": min(limit, 100),
            "total": total,
        }), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/exists")
@rate_limit_and_record(20, timedelta(hours=1))
def user_exists_route():
    try:
        data = json_body()
        (email,) = require_fields(data, "email")
        return jsonify({"exists": auth_service.email_exists(email)}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check user existence")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/guest")
@rate_limit_and_record(5, timedelta(hours=1))
def create_guest_route():
    try:
        user = auth_service.create_guest()
        tokens = auth_service.issue_tokens(user)
        tokens["user"] = user.to_dict()
        return jsonify(tokens), 201
    except Exception:
        current_app.logger.exception("Failed to create guest user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/guest")
@require_role(ROLE_GUEST)
def promote_guest_route():
    """Set email and password on a guest account, making it a regular user."""
    try:
        data = json_body()
        email, password = require_fields(data, "email", "password")

        user = auth_service.promote_guest(g.current_user, email, password)
        refresh_service.revoke_all(user.id)
        tokens = auth_service.issue_tokens(user)
        tokens["user"] = user.to_dict()
        return jsonify(tokens), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to promote guest user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/password-reset")
@rate_limit_and_record(3, timedelta(hours=1))
def password_reset_route():
    try:
        data = json_body()
        (email,) = require_fields(data, "email")

        code = password_service.request_reset(email)
        if code:
            email_service.send_password_reset_code(auth_service.normalize_email(email), code)
        return jsonify({"message": "If the account exists, a reset code has been sent"}), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to start password reset")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/password-reset/confirm")
@rate_limit_and_record(5, timedelta(hours=1))
def password_reset_confirm_route():
    try:
        data = json_body()
        email, code, password = require_fields(data, "email", "reset_code", "password")

        password_service.confirm_reset(email, code, password)
        return jsonify({"message": "Password updated"}), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm password reset")
        return jsonify({"error": "Internal server error"}), 500
