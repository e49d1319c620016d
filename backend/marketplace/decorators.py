# Overview: Request decorators for authentication, roles and rate limits.

from datetime import timedelta
from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import RateLimited, Unauthenticated, error_response
from .extensions import db
from .models import User
from .models.auth import ROLE_LEVELS
from .services import rate_limit_service, token_service


def require_auth(f):
    """
    Require a valid bearer access token.

    Sets g.current_user to the token's User and g.token_claims to the
    decoded claims. Returns 401 when the header is missing, the token does
    not verify, or the user no longer exists.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        try:
            claims = token_service.verify_access_token(token)
            user = db.session.get(User, int(claims["sub"]))
        except (Unauthenticated, ValueError) as exc:
            current_app.logger.info("Rejected access token: %s", exc)
            return jsonify({"error": "Invalid or expired token"}), 401

        if user is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.token_claims = claims
        return f(*args, **kwargs)

    return decorated_function


def require_role(min_role: str):
    """
    Require the authenticated user's role to be at least min_role
    (guest < user < admin). Implies require_auth.
    """
    def decorator(f):
        @require_auth
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not g.current_user.has_minimum_role(min_role):
                return jsonify({"error": "Forbidden"}), 403
            return f(*args, **kwargs)
        return decorated_function

    if min_role not in ROLE_LEVELS:
        raise ValueError(f"unknown role {min_role!r}")
    return decorator


def _over_limit(limit: int) -> bool:
    """
    True when the caller already has `limit` hits on this path.

    A failing counter store is logged and treated as under the limit.
    """
    try:
        return rate_limit_service.check(rate_limit_service.client_ip(), request.path) >= limit
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Rate limit check failed for %s", request.path)
        return False


def rate_limit(limit: int):
    """Reject with 429 once the caller's hit count reaches limit."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if _over_limit(limit):
                return error_response(RateLimited(
                    f"{rate_limit_service.client_ip()} reached {limit} hits on {request.path}"
                ))
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def rate_limit_and_record(limit: int, expiry: timedelta):
    """
    Reject with 429 once the hit count reaches limit; otherwise count this
    request (pushing the window out by expiry) and call the view.
    """
    def decorator(f):
        @rate_limit(limit)
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                rate_limit_service.record(rate_limit_service.client_ip(), request.path, expiry)
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Rate limit record failed for %s", request.path)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
