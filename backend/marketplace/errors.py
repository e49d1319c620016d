# Overview: Closed error taxonomy shared by services and routes.

"""
Service-layer errors.

Every failure a service can report is one of the classes below. Each class
carries the HTTP status it maps to and a short generic message that is safe
to return to clients. The constructor message and the optional cause are for
logs only and never leave the server.
"""

from __future__ import annotations

from flask import current_app, jsonify


class MarketplaceError(Exception):
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str | None = None, *, cause: BaseException | None = None):
        super().__init__(message or self.public_message)
        self.cause = cause


class NotFound(MarketplaceError):
    status_code = 404
    public_message = "Not found"


class AlreadyExists(MarketplaceError):
    status_code = 409
    public_message = "Already exists"


class InvalidInput(MarketplaceError):
    status_code = 400
    public_message = "Invalid input"


class EmptyCart(InvalidInput):
    public_message = "Cart is empty"


class InvalidState(MarketplaceError):
    status_code = 409
    public_message = "Operation not allowed in current state"


class Unauthenticated(MarketplaceError):
    status_code = 401
    public_message = "Authentication required"


class InvalidToken(Unauthenticated):
    public_message = "Invalid token"


class Revoked(Unauthenticated):
    public_message = "Token revoked"


class Expired(Unauthenticated):
    public_message = "Token expired"


class Forbidden(MarketplaceError):
    status_code = 403
    public_message = "Forbidden"


class RateLimited(MarketplaceError):
    status_code = 429
    public_message = "Too many requests"


class Unshippable(MarketplaceError):
    status_code = 422
    public_message = "Destination is not served"


class ProviderError(MarketplaceError):
    """Payment or tax provider returned non-2xx or could not be reached."""

    status_code = 502
    public_message = "Payment provider error"

    def __init__(
        self,
        message: str | None = None,
        *,
        upstream_status: int | None = None,
        body: str | None = None,
        retryable: bool = False,
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause=cause)
        self.upstream_status = upstream_status
        self.body = body
        self.retryable = retryable


class BadSignature(MarketplaceError):
    status_code = 400
    public_message = "Invalid signature"


class Conflict(MarketplaceError):
    status_code = 409
    public_message = "Conflict"


class InsufficientStock(Conflict):
    public_message = "Insufficient stock"


class Internal(MarketplaceError):
    pass


def error_response(exc: MarketplaceError):
    """Log the detail and return the generic JSON body for exc."""
    if exc.status_code >= 500:
        current_app.logger.error("%s: %s", type(exc).__name__, exc, exc_info=exc.cause)
    else:
        current_app.logger.info("%s: %s", type(exc).__name__, exc)
    return jsonify({"error": exc.public_message}), exc.status_code
