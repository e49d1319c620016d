# Overview: Webhook endpoint for payment provider events.

# backend/marketplace/routes/payments.py
"""
Payment provider webhooks.

The body is verified against the Stripe-Signature header before anything
is stored. Once the event row is committed the endpoint answers 200 no
matter what happens while applying it: a provider retry would be a
duplicate and be dropped anyway, so processing failures are logged only.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import BadSignature, MarketplaceError, error_response
from ..services import order_service

payments_bp = Blueprint("payments", __name__, url_prefix="/payment")


@payments_bp.post("/events")
def payment_events_route():
    payload = request.get_data(cache=False)
    signature = request.headers.get("Stripe-Signature", "")

    try:
        record = order_service.record_webhook_event(payload, signature)
    except BadSignature as e:
        current_app.logger.warning("Rejected webhook from %s: %s", request.remote_addr, e)
        return jsonify({"error": e.public_message}), e.status_code
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record webhook event")
        return jsonify({"error": "Internal server error"}), 500

    if record is None:
        return jsonify({"received": True, "duplicate": True}), 200

    event_id = record.id
    try:
        outcome = order_service.process_webhook_event(event_id)
    except MarketplaceError as e:
        current_app.logger.warning("Webhook event %s not applied: %s", event_id, e)
        outcome = "not_applied"
    except Exception:
        current_app.logger.exception("Failed to apply webhook event %s", event_id)
        outcome = "error"

    return jsonify({"received": True, "outcome": outcome}), 200
