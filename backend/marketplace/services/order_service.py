# Overview: Order lifecycle; creation, confirmation, webhook-driven transitions and stale-order reclamation.

"""
Order engine.

Lifecycle:

    pending -> paid -> fulfilled -> shipped -> delivered
    pending -> canceled
    paid    -> refunded

Every status change happens inside one transaction holding a row lock on
the order (SELECT ... FOR UPDATE), so concurrent webhooks, confirmations
and the stale-order job serialize per order.

Webhooks are idempotent through payment_events: the event row is committed
before any business logic runs, and its primary key is the provider's
event id, so a redelivered event fails the insert and is dropped.

Inventory is decremented when the order is paid, not when it is created.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    Conflict,
    EmptyCart,
    InsufficientStock,
    InvalidInput,
    InvalidState,
    NotFound,
    ProviderError,
    Unshippable,
)
from ..extensions import db
from ..models import Order, OrderItem, PaymentEvent, Product
from ..models.orders import (
    ORDER_CANCELED,
    ORDER_PAID,
    ORDER_PENDING,
    ORDER_REFUNDED,
    ORDER_STATUSES,
    ORDER_TRANSITIONS,
)
from . import address_service, cart_service, payment_service, shipping_service, tax_service
from .concurrency import lock_for_update
from marketplace.time_utils import utcnow


@dataclass(frozen=True)
class Confirmation:
    order_id: int
    payment_intent_id: str
    client_secret: str | None
    tax_amount: int
    total_amount: int

    def to_dict(self) -> dict:
        return {
            "order_id": str(self.order_id),
            "payment_intent_id": self.payment_intent_id,
            "client_secret": self.client_secret,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
        }


# =============================================================================
# Queries
# =============================================================================


def get_order_for_owner(user, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, user_id=user.id).first()
    if order is None:
        raise NotFound(f"order {order_id} not found for user {user.id}")
    return order


def get_order_public(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound(f"order {order_id} not found")
    return order


def list_orders(*, page: int = 1, limit: int = 50, status: str | None = None) -> tuple[list[Order], int]:
    """Admin listing, newest first. Returns (orders, total_count)."""
    page = max(page, 1)
    limit = min(max(limit, 1), 200)
    query = db.session.query(Order)
    if status:
        if status not in ORDER_STATUSES:
            raise InvalidInput(f"unknown status {status!r}")
        query = query.filter(Order.status == status)
    total = query.count()
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return orders, total


def list_user_orders(user) -> list[Order]:
    return (
        db.session.query(Order)
        .filter_by(user_id=user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


# =============================================================================
# Creation and confirmation
# =============================================================================


def create_order(user, shipping_address_id: int) -> Order:
    """
    Snapshot the user's cart into a new pending order.

    Raises NotFound (address), Unshippable, EmptyCart, InvalidInput
    (deleted product or zero amount) or InsufficientStock.
    """
    address = address_service.get_address_for_owner(user.id, shipping_address_id)
    if not shipping_service.is_shippable(address):
        raise Unshippable(f"address {address.id} is not served")

    cart = cart_service.get_cart(user.id)
    if not cart:
        raise EmptyCart(f"user {user.id} has an empty cart")

    lines = []
    for cart_item in cart:
        product = db.session.get(Product, cart_item.product_id)
        if product is None or product.is_deleted:
            raise InvalidInput(f"product {cart_item.product_id} is no longer available")
        if cart_item.quantity > product.inventory:
            raise InsufficientStock(
                f"product {product.id}: requested {cart_item.quantity}, available {product.inventory}"
            )
        lines.append(OrderItem(
            product_id=product.id,
            quantity=cart_item.quantity,
            unit_price=product.price,
            name=product.name,
            thumbnail=product.thumbnail,
            tax_code=product.tax_code,
        ))

    amount = sum(line.quantity * line.unit_price for line in lines)
    if amount <= 0:
        raise InvalidInput("order amount must be positive")

    order = Order(
        user_id=user.id,
        shipping_address_id=address.id,
        shipping_address=address.snapshot(),
        currency=current_app.config["CURRENCY"],
        amount=amount,
        tax_amount=0,
        shipping_amount=0,
        total_amount=amount,
        status=ORDER_PENDING,
        items=lines,
    )
    db.session.add(order)
    db.session.commit()
    current_app.logger.info("Order %s created for user %s: amount=%s", order.id, user.id, amount)
    return order


def confirm_order(user, order_id: int, *, payments=None) -> Confirmation:
    """
    Price the order with tax, obtain its payment intent and clear the cart.

    Safe to repeat while the order is pending: tax and intent calls reuse
    idempotency keys derived from the order id, and the intent id is only
    written when still null. Raises NotFound, InvalidState, Conflict or
    ProviderError. A provider failure leaves the order untouched.
    """
    payments = payments or payment_service.get_client()

    order = get_order_for_owner(user, order_id)
    if order.status != ORDER_PENDING:
        raise InvalidState(f"order {order.id} is {order.status}")

    address = dict(order.shipping_address)
    items = [
        {
            "product_id": item.product_id,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
            "tax_code": item.tax_code,
        }
        for item in order.items
    ]
    amount = order.amount
    shipping_amount = order.shipping_amount
    currency = order.currency
    # Nothing is held open across the provider round-trips
    db.session.rollback()

    tax_amount = tax_service.calculate_tax(str(order_id), address, items, client=payments)
    total_amount = amount + tax_amount + shipping_amount
    intent = payments.create_intent(order_id, total_amount, currency)

    locked = lock_for_update(db.session.query(Order).filter_by(id=order_id)).one()
    if locked.status != ORDER_PENDING:
        db.session.rollback()
        raise InvalidState(f"order {order_id} left pending during confirmation")
    if locked.payment_intent_id and locked.payment_intent_id != intent.id:
        existing = locked.payment_intent_id
        db.session.rollback()
        raise Conflict(f"order {order_id} already bound to {existing}, provider returned {intent.id}")

    locked.tax_amount = tax_amount
    locked.total_amount = total_amount
    if locked.payment_intent_id is None:
        locked.payment_intent_id = intent.id
    cart_service.clear_cart(user.id, commit=False)
    db.session.commit()

    current_app.logger.info(
        "Order %s confirmed: tax=%s total=%s intent=%s", order_id, tax_amount, total_amount, intent.id
    )
    return Confirmation(
        order_id=order_id,
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        tax_amount=tax_amount,
        total_amount=total_amount,
    )


def advance_status(order_id: int, new_status: str) -> Order:
    """Admin fulfilment transitions (paid -> fulfilled -> shipped -> delivered)."""
    if new_status not in ORDER_STATUSES:
        raise InvalidInput(f"unknown status {new_status!r}")
    if new_status in (ORDER_PAID, ORDER_REFUNDED, ORDER_CANCELED):
        raise InvalidInput(f"{new_status} is set by payment events only")

    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        db.session.rollback()
        raise NotFound(f"order {order_id} not found")
    if new_status not in ORDER_TRANSITIONS[order.status]:
        current = order.status
        db.session.rollback()
        raise InvalidState(f"order {order_id}: {current} -> {new_status} not allowed")

    order.status = new_status
    db.session.commit()
    return order


# =============================================================================
# Webhooks
# =============================================================================


def _intent_id_for(event_type: str, obj: dict) -> str | None:
    if event_type.startswith("payment_intent."):
        return obj.get("id")
    intent = obj.get("payment_intent")
    if isinstance(intent, dict):
        return intent.get("id")
    return intent


def record_webhook_event(payload: bytes, signature_header: str, *, payments=None) -> PaymentEvent | None:
    """
    Verify and persist a webhook delivery.

    Returns the stored event, or None when the event id was seen before.
    Raises BadSignature or InvalidInput; nothing is stored in that case.
    """
    payments = payments or payment_service.get_client()
    payments.verify_signature(payload, signature_header)

    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise InvalidInput("webhook body is not JSON", cause=exc)
    if not isinstance(event, dict):
        raise InvalidInput("webhook body is not an object")

    event_id = event.get("id")
    event_type = event.get("type")
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not event_id or not event_type or not isinstance(obj, dict):
        raise InvalidInput("webhook event missing id, type or data.object")

    record = PaymentEvent(
        id=event_id,
        type=event_type,
        payment_intent_id=_intent_id_for(event_type, obj),
        payload_raw=payload.decode("utf-8"),
        processed=False,
        received_at=utcnow(),
    )
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info("Duplicate webhook event %s ignored", event_id)
        return None
    return record


def process_webhook_event(event_id: str) -> str:
    """
    Apply a stored event to its order. Returns a short outcome label.

    Raises NotFound when no order carries the event's payment intent (the
    event stays stored, unprocessed) and Conflict when a success event's
    amount or currency disagrees with the order.
    """
    record = db.session.get(PaymentEvent, event_id)
    if record is None:
        raise NotFound(f"payment event {event_id} not stored")
    if record.processed:
        return "already_processed"

    event_type = record.type
    if not payment_service.supported_event(event_type):
        record.processed = True
        db.session.commit()
        current_app.logger.info("Unsupported webhook event type %s (%s)", event_type, event_id)
        return "unsupported"

    obj = json.loads(record.payload_raw)["data"]["object"]
    intent_id = record.payment_intent_id
    if not intent_id:
        db.session.rollback()
        raise NotFound(f"event {event_id} carries no payment intent")

    order = lock_for_update(db.session.query(Order).filter_by(payment_intent_id=intent_id)).first()
    if order is None:
        db.session.rollback()
        raise NotFound(f"no order for payment intent {intent_id} (event {event_id})")

    try:
        outcome = _apply_transition(order, event_type, obj)
    except Exception:
        db.session.rollback()
        raise

    record = db.session.get(PaymentEvent, event_id)
    record.processed = True
    db.session.commit()
    current_app.logger.info("Webhook %s (%s) on order %s: %s", event_id, event_type, order.id, outcome)
    return outcome


def apply_webhook_event(payload: bytes, signature_header: str, *, payments=None) -> str:
    """
    Verify, record and apply one webhook delivery.

    Returns "duplicate" for a redelivered event, otherwise the outcome of
    process_webhook_event().
    """
    record = record_webhook_event(payload, signature_header, payments=payments)
    if record is None:
        return "duplicate"
    return process_webhook_event(record.id)


def _apply_transition(order: Order, event_type: str, obj: dict) -> str:
    status = order.status

    if event_type == "payment_intent.succeeded":
        if status != ORDER_PENDING:
            if status == ORDER_CANCELED:
                current_app.logger.warning(
                    "Payment succeeded for canceled order %s (intent %s); needs operator attention",
                    order.id, order.payment_intent_id,
                )
            return "ignored"
        _verify_charge(order, obj)
        order.status = ORDER_PAID
        order.payment_error = None
        _decrement_inventory(order)
        return "paid"

    if event_type == "payment_intent.payment_failed":
        if status != ORDER_PENDING:
            return "ignored"
        error = obj.get("last_payment_error") or {}
        order.payment_error = error.get("message") or error.get("code") or "payment failed"
        return "payment_failed"

    if event_type == "payment_intent.canceled":
        if status != ORDER_PENDING:
            return "ignored"
        order.status = ORDER_CANCELED
        return "canceled"

    if event_type == "refund.created":
        if status != ORDER_PAID:
            return "ignored"
        refunded = int(obj.get("amount") or 0)
        if refunded <= 0:
            return "ignored"
        if order.refunded_amount + refunded >= order.total_amount:
            order.refunded_amount = order.total_amount
            order.status = ORDER_REFUNDED
            _restock_inventory(order)
            return "refunded"
        order.refunded_amount += refunded
        return "partially_refunded"

    # payment_intent.requires_action, payment_intent.processing,
    # refund.updated, refund.failed
    return "noted"


def _verify_charge(order: Order, obj: dict) -> None:
    amount = obj.get("amount_received", obj.get("amount"))
    currency = str(obj.get("currency") or "")
    if amount is None or int(amount) != order.total_amount or currency.lower() != order.currency.lower():
        raise Conflict(
            f"order {order.id}: charged {amount} {currency}, expected {order.total_amount} {order.currency}"
        )


def _decrement_inventory(order: Order) -> None:
    for item in order.items:
        product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
        if product is None:
            continue
        remaining = product.inventory - item.quantity
        if remaining < 0:
            current_app.logger.warning(
                "Product %s oversold by %s on order %s", product.id, -remaining, order.id
            )
            remaining = 0
        product.inventory = remaining


def _restock_inventory(order: Order) -> None:
    for item in order.items:
        product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
        if product is not None:
            product.inventory += item.quantity


# =============================================================================
# Stale orders
# =============================================================================


def cancel_stale_orders(*, payments=None, now=None) -> int:
    """
    Cancel pending orders older than ORDER_STALE_TTL.

    Each order is canceled in its own locked transaction. The provider-side
    intent cancel is best effort: the local cancel stands even if the
    provider call fails. Returns the number of orders canceled.
    """
    payments = payments or payment_service.get_client()
    now = now or utcnow()
    cutoff = now - timedelta(seconds=current_app.config["ORDER_STALE_TTL"])

    stale_ids = [
        row.id
        for row in db.session.query(Order.id).filter(
            Order.status == ORDER_PENDING,
            Order.created_at < cutoff,
        )
    ]
    db.session.rollback()

    canceled = 0
    for order_id in stale_ids:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None or order.status != ORDER_PENDING:
            db.session.rollback()
            continue
        order.status = ORDER_CANCELED
        intent_id = order.payment_intent_id
        db.session.commit()
        canceled += 1
        current_app.logger.info("Stale order %s canceled", order_id)

        if intent_id:
            try:
                payments.cancel_intent(intent_id)
            except ProviderError as exc:
                current_app.logger.warning(
                    "Could not cancel intent %s for stale order %s: %s", intent_id, order_id, exc
                )
    return canceled
