from __future__ import annotations

from ..extensions import db
from ..services.id_generator import generate_id
from marketplace.time_utils import to_utc_z, utcnow

ORDER_PENDING = "pending"
ORDER_PAID = "paid"
ORDER_FULFILLED = "fulfilled"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_REFUNDED = "refunded"
ORDER_CANCELED = "canceled"

ORDER_STATUSES = (
    ORDER_PENDING,
    ORDER_PAID,
    ORDER_FULFILLED,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
    ORDER_REFUNDED,
    ORDER_CANCELED,
)

# Allowed status edges. Anything not listed is rejected.
ORDER_TRANSITIONS = {
    ORDER_PENDING: {ORDER_PAID, ORDER_CANCELED},
    ORDER_PAID: {ORDER_FULFILLED, ORDER_REFUNDED},
    ORDER_FULFILLED: {ORDER_SHIPPED},
    ORDER_SHIPPED: {ORDER_DELIVERED},
    ORDER_DELIVERED: set(),
    ORDER_REFUNDED: set(),
    ORDER_CANCELED: set(),
}


class Order(db.Model):
    """
    Customer order.

    Amounts are integer minor units. Once status leaves pending the items,
    amount, tax_amount and shipping_amount are frozen, and
    total_amount == amount + tax_amount + shipping_amount.

    payment_intent_id is written at most once (null -> value).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.CheckConstraint("amount >= 0", name="ck_orders_amount_non_negative"),
    )

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id"), nullable=False, index=True)
    shipping_address_id = db.Column(db.BigInteger, db.ForeignKey("addresses.id"), nullable=True)
    shipping_address = db.Column(db.JSON, nullable=False)

    currency = db.Column(db.String(3), nullable=False)
    amount = db.Column(db.BigInteger, nullable=False)
    tax_amount = db.Column(db.BigInteger, nullable=False, default=0)
    shipping_amount = db.Column(db.BigInteger, nullable=False, default=0)
    total_amount = db.Column(db.BigInteger, nullable=False)
    refunded_amount = db.Column(db.BigInteger, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING)
    payment_intent_id = db.Column(db.String(255), nullable=True, unique=True)
    payment_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "shipping_address_id": str(self.shipping_address_id) if self.shipping_address_id else None,
            "shipping_address": self.shipping_address,
            "currency": self.currency,
            "amount": self.amount,
            "tax_amount": self.tax_amount,
            "shipping_amount": self.shipping_amount,
            "total_amount": self.total_amount,
            "refunded_amount": self.refunded_amount,
            "status": self.status,
            "payment_intent_id": self.payment_intent_id,
            "payment_error": self.payment_error,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def to_public_dict(self) -> dict:
        """Subset safe to show to anyone holding the order id."""
        return {
            "id": str(self.id),
            "status": self.status,
            "currency": self.currency,
            "total_amount": self.total_amount,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
        }


class OrderItem(db.Model):
    """Product snapshot copied from the catalog when the order was created."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", name="uq_order_items_order_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.BigInteger, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.BigInteger, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    thumbnail = db.Column(db.String(512), nullable=True)
    tax_code = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "product_id": str(self.product_id),
            "name": self.name,
            "thumbnail": self.thumbnail,
            "tax_code": self.tax_code,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
        }


class PaymentEvent(db.Model):
    """
    Idempotency log for provider webhooks.

    The primary key is the provider's event id; a second delivery of the
    same event fails the insert and is dropped.
    """
    __tablename__ = "payment_events"

    id = db.Column(db.String(255), primary_key=True)
    type = db.Column(db.String(64), nullable=False)
    payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    payload_raw = db.Column(db.Text, nullable=False)
    processed = db.Column(db.Boolean, nullable=False, default=False)
    received_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "payment_intent_id": self.payment_intent_id,
            "processed": self.processed,
            "received_at": to_utc_z(self.received_at),
        }
