from __future__ import annotations

from ..extensions import db
from ..services.id_generator import generate_id
from marketplace.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Sellable item. Prices are integer minor units of the store currency.

    Products are soft-deleted so that historical carts and orders keep
    resolving their product ids.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint("inventory >= 0", name="ck_products_inventory_non_negative"),
    )

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    price = db.Column(db.BigInteger, nullable=False)
    tax_code = db.Column(db.String(64), nullable=True)
    thumbnail = db.Column(db.String(512), nullable=True)
    inventory = db.Column(db.Integer, nullable=False, default=0)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "tax_code": self.tax_code,
            "thumbnail": self.thumbnail,
            "inventory": self.inventory,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
