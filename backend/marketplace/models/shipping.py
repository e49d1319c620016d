from __future__ import annotations

from ..extensions import db
from ..services.id_generator import generate_id


class ShippingZone(db.Model):
    """
    Served destination. A NULL state or postal_code matches any value.
    """
    __tablename__ = "shipping_zones"
    __table_args__ = (
        db.Index("ix_shipping_zones_country", "country"),
    )

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    country = db.Column(db.String(2), nullable=False)
    state = db.Column(db.String(64), nullable=True)
    postal_code = db.Column(db.String(32), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "country": self.country,
            "state": self.state,
            "postal_code": self.postal_code,
        }


class ShippingExclusion(db.Model):
    """Postal code that is never served, even when a zone covers it."""
    __tablename__ = "shipping_exclusions"
    __table_args__ = (
        db.UniqueConstraint("country", "postal_code", name="uq_shipping_exclusions_country_postal"),
    )

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    country = db.Column(db.String(2), nullable=False)
    postal_code = db.Column(db.String(32), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "country": self.country,
            "postal_code": self.postal_code,
        }
