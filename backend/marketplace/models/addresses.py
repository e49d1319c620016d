from __future__ import annotations

from ..extensions import db
from ..services.id_generator import generate_id
from marketplace.time_utils import to_utc_z, utcnow

# Fields that make two addresses of the same user identical
ADDRESS_FIELDS = ("addressee", "country", "line1", "line2", "city", "state", "postal_code", "email")


class Address(db.Model):
    __tablename__ = "addresses"

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    addressee = db.Column(db.String(255), nullable=True)
    country = db.Column(db.String(2), nullable=False)
    line1 = db.Column(db.String(255), nullable=False)
    line2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=False)
    state = db.Column(db.String(64), nullable=True)
    postal_code = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(254), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def snapshot(self) -> dict:
        """Plain copy of the address fields, embedded into orders."""
        return {field: getattr(self, field) for field in ADDRESS_FIELDS}

    def to_dict(self) -> dict:
        data = self.snapshot()
        data.update({
            "id": str(self.id),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        })
        return data
