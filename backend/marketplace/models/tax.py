from __future__ import annotations

from ..extensions import db
from ..services.id_generator import generate_id


class TaxRate(db.Model):
    """
    Local tax rate used for estimates, in basis points (825 == 8.25%).

    Lookup falls back from (country, state, tax_code) to (country, state)
    to (country).
    """
    __tablename__ = "tax_rates"
    __table_args__ = (
        db.UniqueConstraint("country", "state", "tax_code", name="uq_tax_rates_country_state_code"),
        db.CheckConstraint("rate >= 0", name="ck_tax_rates_rate_non_negative"),
    )

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    country = db.Column(db.String(2), nullable=False)
    state = db.Column(db.String(64), nullable=True)
    tax_code = db.Column(db.String(64), nullable=True)
    rate = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "country": self.country,
            "state": self.state,
            "tax_code": self.tax_code,
            "rate": self.rate,
        }
