# Overview: Service-layer operations for shipping addresses.

from __future__ import annotations

from ..errors import InvalidInput, NotFound, Unshippable
from ..extensions import db
from ..models import Address
from ..models.addresses import ADDRESS_FIELDS
from . import shipping_service
from .auth_service import normalize_email

REQUIRED_FIELDS = ("country", "line1", "city", "postal_code")
MAX_LENGTHS = {
    "addressee": 255,
    "line1": 255,
    "line2": 255,
    "city": 128,
    "state": 64,
    "postal_code": 32,
}


def clean_address(payload: dict) -> dict:
    """Validate and normalize address input. Raises InvalidInput."""
    if not isinstance(payload, dict):
        raise InvalidInput("address must be an object")

    cleaned = {}
    for field in ADDRESS_FIELDS:
        value = payload.get(field)
        if value is not None and not isinstance(value, str):
            raise InvalidInput(f"{field} must be a string")
        value = value.strip() if value else None
        cleaned[field] = value or None

    missing = [field for field in REQUIRED_FIELDS if not cleaned[field]]
    if missing:
        raise InvalidInput(f"missing required fields: {', '.join(missing)}")

    country = cleaned["country"]
    if len(country) != 2 or not country.isalpha():
        raise InvalidInput("country must be an ISO 3166-1 alpha-2 code")
    cleaned["country"] = country.upper()

    for field, limit in MAX_LENGTHS.items():
        if cleaned[field] and len(cleaned[field]) > limit:
            raise InvalidInput(f"{field} exceeds {limit} characters")

    if cleaned["email"]:
        cleaned["email"] = normalize_email(cleaned["email"])
    return cleaned


def create_address(user_id: int, payload: dict) -> tuple[Address, bool]:
    """
    Store an address for user_id, reusing an identical existing row.

    Returns (address, created). Raises Unshippable when the destination is
    not served.
    """
    fields = clean_address(payload)
    if not shipping_service.is_shippable(fields):
        raise Unshippable(f"{fields['country']} {fields['postal_code']} is not served")

    existing = db.session.query(Address).filter_by(user_id=user_id, **fields).first()
    if existing:
        return existing, False

    address = Address(user_id=user_id, **fields)
    db.session.add(address)
    db.session.commit()
    return address, True


def list_addresses(user_id: int) -> list[Address]:
    return db.session.query(Address).filter_by(user_id=user_id).order_by(Address.created_at).all()


def get_address_for_owner(user_id: int, address_id: int) -> Address:
    address = db.session.query(Address).filter_by(id=address_id, user_id=user_id).first()
    if address is None:
        raise NotFound(f"address {address_id} not found for user {user_id}")
    return address
