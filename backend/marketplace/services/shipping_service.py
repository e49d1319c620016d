# Overview: Service-layer operations for shipping zones; eligibility checks and admin CRUD.

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyExists, InvalidInput, NotFound
from ..extensions import db
from ..models import ShippingExclusion, ShippingZone


def _field(address, name: str):
    if isinstance(address, dict):
        return address.get(name)
    return getattr(address, name, None)


def is_shippable(address) -> bool:
    """
    Exclusions win: a (country, postal_code) exclusion rejects the address
    even when a zone covers it. Otherwise a zone must match the country with
    state and postal code either equal or NULL (wildcard).
    """
    country = (_field(address, "country") or "").upper()
    state = _field(address, "state")
    postal_code = _field(address, "postal_code")

    excluded = db.session.query(ShippingExclusion.id).filter(
        ShippingExclusion.country == country,
        ShippingExclusion.postal_code == postal_code,
    ).first()
    if excluded:
        return False

    zone = db.session.query(ShippingZone.id).filter(
        ShippingZone.country == country,
        or_(ShippingZone.state == state, ShippingZone.state.is_(None)),
        or_(ShippingZone.postal_code == postal_code, ShippingZone.postal_code.is_(None)),
    ).first()
    return zone is not None


def _country(value) -> str:
    if not isinstance(value, str) or len(value.strip()) != 2 or not value.strip().isalpha():
        raise InvalidInput("country must be an ISO 3166-1 alpha-2 code")
    return value.strip().upper()


def _optional(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidInput("expected a string")
    value = value.strip()
    return value or None


def list_zones() -> list[ShippingZone]:
    return db.session.query(ShippingZone).order_by(ShippingZone.country, ShippingZone.id).all()


def create_zone(country, state=None, postal_code=None) -> ShippingZone:
    """Raises AlreadyExists when the postal code is already excluded."""
    zone = ShippingZone(country=_country(country), state=_optional(state), postal_code=_optional(postal_code))
    if zone.postal_code:
        excluded = db.session.query(ShippingExclusion.id).filter_by(
            country=zone.country, postal_code=zone.postal_code,
        ).first()
        if excluded:
            raise AlreadyExists(f"{zone.country}/{zone.postal_code} is excluded from shipping")
    db.session.add(zone)
    db.session.commit()
    return zone


def delete_zone(zone_id: int) -> None:
    deleted = db.session.query(ShippingZone).filter_by(id=zone_id).delete()
    if not deleted:
        db.session.rollback()
        raise NotFound(f"shipping zone {zone_id} not found")
    db.session.commit()


def list_exclusions() -> list[ShippingExclusion]:
    return db.session.query(ShippingExclusion).order_by(ShippingExclusion.country, ShippingExclusion.id).all()


def create_exclusion(country, postal_code) -> ShippingExclusion:
    """Raises AlreadyExists when the pair is excluded or a zone names it."""
    postal_code = _optional(postal_code)
    if not postal_code:
        raise InvalidInput("postal_code is required")
    country = _country(country)
    zoned = db.session.query(ShippingZone.id).filter_by(country=country, postal_code=postal_code).first()
    if zoned:
        raise AlreadyExists(f"{country}/{postal_code} belongs to shipping zone {zoned.id}")
    exclusion = ShippingExclusion(country=country, postal_code=postal_code)
    db.session.add(exclusion)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise AlreadyExists(f"exclusion {country}/{postal_code} exists", cause=exc)
    return exclusion


def delete_exclusion(exclusion_id: int) -> None:
    deleted = db.session.query(ShippingExclusion).filter_by(id=exclusion_id).delete()
    if not deleted:
        db.session.rollback()
        raise NotFound(f"shipping exclusion {exclusion_id} not found")
    db.session.commit()
