# Overview: Tax calculation; authoritative via the provider, estimates from local rates.

"""
Tax calculation.

calculate_tax() asks the provider's tax API and is what orders are charged.
estimate_tax() is a local approximation from the tax_rates table for
showing a figure before checkout.

Items are plain mappings with product_id, quantity, unit_price and an
optional tax_code, so carts and order snapshots can both be passed in.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from flask import current_app

from ..errors import InvalidInput, NotFound
from ..extensions import db
from ..models import TaxRate
from . import payment_service

BASIS_POINTS = 10_000


def _address_field(address, name: str):
    if isinstance(address, Mapping):
        return address.get(name)
    return getattr(address, name, None)


def build_calculation_form(order_ref: str, address, items: list[Mapping]) -> dict:
    """Form fields for POST /tax/calculations."""
    fallback_code = current_app.config["FALLBACK_TAX_CODE"]
    tax_behavior = current_app.config["TAX_BEHAVIOR"]

    form = {
        "currency": current_app.config["CURRENCY"],
        "customer_details[address_source]": "shipping",
    }
    for field in ("country", "city", "line1", "line2", "state", "postal_code"):
        value = _address_field(address, field)
        if value:
            form[f"customer_details[address][{field}]"] = value

    for index, item in enumerate(items):
        prefix = f"line_items[{index}]"
        form[f"{prefix}[amount]"] = str(item["unit_price"] * item["quantity"])
        form[f"{prefix}[quantity]"] = str(item["quantity"])
        form[f"{prefix}[tax_code]"] = item.get("tax_code") or fallback_code
        form[f"{prefix}[tax_behavior]"] = tax_behavior
        form[f"{prefix}[reference]"] = f"{order_ref}:{item['product_id']}"
    return form


def calculate_tax(order_ref: str, address, items: list[Mapping], client=None) -> int:
    """
    Authoritative tax in minor units for the given order reference.

    Uses Idempotency-Key "tax-calculation-<order_ref>". Raises
    InvalidInput for an empty item list and ProviderError on provider
    failure.
    """
    if not items:
        raise InvalidInput("tax calculation needs at least one line item")
    client = client or payment_service.get_client()

    data = client.post_form(
        "/tax/calculations",
        build_calculation_form(order_ref, address, items),
        idempotency_key=f"tax-calculation-{order_ref}",
    )
    inclusive = int(data.get("tax_amount_inclusive") or 0)
    exclusive = int(data.get("tax_amount_exclusive") or 0)
    return inclusive + exclusive


def lookup_rate(country: str, state: str | None, tax_code: str | None) -> int:
    """
    Rate in basis points, trying (country, state, code), then
    (country, state), then (country). Raises NotFound.
    """
    country = (country or "").upper()
    state = state.upper() if state else None

    attempts = []
    for candidate in ((state, tax_code), (state, None), (None, None)):
        if candidate not in attempts:
            attempts.append(candidate)

    for cand_state, cand_code in attempts:
        query = db.session.query(TaxRate.rate).filter(TaxRate.country == country)
        query = query.filter(TaxRate.state == cand_state) if cand_state else query.filter(TaxRate.state.is_(None))
        query = query.filter(TaxRate.tax_code == cand_code) if cand_code else query.filter(TaxRate.tax_code.is_(None))
        rate = query.scalar()
        if rate is not None:
            return rate
    raise NotFound(f"no tax rate for country={country} state={state} code={tax_code}")


def estimate_tax(address, items: Iterable[Mapping]) -> int:
    """Local estimate: sum of quantity * unit_price * rate // 10000."""
    country = _address_field(address, "country")
    state = _address_field(address, "state")
    if not country:
        raise InvalidInput("country is required for a tax estimate")

    total = 0
    for item in items:
        rate = lookup_rate(country, state, item.get("tax_code"))
        total += item["quantity"] * item["unit_price"] * rate // BASIS_POINTS
    return total
