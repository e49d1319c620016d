# Overview: Service-layer operations for carts; encapsulates business logic and database work.

from __future__ import annotations

from ..errors import InsufficientStock, InvalidInput, NotFound
from ..extensions import db
from ..models import CartItem, Product


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidInput("quantity must be an integer")
    if quantity < 1:
        raise InvalidInput("quantity must be at least 1")
    return quantity


def _live_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or product.is_deleted:
        raise NotFound(f"product {product_id} not found")
    return product


def get_cart(user_id: int) -> list[CartItem]:
    return (
        db.session.query(CartItem)
        .filter_by(user_id=user_id)
        .order_by(CartItem.id)
        .all()
    )


def cart_total(items: list[CartItem]) -> int:
    return sum(item.quantity * item.unit_price for item in items)


def add_item(user_id: int, product_id: int, quantity) -> CartItem:
    """
    Add quantity of a product to the cart, merging with an existing line.

    The merged quantity may not exceed current inventory.
    """
    quantity = _require_quantity(quantity)
    product = _live_product(product_id)

    item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()
    new_quantity = quantity + (item.quantity if item else 0)
    if new_quantity > product.inventory:
        raise InsufficientStock(
            f"product {product_id}: requested {new_quantity}, available {product.inventory}"
        )

    if item is None:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=new_quantity, unit_price=product.price)
        db.session.add(item)
    else:
        item.quantity = new_quantity
        item.unit_price = product.price
    db.session.commit()
    return item


def update_item(user_id: int, product_id: int, quantity) -> CartItem:
    quantity = _require_quantity(quantity)
    item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()
    if item is None:
        raise NotFound(f"product {product_id} is not in the cart")

    product = _live_product(product_id)
    if quantity > product.inventory:
        raise InsufficientStock(
            f"product {product_id}: requested {quantity}, available {product.inventory}"
        )
    item.quantity = quantity
    item.unit_price = product.price
    db.session.commit()
    return item


def remove_item(user_id: int, product_id: int) -> None:
    deleted = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).delete()
    if not deleted:
        db.session.rollback()
        raise NotFound(f"product {product_id} is not in the cart")
    db.session.commit()


def clear_cart(user_id: int, *, commit: bool = True) -> int:
    deleted = db.session.query(CartItem).filter_by(user_id=user_id).delete(synchronize_session="fetch")
    if commit:
        db.session.commit()
    return deleted
