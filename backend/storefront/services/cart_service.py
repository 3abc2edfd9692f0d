# Overview: Cart reads and writes consumed by checkout (snapshot in, clear on success).

"""
Cart Service

WHY: Checkout needs an authoritative, read-once view of the user's cart at
the moment the order is placed. get_cart_snapshot() returns plain value
objects so the order writer never touches live cart rows or live product
prices after the read.

The cart is cleared (rows deleted, not archived) only after an order and
all its items have been persisted.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import CartItem, Product


class CartError(ValueError):
    """Raised for invalid cart changes (unknown product, bad quantity)."""
    pass


@dataclass(frozen=True)
class CartLine:
    """One cart line as read at checkout time."""
    product_id: int
    name: str
    unit_price_cents: int
    quantity: int
    image_url: str | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "image_url": self.image_url,
            "line_total_cents": self.line_total_cents,
        }


def get_cart_snapshot(user_id: int) -> list[CartLine]:
    """Read the user's cart with current catalog name/price/image."""
    rows = (
        db.session.query(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.id)
        .all()
    )
    return [
        CartLine(
            product_id=product.id,
            name=product.name,
            unit_price_cents=product.price_cents,
            quantity=item.quantity,
            image_url=product.image_url,
        )
        for item, product in rows
    ]


def cart_total_cents(lines: list[CartLine]) -> int:
    return sum(line.line_total_cents for line in lines)


def add_to_cart(user_id: int, product_id: int, quantity: int = 1) -> CartItem:
    """Add quantity of a product to the cart (merging with an existing line)."""
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise CartError("quantity must be a positive integer")

    product = db.session.query(Product).filter_by(id=product_id, is_active=True).first()
    if not product:
        raise CartError(f"Product {product_id} not found")

    item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()
    if item:
        item.quantity += quantity
    else:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.session.add(item)

    db.session.commit()
    return item


def remove_from_cart(user_id: int, product_id: int) -> bool:
    deleted = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).delete()
    db.session.commit()
    return deleted > 0


def clear_cart(user_id: int) -> int:
    """Delete every cart line of the user. Returns count removed."""
    deleted = db.session.query(CartItem).filter_by(user_id=user_id).delete()
    db.session.commit()
    return deleted
