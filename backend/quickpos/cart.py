# Overview: In-memory order-entry cart; pure data plus derived totals.

"""
The cart lives only for the duration of an order-entry session. It is never
persisted: checkout turns it into an order and clears it, and the API builds a
fresh one from each checkout payload.

Products are duck-typed: anything with `id`, `name` and `price_cents`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from .validation import ValidationError, parse_quantity


@dataclass
class CartLine:
    product: Any
    quantity: int

    @property
    def line_total_cents(self) -> int:
        return self.product.price_cents * self.quantity


class Cart:
    """Ordered collection of (product, quantity) with quantity always >= 1."""

    def __init__(self) -> None:
        self._lines: dict[int, CartLine] = {}

    def add(self, product) -> CartLine:
        line = self._lines.get(product.id)
        if line is None:
            line = CartLine(product=product, quantity=1)
            self._lines[product.id] = line
        else:
            line.quantity += 1
        return line

    def set_quantity(self, product_id: int, quantity: int) -> None:
        if quantity <= 0:
            self.remove(product_id)
            return
        line = self._lines.get(product_id)
        if line is not None:
            line.quantity = quantity

    def remove(self, product_id: int) -> None:
        self._lines.pop(product_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def total(self) -> int:
        return sum(line.line_total_cents for line in self._lines.values())

    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines

    def get(self, product_id: int) -> CartLine | None:
        return self._lines.get(product_id)

    def __iter__(self) -> Iterator[CartLine]:
        return iter(list(self._lines.values()))

    def __len__(self) -> int:
        return len(self._lines)

    @classmethod
    def from_payload(cls, lines: Iterable[dict], products: dict[int, Any]) -> "Cart":
        """
        Build a cart from `[{"product_id": ..., "quantity": ...}]`.

        `products` maps id -> product for every product the caller may sell.
        Repeated product ids accumulate; non-positive quantities drop the line.
        """
        cart = cls()
        for raw in lines:
            if not isinstance(raw, dict):
                raise ValidationError("Each cart line must be an object")
            product_id = raw.get("product_id")
            product = products.get(product_id)
            if product is None:
                raise ValidationError(
                    "Product is not available",
                    details={"product_id": product_id},
                )
            quantity = parse_quantity(raw.get("quantity", 1))
            existing = cart.get(product_id)
            target = (existing.quantity if existing else 0) + quantity
            if target <= 0:
                cart.remove(product_id)
                continue
            if existing is None:
                cart.add(product)
            cart.set_quantity(product_id, target)
        return cart
