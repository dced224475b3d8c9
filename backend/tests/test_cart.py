"""Cart behaviour: pure in-memory, no database."""

import random
from dataclasses import dataclass

import pytest

from quickpos.cart import Cart
from quickpos.validation import ValidationError


@dataclass
class Item:
    id: int
    name: str
    price_cents: int


BURGER = Item(1, "Burger", 4500)
SODA = Item(2, "Soda", 1250)
FRIES = Item(3, "Fries", 1500)
MENU = [BURGER, SODA, FRIES]


def test_add_twice_increments_quantity():
    cart = Cart()
    cart.add(BURGER)
    cart.add(BURGER)

    assert len(cart) == 1
    assert cart.get(BURGER.id).quantity == 2
    assert cart.total() == 9000


def test_total_and_item_count():
    cart = Cart()
    cart.add(BURGER)
    cart.add(BURGER)
    cart.add(SODA)

    assert cart.total() == 10250
    assert cart.item_count() == 3


def test_set_quantity_zero_removes_line():
    cart = Cart()
    cart.add(BURGER)
    cart.add(SODA)

    cart.set_quantity(SODA.id, 0)

    assert cart.get(SODA.id) is None
    assert [line.product for line in cart] == [BURGER]


def test_set_quantity_negative_removes_line():
    cart = Cart()
    cart.add(BURGER)
    cart.set_quantity(BURGER.id, -3)
    assert cart.is_empty()


def test_set_quantity_for_missing_product_is_ignored():
    cart = Cart()
    cart.set_quantity(99, 4)
    assert cart.is_empty()


def test_clear():
    cart = Cart()
    cart.add(BURGER)
    cart.clear()
    assert cart.is_empty()
    assert cart.total() == 0


def test_iteration_keeps_insertion_order():
    cart = Cart()
    cart.add(SODA)
    cart.add(BURGER)
    assert [line.product.id for line in cart] == [SODA.id, BURGER.id]


@pytest.mark.parametrize("seed", range(25))
def test_random_edit_sequences_keep_lines_positive_and_total_consistent(seed):
    rng = random.Random(seed)
    cart = Cart()
    expected: dict[int, int] = {}
    prices = {p.id: p.price_cents for p in MENU}

    for _ in range(40):
        product = rng.choice(MENU)
        op = rng.choice(["add", "set", "remove"])
        if op == "add":
            cart.add(product)
            expected[product.id] = expected.get(product.id, 0) + 1
        elif op == "set":
            quantity = rng.randint(-2, 5)
            cart.set_quantity(product.id, quantity)
            if quantity <= 0:
                expected.pop(product.id, None)
            elif product.id in expected:
                expected[product.id] = quantity
        else:
            cart.remove(product.id)
            expected.pop(product.id, None)

        assert all(line.quantity > 0 for line in cart)
        assert {line.product.id: line.quantity for line in cart} == expected
        assert cart.total() == sum(prices[pid] * qty for pid, qty in expected.items())
        assert cart.item_count() == sum(expected.values())


def test_from_payload_accumulates_repeated_products():
    products = {BURGER.id: BURGER, SODA.id: SODA}
    cart = Cart.from_payload(
        [
            {"product_id": BURGER.id, "quantity": 1},
            {"product_id": SODA.id, "quantity": 1},
            {"product_id": BURGER.id, "quantity": 1},
        ],
        products,
    )
    assert cart.get(BURGER.id).quantity == 2
    assert cart.total() == 10250


def test_from_payload_drops_non_positive_lines():
    cart = Cart.from_payload([{"product_id": BURGER.id, "quantity": 0}], {BURGER.id: BURGER})
    assert cart.is_empty()


def test_from_payload_rejects_unknown_product():
    with pytest.raises(ValidationError) as exc:
        Cart.from_payload([{"product_id": 42, "quantity": 1}], {BURGER.id: BURGER})
    assert exc.value.details == {"product_id": 42}


@pytest.mark.parametrize("quantity", ["2", 1.5, True, None])
def test_from_payload_rejects_non_integer_quantity(quantity):
    with pytest.raises(ValidationError):
        Cart.from_payload([{"product_id": BURGER.id, "quantity": quantity}], {BURGER.id: BURGER})
