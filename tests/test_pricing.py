# tests/test_pricing.py
from decimal import Decimal

import pytest

from campus_delivery.models.order import OrderItem
from campus_delivery.services.pricing import (
    admin_fee,
    aggregate_delivery_charge,
    calculate_totals,
    courier_share,
    item_delivery_charge,
    round_money,
)


@pytest.mark.parametrize("charge, quantity, expected", [
    ("10", 1, "10"),
    ("10", 2, "13"),
    ("10", 3, "16"),
    ("0", 5, "0"),
])
def test_item_delivery_charge(charge, quantity, expected):
    assert item_delivery_charge(charge, quantity) == Decimal(expected)


def test_aggregate_sums_every_item():
    items = [
        OrderItem(name="Tea", quantity=3, price=Decimal("15"), delivery_charge=Decimal("10")),
        OrderItem(name="Bun", quantity=1, price=Decimal("20"), delivery_charge=Decimal("5")),
    ]
    assert aggregate_delivery_charge(items) == Decimal("21")


def test_calculate_totals():
    items = [OrderItem(name="Tea", quantity=2, price=Decimal("15"), delivery_charge=Decimal("10"))]
    totals = calculate_totals(items)
    assert totals.subtotal == Decimal("30")
    assert totals.delivery_charge == Decimal("13")
    assert totals.total == Decimal("43")


def test_admin_fee_and_courier_share():
    assert admin_fee("13") == Decimal("2.6")
    assert courier_share("13") == Decimal("10.4")


def test_round_money_half_up():
    assert round_money("2.345") == Decimal("2.35")
    assert round_money(None) == Decimal("0.00")
