# campus_delivery/services/pricing.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, NamedTuple
from ..config import Config
from ..models.order import OrderItem

# Each unit after the first pays this share of the item's delivery charge
ADDITIONAL_UNIT_RATE = Decimal("0.3")

CENT = Decimal("0.01")


class OrderTotals(NamedTuple):
    subtotal: Decimal
    delivery_charge: Decimal
    total: Decimal


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


def round_money(amount) -> Decimal:
    """Round to two decimals, half up"""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def item_delivery_charge(delivery_charge, quantity: int) -> Decimal:
    """Full charge for the first unit, a discounted share for the rest"""
    base = to_decimal(delivery_charge)
    additional_units = max(0, quantity - 1)
    return base + base * ADDITIONAL_UNIT_RATE * additional_units


def aggregate_delivery_charge(items: Iterable[OrderItem]) -> Decimal:
    return sum(
        (item_delivery_charge(item.delivery_charge, item.quantity) for item in items),
        Decimal(0)
    )


def calculate_subtotal(items: Iterable[OrderItem]) -> Decimal:
    return sum((item.total_price for item in items), Decimal(0))


def calculate_totals(items: Iterable[OrderItem]) -> OrderTotals:
    items = list(items)
    subtotal = calculate_subtotal(items)
    delivery_charge = aggregate_delivery_charge(items)
    return OrderTotals(subtotal, delivery_charge, subtotal + delivery_charge)


def admin_fee(delivery_charge) -> Decimal:
    """Platform share of a delivery charge"""
    return to_decimal(delivery_charge) * Config.ADMIN_FEE_RATE


def courier_share(delivery_charge) -> Decimal:
    return to_decimal(delivery_charge) - admin_fee(delivery_charge)
