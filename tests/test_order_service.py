# tests/test_order_service.py
import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from campus_delivery.exceptions import Conflict, GuardViolation, InvalidInput, NotFound
from campus_delivery.models.order import OrderStatus
from campus_delivery.services.lifecycle import Actor
from campus_delivery.services.order_service import OrderService
from campus_delivery.services.pricing import admin_fee

from conftest import COURIER_A, COURIER_B, CUSTOMER_ID, T0, make_order


async def test_create_order_computes_totals(place_order):
    order = await place_order()
    assert order.status == OrderStatus.PENDING
    assert order.subtotal == Decimal("30")
    assert order.delivery_charge == Decimal("13")
    assert order.total == Decimal("43")
    assert order.delivery_location == order.location == "Hall 3, Room 210"
    assert order.created_at == T0


@pytest.mark.parametrize("kwargs, message", [
    ({"items": [], "contact_number": "017", "delivery_location": "Hall"}, "empty"),
    ({"items": [{"name": "Tea"}], "contact_number": " ", "delivery_location": "Hall"}, "contact"),
    ({"items": [{"name": "Tea"}], "contact_number": "017", "delivery_location": ""}, "location"),
    ({"items": [{"name": "Tea", "quantity": 0}], "contact_number": "017", "delivery_location": "Hall"}, "item"),
])
async def test_create_order_validation(order_service, kwargs, message):
    with pytest.raises(InvalidInput, match=message):
        await order_service.create_order(customer_id=CUSTOMER_ID, **kwargs)


async def test_end_to_end_delivery(order_service, place_order):
    order = await place_order(items=[{"name": "Tea", "quantity": 2, "delivery_charge": "10"}])
    assert order.delivery_charge == Decimal("13")

    started = await order_service.start_delivery(order.order_id, COURIER_A, "@a", now=T0)
    assert started.status == OrderStatus.IN_PROGRESS
    assert started.delivery_start_time == T0

    stored = await order_service.get_order(order.order_id)
    at_five = T0 + timedelta(minutes=5)
    assert await order_service.cancellation_remaining(stored, Actor.DELIVERY_PERSON, at_five) == 60

    at_seven = T0 + timedelta(minutes=7)
    assert await order_service.cancellation_remaining(stored, Actor.DELIVERY_PERSON, at_seven) == 0
    with pytest.raises(GuardViolation):
        await order_service.cancel_delivery(order.order_id, COURIER_A, now=at_seven)

    await order_service.mark_delivered(order.order_id, COURIER_A, now=at_seven)
    with pytest.raises(GuardViolation):
        await order_service.complete_order(order.order_id, COURIER_A, now=at_seven)

    await order_service.confirm_receipt(order.order_id, CUSTOMER_ID, now=at_seven)
    completed = await order_service.complete_order(order.order_id, COURIER_A, now=at_seven)

    assert completed.status == OrderStatus.COMPLETED
    assert completed.completed_at == at_seven
    assert admin_fee(completed.delivery_charge) == Decimal("2.6")


async def test_cancel_within_window_returns_order_to_pool(order_service, place_order):
    order = await place_order()
    await order_service.start_delivery(order.order_id, COURIER_A, now=T0)
    released = await order_service.cancel_delivery(order.order_id, COURIER_A, now=T0 + timedelta(minutes=5))

    assert released.status == OrderStatus.PENDING
    assert released.delivery_person_id is None
    available = await order_service.get_available_orders()
    assert [o.order_id for o in available] == [order.order_id]


async def test_claim_race_has_one_winner(order_service, order_repo, place_order):
    order = await place_order()
    results = await asyncio.gather(
        order_service.start_delivery(order.order_id, COURIER_A, now=T0),
        order_service.start_delivery(order.order_id, COURIER_B, now=T0),
        return_exceptions=True,
    )
    winners = [r for r in results if not isinstance(r, Exception)]
    assert len(winners) == 1
    assert isinstance([r for r in results if isinstance(r, Exception)][0], (Conflict, GuardViolation))
    assert (await order_repo.get(order.order_id)).delivery_person_id == winners[0].delivery_person_id


async def test_stale_write_raises_conflict(order_service, order_repo, place_order):
    order = await place_order()
    # another courier claims the order between the read and the write
    await order_repo.update(order.order_id, {"status": OrderStatus.IN_PROGRESS, "delivery_person_id": COURIER_B})
    with pytest.raises(GuardViolation):
        await order_service.start_delivery(order.order_id, COURIER_A, now=T0)

    with pytest.raises(Conflict):
        await order_repo.update(order.order_id, {"status": OrderStatus.IN_PROGRESS},
                                expected={"status": OrderStatus.PENDING})


async def test_delete_only_unassigned_pending(order_service, place_order):
    order = await place_order()
    taken = await place_order()
    await order_service.start_delivery(taken.order_id, COURIER_A, now=T0)

    with pytest.raises(GuardViolation):
        await order_service.delete_order(taken.order_id, CUSTOMER_ID)
    with pytest.raises(GuardViolation):
        await order_service.delete_order(order.order_id, 555)

    await order_service.delete_order(order.order_id, CUSTOMER_ID)
    with pytest.raises(NotFound):
        await order_service.get_order(order.order_id)


async def test_find_order_by_prefix(order_service, place_order):
    order = await place_order()
    found = await order_service.find_order(f"#{order.order_id[:8]}", CUSTOMER_ID)
    assert found.order_id == order.order_id

    with pytest.raises(NotFound):
        await order_service.find_order(order.order_id[:8], customer_id=555)
    with pytest.raises(InvalidInput):
        await order_service.find_order("  ")


async def test_customer_orders_sorted_active_first(order_service, place_order):
    old = await place_order(now=T0)
    newer = await place_order(now=T0 + timedelta(hours=1))
    active = await place_order(now=T0 - timedelta(days=1))
    await order_service.start_delivery(active.order_id, COURIER_A, now=T0)

    orders = await order_service.get_customer_orders(CUSTOMER_ID, now=T0 + timedelta(hours=2))
    assert [o.order_id for o in orders] == [active.order_id, newer.order_id, old.order_id]


async def test_customer_orders_search_and_date_filter(order_service, place_order):
    await place_order(items=[{"name": "Biryani"}], now=T0 - timedelta(days=20))
    tea = await place_order(items=[{"name": "Tea"}], location="Library", now=T0)

    assert [o.order_id for o in await order_service.get_customer_orders(CUSTOMER_ID, "tea", now=T0)] == [tea.order_id]
    assert [o.order_id for o in await order_service.get_customer_orders(CUSTOMER_ID, "LIBRARY", now=T0)] == [tea.order_id]
    assert len(await order_service.get_customer_orders(CUSTOMER_ID, date_filter="week", now=T0)) == 1
    assert len(await order_service.get_customer_orders(CUSTOMER_ID, date_filter="all", now=T0)) == 2
    with pytest.raises(InvalidInput):
        await order_service.get_customer_orders(CUSTOMER_ID, date_filter="decade", now=T0)


def test_sort_for_delivery_person(order_service):
    mine_delivered = make_order(order_id="a", status=OrderStatus.DELIVERED, delivery_person_id=COURIER_A)
    mine_active = make_order(order_id="b", status=OrderStatus.IN_PROGRESS, delivery_person_id=COURIER_A)
    open_order = make_order(order_id="c", created_at=T0 + timedelta(hours=1))

    ordered = OrderService.sort_for_delivery_person([open_order, mine_delivered, mine_active], COURIER_A)
    assert [o.order_id for o in ordered] == ["b", "a", "c"]


async def test_delivery_person_view_hides_requested_orders(order_service, order_repo, place_order):
    requested = await place_order()
    free = await place_order()
    await order_repo.update(requested.order_id, {"has_active_delivery_request": True})

    orders = await order_service.get_delivery_person_orders(COURIER_A)
    assert [o.order_id for o in orders] == [free.order_id]
