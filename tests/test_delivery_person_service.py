# tests/test_delivery_person_service.py
import pytest

from campus_delivery.exceptions import InvalidInput
from campus_delivery.services.location_matcher import MatchThreshold

from conftest import COURIER_A, COURIER_B, T0


async def test_available_needs_location(person_service):
    with pytest.raises(InvalidInput):
        await person_service.set_availability(COURIER_A, True, now=T0)
    with pytest.raises(InvalidInput):
        await person_service.set_availability(COURIER_A, True, "   ", now=T0)


async def test_availability_keeps_last_location(person_service):
    await person_service.set_availability(COURIER_A, True, " Library ", "@a", now=T0)
    person = await person_service.set_availability(COURIER_A, False, now=T0)
    assert not person.is_available
    assert person.location == "Library"

    person = await person_service.set_availability(COURIER_A, True, now=T0)
    assert person.is_available
    assert person.contact == "@a"
    assert person.last_updated == T0


async def test_update_location(person_service):
    with pytest.raises(InvalidInput):
        await person_service.update_location(COURIER_A, "")
    person = await person_service.update_location(COURIER_A, "Cafe", now=T0)
    assert person.location == "Cafe"
    assert not person.is_available


async def test_get_unknown_person(person_service):
    assert await person_service.get(12345) is None


async def test_candidates_for_order(person_service, place_order):
    await person_service.set_availability(COURIER_A, True, "Library", now=T0)
    await person_service.set_availability(COURIER_B, True, "Sports Complex", now=T0)
    order = await place_order(items=[
        {"name": "Tea", "location": "Cafe"},
        {"name": "Book", "location": "Main Library"},
    ])

    candidates = await person_service.find_candidates_for_order(order, MatchThreshold.MEDIUM)
    assert [c.person.user_id for c in candidates] == [COURIER_A]
    assert [d.location for d in candidates[0].details] == ["Cafe", "Main Library"]


async def test_order_without_item_locations_uses_delivery_location(person_service, place_order):
    await person_service.set_availability(COURIER_A, True, "Hall 3", now=T0)
    order = await place_order(location="Hall 3, Room 210")
    assert order.match_locations == ["Hall 3, Room 210"]
    candidates = await person_service.find_candidates_for_order(order)
    assert [c.person.user_id for c in candidates] == [COURIER_A]
