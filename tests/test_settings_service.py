# tests/test_settings_service.py
from datetime import timedelta

import pytest

from campus_delivery.exceptions import InvalidInput
from campus_delivery.models.settings import (
    DEFAULT_CUSTOMER_CANCELLATION_TIME,
    DEFAULT_DELIVERY_PERSON_CANCELLATION_TIME,
)
from campus_delivery.services.lifecycle import Actor

from conftest import COURIER_A, T0


async def test_defaults(settings_service):
    settings = await settings_service.get_system_settings()
    assert settings.customer_cancellation_time == DEFAULT_CUSTOMER_CANCELLATION_TIME
    assert settings.delivery_person_cancellation_time == DEFAULT_DELIVERY_PERSON_CANCELLATION_TIME


async def test_update_cancellation_times(settings_service):
    await settings_service.update_cancellation_times(15, 4)
    settings = await settings_service.get_system_settings()
    assert settings.customer_cancellation_time == 15
    assert settings.delivery_person_cancellation_time == 4


@pytest.mark.parametrize("customer, courier", [(0, 5), (5, -1), (True, 5), ("5", 5), (2.5, 5)])
async def test_rejects_invalid_values(settings_service, customer, courier):
    with pytest.raises(InvalidInput):
        await settings_service.update_cancellation_times(customer, courier)


async def test_new_window_applies_to_running_orders(settings_service, order_service, place_order):
    order = await place_order()
    started = await order_service.start_delivery(order.order_id, COURIER_A, now=T0)
    await settings_service.update_cancellation_times(10, 2)
    remaining = await order_service.cancellation_remaining(
        started, Actor.DELIVERY_PERSON, T0 + timedelta(minutes=1)
    )
    assert remaining == 60
