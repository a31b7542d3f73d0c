# tests/test_notification_service.py
import asyncio
import contextlib

import pytest
from telegram.error import NetworkError

from campus_delivery.exceptions import RepositoryUnavailable
from campus_delivery.models.delivery import DeliveryRequest
from campus_delivery.services.notification_service import RequestNotifier

from conftest import COURIER_A, T0


class FakeBot:
    def __init__(self, error=None):
        self.sent = []
        self.error = error
        self.delivered = asyncio.Event()

    async def send_message(self, chat_id, text, reply_markup=None):
        if self.error:
            raise self.error
        self.sent.append((chat_id, text, reply_markup))
        self.delivered.set()


@pytest.fixture
async def pending_request(person_service, request_service, place_order):
    await person_service.set_availability(COURIER_A, True, "Library", "@a", now=T0)
    order = await place_order()
    return await request_service.send_request(order.order_id, COURIER_A, now=T0)


async def test_each_request_is_pushed_once(pending_request, request_service):
    bot = FakeBot()
    notifier = RequestNotifier(bot, request_service)
    snapshot = await request_service.get_pending_requests(COURIER_A)

    assert await notifier.handle_snapshot(snapshot) == 1
    assert await notifier.handle_snapshot(snapshot) == 0

    chat_id, text, markup = bot.sent[0]
    assert chat_id == COURIER_A
    assert "New delivery request" in text
    callbacks = [b.callback_data for row in markup.inline_keyboard for b in row]
    assert callbacks == [f"racc_{pending_request.request_id}", f"rrej_{pending_request.request_id}"]


async def test_resolved_requests_are_forgotten(pending_request, request_service):
    notifier = RequestNotifier(FakeBot(), request_service)
    await notifier.handle_snapshot([pending_request])
    await notifier.handle_snapshot([])
    assert notifier.notified == set()


async def test_send_failure_is_logged(pending_request, request_service, caplog):
    notifier = RequestNotifier(FakeBot(error=NetworkError("down")), request_service)
    assert await notifier.handle_snapshot([pending_request]) == 0
    assert "Could not notify" in caplog.text


async def test_run_pushes_new_requests(person_service, request_service, place_order):
    bot = FakeBot()
    notifier = RequestNotifier(bot, request_service)
    task = asyncio.create_task(notifier.run())
    await asyncio.sleep(0)

    await person_service.set_availability(COURIER_A, True, "Library", now=T0)
    order = await place_order()
    await request_service.send_request(order.order_id, COURIER_A, now=T0)

    await asyncio.wait_for(bot.delivered.wait(), timeout=1)
    assert bot.sent[0][0] == COURIER_A

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class FlakyRequestStream:
    """Request source whose first subscription breaks after the initial snapshot"""

    def __init__(self, request):
        self.request = request
        self.attempts = 0

    async def subscribe_pending(self):
        self.attempts += 1
        if self.attempts == 1:
            yield []
            raise RepositoryUnavailable()
        yield [self.request]
        await asyncio.Event().wait()


async def test_run_resubscribes_after_stream_failure(caplog):
    request = DeliveryRequest(
        request_id="r1", order_id="o1", delivery_person_id=COURIER_A, created_at=T0
    )
    source = FlakyRequestStream(request)
    bot = FakeBot()
    notifier = RequestNotifier(bot, source, retry_delay=0)
    task = asyncio.create_task(notifier.run())

    await asyncio.wait_for(bot.delivered.wait(), timeout=1)
    assert source.attempts == 2
    assert bot.sent[0][0] == COURIER_A
    assert "Delivery request stream failed" in caplog.text

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
