# campus_delivery/services/notification_service.py
import asyncio
import logging
from typing import List, Set
from telegram import Bot
from telegram.error import TelegramError
from .delivery_request_service import DeliveryRequestService
from ..models.delivery import DeliveryRequest
from ..utils.keyboards import Keyboards
from ..utils.messages import Messages

# seconds between resubscribe attempts
RETRY_DELAY = 5.0


class RequestNotifier:
    """Push every new pending delivery request to its courier"""

    def __init__(self, bot: Bot, request_service: DeliveryRequestService,
                 retry_delay: float = RETRY_DELAY):
        self.bot = bot
        self.request_service = request_service
        self.retry_delay = retry_delay
        self.notified: Set[str] = set()
        self.logger = logging.getLogger(__name__)

    async def run(self):
        """Consume pending-request snapshots until cancelled, resubscribing after failures"""
        first = True
        while True:
            try:
                async for snapshot in self.request_service.subscribe_pending():
                    if first:
                        # requests that existed before startup were already delivered
                        self.notified.update(r.request_id for r in snapshot)
                        first = False
                        continue
                    await self.handle_snapshot(snapshot)
            except Exception:
                self.logger.exception(
                    f"Delivery request stream failed, resubscribing in {self.retry_delay}s"
                )
            await asyncio.sleep(self.retry_delay)

    async def handle_snapshot(self, snapshot: List[DeliveryRequest]) -> int:
        sent = 0
        pending_ids = {r.request_id for r in snapshot}
        for request in snapshot:
            if request.request_id in self.notified:
                continue
            self.notified.add(request.request_id)
            if await self.notify(request):
                sent += 1
        # forget requests that left the pending set
        self.notified &= pending_ids
        return sent

    async def notify(self, request: DeliveryRequest) -> bool:
        try:
            await self.bot.send_message(
                chat_id=request.delivery_person_id,
                text=Messages.format_request(request),
                reply_markup=Keyboards.delivery_request(request)
            )
        except TelegramError as e:
            self.logger.error(f"Could not notify {request.delivery_person_id} about {request.request_id}: {e}")
            return False
        self.logger.info(f"Request {request.request_id} pushed to {request.delivery_person_id}")
        return True
