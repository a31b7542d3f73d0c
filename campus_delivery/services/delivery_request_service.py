# campus_delivery/services/delivery_request_service.py
import logging
from datetime import datetime
from typing import AsyncIterator, List, Optional
from .lifecycle import Actor, OrderAction
from .order_service import OrderService, utcnow
from ..database.repositories import DeliveryPersonRepository, DeliveryRequestRepository
from ..exceptions import Conflict, DeliveryError, GuardViolation, NotFound
from ..models.delivery import DeliveryRequest, DeliveryRequestFilter, DeliveryRequestStatus
from ..models.order import Order, OrderStatus

class DeliveryRequestService:
    """Offer an order to one courier and let them accept or reject it"""

    def __init__(self, order_service: OrderService, requests: DeliveryRequestRepository,
                 persons: DeliveryPersonRepository):
        self.order_service = order_service
        self.orders = order_service.orders
        self.requests = requests
        self.persons = persons
        self.logger = logging.getLogger(__name__)

    async def send_request(self, order_id: str, delivery_person_id: int,
                           requester_id: Optional[int] = None,
                           now: Optional[datetime] = None) -> DeliveryRequest:
        """Create a pending request; one per order at a time"""
        now = now or utcnow()
        order = await self.orders.get(order_id)

        if order.status != OrderStatus.PENDING or order.is_assigned:
            raise GuardViolation("Only pending orders can be offered to a delivery person")
        if order.delivery_request_sent or order.has_active_delivery_request:
            raise GuardViolation("A delivery request has already been sent for this order")

        outstanding = await self.requests.query(DeliveryRequestFilter(
            order_id=order_id, status=DeliveryRequestStatus.PENDING
        ))
        if outstanding:
            raise GuardViolation("A delivery request has already been sent for this order")

        person = await self.persons.get(delivery_person_id)
        if not person.is_available:
            raise GuardViolation("This delivery person is not available")

        # claim the order for the request first so a second requester conflicts
        await self.orders.update(order_id, {
            "has_active_delivery_request": True,
            "delivery_request_sent": True,
            "delivery_person_requested": person.contact,
        }, expected={
            "status": OrderStatus.PENDING,
            "delivery_person_id": None,
            "delivery_request_sent": False,
        })

        try:
            request = await self.requests.create({
                "order_id": order_id,
                "delivery_person_id": delivery_person_id,
                "delivery_person_contact": person.contact,
                "order_location": order.effective_location,
                "order_locations": order.match_locations,
                "order_total": order.total,
                "order_items": len(order.items),
                "status": DeliveryRequestStatus.PENDING,
                "created_by": requester_id,
                "created_at": now,
            })
        except DeliveryError:
            await self._release_order(order_id)
            raise

        self.logger.info(f"Order {order_id} offered to delivery person {delivery_person_id}")
        return request

    async def _get_own_pending(self, request_id: str, delivery_person_id: int) -> DeliveryRequest:
        request = await self.requests.get(request_id)
        if request.delivery_person_id != delivery_person_id:
            raise GuardViolation("This request was sent to another delivery person")
        if not request.is_pending:
            raise GuardViolation(f"This request was already {request.status.value}")
        return request

    async def accept_request(self, request_id: str, delivery_person_id: int,
                             contact: Optional[str] = None,
                             now: Optional[datetime] = None) -> Order:
        """Take the order; it moves to in_progress"""
        now = now or utcnow()
        request = await self._get_own_pending(request_id, delivery_person_id)

        try:
            order = await self.order_service.perform(
                request.order_id, OrderAction.ACCEPT_REQUEST, Actor.DELIVERY_PERSON,
                delivery_person_id, contact, now
            )
        except (Conflict, GuardViolation, NotFound):
            # the order moved on, the request can never be accepted
            await self._close_request(request_id, DeliveryRequestStatus.REJECTED, now)
            raise

        await self._close_request(request_id, DeliveryRequestStatus.ACCEPTED, now)
        self.logger.info(f"Delivery person {delivery_person_id} accepted order {request.order_id}")
        return order

    async def reject_request(self, request_id: str, delivery_person_id: int,
                             now: Optional[datetime] = None) -> DeliveryRequest:
        """Decline; the order stays pending and can be offered again"""
        now = now or utcnow()
        request = await self._get_own_pending(request_id, delivery_person_id)

        await self._close_request(request_id, DeliveryRequestStatus.REJECTED, now)
        await self._release_order(request.order_id)

        self.logger.info(f"Delivery person {delivery_person_id} rejected order {request.order_id}")
        return request.model_copy(update={
            "status": DeliveryRequestStatus.REJECTED,
            "responded_at": now,
        })

    async def _close_request(self, request_id: str, status: DeliveryRequestStatus, now: datetime):
        await self.requests.update(
            request_id,
            {"status": status, "responded_at": now},
            expected={"status": DeliveryRequestStatus.PENDING}
        )

    async def _release_order(self, order_id: str):
        """Put a pending order back into the generic pool"""
        try:
            await self.orders.update(order_id, {
                "has_active_delivery_request": False,
                "delivery_request_sent": False,
                "delivery_person_requested": None,
            }, expected={"status": OrderStatus.PENDING})
        except (Conflict, NotFound):
            self.logger.warning(f"Order {order_id} is no longer pending, request flags left as is")

    async def get_pending_requests(self, delivery_person_id: int) -> List[DeliveryRequest]:
        return await self.requests.query(DeliveryRequestFilter(
            delivery_person_id=delivery_person_id,
            status=DeliveryRequestStatus.PENDING
        ))

    def subscribe_pending(self, delivery_person_id: Optional[int] = None) -> AsyncIterator[List[DeliveryRequest]]:
        return self.requests.subscribe(DeliveryRequestFilter(
            delivery_person_id=delivery_person_id,
            status=DeliveryRequestStatus.PENDING
        ))
