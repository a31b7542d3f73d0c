# campus_delivery/services/order_service.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Union
import pytz
from pydantic import ValidationError
from .lifecycle import Actor, OrderAction, apply_transition, cancellation_remaining
from .pricing import calculate_totals
from ..config import Config
from ..database.repositories import OrderRepository, SettingsRepository
from ..exceptions import InvalidInput, NotFound
from ..models.order import Order, OrderDraft, OrderFilter, OrderItem, OrderStatus

ACTIVE_STATUSES = [OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED]
DATE_FILTERS = ("all", "today", "week", "month")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    def __init__(self, orders: OrderRepository, settings: SettingsRepository):
        self.orders = orders
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    async def create_order(self, customer_id: int,
                           items: Iterable[Union[OrderItem, Dict[str, Any]]],
                           contact_number: str, delivery_location: str,
                           customer_contact: Optional[str] = None,
                           now: Optional[datetime] = None) -> Order:
        """Place a new pending order"""
        contact_number = (contact_number or "").strip()
        delivery_location = (delivery_location or "").strip()
        if not contact_number:
            raise InvalidInput("Please provide a contact number")
        if not delivery_location:
            raise InvalidInput("Please provide a delivery location")

        try:
            order_items = [
                item if isinstance(item, OrderItem) else OrderItem.model_validate(item)
                for item in items
            ]
        except ValidationError as e:
            raise InvalidInput(f"Invalid order item: {e.errors()[0]['msg']}") from e
        if not order_items:
            raise InvalidInput("The cart is empty")

        totals = calculate_totals(order_items)
        draft = OrderDraft(
            customer_id=customer_id,
            customer_contact=customer_contact,
            items=order_items,
            subtotal=totals.subtotal,
            delivery_charge=totals.delivery_charge,
            total=totals.total,
            contact_number=contact_number,
            delivery_location=delivery_location,
            location=delivery_location,
            created_at=now
        )

        order_id = await self.orders.create(draft)
        self.logger.info(f"Order {order_id} placed by {customer_id}, total {totals.total}")
        return await self.orders.get(order_id)

    async def get_order(self, order_id: str) -> Order:
        return await self.orders.get(order_id)

    async def find_order(self, id_prefix: str, customer_id: Optional[int] = None) -> Order:
        """Resolve a full or shortened order id"""
        id_prefix = (id_prefix or "").strip().lstrip("#").lower()
        if not id_prefix:
            raise InvalidInput("Please give an order id")

        orders = await self.orders.query(OrderFilter(customer_id=customer_id))
        matches = [o for o in orders if o.order_id.lower().startswith(id_prefix)]
        if not matches:
            raise NotFound(f"Order {id_prefix} not found")
        if len(matches) > 1:
            raise InvalidInput(f"Order id {id_prefix} is ambiguous, use more characters")
        return matches[0]

    async def perform(self, order_id: str, action: OrderAction, actor: Actor,
                      actor_id: Optional[int] = None, actor_contact: Optional[str] = None,
                      now: Optional[datetime] = None) -> Optional[Order]:
        """Run one lifecycle action as a single conditional write.

        Returns the updated order, or None when the order was deleted.
        """
        now = now or utcnow()
        order = await self.orders.get(order_id)
        settings = await self.settings.get()

        transition = apply_transition(
            order, action, now, settings, actor, actor_id, actor_contact
        )

        if transition.delete:
            await self.orders.delete(order_id, expected=transition.expected)
            self.logger.info(f"Order {order_id} deleted by {actor.value} {actor_id}")
            return None

        await self.orders.update(order_id, transition.updates, expected=transition.expected)
        self.logger.info(f"Order {order_id}: {action.value} by {actor.value} {actor_id}")
        return order.model_copy(update=transition.updates)

    async def start_delivery(self, order_id: str, delivery_person_id: int,
                             contact: Optional[str] = None,
                             now: Optional[datetime] = None) -> Order:
        return await self.perform(
            order_id, OrderAction.START_DELIVERY, Actor.DELIVERY_PERSON,
            delivery_person_id, contact, now
        )

    async def cancel_delivery(self, order_id: str, delivery_person_id: int,
                              now: Optional[datetime] = None) -> Order:
        """Delivery person gives the order back inside their window"""
        return await self.perform(
            order_id, OrderAction.CANCEL_DELIVERY, Actor.DELIVERY_PERSON,
            delivery_person_id, now=now
        )

    async def cancel_order(self, order_id: str, customer_id: int,
                           now: Optional[datetime] = None) -> Order:
        """Customer aborts an in-progress delivery inside their window"""
        return await self.perform(
            order_id, OrderAction.CANCEL_ORDER, Actor.CUSTOMER, customer_id, now=now
        )

    async def mark_delivered(self, order_id: str, delivery_person_id: int,
                             now: Optional[datetime] = None) -> Order:
        return await self.perform(
            order_id, OrderAction.MARK_DELIVERED, Actor.DELIVERY_PERSON,
            delivery_person_id, now=now
        )

    async def confirm_receipt(self, order_id: str, customer_id: int,
                              now: Optional[datetime] = None) -> Order:
        return await self.perform(
            order_id, OrderAction.CONFIRM_RECEIPT, Actor.CUSTOMER, customer_id, now=now
        )

    async def complete_order(self, order_id: str, delivery_person_id: int,
                             now: Optional[datetime] = None) -> Order:
        return await self.perform(
            order_id, OrderAction.COMPLETE, Actor.DELIVERY_PERSON,
            delivery_person_id, now=now
        )

    async def delete_order(self, order_id: str, user_id: int, is_admin: bool = False) -> None:
        actor = Actor.ADMIN if is_admin else Actor.CUSTOMER
        await self.perform(order_id, OrderAction.DELETE, actor, user_id)

    async def cancellation_remaining(self, order: Order, actor: Actor,
                                     now: Optional[datetime] = None) -> int:
        settings = await self.settings.get()
        return cancellation_remaining(order, now or utcnow(), settings, actor)

    async def get_customer_orders(self, customer_id: int, search_term: str = "",
                                  date_filter: str = "all",
                                  now: Optional[datetime] = None) -> List[Order]:
        orders = await self.orders.query(OrderFilter(customer_id=customer_id))
        orders = self.filter_by_search(orders, search_term)
        orders = self.filter_by_date(orders, date_filter, now or utcnow())
        return self.sort_for_customer(orders)

    async def get_available_orders(self) -> List[Order]:
        """Generic pool: pending orders nobody was asked to take"""
        return await self.orders.query(OrderFilter(
            statuses=[OrderStatus.PENDING],
            exclude_active_requests=True
        ))

    async def get_delivery_person_orders(self, delivery_person_id: int,
                                         search_term: str = "") -> List[Order]:
        """Own active orders followed by the generic pool"""
        mine = await self.orders.query(OrderFilter(
            statuses=ACTIVE_STATUSES,
            delivery_person_id=delivery_person_id
        ))
        available = await self.get_available_orders()
        orders = self.filter_by_search(mine + available, search_term)
        return self.sort_for_delivery_person(orders, delivery_person_id)

    @staticmethod
    def filter_by_search(orders: List[Order], search_term: str) -> List[Order]:
        """Match id, delivery location or any item name"""
        term = (search_term or "").strip().lower()
        if not term:
            return list(orders)
        return [
            order for order in orders
            if term in order.order_id.lower()
            or term in order.effective_location.lower()
            or any(term in item.name.lower() for item in order.items)
        ]

    @staticmethod
    def filter_by_date(orders: List[Order], date_filter: str, now: datetime) -> List[Order]:
        """Keep orders from today, the last 7 days or this month"""
        if date_filter not in DATE_FILTERS:
            raise InvalidInput(f"Unknown date filter {date_filter}")
        if date_filter == "all":
            return list(orders)

        tz = pytz.timezone(Config.TIMEZONE)
        local_now = now.astimezone(tz)
        result = []
        for order in orders:
            created = order.created_at
            if created.tzinfo is None:
                created = pytz.utc.localize(created)
            local_created = created.astimezone(tz)

            if date_filter == "today":
                keep = local_created.date() == local_now.date()
            elif date_filter == "week":
                keep = created >= now - timedelta(days=7)
            else:
                keep = (local_created.year, local_created.month) == (local_now.year, local_now.month)
            if keep:
                result.append(order)
        return result

    @staticmethod
    def sort_for_customer(orders: List[Order]) -> List[Order]:
        """In progress first, then delivered, then the rest; newest first"""
        rank = {OrderStatus.IN_PROGRESS: 0, OrderStatus.DELIVERED: 1}
        by_date = sorted(orders, key=lambda o: o.created_at, reverse=True)
        return sorted(by_date, key=lambda o: rank.get(o.status, 2))

    @staticmethod
    def sort_for_delivery_person(orders: List[Order], delivery_person_id: int) -> List[Order]:
        """Own in-progress, own delivered, then available; newest first"""
        def rank(order: Order) -> int:
            if order.delivery_person_id != delivery_person_id:
                return 2
            return 0 if order.status == OrderStatus.IN_PROGRESS else 1

        by_date = sorted(orders, key=lambda o: o.created_at, reverse=True)
        return sorted(by_date, key=rank)
