# campus_delivery/services/lifecycle.py
"""Order lifecycle state machine.

Every caller (customer, delivery person, admin) goes through
``check_transition`` / ``apply_transition``. Both are pure: they read an
``Order``, the injected ``SystemSettings`` and the current time, and either
raise ``GuardViolation`` or describe the write. The write itself carries the
``expected`` column values so the repository can refuse it with ``Conflict``
when another actor got there first.

    pending --start/accept--> in_progress --delivered--> delivered --complete--> completed
       ^                          |
       +---- cancel (windowed) ---+
"""
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional
from ..exceptions import GuardViolation
from ..models.order import ASSIGNED_STATUSES, Order, OrderStatus
from ..models.settings import SystemSettings


class Actor(str, Enum):
    CUSTOMER = "customer"
    DELIVERY_PERSON = "delivery_person"
    ADMIN = "admin"


class OrderAction(str, Enum):
    START_DELIVERY = "start_delivery"
    ACCEPT_REQUEST = "accept_request"
    CANCEL_DELIVERY = "cancel_delivery"  # delivery person gives the order back
    CANCEL_ORDER = "cancel_order"  # customer aborts the pickup
    MARK_DELIVERED = "mark_delivered"
    CONFIRM_RECEIPT = "confirm_receipt"
    COMPLETE = "complete"
    DELETE = "delete"


class Transition(NamedTuple):
    action: OrderAction
    expected: Dict[str, Any]
    updates: Dict[str, Any]
    delete: bool = False


# Fields reset whenever an order goes back to the pool
_RELEASE_FIELDS = {
    "status": OrderStatus.PENDING,
    "delivery_person_id": None,
    "delivery_person_contact": None,
    "delivery_start_time": None,
    "has_active_delivery_request": False,
    "delivery_request_sent": False,
    "delivery_person_requested": None,
}


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def remaining_seconds(order: Order, now: datetime, window_minutes: int) -> int:
    """Seconds left in a cancellation window anchored at delivery start"""
    if order.delivery_start_time is None:
        return 0
    elapsed = math.floor((as_utc(now) - as_utc(order.delivery_start_time)).total_seconds())
    return max(0, window_minutes * 60 - elapsed)


def cancellation_window(settings: SystemSettings, actor: Actor) -> int:
    if actor == Actor.CUSTOMER:
        return settings.customer_cancellation_time
    if actor == Actor.DELIVERY_PERSON:
        return settings.delivery_person_cancellation_time
    raise GuardViolation("Only customers and delivery persons have a cancellation window")


def cancellation_remaining(order: Order, now: datetime, settings: SystemSettings, actor: Actor) -> int:
    """Remaining seconds for ``actor`` to cancel, 0 when not cancellable"""
    if order.status != OrderStatus.IN_PROGRESS:
        return 0
    return remaining_seconds(order, now, cancellation_window(settings, actor))


def is_deletable(order: Order) -> bool:
    return order.status == OrderStatus.PENDING and not order.is_assigned


def _require(condition: bool, message: str):
    if not condition:
        raise GuardViolation(message)


def _require_status(order: Order, status: OrderStatus):
    _require(
        order.status == status,
        f"Order is {order.status.value}, expected {status.value}"
    )


def _require_assigned_to(order: Order, actor: Actor, actor_id: Optional[int]):
    _require(actor == Actor.DELIVERY_PERSON, "Only the delivery person can do this")
    _require(
        actor_id is not None and order.delivery_person_id == actor_id,
        "This order is assigned to another delivery person"
    )


def _require_customer(order: Order, actor: Actor, actor_id: Optional[int]):
    _require(
        actor == Actor.CUSTOMER and actor_id == order.customer_id,
        "Only the customer who placed the order can do this"
    )


def check_transition(order: Order, action: OrderAction, now: datetime,
                     settings: SystemSettings, actor: Actor,
                     actor_id: Optional[int] = None) -> None:
    """Raise GuardViolation when ``actor`` may not perform ``action`` now"""
    if action in (OrderAction.START_DELIVERY, OrderAction.ACCEPT_REQUEST):
        _require(actor == Actor.DELIVERY_PERSON, "Only delivery persons can take orders")
        _require(actor_id is not None, "Unknown delivery person")
        _require_status(order, OrderStatus.PENDING)
        _require(not order.is_assigned, "Order already has a delivery person")
        if action == OrderAction.START_DELIVERY:
            _require(
                not order.has_active_delivery_request,
                "Order is waiting for a requested delivery person"
            )

    elif action == OrderAction.CANCEL_DELIVERY:
        _require_assigned_to(order, actor, actor_id)
        _require_status(order, OrderStatus.IN_PROGRESS)
        _require(
            cancellation_remaining(order, now, settings, actor) > 0,
            "The cancellation window has expired"
        )

    elif action == OrderAction.CANCEL_ORDER:
        _require_customer(order, actor, actor_id)
        _require_status(order, OrderStatus.IN_PROGRESS)
        _require(
            cancellation_remaining(order, now, settings, actor) > 0,
            "The cancellation window has expired"
        )

    elif action == OrderAction.MARK_DELIVERED:
        _require_assigned_to(order, actor, actor_id)
        _require_status(order, OrderStatus.IN_PROGRESS)

    elif action == OrderAction.CONFIRM_RECEIPT:
        _require_customer(order, actor, actor_id)
        _require_status(order, OrderStatus.DELIVERED)
        _require(not order.customer_confirmed, "Delivery is already confirmed")

    elif action == OrderAction.COMPLETE:
        _require_assigned_to(order, actor, actor_id)
        _require_status(order, OrderStatus.DELIVERED)
        _require(order.customer_confirmed, "Waiting for the customer to confirm delivery")

    elif action == OrderAction.DELETE:
        if actor != Actor.ADMIN:
            _require_customer(order, actor, actor_id)
        _require(is_deletable(order), "Only pending orders that were never picked up can be deleted")

    else:
        raise GuardViolation(f"Unknown action {action}")


def can_transition(order: Order, action: OrderAction, now: datetime,
                   settings: SystemSettings, actor: Actor,
                   actor_id: Optional[int] = None) -> bool:
    try:
        check_transition(order, action, now, settings, actor, actor_id)
    except GuardViolation:
        return False
    return True


def check_assignment(order: Order) -> None:
    """A delivery person is set exactly while the order is in an assigned status"""
    held = order.status in ASSIGNED_STATUSES
    _require(
        held == order.is_assigned,
        f"Order would be {order.status.value} with{'out' if held else ''} a delivery person"
    )


def apply_transition(order: Order, action: OrderAction, now: datetime,
                     settings: SystemSettings, actor: Actor,
                     actor_id: Optional[int] = None,
                     actor_contact: Optional[str] = None) -> Transition:
    """Check the guards and describe the conditional write"""
    check_transition(order, action, now, settings, actor, actor_id)
    transition = _describe(order, action, now, actor_id, actor_contact)
    if not transition.delete:
        check_assignment(order.model_copy(update=transition.updates))
    return transition


def _describe(order: Order, action: OrderAction, now: datetime,
              actor_id: Optional[int], actor_contact: Optional[str]) -> Transition:
    if action in (OrderAction.START_DELIVERY, OrderAction.ACCEPT_REQUEST):
        expected = {"status": OrderStatus.PENDING, "delivery_person_id": None}
        if action == OrderAction.START_DELIVERY:
            expected["has_active_delivery_request"] = False
        return Transition(action, expected, {
            "status": OrderStatus.IN_PROGRESS,
            "delivery_person_id": actor_id,
            "delivery_person_contact": actor_contact,
            "delivery_start_time": as_utc(now),
            "has_active_delivery_request": False,
        })

    if action in (OrderAction.CANCEL_DELIVERY, OrderAction.CANCEL_ORDER):
        updates = dict(_RELEASE_FIELDS)
        if action == OrderAction.CANCEL_ORDER:
            updates["cancelled_by_customer"] = True
        return Transition(action, {
            "status": OrderStatus.IN_PROGRESS,
            "delivery_person_id": order.delivery_person_id,
        }, updates)

    if action == OrderAction.MARK_DELIVERED:
        return Transition(action, {
            "status": OrderStatus.IN_PROGRESS,
            "delivery_person_id": order.delivery_person_id,
        }, {"status": OrderStatus.DELIVERED})

    if action == OrderAction.CONFIRM_RECEIPT:
        return Transition(action, {"status": OrderStatus.DELIVERED}, {"customer_confirmed": True})

    if action == OrderAction.COMPLETE:
        return Transition(action, {
            "status": OrderStatus.DELIVERED,
            "customer_confirmed": True,
        }, {"status": OrderStatus.COMPLETED, "completed_at": as_utc(now)})

    # DELETE
    return Transition(action, {"status": OrderStatus.PENDING, "delivery_person_id": None}, {}, delete=True)
