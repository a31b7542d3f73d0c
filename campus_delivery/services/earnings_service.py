# campus_delivery/services/earnings_service.py
import logging
from collections import OrderedDict
from datetime import datetime
from decimal import InvalidOperation
from typing import Any, Dict, Iterable, List, Optional
import pytz
from .order_service import utcnow
from .pricing import admin_fee, to_decimal
from ..config import Config
from ..database.repositories import OrderRepository, PaymentFormRepository
from ..exceptions import Conflict, GuardViolation, InvalidInput, NotFound
from ..models.order import Order, OrderFilter, OrderStatus
from ..models.payment import (
    CourierFeeStatus,
    EarningsSummary,
    PaymentBucket,
    PaymentForm,
    PaymentFormResponse,
    PaymentMethod,
)

# Payment detail keys an admin may attach when listing fees
PAYMENT_DETAIL_KEYS = ("bkash_number", "nagad_number", "rocket_number", "note")


def payment_bucket(order: Order) -> PaymentBucket:
    if order.admin_payment_confirmed:
        return PaymentBucket.CONFIRMED
    if order.payment_listed:
        return PaymentBucket.LISTED
    return PaymentBucket.UNLISTED


def summarize_earnings(orders: Iterable[Order]) -> EarningsSummary:
    """Split a courier's completed orders into the admin fee buckets"""
    summary = EarningsSummary()
    for order in orders:
        summary.completed_deliveries += 1
        if not order.delivery_charge:
            continue

        fee = admin_fee(order.delivery_charge)
        summary.total += order.delivery_charge

        bucket = payment_bucket(order)
        if bucket == PaymentBucket.CONFIRMED:
            summary.paid += fee
        elif bucket == PaymentBucket.LISTED:
            summary.listed_pending += fee
            summary.listed_order_ids.append(order.order_id)
            if order.payment_form_submitted:
                summary.form_submitted = True
            if summary.payment_details is None and order.payment_details:
                summary.payment_details = order.payment_details
        else:
            summary.non_listed_pending += fee
            summary.unlisted_order_ids.append(order.order_id)

    summary.admin_fee = admin_fee(summary.total)
    summary.net_earnings = summary.total - summary.admin_fee
    summary.pending = summary.admin_fee - summary.paid
    return summary


def monthly_earnings(orders: Iterable[Order], tz_name: Optional[str] = None) -> Dict[str, EarningsSummary]:
    """Earnings per YYYY-MM of completion, newest month first"""
    tz = pytz.timezone(tz_name or Config.TIMEZONE)
    grouped: Dict[str, List[Order]] = {}
    for order in orders:
        if order.completed_at is None:
            continue
        completed = order.completed_at
        if completed.tzinfo is None:
            completed = pytz.utc.localize(completed)
        key = completed.astimezone(tz).strftime("%Y-%m")
        grouped.setdefault(key, []).append(order)

    return OrderedDict(
        (key, summarize_earnings(grouped[key]))
        for key in sorted(grouped, reverse=True)
    )


def validate_payment_form(form: PaymentForm) -> None:
    if form.payment_method == PaymentMethod.ONHAND:
        if not (form.receiver_name or "").strip():
            raise InvalidInput("Please enter the receiver name")
        return
    if not (form.phone_number or "").strip():
        raise InvalidInput("Please enter the phone number")
    if not (form.transaction_id or "").strip():
        raise InvalidInput("Please enter the transaction ID")


class EarningsService:
    """Admin fee reconciliation between couriers and admins"""

    def __init__(self, orders: OrderRepository, forms: PaymentFormRepository):
        self.orders = orders
        self.forms = forms
        self.logger = logging.getLogger(__name__)

    async def _completed_orders(self, delivery_person_id: Optional[int] = None) -> List[Order]:
        return await self.orders.query(OrderFilter(
            statuses=[OrderStatus.COMPLETED],
            delivery_person_id=delivery_person_id
        ))

    async def get_earnings(self, delivery_person_id: int) -> EarningsSummary:
        return summarize_earnings(await self._completed_orders(delivery_person_id))

    async def get_monthly_earnings(self, delivery_person_id: int) -> Dict[str, EarningsSummary]:
        return monthly_earnings(await self._completed_orders(delivery_person_id))

    async def _update_batch(self, order_ids: List[str], fields: Dict[str, Any],
                            expected: Dict[str, Any]) -> int:
        """Independent per-order writes; one failure does not undo the others"""
        updated = 0
        for order_id in order_ids:
            try:
                await self.orders.update(order_id, fields, expected=expected)
                updated += 1
            except (Conflict, NotFound) as e:
                self.logger.warning(f"Skipped order {order_id}: {e.message}")
        return updated

    async def list_pending_payment(self, delivery_person_id: int, admin_id: int,
                                   amount, details: Optional[Dict[str, Any]] = None,
                                   now: Optional[datetime] = None) -> int:
        """Ask a courier to pay the fee of their unlisted orders"""
        try:
            amount = to_decimal(amount)
        except InvalidOperation as e:
            raise InvalidInput("Amount must be a number") from e

        summary = await self.get_earnings(delivery_person_id)
        if not summary.unlisted_order_ids:
            raise GuardViolation("No unlisted payments to mark as pending")

        payment_details: Dict[str, Any] = {"amount": str(amount)}
        for key in PAYMENT_DETAIL_KEYS:
            if details and details.get(key):
                payment_details[key] = details[key]

        listed = await self._update_batch(summary.unlisted_order_ids, {
            "payment_listed": True,
            "payment_details": payment_details,
            "payment_listed_at": now or utcnow(),
            "listed_by_admin_id": admin_id,
        }, expected={"admin_payment_confirmed": False, "payment_listed": False})

        self.logger.info(f"Admin {admin_id} listed {listed} orders of courier {delivery_person_id}")
        return listed

    async def confirm_payment(self, delivery_person_id: int, admin_id: int) -> int:
        """Mark every listed fee of a courier as received"""
        summary = await self.get_earnings(delivery_person_id)
        if not summary.listed_order_ids:
            raise GuardViolation("No listed payments to confirm")

        confirmed = await self._update_batch(summary.listed_order_ids, {
            "admin_payment_confirmed": True,
            "payment_listed": False,
            "listed_by_admin_id": None,
        }, expected={"payment_listed": True})

        self.logger.info(f"Admin {admin_id} confirmed {confirmed} payments of courier {delivery_person_id}")
        return confirmed

    async def submit_payment_form(self, delivery_person_id: int, form: PaymentForm,
                                  user_name: Optional[str] = None,
                                  now: Optional[datetime] = None) -> PaymentFormResponse:
        """Courier reports how the listed fee was paid"""
        validate_payment_form(form)

        summary = await self.get_earnings(delivery_person_id)
        if not summary.listed_order_ids:
            raise GuardViolation("There is no listed payment to confirm")

        response = await self.forms.create({
            "user_id": delivery_person_id,
            "amount": summary.listed_pending,
            "payment_method": form.payment_method,
            "receiver_name": form.receiver_name or None,
            "phone_number": form.phone_number or None,
            "transaction_id": form.transaction_id or None,
            "order_ids": summary.listed_order_ids,
            "status": "pending",
            "created_at": now or utcnow(),
        })

        await self._update_batch(
            summary.listed_order_ids,
            {"payment_form_submitted": True},
            expected={"payment_listed": True}
        )
        self.logger.info(
            f"Courier {user_name or delivery_person_id} submitted a payment form "
            f"for {summary.listed_pending}"
        )
        return response

    async def get_payment_responses(self, delivery_person_id: int) -> List[PaymentFormResponse]:
        return await self.forms.query(delivery_person_id)

    async def mark_response_seen(self, response_id: str) -> None:
        await self.forms.mark_seen(response_id)

    async def get_courier_fee_statuses(self, admin_id: int) -> List[CourierFeeStatus]:
        """Outstanding fees per courier as seen by one admin"""
        grouped: Dict[int, List[Order]] = {}
        for order in await self._completed_orders():
            if order.is_assigned:
                grouped.setdefault(order.delivery_person_id, []).append(order)

        statuses = []
        for user_id, orders in grouped.items():
            summary = summarize_earnings(orders)
            listed_by_me = any(
                o.payment_listed and not o.admin_payment_confirmed and o.listed_by_admin_id == admin_id
                for o in orders
            )
            if listed_by_me:
                listing_status = "Listed by you"
            elif summary.listed_pending > 0:
                listing_status = "Listed by another admin"
            else:
                listing_status = "Not listed"

            responses = await self.forms.query(user_id)
            statuses.append(CourierFeeStatus(
                user_id=user_id,
                contact=next((o.delivery_person_contact for o in orders if o.delivery_person_contact), None),
                earnings=summary,
                listing_status=listing_status,
                listed_by_current_admin=listed_by_me,
                latest_response_at=responses[0].created_at if responses else None,
            ))

        statuses.sort(key=lambda s: s.earnings.pending, reverse=True)
        return statuses
