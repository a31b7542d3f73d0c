# campus_delivery/utils/messages.py
from typing import Dict, List, Optional
from ..models.delivery import DeliveryPerson, DeliveryRequest
from ..models.order import Order, OrderStatus
from ..models.payment import CourierFeeStatus, EarningsSummary, PaymentFormResponse
from ..models.settings import SystemSettings
from ..services.location_matcher import RankedCandidate
from ..utils.formatters import (
    format_datetime,
    format_price,
    format_score,
    format_time_remaining,
    short_id,
)

STATUS_EMOJI = {
    OrderStatus.PENDING: "⏳",
    OrderStatus.IN_PROGRESS: "🚴",
    OrderStatus.DELIVERED: "📦",
    OrderStatus.COMPLETED: "✅",
    OrderStatus.CANCELLED: "❌",
}

class Messages:
    @staticmethod
    def format_order(order: Order, remaining_seconds: Optional[int] = None) -> str:
        """Order card shown to customers and couriers"""
        items_text = "\n".join([
            f"- {item.quantity}x {item.name}: {format_price(item.total_price)}"
            + (f" ({item.location})" if item.location else "")
            for item in order.items
        ])

        text = (
            f"🛍 Order #{short_id(order.order_id)}\n"
            f"------------------\n"
            f"{items_text}\n"
            f"------------------\n"
            f"Subtotal: {format_price(order.subtotal)}\n"
            f"Delivery: {format_price(order.delivery_charge)}\n"
            f"💰 Total: {format_price(order.total)}\n"
            f"📍 Deliver to: {order.effective_location}\n"
            f"📞 Contact: {order.contact_number}\n"
            f"📊 Status: {STATUS_EMOJI[order.status]} {order.status.value}\n"
            f"🕒 Placed: {format_datetime(order.created_at)}\n"
        )
        if order.delivery_person_contact:
            text += f"🚴 Courier: {order.delivery_person_contact}\n"
        elif order.delivery_person_requested:
            text += f"📨 Requested: {order.delivery_person_requested}\n"
        if order.status == OrderStatus.DELIVERED:
            text += "✔️ Receipt confirmed\n" if order.customer_confirmed else "Waiting for receipt confirmation\n"
        if order.is_completed:
            text += f"✅ Completed: {format_datetime(order.completed_at)}\n"
        if remaining_seconds:
            text += f"⏱ Cancellation window: {format_time_remaining(remaining_seconds)}\n"
        return text

    @staticmethod
    def format_order_line(order: Order) -> str:
        return (
            f"{STATUS_EMOJI[order.status]} #{short_id(order.order_id)} "
            f"{order.effective_location} {format_price(order.total)}"
        )

    @staticmethod
    def format_more_orders(orders: List[Order]) -> str:
        """One line per order that did not get its own card"""
        lines = [f"➕ {len(orders)} more, narrow with a search term:"]
        lines.extend(Messages.format_order_line(order) for order in orders)
        return "\n".join(lines)

    @staticmethod
    def format_candidates(order: Order, candidates: List[RankedCandidate]) -> str:
        if not candidates:
            return "No available delivery person matches this order's locations."
        lines = [f"🚴 Delivery people for order #{short_id(order.order_id)}:"]
        for candidate in candidates:
            person = candidate.person
            lines.append(
                f"- {person.contact or person.user_id} at {person.location}: "
                f"{format_score(candidate.score)} ({candidate.tier.value})"
            )
            for detail in candidate.details:
                lines.append(f"    {detail.location}: {format_score(detail.score)}")
        return "\n".join(lines)

    @staticmethod
    def format_delivery_person(person: DeliveryPerson) -> str:
        state = "🟢 available" if person.is_available else "🔴 unavailable"
        return (
            f"Status: {state}\n"
            f"📍 Location: {person.location or '-'}\n"
            f"🕒 Updated: {format_datetime(person.last_updated)}"
        )

    @staticmethod
    def format_request(request: DeliveryRequest) -> str:
        """New delivery request pushed to a courier"""
        locations = ", ".join(request.order_locations) or request.order_location
        return (
            f"📨 New delivery request\n"
            f"Order #{short_id(request.order_id)}\n"
            f"📍 Pickup: {locations}\n"
            f"📦 Items: {request.order_items}\n"
            f"💰 Total: {format_price(request.order_total)}"
        )

    @staticmethod
    def format_earnings(summary: EarningsSummary, title: str = "💼 Earnings") -> str:
        text = (
            f"{title}\n"
            f"Completed deliveries: {summary.completed_deliveries}\n"
            f"Delivery charges: {format_price(summary.total)}\n"
            f"Admin fee: {format_price(summary.admin_fee)}\n"
            f"Net earnings: {format_price(summary.net_earnings)}\n"
            f"Fee paid: {format_price(summary.paid)}\n"
            f"Fee pending: {format_price(summary.pending)}\n"
            f"  listed: {format_price(summary.listed_pending)}\n"
            f"  not listed: {format_price(summary.non_listed_pending)}\n"
        )
        if summary.payment_details:
            details = summary.payment_details
            text += f"\n💳 Pay {format_price(details.get('amount', summary.listed_pending))}\n"
            for key in ("bkash_number", "nagad_number", "rocket_number"):
                if details.get(key):
                    text += f"{key.split('_')[0]}: {details[key]}\n"
            if details.get("note"):
                text += f"Note: {details['note']}\n"
            if summary.form_submitted:
                text += "Payment form submitted, waiting for admin\n"
        return text

    @staticmethod
    def format_monthly_earnings(months: Dict[str, EarningsSummary]) -> str:
        if not months:
            return "No completed deliveries yet."
        return "\n".join(
            f"{month}: {s.completed_deliveries} deliveries, "
            f"net {format_price(s.net_earnings)}, fee pending {format_price(s.pending)}"
            for month, s in months.items()
        )

    @staticmethod
    def format_fee_status(status: CourierFeeStatus) -> str:
        earnings = status.earnings
        return (
            f"🚴 {status.contact or status.user_id} (id {status.user_id})\n"
            f"Fee pending: {format_price(earnings.pending)} "
            f"(listed {format_price(earnings.listed_pending)}, "
            f"not listed {format_price(earnings.non_listed_pending)})\n"
            f"Paid: {format_price(earnings.paid)}\n"
            f"Listing: {status.listing_status}"
            + (" 📝 form submitted" if earnings.form_submitted else "")
        )

    @staticmethod
    def format_payment_response(response: PaymentFormResponse) -> str:
        text = (
            f"💳 Payment form {format_datetime(response.created_at)}\n"
            f"Amount: {format_price(response.amount)}\n"
            f"Method: {response.payment_method.value}\n"
        )
        if response.receiver_name:
            text += f"Receiver: {response.receiver_name}\n"
        if response.phone_number:
            text += f"Phone: {response.phone_number}\n"
        if response.transaction_id:
            text += f"Transaction: {response.transaction_id}\n"
        return text

    @staticmethod
    def format_settings(settings: SystemSettings) -> str:
        return (
            f"⚙️ Settings\n"
            f"Customer cancellation window: {settings.customer_cancellation_time} min\n"
            f"Delivery person cancellation window: {settings.delivery_person_cancellation_time} min"
        )

    @staticmethod
    def format_monthly_stats(stats: Dict) -> str:
        return (
            f"📈 {stats['month']}\n"
            f"Completed orders: {stats['order_count']}\n"
            f"Delivery charges: {format_price(stats['total_delivery_charges'])}\n"
            f"Food total: {format_price(stats['total_food_price'])}\n"
            f"Admin income: {format_price(stats['admin_income'])}"
        )

    @staticmethod
    def format_payment_stats(stats: Dict, date_range: str) -> str:
        lines = [
            f"📊 Payments since {format_datetime(stats['start'])} ({date_range})",
            f"Payments: {stats['total_payments']} "
            f"(confirmed {stats['confirmed_payments']}, pending {stats['pending_payments']}, "
            f"unlisted {stats['unlisted_payments']})",
            f"Total amount: {format_price(stats['total_amount'])}",
            f"Admin fees: {format_price(stats['total_admin_fees'])}",
            f"Driver earnings: {format_price(stats['total_driver_earnings'])}",
            f"Average payment: {format_price(stats['average_payment'])}",
        ]
        if stats['driver_summaries']:
            lines.append("\nTop drivers:")
            for driver in stats['driver_summaries'][:10]:
                lines.append(
                    f"- {driver['driver']}: {format_price(driver['total_earnings'])} "
                    f"({driver['payment_count']} orders, pending {format_price(driver['pending_amount'])})"
                )
        return "\n".join(lines)
