# campus_delivery/handlers/customer_handlers.py
from decimal import Decimal, InvalidOperation
from typing import Dict, List
from telegram import Update
from telegram.ext import ContextTypes, ConversationHandler
from .base_handler import BaseHandler
from ..config import Config
from ..exceptions import DeliveryError, InvalidInput
from ..services.delivery_person_service import DeliveryPersonService
from ..services.delivery_request_service import DeliveryRequestService
from ..services.lifecycle import Actor
from ..services.location_matcher import MatchThreshold
from ..services.order_service import DATE_FILTERS, OrderService
from ..utils.formatters import short_id

# Checkout conversation states
WAITING_ITEMS, WAITING_CONTACT, WAITING_LOCATION = range(3)

MAX_LISTED_ORDERS = 10

THRESHOLDS = {
    "low": MatchThreshold.LOW,
    "medium": MatchThreshold.MEDIUM,
    "high": MatchThreshold.HIGH,
}


def parse_item_line(line: str) -> Dict:
    """name | quantity | price | delivery charge | pickup location"""
    parts = [p.strip() for p in line.split("|")]
    if len(parts) < 4 or not parts[0]:
        raise InvalidInput(f"Could not read item line: {line}")
    try:
        return {
            "name": parts[0],
            "quantity": int(parts[1]),
            "price": Decimal(parts[2]),
            "delivery_charge": Decimal(parts[3]),
            "location": parts[4] if len(parts) > 4 and parts[4] else None,
        }
    except (ValueError, InvalidOperation) as e:
        raise InvalidInput(f"Could not read item line: {line}") from e


class CustomerHandler(BaseHandler):
    """Customer commands"""
    def __init__(self, order_service: OrderService, person_service: DeliveryPersonService,
                 request_service: DeliveryRequestService):
        super().__init__()
        self.order_service = order_service
        self.person_service = person_service
        self.request_service = request_service

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/start"""
        user = update.effective_user
        text = (
            f"Hi {user.first_name}! 👋\n\n"
            "Customers:\n"
            "/order - place an order\n"
            "/myorders [today|week|month] [search] - your orders\n"
            "/couriers <order> [low|medium|high] - find a delivery person\n\n"
            "Delivery people:\n"
            "/available <location>, /unavailable, /location <location>\n"
            "/deliveries [search], /requests, /earnings, /payform"
        )
        if await self.is_admin(user.id):
            text += (
                "\n\nAdmins:\n"
                "/settings, /setcancel <customer> <courier>\n"
                "/couriers_fees, /listfee, /confirmfee\n"
                "/monthly, /payments [range], /report [range], /deleteorder <order>"
            )
        await update.message.reply_text(text)

    async def order_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Begin checkout"""
        context.user_data.clear()
        await update.message.reply_text(
            "🛒 Send your items, one per line:\n"
            "name | quantity | price | delivery charge | pickup location\n\n"
            "/cancel to stop"
        )
        return WAITING_ITEMS

    async def order_items(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        lines = [line for line in update.message.text.splitlines() if line.strip()]
        try:
            items = [parse_item_line(line) for line in lines]
        except InvalidInput as e:
            await self.reply_error(update, e)
            return WAITING_ITEMS

        context.user_data['items'] = items
        await update.message.reply_text("📞 Your contact number:")
        return WAITING_CONTACT

    async def order_contact(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data['contact_number'] = update.message.text.strip()
        await update.message.reply_text("📍 Where should it be delivered?")
        return WAITING_LOCATION

    async def order_location(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Place the order"""
        user = update.effective_user
        try:
            order = await self.order_service.create_order(
                customer_id=user.id,
                items=context.user_data.get('items', []),
                contact_number=context.user_data.get('contact_number', ""),
                delivery_location=update.message.text,
                customer_contact=self.contact_of(user)
            )
        except DeliveryError as e:
            await self.reply_error(update, e)
            return WAITING_LOCATION

        context.user_data.clear()
        await update.message.reply_text(
            "✅ Order placed\n\n" + self.messages.format_order(order),
            reply_markup=self.keyboards.customer_order(order)
        )
        return ConversationHandler.END

    async def my_orders(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/myorders [today|week|month] [search]"""
        args: List[str] = list(context.args or [])
        date_filter = "all"
        if args and args[0].lower() in DATE_FILTERS:
            date_filter = args.pop(0).lower()

        customer_id = update.effective_user.id
        try:
            orders = await self.order_service.get_customer_orders(
                customer_id, search_term=" ".join(args), date_filter=date_filter
            )
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        if not orders:
            await update.message.reply_text("You have no orders yet.")
            return

        for order in orders[:MAX_LISTED_ORDERS]:
            remaining = await self.order_service.cancellation_remaining(order, Actor.CUSTOMER)
            await update.message.reply_text(
                self.messages.format_order(order, remaining),
                reply_markup=self.keyboards.customer_order(order, can_cancel=remaining > 0)
            )
        if len(orders) > MAX_LISTED_ORDERS:
            await update.message.reply_text(
                self.messages.format_more_orders(orders[MAX_LISTED_ORDERS:])
            )

    async def _show_candidates(self, update: Update, order_id: str, threshold: float):
        order = await self.order_service.get_order(order_id)
        candidates = await self.person_service.find_candidates_for_order(order, threshold)
        await self.reply(
            update,
            self.messages.format_candidates(order, candidates),
            reply_markup=self.keyboards.candidates(order, candidates)
        )

    async def couriers(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/couriers <order> [low|medium|high]"""
        args = context.args or []
        if not args:
            await update.message.reply_text("Usage: /couriers <order> [low|medium|high]")
            return
        threshold = Config.MATCH_THRESHOLD
        if len(args) > 1:
            threshold = THRESHOLDS.get(args[1].lower(), threshold)

        user_id = update.effective_user.id
        # admins may look up and offer any order
        customer_id = None if await self.is_admin(user_id) else user_id
        try:
            order = await self.order_service.find_order(args[0], customer_id)
            await self._show_candidates(update, order.order_id, threshold)
        except DeliveryError as e:
            await self.reply_error(update, e)

    async def candidates_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        order_id = query.data.split('_', 1)[1]
        try:
            await self._show_candidates(update, order_id, Config.MATCH_THRESHOLD)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return
        await query.answer()

    async def request_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Offer the order to the chosen delivery person"""
        query = update.callback_query
        _, order_id, person_id = query.data.split('_')
        user_id = update.effective_user.id
        try:
            order = await self.order_service.get_order(order_id)
            if order.customer_id != user_id and not await self.is_admin(user_id):
                raise InvalidInput("This is not your order")
            request = await self.request_service.send_request(
                order_id, int(person_id), requester_id=user_id
            )
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer("📨 Request sent")
        await query.edit_message_text(
            f"📨 Request for order #{short_id(order_id)} sent to "
            f"{request.delivery_person_contact or request.delivery_person_id}. "
            "You will be notified when they answer."
        )

    async def cancel_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Customer cancels an in-progress delivery"""
        query = update.callback_query
        order_id = query.data.split('_', 1)[1]
        try:
            before = await self.order_service.get_order(order_id)
            order = await self.order_service.cancel_order(order_id, update.effective_user.id)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer("Delivery cancelled")
        await query.edit_message_text(
            self.messages.format_order(order),
            reply_markup=self.keyboards.customer_order(order)
        )
        if before.delivery_person_id:
            await self.notify(
                context, before.delivery_person_id,
                f"❌ The customer cancelled order #{short_id(order_id)}."
            )

    async def confirm_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        order_id = query.data.split('_', 1)[1]
        try:
            order = await self.order_service.confirm_receipt(order_id, update.effective_user.id)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer("✔️ Receipt confirmed")
        await query.edit_message_text(
            self.messages.format_order(order),
            reply_markup=self.keyboards.customer_order(order)
        )
        await self.notify(
            context, order.delivery_person_id,
            f"✔️ Receipt of order #{short_id(order_id)} confirmed, you can complete it now.",
            reply_markup=self.keyboards.courier_order(order, order.delivery_person_id)
        )

    async def delete_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        order_id = query.data.split('_', 1)[1]
        try:
            await self.order_service.delete_order(order_id, update.effective_user.id)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer()
        await query.edit_message_text(f"🗑 Order #{short_id(order_id)} deleted.")
