# campus_delivery/handlers/delivery_handlers.py
from telegram import Update
from telegram.ext import ContextTypes
from .base_handler import BaseHandler
from ..exceptions import DeliveryError, InvalidInput
from ..models.payment import PaymentForm, PaymentMethod
from ..services.delivery_person_service import DeliveryPersonService
from ..services.delivery_request_service import DeliveryRequestService
from ..services.earnings_service import EarningsService
from ..services.lifecycle import Actor
from ..services.order_service import OrderService
from ..utils.formatters import short_id

MAX_LISTED_ORDERS = 10

PAYFORM_USAGE = (
    "Usage:\n"
    "/payform onhand <receiver name>\n"
    "/payform bkash|nagad|rocket <phone number> <transaction id>"
)


def parse_payment_form(args) -> PaymentForm:
    """/payform arguments to a PaymentForm"""
    if not args:
        raise InvalidInput(PAYFORM_USAGE)
    try:
        method = PaymentMethod(args[0].lower())
    except ValueError as e:
        raise InvalidInput(PAYFORM_USAGE) from e

    if method == PaymentMethod.ONHAND:
        return PaymentForm(payment_method=method, receiver_name=" ".join(args[1:]))
    return PaymentForm(
        payment_method=method,
        phone_number=args[1] if len(args) > 1 else None,
        transaction_id=args[2] if len(args) > 2 else None
    )


class DeliveryHandler(BaseHandler):
    """Delivery person commands and order buttons"""
    def __init__(self, order_service: OrderService, person_service: DeliveryPersonService,
                 request_service: DeliveryRequestService, earnings_service: EarningsService):
        super().__init__()
        self.order_service = order_service
        self.person_service = person_service
        self.request_service = request_service
        self.earnings_service = earnings_service

    async def available(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/available [location]"""
        user = update.effective_user
        location = " ".join(context.args) if context.args else None
        try:
            person = await self.person_service.set_availability(
                user.id, True, location=location, contact=self.contact_of(user)
            )
        except DeliveryError as e:
            await self.reply_error(update, e)
            return
        await update.message.reply_text(self.messages.format_delivery_person(person))

    async def unavailable(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        try:
            person = await self.person_service.set_availability(update.effective_user.id, False)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return
        await update.message.reply_text(self.messages.format_delivery_person(person))

    async def location(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/location <location>"""
        user = update.effective_user
        try:
            person = await self.person_service.update_location(
                user.id, " ".join(context.args or []), contact=self.contact_of(user)
            )
        except DeliveryError as e:
            await self.reply_error(update, e)
            return
        await update.message.reply_text(self.messages.format_delivery_person(person))

    async def deliveries(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Own active orders, then the open pool"""
        user_id = update.effective_user.id
        try:
            orders = await self.order_service.get_delivery_person_orders(
                user_id, search_term=" ".join(context.args or [])
            )
            cards = []
            for order in orders[:MAX_LISTED_ORDERS]:
                remaining = 0
                if order.delivery_person_id == user_id:
                    remaining = await self.order_service.cancellation_remaining(order, Actor.DELIVERY_PERSON)
                cards.append((order, remaining))
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        if not orders:
            await update.message.reply_text("No orders right now.")
            return

        for order, remaining in cards:
            await update.message.reply_text(
                self.messages.format_order(order, remaining),
                reply_markup=self.keyboards.courier_order(order, user_id, can_cancel=remaining > 0)
            )
        if len(orders) > MAX_LISTED_ORDERS:
            await update.message.reply_text(
                self.messages.format_more_orders(orders[MAX_LISTED_ORDERS:])
            )

    async def requests(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        try:
            pending = await self.request_service.get_pending_requests(update.effective_user.id)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return
        if not pending:
            await update.message.reply_text("No pending delivery requests.")
            return
        for request in pending:
            await update.message.reply_text(
                self.messages.format_request(request),
                reply_markup=self.keyboards.delivery_request(request)
            )

    async def _edit_order(self, update: Update, order, user_id: int):
        remaining = await self.order_service.cancellation_remaining(order, Actor.DELIVERY_PERSON)
        await update.callback_query.edit_message_text(
            self.messages.format_order(order, remaining),
            reply_markup=self.keyboards.courier_order(order, user_id, can_cancel=remaining > 0)
        )

    async def start_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Claim an order from the pool"""
        query = update.callback_query
        user = update.effective_user
        order_id = query.data.split('_', 1)[1]
        try:
            order = await self.order_service.start_delivery(order_id, user.id, self.contact_of(user))
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer("🚴 Delivery started")
        await self._edit_order(update, order, user.id)
        await self.notify(
            context, order.customer_id,
            f"🚴 {order.delivery_person_contact} picked up order #{short_id(order_id)}."
        )

    async def cancel_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        order_id = query.data.split('_', 1)[1]
        try:
            order = await self.order_service.cancel_delivery(order_id, update.effective_user.id)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer("Delivery cancelled")
        await self._edit_order(update, order, update.effective_user.id)
        await self.notify(
            context, order.customer_id,
            f"↩️ The delivery person gave back order #{short_id(order_id)}, it is open again."
        )

    async def delivered_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        order_id = query.data.split('_', 1)[1]
        try:
            order = await self.order_service.mark_delivered(order_id, update.effective_user.id)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer("📦 Marked as delivered")
        await self._edit_order(update, order, update.effective_user.id)
        await self.notify(
            context, order.customer_id,
            f"📦 Order #{short_id(order_id)} was delivered, please confirm receipt.",
            reply_markup=self.keyboards.customer_order(order)
        )

    async def complete_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        order_id = query.data.split('_', 1)[1]
        try:
            order = await self.order_service.complete_order(order_id, update.effective_user.id)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer("✅ Completed")
        await self._edit_order(update, order, update.effective_user.id)

    async def accept_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        user = update.effective_user
        request_id = query.data.split('_', 1)[1]
        try:
            order = await self.request_service.accept_request(request_id, user.id, self.contact_of(user))
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer("✅ Request accepted")
        await self._edit_order(update, order, user.id)
        await self.notify(
            context, order.customer_id,
            f"✅ {order.delivery_person_contact} accepted order #{short_id(order.order_id)}."
        )

    async def reject_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        request_id = query.data.split('_', 1)[1]
        try:
            request = await self.request_service.reject_request(request_id, update.effective_user.id)
            order = await self.order_service.get_order(request.order_id)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await query.answer()
        await query.edit_message_text(f"❌ Request for order #{short_id(request.order_id)} rejected.")
        await self.notify(
            context, order.customer_id,
            f"❌ {request.delivery_person_contact or 'The delivery person'} declined order "
            f"#{short_id(order.order_id)}. You can ask someone else with /couriers."
        )

    async def earnings(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Totals, fee buckets and the monthly breakdown"""
        user_id = update.effective_user.id
        try:
            summary = await self.earnings_service.get_earnings(user_id)
            months = await self.earnings_service.get_monthly_earnings(user_id)
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        text = self.messages.format_earnings(summary)
        text += "\n📅 By month\n" + self.messages.format_monthly_earnings(months)
        if summary.listed_order_ids and not summary.form_submitted:
            text += "\n\nSend /payform once you have paid the listed fee."
        await update.message.reply_text(text)

    async def payform(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/payform method details"""
        user = update.effective_user
        try:
            form = parse_payment_form(context.args or [])
            response = await self.earnings_service.submit_payment_form(
                user.id, form, user_name=self.contact_of(user)
            )
        except DeliveryError as e:
            await self.reply_error(update, e)
            return

        await update.message.reply_text(
            "✅ Payment form submitted\n\n" + self.messages.format_payment_response(response)
        )
