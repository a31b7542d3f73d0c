# campus_delivery/handlers/admin_handlers.py
from functools import wraps
from telegram import Update
from telegram.ext import ContextTypes
from .base_handler import BaseHandler
from ..exceptions import DeliveryError, InvalidInput
from ..services.earnings_service import PAYMENT_DETAIL_KEYS, EarningsService
from ..services.order_service import OrderService
from ..services.report_service import DATE_RANGES, ReportService
from ..services.settings_service import SettingsService
from ..utils.formatters import format_price, short_id


def admin_only(func):
    """Reply with an access error unless the user is an admin"""
    @wraps(func)
    async def wrapper(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self.is_admin(update.effective_user.id):
            await update.message.reply_text("⛔️ You do not have access to this command.")
            return
        try:
            return await func(self, update, context)
        except DeliveryError as e:
            await self.reply_error(update, e)
    return wrapper


def parse_user_id(value: str) -> int:
    if not value.isdigit():
        raise InvalidInput(f"{value} is not a user id")
    return int(value)


def parse_range(args) -> str:
    date_range = args[0].lower() if args else "month"
    if date_range not in DATE_RANGES:
        raise InvalidInput(f"Range must be one of {', '.join(DATE_RANGES)}")
    return date_range


class AdminHandler(BaseHandler):
    """Admin commands"""

    def __init__(self, settings_service: SettingsService, order_service: OrderService,
                 earnings_service: EarningsService, report_service: ReportService):
        super().__init__()
        self.settings_service = settings_service
        self.order_service = order_service
        self.earnings_service = earnings_service
        self.report_service = report_service

    @admin_only
    async def show_settings(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        settings = await self.settings_service.get_system_settings()
        await update.message.reply_text(
            self.messages.format_settings(settings)
            + "\n\nChange with /setcancel <customer minutes> <delivery person minutes>"
        )

    @admin_only
    async def set_cancellation(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/setcancel <customer> <delivery person>"""
        args = context.args or []
        if len(args) != 2 or not all(a.isdigit() for a in args):
            raise InvalidInput("Usage: /setcancel <customer minutes> <delivery person minutes>")
        settings = await self.settings_service.update_cancellation_times(int(args[0]), int(args[1]))
        await update.message.reply_text("✅ Saved\n\n" + self.messages.format_settings(settings))

    @admin_only
    async def courier_fees(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Outstanding admin fees per courier"""
        statuses = await self.earnings_service.get_courier_fee_statuses(update.effective_user.id)
        if not statuses:
            await update.message.reply_text("No completed deliveries yet.")
            return
        await update.message.reply_text(
            "\n\n".join(self.messages.format_fee_status(s) for s in statuses)
            + "\n\n/listfee <user id> <amount> [bkash=.. nagad=.. rocket=.. note=..]"
            + "\n/confirmfee <user id>"
        )

    @admin_only
    async def list_fee(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/listfee <user id> <amount> [key=value ...]"""
        args = context.args or []
        if len(args) < 2:
            raise InvalidInput("Usage: /listfee <user id> <amount> [bkash=.. nagad=.. rocket=.. note=..]")

        details = {}
        for arg in args[2:]:
            key, _, value = arg.partition("=")
            key = key.lower()
            if key in ("bkash", "nagad", "rocket"):
                key = f"{key}_number"
            if key not in PAYMENT_DETAIL_KEYS or not value:
                raise InvalidInput(f"Unknown payment detail {arg}")
            details[key] = value

        courier_id = parse_user_id(args[0])
        listed = await self.earnings_service.list_pending_payment(
            courier_id, update.effective_user.id, args[1], details
        )
        await update.message.reply_text(f"✅ Listed {listed} orders for payment.")
        await self.notify(
            context, courier_id,
            f"💳 An admin asked you to pay the admin fee of {format_price(args[1])}. "
            "See /earnings for details."
        )

    @admin_only
    async def confirm_fee(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/confirmfee <user id>"""
        args = context.args or []
        if len(args) != 1:
            raise InvalidInput("Usage: /confirmfee <user id>")
        courier_id = parse_user_id(args[0])
        confirmed = await self.earnings_service.confirm_payment(courier_id, update.effective_user.id)

        for response in await self.earnings_service.get_payment_responses(courier_id):
            if not response.seen:
                await self.earnings_service.mark_response_seen(response.response_id)

        await update.message.reply_text(f"✅ Confirmed {confirmed} payments.")
        await self.notify(context, courier_id, "✅ Your admin fee payment was confirmed.")

    @admin_only
    async def monthly(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        stats = await self.report_service.get_monthly_stats()
        await update.message.reply_text(self.messages.format_monthly_stats(stats))

    @admin_only
    async def payments(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/payments [week|month|quarter|year]"""
        date_range = parse_range(context.args)
        stats = await self.report_service.get_payment_stats(date_range)
        await update.message.reply_text(self.messages.format_payment_stats(stats, date_range))

    @admin_only
    async def report(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Send the payment stats as an Excel file"""
        date_range = parse_range(context.args)
        content = await self.report_service.generate_excel_report(date_range)
        await update.message.reply_document(
            document=content,
            filename=f"payments_{date_range}.xlsx",
            caption=f"📊 Payment report ({date_range})"
        )

    @admin_only
    async def delete_order(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/deleteorder <order>"""
        args = context.args or []
        if not args:
            raise InvalidInput("Usage: /deleteorder <order>")
        order = await self.order_service.find_order(args[0])
        await self.order_service.delete_order(order.order_id, update.effective_user.id, is_admin=True)
        await update.message.reply_text(f"🗑 Order #{short_id(order.order_id)} deleted.")
