# campus_delivery/bot.py
import asyncio
import contextlib
import logging
from telegram import Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ConversationHandler,
    ContextTypes,
    MessageHandler,
    filters
)
from .config import Config
from .database.database import Database
from .database.postgres import (
    PostgresDeliveryPersonRepository,
    PostgresDeliveryRequestRepository,
    PostgresOrderRepository,
    PostgresPaymentFormRepository,
    PostgresSettingsRepository
)
from .handlers import AdminHandler, CustomerHandler, DeliveryHandler
from .handlers.customer_handlers import WAITING_CONTACT, WAITING_ITEMS, WAITING_LOCATION
from .services.delivery_person_service import DeliveryPersonService
from .services.delivery_request_service import DeliveryRequestService
from .services.earnings_service import EarningsService
from .services.notification_service import RequestNotifier
from .services.order_service import OrderService
from .services.report_service import ReportService
from .services.settings_service import SettingsService

class DeliveryBot:
    def __init__(self):
        """Wire repositories, services and handlers"""
        self.logger = logging.getLogger(__name__)
        self.db = Database()

        settings_repo = PostgresSettingsRepository(self.db)
        order_repo = PostgresOrderRepository(self.db)
        person_repo = PostgresDeliveryPersonRepository(self.db)

        self.settings_service = SettingsService(settings_repo)
        self.order_service = OrderService(order_repo, settings_repo)
        self.person_service = DeliveryPersonService(person_repo)
        self.request_service = DeliveryRequestService(
            self.order_service, PostgresDeliveryRequestRepository(self.db), person_repo
        )
        self.earnings_service = EarningsService(order_repo, PostgresPaymentFormRepository(self.db))
        self.report_service = ReportService(order_repo)

        self.application = Application.builder().token(Config.TELEGRAM_TOKEN).build()
        self.notifier = RequestNotifier(self.application.bot, self.request_service)
        self.setup_handlers()

    def setup_handlers(self):
        """Register bot handlers"""
        customer = CustomerHandler(self.order_service, self.person_service, self.request_service)
        delivery = DeliveryHandler(
            self.order_service, self.person_service, self.request_service, self.earnings_service
        )
        admin = AdminHandler(
            self.settings_service, self.order_service, self.earnings_service, self.report_service
        )
        add = self.application.add_handler

        # checkout
        add(ConversationHandler(
            entry_points=[CommandHandler("order", customer.order_start)],
            states={
                WAITING_ITEMS: [MessageHandler(filters.TEXT & ~filters.COMMAND, customer.order_items)],
                WAITING_CONTACT: [MessageHandler(filters.TEXT & ~filters.COMMAND, customer.order_contact)],
                WAITING_LOCATION: [MessageHandler(filters.TEXT & ~filters.COMMAND, customer.order_location)],
            },
            fallbacks=[CommandHandler("cancel", customer.cancel_conversation)]
        ))

        # customer
        add(CommandHandler(["start", "help"], customer.start))
        add(CommandHandler("myorders", customer.my_orders))
        add(CommandHandler("couriers", customer.couriers))
        add(CallbackQueryHandler(customer.candidates_callback, pattern=r"^cand_"))
        add(CallbackQueryHandler(customer.request_callback, pattern=r"^req_"))
        add(CallbackQueryHandler(customer.cancel_callback, pattern=r"^ccancel_"))
        add(CallbackQueryHandler(customer.confirm_callback, pattern=r"^confirm_"))
        add(CallbackQueryHandler(customer.delete_callback, pattern=r"^delete_"))

        # delivery person
        add(CommandHandler("available", delivery.available))
        add(CommandHandler("unavailable", delivery.unavailable))
        add(CommandHandler("location", delivery.location))
        add(CommandHandler("deliveries", delivery.deliveries))
        add(CommandHandler("requests", delivery.requests))
        add(CommandHandler("earnings", delivery.earnings))
        add(CommandHandler("payform", delivery.payform))
        add(CallbackQueryHandler(delivery.start_callback, pattern=r"^start_"))
        add(CallbackQueryHandler(delivery.cancel_callback, pattern=r"^dcancel_"))
        add(CallbackQueryHandler(delivery.delivered_callback, pattern=r"^dlvd_"))
        add(CallbackQueryHandler(delivery.complete_callback, pattern=r"^done_"))
        add(CallbackQueryHandler(delivery.accept_callback, pattern=r"^racc_"))
        add(CallbackQueryHandler(delivery.reject_callback, pattern=r"^rrej_"))

        # admin
        add(CommandHandler("settings", admin.show_settings))
        add(CommandHandler("setcancel", admin.set_cancellation))
        add(CommandHandler("couriers_fees", admin.courier_fees))
        add(CommandHandler("listfee", admin.list_fee))
        add(CommandHandler("confirmfee", admin.confirm_fee))
        add(CommandHandler("monthly", admin.monthly))
        add(CommandHandler("payments", admin.payments))
        add(CommandHandler("report", admin.report))
        add(CommandHandler("deleteorder", admin.delete_order))

        self.application.add_error_handler(self.error_handler)

    async def error_handler(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        """Log anything a handler did not turn into a user message"""
        self.logger.error("Unhandled error while processing an update", exc_info=context.error)
        if isinstance(update, Update) and update.effective_message:
            await update.effective_message.reply_text("❌ Something went wrong, please try again later.")

    async def start(self):
        """Connect, poll for updates and push delivery requests until cancelled"""
        await self.db.connect()
        notifier_task = None
        try:
            async with self.application:
                await self.application.start()
                await self.application.updater.start_polling()
                if Config.NOTIFY_DELIVERY_REQUESTS:
                    notifier_task = asyncio.create_task(self.notifier.run())
                self.logger.info("Bot started")
                try:
                    await asyncio.Event().wait()
                finally:
                    if notifier_task:
                        notifier_task.cancel()
                        with contextlib.suppress(asyncio.CancelledError):
                            await notifier_task
                    await self.application.updater.stop()
                    await self.application.stop()
        finally:
            await self.db.close()
            self.logger.info("Bot stopped")
