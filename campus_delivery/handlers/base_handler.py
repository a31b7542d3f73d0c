# campus_delivery/handlers/base_handler.py
import logging
from typing import Optional
from telegram import InlineKeyboardMarkup, Update, User
from telegram.error import TelegramError
from telegram.ext import ContextTypes, ConversationHandler
from ..config import Config
from ..exceptions import DeliveryError
from ..utils.keyboards import Keyboards
from ..utils.messages import Messages

class BaseHandler:
    """Base class for handlers"""
    def __init__(self):
        self.keyboards = Keyboards()
        self.messages = Messages()
        self.logger = logging.getLogger(self.__class__.__module__)

    @staticmethod
    async def cancel_conversation(update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Cancel the conversation"""
        context.user_data.clear()
        if update.callback_query:
            await update.callback_query.answer()
            await update.callback_query.edit_message_text("❌ Cancelled.")
        else:
            await update.message.reply_text("❌ Cancelled.")
        return ConversationHandler.END

    async def is_admin(self, user_id: int) -> bool:
        """Check admin access"""
        return user_id in Config.ADMIN_IDS

    @staticmethod
    def contact_of(user: User) -> str:
        """How other parties reach this user"""
        if user.username:
            return f"@{user.username}"
        return user.full_name or str(user.id)

    async def reply(self, update: Update, text: str,
                    reply_markup: Optional[InlineKeyboardMarkup] = None):
        if update.callback_query:
            await update.callback_query.edit_message_text(text, reply_markup=reply_markup)
        else:
            await update.message.reply_text(text, reply_markup=reply_markup)

    async def reply_error(self, update: Update, error: DeliveryError):
        """Show a refused action as a notification"""
        self.logger.info(f"{type(error).__name__} for {update.effective_user.id}: {error.message}")
        if update.callback_query:
            await update.callback_query.answer(f"❌ {error.message}", show_alert=True)
        else:
            await update.message.reply_text(f"❌ {error.message}")

    async def notify(self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, text: str,
                     reply_markup: Optional[InlineKeyboardMarkup] = None):
        """Message the other party of an order"""
        try:
            await context.bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup)
        except TelegramError as e:
            self.logger.error(f"Could not notify {chat_id}: {e}")
