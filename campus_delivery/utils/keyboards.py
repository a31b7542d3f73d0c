# campus_delivery/utils/keyboards.py
from typing import List, Optional
from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from ..models.delivery import DeliveryRequest
from ..models.order import Order, OrderStatus
from ..services.lifecycle import is_deletable
from ..services.location_matcher import RankedCandidate

# callback_data is limited to 64 bytes; order ids are 36 char uuids

class Keyboards:
    @staticmethod
    def customer_order(order: Order, can_cancel: bool = False) -> Optional[InlineKeyboardMarkup]:
        """Buttons under an order card for its customer"""
        keyboard = []
        if order.status == OrderStatus.PENDING and not order.delivery_request_sent:
            keyboard.append([InlineKeyboardButton("🚴 Find delivery person", callback_data=f"cand_{order.order_id}")])
        if can_cancel:
            keyboard.append([InlineKeyboardButton("❌ Cancel delivery", callback_data=f"ccancel_{order.order_id}")])
        if order.status == OrderStatus.DELIVERED and not order.customer_confirmed:
            keyboard.append([InlineKeyboardButton("✔️ Confirm receipt", callback_data=f"confirm_{order.order_id}")])
        if is_deletable(order):
            keyboard.append([InlineKeyboardButton("🗑 Delete", callback_data=f"delete_{order.order_id}")])
        return InlineKeyboardMarkup(keyboard) if keyboard else None

    @staticmethod
    def courier_order(order: Order, delivery_person_id: int,
                      can_cancel: bool = False) -> Optional[InlineKeyboardMarkup]:
        """Buttons under an order card for a delivery person"""
        keyboard = []
        if order.status == OrderStatus.PENDING and not order.is_assigned:
            keyboard.append([InlineKeyboardButton("🚴 Start delivery", callback_data=f"start_{order.order_id}")])
        elif order.delivery_person_id == delivery_person_id:
            if order.status == OrderStatus.IN_PROGRESS:
                keyboard.append([InlineKeyboardButton("📦 Mark delivered", callback_data=f"dlvd_{order.order_id}")])
                if can_cancel:
                    keyboard.append([InlineKeyboardButton("↩️ Cancel delivery", callback_data=f"dcancel_{order.order_id}")])
            elif order.status == OrderStatus.DELIVERED and order.customer_confirmed:
                keyboard.append([InlineKeyboardButton("✅ Complete", callback_data=f"done_{order.order_id}")])
        return InlineKeyboardMarkup(keyboard) if keyboard else None

    @staticmethod
    def candidates(order: Order, candidates: List[RankedCandidate]) -> Optional[InlineKeyboardMarkup]:
        """One request button per ranked delivery person"""
        keyboard = [
            [InlineKeyboardButton(
                f"📨 {c.person.contact or c.person.user_id} ({c.score * 100:.0f}%)",
                callback_data=f"req_{order.order_id}_{c.person.user_id}"
            )]
            for c in candidates[:10]
        ]
        return InlineKeyboardMarkup(keyboard) if keyboard else None

    @staticmethod
    def delivery_request(request: DeliveryRequest) -> InlineKeyboardMarkup:
        keyboard = [
            [InlineKeyboardButton("✅ Accept", callback_data=f"racc_{request.request_id}"),
             InlineKeyboardButton("❌ Reject", callback_data=f"rrej_{request.request_id}")]
        ]
        return InlineKeyboardMarkup(keyboard)
