# campus_delivery/models/payment.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from .base import TimeStampedModel

class PaymentBucket(str, Enum):
    """Where an order's admin fee stands"""
    CONFIRMED = "confirmed"  # admin received the fee
    LISTED = "pending"  # admin listed it, waiting for the courier
    UNLISTED = "unlisted"

class PaymentMethod(str, Enum):
    ONHAND = "onhand"
    BKASH = "bkash"
    NAGAD = "nagad"
    ROCKET = "rocket"

class PaymentForm(BaseModel):
    """How a courier says the listed admin fee was paid"""
    payment_method: PaymentMethod = PaymentMethod.ONHAND
    receiver_name: Optional[str] = None
    phone_number: Optional[str] = None
    transaction_id: Optional[str] = None

class PaymentFormResponse(TimeStampedModel):
    response_id: str
    user_id: int
    amount: Decimal
    payment_method: PaymentMethod
    receiver_name: Optional[str] = None
    phone_number: Optional[str] = None
    transaction_id: Optional[str] = None
    order_ids: List[str] = Field(default_factory=list)
    status: str = "pending"
    seen: bool = False

class EarningsSummary(BaseModel):
    """Admin fee reconciliation for one courier and one period"""
    total: Decimal = Decimal(0)
    admin_fee: Decimal = Decimal(0)
    net_earnings: Decimal = Decimal(0)
    paid: Decimal = Decimal(0)
    pending: Decimal = Decimal(0)
    listed_pending: Decimal = Decimal(0)
    non_listed_pending: Decimal = Decimal(0)
    completed_deliveries: int = 0
    payment_details: Optional[Dict[str, Any]] = None
    listed_order_ids: List[str] = Field(default_factory=list)
    unlisted_order_ids: List[str] = Field(default_factory=list)
    form_submitted: bool = False

class CourierFeeStatus(BaseModel):
    """Admin side view of one courier's outstanding fees"""
    user_id: int
    contact: Optional[str] = None
    earnings: EarningsSummary
    listing_status: str
    listed_by_current_admin: bool = False
    latest_response_at: Optional[datetime] = None
