# campus_delivery/models/order.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses in which a delivery person holds the order
ASSIGNED_STATUSES = (OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED, OrderStatus.COMPLETED)


class OrderItem(BaseModel):
    """Individual line item in an order"""
    name: str
    quantity: int = Field(1, ge=1)
    price: Decimal = Field(Decimal(0), ge=0)
    delivery_charge: Decimal = Field(Decimal(0), ge=0)
    location: Optional[str] = None  # pickup point
    product_id: Optional[str] = None

    @property
    def total_price(self) -> Decimal:
        return self.price * self.quantity


class OrderDraft(BaseModel):
    """Everything the repository needs to insert a new order"""
    customer_id: int
    customer_contact: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    items: List[OrderItem]
    subtotal: Decimal = Decimal(0)
    delivery_charge: Decimal = Decimal(0)
    total: Decimal = Decimal(0)
    contact_number: str
    delivery_location: Optional[str] = None
    location: Optional[str] = None  # legacy spelling of delivery_location
    created_at: Optional[datetime] = None

    delivery_person_id: Optional[int] = None
    delivery_person_contact: Optional[str] = None
    delivery_person_requested: Optional[str] = None
    delivery_start_time: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    customer_confirmed: bool = False
    cancelled_by_customer: bool = False
    has_active_delivery_request: bool = False
    delivery_request_sent: bool = False

    # admin fee reconciliation
    admin_payment_confirmed: bool = False
    payment_listed: bool = False
    payment_form_submitted: bool = False
    payment_details: Optional[Dict[str, Any]] = None
    listed_by_admin_id: Optional[int] = None
    payment_listed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Order(OrderDraft):
    """Order placed by a customer and tracked through delivery"""
    order_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def effective_location(self) -> str:
        """Delivery location, falling back to the legacy field"""
        return (self.delivery_location or self.location or "").strip()

    @property
    def match_locations(self) -> List[str]:
        """Locations a delivery person is matched against"""
        locations: List[str] = []
        for item in self.items:
            loc = (item.location or "").strip()
            if loc and loc not in locations:
                locations.append(loc)
        if locations:
            return locations
        return [self.effective_location] if self.effective_location else []

    @property
    def is_assigned(self) -> bool:
        return self.delivery_person_id is not None

    @property
    def is_completed(self) -> bool:
        return self.status == OrderStatus.COMPLETED


class OrderFilter(BaseModel):
    """Query filter shared by every OrderRepository implementation"""
    statuses: Optional[List[OrderStatus]] = None
    customer_id: Optional[int] = None
    delivery_person_id: Optional[int] = None
    exclude_active_requests: bool = False
    created_from: Optional[datetime] = None
    order_ids: Optional[List[str]] = None

    def matches(self, order: Order) -> bool:
        if self.statuses is not None and order.status not in self.statuses:
            return False
        if self.customer_id is not None and order.customer_id != self.customer_id:
            return False
        if self.delivery_person_id is not None and order.delivery_person_id != self.delivery_person_id:
            return False
        if self.exclude_active_requests and order.has_active_delivery_request:
            return False
        if self.created_from is not None and order.created_at < self.created_from:
            return False
        if self.order_ids is not None and order.order_id not in self.order_ids:
            return False
        return True
