# campus_delivery/models/delivery.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from .base import TimeStampedModel


class DeliveryPerson(BaseModel):
    """Availability record owned by a delivery person"""
    user_id: int
    is_available: bool = False
    location: str = ""
    contact: Optional[str] = None
    last_updated: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DeliveryRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DeliveryRequest(TimeStampedModel):
    """Proposal linking one order to one candidate delivery person"""
    request_id: str
    order_id: str
    delivery_person_id: int
    delivery_person_contact: Optional[str] = None
    order_location: str = ""
    order_locations: List[str] = Field(default_factory=list)
    order_total: Decimal = Decimal(0)
    order_items: int = 0
    status: DeliveryRequestStatus = DeliveryRequestStatus.PENDING
    created_by: Optional[int] = None
    responded_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == DeliveryRequestStatus.PENDING


class DeliveryRequestFilter(BaseModel):
    order_id: Optional[str] = None
    delivery_person_id: Optional[int] = None
    status: Optional[DeliveryRequestStatus] = None

    def matches(self, request: DeliveryRequest) -> bool:
        if self.order_id is not None and request.order_id != self.order_id:
            return False
        if self.delivery_person_id is not None and request.delivery_person_id != self.delivery_person_id:
            return False
        if self.status is not None and request.status != self.status:
            return False
        return True
