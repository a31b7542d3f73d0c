# campus_delivery/models/settings.py
from pydantic import BaseModel, Field

DEFAULT_CUSTOMER_CANCELLATION_TIME = 10
DEFAULT_DELIVERY_PERSON_CANCELLATION_TIME = 6


class SystemSettings(BaseModel):
    """Cancellation windows in minutes, owned by the admin role"""
    customer_cancellation_time: int = Field(DEFAULT_CUSTOMER_CANCELLATION_TIME, ge=0)
    delivery_person_cancellation_time: int = Field(DEFAULT_DELIVERY_PERSON_CANCELLATION_TIME, ge=0)
