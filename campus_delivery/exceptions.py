# campus_delivery/exceptions.py
from typing import Optional


class DeliveryError(Exception):
    """Base class for errors shown to the user as a notification"""

    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class GuardViolation(DeliveryError):
    """A transition or action was refused before anything was written"""

    default_message = "This action is not allowed right now"


class InvalidInput(GuardViolation):
    """User supplied data failed validation"""

    default_message = "Invalid input"


class NotFound(DeliveryError):
    default_message = "The record no longer exists"


class Conflict(DeliveryError):
    """A conditional update found the record in a different state"""

    default_message = "The order was changed by someone else, please refresh and try again"


class RepositoryUnavailable(DeliveryError):
    default_message = "The database is unavailable, please try again later"
