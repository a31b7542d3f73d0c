# campus_delivery/database/repositories.py
"""Storage contracts the services depend on.

``update`` takes an ``expected`` mapping of column values that must still hold
for the write to land; a mismatch raises ``Conflict``, a missing record
``NotFound``. ``subscribe`` yields the full matching snapshot first and again
after every change; closing the generator releases the subscription.
"""
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional
from ..models.delivery import DeliveryPerson, DeliveryRequest, DeliveryRequestFilter
from ..models.order import Order, OrderDraft, OrderFilter
from ..models.payment import PaymentFormResponse
from ..models.settings import SystemSettings


class OrderRepository(ABC):

    @abstractmethod
    async def get(self, order_id: str) -> Order:
        """Return the order or raise NotFound"""

    @abstractmethod
    async def create(self, draft: OrderDraft) -> str:
        """Insert an order and return its generated id"""

    @abstractmethod
    async def update(self, order_id: str, fields: Dict[str, Any],
                     expected: Optional[Dict[str, Any]] = None) -> None:
        """Single-document conditional update"""

    @abstractmethod
    async def delete(self, order_id: str, expected: Optional[Dict[str, Any]] = None) -> None:
        pass

    @abstractmethod
    async def query(self, order_filter: OrderFilter) -> List[Order]:
        pass

    @abstractmethod
    def subscribe(self, order_filter: OrderFilter) -> AsyncIterator[List[Order]]:
        pass


class DeliveryPersonRepository(ABC):

    @abstractmethod
    async def get(self, user_id: int) -> DeliveryPerson:
        pass

    @abstractmethod
    async def upsert(self, user_id: int, fields: Dict[str, Any]) -> DeliveryPerson:
        pass

    @abstractmethod
    async def query(self, available_only: bool = True) -> List[DeliveryPerson]:
        pass

    @abstractmethod
    def subscribe(self, available_only: bool = True) -> AsyncIterator[List[DeliveryPerson]]:
        pass


class DeliveryRequestRepository(ABC):

    @abstractmethod
    async def create(self, request: Dict[str, Any]) -> DeliveryRequest:
        pass

    @abstractmethod
    async def get(self, request_id: str) -> DeliveryRequest:
        pass

    @abstractmethod
    async def update(self, request_id: str, fields: Dict[str, Any],
                     expected: Optional[Dict[str, Any]] = None) -> None:
        pass

    @abstractmethod
    async def query(self, request_filter: DeliveryRequestFilter) -> List[DeliveryRequest]:
        pass

    @abstractmethod
    def subscribe(self, request_filter: DeliveryRequestFilter) -> AsyncIterator[List[DeliveryRequest]]:
        pass


class PaymentFormRepository(ABC):

    @abstractmethod
    async def create(self, response: Dict[str, Any]) -> PaymentFormResponse:
        pass

    @abstractmethod
    async def query(self, user_id: int) -> List[PaymentFormResponse]:
        """Responses of one courier, newest first"""

    @abstractmethod
    async def mark_seen(self, response_id: str) -> None:
        pass


class SettingsRepository(ABC):

    @abstractmethod
    async def get(self) -> SystemSettings:
        """Current settings, defaults for anything not stored"""

    @abstractmethod
    async def save(self, settings: SystemSettings) -> None:
        pass
