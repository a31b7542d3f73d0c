# campus_delivery/handlers/__init__.py
"""Telegram handlers"""
from .customer_handlers import CustomerHandler
from .delivery_handlers import DeliveryHandler
from .admin_handlers import AdminHandler

__all__ = [
    'CustomerHandler',
    'DeliveryHandler',
    'AdminHandler'
]
