"""Recipient handlers."""

from .base import BaseRecipientHandler, DocumentColumn
from .registry import register_handler, get_handler, require_handler

# Import handlers to trigger registration via @register_handler decorator
from .supplier import SupplierHandler
from .customer import CustomerHandler

__all__ = [
    "BaseRecipientHandler",
    "DocumentColumn",
    "register_handler",
    "get_handler",
    "require_handler",
    "SupplierHandler",
    "CustomerHandler",
]
