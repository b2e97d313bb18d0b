"""
Handler registry for resolving a recipient kind to its handler.
"""

from typing import Type

from mte_erp.core.errors import ValidationFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import RecipientKind
from mte_erp.handlers.base import BaseRecipientHandler

log = get_logger(__name__)

# Global handler registry
_handlers: list[BaseRecipientHandler] = []


def register_handler(handler_class: Type[BaseRecipientHandler]) -> Type[BaseRecipientHandler]:
    """
    Decorator to register a handler class.

    Usage:
        @register_handler
        class SupplierHandler(BaseRecipientHandler):
            ...
    """
    _handlers.append(handler_class())
    log.info("handler_registered", handler=handler_class.__name__)
    return handler_class


def get_handler(kind: RecipientKind) -> BaseRecipientHandler | None:
    """
    Get the handler for a recipient kind.

    Args:
        kind: Recipient kind

    Returns:
        Handler that serves this kind, or None
    """
    for handler in _handlers:
        if handler.can_handle(kind):
            return handler
    return None


def require_handler(kind: RecipientKind) -> BaseRecipientHandler:
    """Like get_handler, but raise ValidationFailed when nothing is registered."""
    handler = get_handler(kind)
    if handler is None:
        raise ValidationFailed(f"No handler for recipient kind {kind.value}", kind=kind.value)
    return handler


def get_all_handlers() -> list[BaseRecipientHandler]:
    """Get all registered handlers."""
    return _handlers.copy()


def clear_handlers() -> None:
    """Clear all registered handlers (for testing)."""
    _handlers.clear()
