"""Core modules: logging, errors, models, database, workflow."""

from .logging import configure_logging, get_logger
from .errors import (
    ERPError,
    NotFound,
    ValidationFailed,
    Conflict,
    DispatchFailed,
    StorageUnavailable,
)
from .models import (
    Channel,
    RecipientKind,
    OrderedItem,
    CommunicationRecord,
    ResendHistoryEntry,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "ERPError",
    "NotFound",
    "ValidationFailed",
    "Conflict",
    "DispatchFailed",
    "StorageUnavailable",
    "Channel",
    "RecipientKind",
    "OrderedItem",
    "CommunicationRecord",
    "ResendHistoryEntry",
]
