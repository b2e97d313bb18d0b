"""Ordered collections: dense per-container ordering with live-update fanout."""

from .attachments import TaskAttachments
from .collections import (
    CHECK_LISTS,
    CHECKLIST_ITEMS,
    COLLECTIONS,
    TASK_LISTS,
    TASKS,
    TEAMS,
    Collection,
    ContainerKind,
)
from .containers import ContainerManager
from .engine import MutationResult, ReorderEngine
from .fanout import LiveUpdateFanout
from .store import OrderSession, OrderStore, PostgresOrderStore

__all__ = [
    "Collection",
    "COLLECTIONS",
    "TASK_LISTS",
    "TASKS",
    "CHECKLIST_ITEMS",
    "ContainerKind",
    "TEAMS",
    "CHECK_LISTS",
    "ContainerManager",
    "TaskAttachments",
    "ReorderEngine",
    "MutationResult",
    "LiveUpdateFanout",
    "OrderSession",
    "OrderStore",
    "PostgresOrderStore",
]
