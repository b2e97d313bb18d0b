"""
Definitions of the ordered collections managed by the reorder engine.

Each collection names its table, the column that scopes the order space
and the live-update channel/events its viewers subscribe to. Container
kinds describe the teams and checklists those order spaces belong to.
"""

from dataclasses import dataclass
from typing import Any

from mte_erp.core.models import ChecklistItemPayload, TaskListPayload, TaskPayload


@dataclass(frozen=True)
class Collection:
    """An ordered collection: items with a dense order inside a container."""

    name: str
    table: str
    container_column: str
    container_table: str
    channel_prefix: str
    payload_type: type
    created_event: str
    updated_event: str
    reorder_event: str
    deleted_event: str
    records_activity: bool = False
    # container column naming the channel; None publishes per container
    channel_column: str | None = None

    def channel(self, key: int) -> str:
        """Live-update channel for a container (or for its channel_column value)."""
        return f"{self.channel_prefix}-{key}"

    def payload_from_dict(self, data: dict[str, Any]):
        return self.payload_type.from_dict(data or {})


TASK_LISTS = Collection(
    name="task_lists",
    table="task_lists",
    container_column="team_id",
    container_table="teams",
    channel_prefix="private-team",
    payload_type=TaskListPayload,
    created_event="task-list-created",
    updated_event="task-list-updated",
    reorder_event="task-list-updated",
    deleted_event="task-list-deleted",
)

TASKS = Collection(
    name="tasks",
    table="tasks",
    container_column="task_list_id",
    container_table="task_lists",
    channel_prefix="private-taskList",
    payload_type=TaskPayload,
    created_event="task-created",
    updated_event="task-updated",
    reorder_event="task-reorder",
    deleted_event="task-reorder",
    records_activity=True,
)

CHECKLIST_ITEMS = Collection(
    name="checklist_items",
    table="checklist_items",
    container_column="check_list_id",
    container_table="task_check_lists",
    channel_prefix="private-task",
    payload_type=ChecklistItemPayload,
    created_event="task-check-list-item-created",
    updated_event="task-check-list-item-updated",
    reorder_event="task-check-list-items-reorder",
    deleted_event="task-check-list-items-reorder",
    channel_column="task_id",
)

COLLECTIONS: dict[str, Collection] = {
    c.name: c for c in (TASK_LISTS, TASKS, CHECKLIST_ITEMS)
}


@dataclass(frozen=True)
class ContainerKind:
    """A table of containers that one ordered collection hangs off."""

    name: str
    table: str
    items: Collection
    # owning collection (tasks own checklists); None for top-level containers
    parent: Collection | None = None
    parent_column: str | None = None
    channel_prefix: str | None = None
    created_event: str | None = None
    updated_event: str | None = None
    deleted_event: str | None = None

    def channel(self, parent_id: int | None) -> str | None:
        if self.channel_prefix is None or parent_id is None:
            return None
        return f"{self.channel_prefix}-{parent_id}"


TEAMS = ContainerKind(
    name="teams",
    table="teams",
    items=TASK_LISTS,
)

CHECK_LISTS = ContainerKind(
    name="check_lists",
    table="task_check_lists",
    items=CHECKLIST_ITEMS,
    parent=TASKS,
    parent_column="task_id",
    channel_prefix="private-task",
    created_event="task-check-list-created",
    updated_event="task-check-list-updated",
    deleted_event="task-check-list-deleted",
)
