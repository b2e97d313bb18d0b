"""
Containers that ordered collections hang off: teams and task checklists.

Creating, renaming and deleting a container runs in the same serializable
transaction as item mutations, with the same Conflict retry. Deleting a
checklist soft-deletes its live items with it. Checklist events go to the
owning task's channel after commit.
"""

from mte_erp.config import settings
from mte_erp.core.errors import NotFound, ValidationFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import Container, OrderedItem
from mte_erp.ordering.collections import ContainerKind
from mte_erp.ordering.engine import run_with_retry
from mte_erp.ordering.fanout import LiveUpdateFanout
from mte_erp.ordering.store import OrderSession, OrderStore

log = get_logger(__name__)


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationFailed("Name is required")
    return cleaned


class ContainerManager:
    """Lifecycle of teams and checklists."""

    def __init__(
        self,
        store: OrderStore,
        fanout: LiveUpdateFanout,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
    ):
        self.store = store
        self.fanout = fanout
        self.max_attempts = max_attempts or settings.reorder_max_attempts
        self.retry_delay = settings.reorder_retry_delay if retry_delay is None else retry_delay

    @staticmethod
    def _load_live(tx: OrderSession, kind: ContainerKind, container_id: int) -> Container:
        container = tx.get_container(kind, container_id)
        if container is None or container.is_deleted:
            raise NotFound(f"{kind.name} {container_id} not found", container_id=container_id)
        return container

    def _announce(self, kind: ContainerKind, event: str | None, container: Container, payload: dict) -> None:
        channel = kind.channel(container.parent_id)
        if event and channel:
            self.fanout.publish(channel, event, payload)

    def get(self, kind: ContainerKind, container_id: int) -> Container:
        with self.store.transaction() as tx:
            return self._load_live(tx, kind, container_id)

    def list_page(
        self,
        kind: ContainerKind,
        parent_id: int | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> tuple[int, list[Container]]:
        """
        Live containers of a kind.

        Args:
            kind: TEAMS or CHECK_LISTS
            parent_id: Owning task, for checklists
            search: Case-insensitive name fragment or exact id
            page: 1-based page, used with limit
            limit: Page size; None returns everything

        Returns:
            (total matching, page of containers)
        """
        offset = (page - 1) * limit if limit else 0
        with self.store.transaction() as tx:
            return tx.list_containers(kind, parent_id=parent_id, search=search, limit=limit, offset=offset)

    def list_with_items(self, kind: ContainerKind, parent_id: int) -> list[tuple[Container, list[OrderedItem]]]:
        """Checklists of a task, each with its live items in order."""
        with self.store.transaction() as tx:
            _, containers = tx.list_containers(kind, parent_id=parent_id)
            return [(c, tx.list_items(kind.items, c.id)) for c in containers]

    def create(
        self,
        kind: ContainerKind,
        name: str,
        parent_id: int | None = None,
        actor: int | None = None,
    ) -> Container:
        """
        Create an empty container.

        Raises:
            ValidationFailed: Blank name, or a checklist without a task.
            NotFound: The owning task is missing or deleted.
        """
        name = _clean_name(name)
        if kind.parent is not None and parent_id is None:
            raise ValidationFailed(f"{kind.parent_column} is required")

        def attempt() -> Container:
            with self.store.transaction() as tx:
                if kind.parent is not None:
                    parent = tx.get(kind.parent, parent_id)
                    if parent is None or parent.is_deleted:
                        raise NotFound(f"{kind.parent.name} item {parent_id} not found", item_id=parent_id)
                return tx.insert_container(kind, name, parent_id if kind.parent else None, actor)

        container = run_with_retry(f"create_{kind.name}", attempt, self.max_attempts, self.retry_delay)
        log.info("container_created", kind=kind.name, container_id=container.id, parent_id=container.parent_id)
        self._announce(kind, kind.created_event, container, container.to_dict())
        return container

    def rename(self, kind: ContainerKind, container_id: int, name: str, actor: int | None = None) -> Container:
        name = _clean_name(name)

        def attempt() -> Container:
            with self.store.transaction() as tx:
                self._load_live(tx, kind, container_id)
                return tx.rename_container(kind, container_id, name, actor)

        container = run_with_retry(f"rename_{kind.name}", attempt, self.max_attempts, self.retry_delay)
        log.info("container_renamed", kind=kind.name, container_id=container_id)
        self._announce(kind, kind.updated_event, container, container.to_dict())
        return container

    def delete(self, kind: ContainerKind, container_id: int, actor: int | None = None) -> Container:
        """Soft-delete a container together with its live items."""

        def attempt() -> tuple[Container, int]:
            with self.store.transaction() as tx:
                container = self._load_live(tx, kind, container_id)
                removed = tx.soft_delete_container(kind, container_id, actor)
                return container, removed

        container, removed = run_with_retry(f"delete_{kind.name}", attempt, self.max_attempts, self.retry_delay)
        log.info("container_deleted", kind=kind.name, container_id=container_id, items_deleted=removed)
        self._announce(kind, kind.deleted_event, container, {"id": container.id, "parent_id": container.parent_id})
        return container
