"""
Reorder engine for ordered collections.

Keeps every container's live items densely ordered 1..N across create,
move, update and delete. Each mutation runs in one serializable
transaction; on Conflict the whole unit is retried with fresh reads up to
settings.reorder_max_attempts times. Fanout happens after commit.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from mte_erp.config import settings
from mte_erp.core.errors import Conflict, NotFound
from mte_erp.core.logging import get_logger
from mte_erp.core.models import Activity, ActivityAction, OrderedItem, merge_payload
from mte_erp.ordering.collections import Collection
from mte_erp.ordering.fanout import LiveUpdateFanout
from mte_erp.ordering.store import OrderSession, OrderStore

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Shift:
    """Set-based adjustment: add delta to orders in [lower, upper]."""

    lower: int
    upper: int | None
    delta: int


def clamp(order: int, size: int) -> int:
    """Clamp a 1-based target order into 1..size (size >= 1)."""
    return max(1, min(order, max(size, 1)))


def plan_within(current: int, target: int) -> Shift | None:
    """
    Sibling shift for a move inside one container.

    Moving forward, siblings in (current, target] step back by one;
    moving backward, siblings in [target, current) step forward by one.
    """
    if target == current:
        return None
    if target > current:
        return Shift(lower=current + 1, upper=target, delta=-1)
    return Shift(lower=target, upper=current - 1, delta=1)


def plan_across(current: int, target: int) -> tuple[Shift, Shift]:
    """Source compaction and destination opening for a move between containers."""
    return (
        Shift(lower=current + 1, upper=None, delta=-1),
        Shift(lower=target, upper=None, delta=1),
    )


def run_with_retry(operation: str, fn: Callable[[], T], max_attempts: int, retry_delay: float) -> T:
    """Run fn, retrying on Conflict with fresh state and a linear back-off."""
    for attempt in range(max_attempts):
        try:
            return fn()
        except Conflict:
            if attempt == max_attempts - 1:
                log.error("reorder_conflict_exhausted", operation=operation, attempts=max_attempts)
                raise
            log.warning("reorder_conflict_retry", operation=operation, attempt=attempt + 1)
            if retry_delay:
                time.sleep(retry_delay * (attempt + 1))
    raise Conflict(f"{operation} did not run")


@dataclass
class MutationResult:
    """Item touched by a mutation plus the post-commit snapshot of affected containers."""

    item: OrderedItem
    snapshots: dict[int, list[OrderedItem]] = field(default_factory=dict)
    changed: bool = True
    # live-update channel per affected container
    channels: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item": self.item.to_dict(),
            "changed": self.changed,
            "containers": [
                {"container_id": cid, "items": [i.to_dict() for i in items]}
                for cid, items in self.snapshots.items()
            ],
        }


class ReorderEngine:
    """Applies ordered-collection mutations atomically and fans out snapshots."""

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

    def _with_retry(self, operation: str, fn: Callable[[], T]) -> T:
        return run_with_retry(operation, fn, self.max_attempts, self.retry_delay)

    @staticmethod
    def _load_live(tx: OrderSession, collection: Collection, item_id: int) -> OrderedItem:
        item = tx.get(collection, item_id)
        if item is None or item.is_deleted:
            raise NotFound(f"{collection.name} item {item_id} not found", item_id=item_id)
        return item

    @staticmethod
    def _record(tx: OrderSession, collection: Collection, activity: Activity) -> None:
        if collection.records_activity:
            tx.add_activity(activity)

    @staticmethod
    def _result(
        tx: OrderSession,
        collection: Collection,
        item: OrderedItem,
        container_ids: list[int],
        changed: bool = True,
    ) -> MutationResult:
        """Snapshot the given containers and resolve their channels inside the transaction."""
        return MutationResult(
            item=item,
            snapshots={cid: tx.list_items(collection, cid) for cid in container_ids},
            changed=changed,
            channels={cid: collection.channel(tx.channel_key(collection, cid)) for cid in container_ids},
        )

    def list_items(self, collection: Collection, container_id: int) -> list[OrderedItem]:
        """Live items of a container in order."""
        with self.store.transaction() as tx:
            if not tx.container_exists(collection, container_id):
                raise NotFound(f"Container {container_id} not found", container_id=container_id)
            return tx.list_items(collection, container_id)

    def create(self, collection: Collection, container_id: int, payload, actor: int | None = None) -> MutationResult:
        """Append a new item at order N+1."""

        def attempt() -> MutationResult:
            with self.store.transaction() as tx:
                if not tx.container_exists(collection, container_id):
                    raise NotFound(f"Container {container_id} not found", container_id=container_id)
                order = tx.count(collection, container_id) + 1
                item = tx.insert(collection, container_id, order, payload, actor)
                self._record(tx, collection, Activity(
                    task_id=item.id, action=ActivityAction.CREATED, created_by=actor,
                ))
                return self._result(tx, collection, item, [container_id])

        result = self._with_retry("create", attempt)
        log.info("item_created", collection=collection.name, item_id=result.item.id,
                 container_id=container_id, order=result.item.order)
        self.fanout.push_all(collection.created_event, result.snapshots, result.channels)
        return result

    def update(
        self,
        collection: Collection,
        item_id: int,
        changes: dict[str, Any],
        actor: int | None = None,
    ) -> MutationResult:
        """Merge payload changes (rename, description, flags); order is untouched."""

        def attempt() -> MutationResult:
            with self.store.transaction() as tx:
                item = self._load_live(tx, collection, item_id)
                updated = tx.update_payload(collection, item_id, merge_payload(item.payload, changes), actor)
                if collection.records_activity:
                    changed = sorted(k for k, v in changes.items() if v is not None and k != "completed")
                    if changed:
                        tx.add_activity(Activity(
                            task_id=item_id, action=ActivityAction.UPDATED, created_by=actor,
                            description=", ".join(changed),
                        ))
                    if changes.get("completed") is not None:
                        tx.add_activity(Activity(
                            task_id=item_id, action=ActivityAction.COMPLETED, created_by=actor,
                            description="Completed" if changes["completed"] else "Uncompleted",
                        ))
                return self._result(tx, collection, updated, [updated.container_id])

        result = self._with_retry("update", attempt)
        log.info("item_updated", collection=collection.name, item_id=item_id, fields=sorted(changes))
        self.fanout.push_all(collection.updated_event, result.snapshots, result.channels)
        return result

    def move(
        self,
        collection: Collection,
        item_id: int,
        target_order: int,
        target_container_id: int | None = None,
        actor: int | None = None,
    ) -> MutationResult:
        """
        Move an item to target_order, optionally into another container.

        Args:
            collection: Collection the item belongs to
            item_id: Item to move
            target_order: 1-based destination index, clamped to the container size
                (size + 1 when entering another container)
            target_container_id: Destination container; None keeps the current one
            actor: Acting user id

        Returns:
            MutationResult with snapshots of every affected container.

        Raises:
            NotFound: Item or destination container missing.
            Conflict: Concurrent modification persisted after all retries.
        """

        def attempt() -> MutationResult:
            with self.store.transaction() as tx:
                item = self._load_live(tx, collection, item_id)
                destination = item.container_id if target_container_id is None else target_container_id

                if destination == item.container_id:
                    target = clamp(target_order, tx.count(collection, destination))
                    shift = plan_within(item.order, target)
                    if shift is None:
                        return MutationResult(item=item, changed=False)
                    tx.reposition(collection, item, shift.lower, shift.upper, shift.delta, target, actor)
                    affected = [destination]
                else:
                    if not tx.container_exists(collection, destination):
                        raise NotFound(f"Container {destination} not found", container_id=destination)
                    target = clamp(target_order, tx.count(collection, destination) + 1)
                    source_shift, destination_shift = plan_across(item.order, target)
                    tx.shift(collection, item.container_id, source_shift.lower, source_shift.upper, source_shift.delta)
                    tx.shift(collection, destination, destination_shift.lower, destination_shift.upper,
                             destination_shift.delta)
                    tx.place(collection, item.id, destination, target, actor)
                    self._record(tx, collection, Activity(
                        task_id=item.id, action=ActivityAction.MOVED, created_by=actor,
                        details={"from_container_id": item.container_id, "to_container_id": destination},
                    ))
                    affected = [item.container_id, destination]

                return self._result(tx, collection, item.with_position(destination, target), affected)

        result = self._with_retry("move", attempt)
        if not result.changed:
            log.info("item_move_noop", collection=collection.name, item_id=item_id, order=result.item.order)
            return result

        log.info(
            "item_moved",
            collection=collection.name,
            item_id=item_id,
            container_id=result.item.container_id,
            order=result.item.order,
        )
        self.fanout.push_all(collection.reorder_event, result.snapshots, result.channels)
        return result

    def delete(self, collection: Collection, item_id: int, actor: int | None = None) -> MutationResult:
        """Soft-delete an item and close the gap it leaves."""

        def attempt() -> MutationResult:
            with self.store.transaction() as tx:
                item = self._load_live(tx, collection, item_id)
                tx.shift(collection, item.container_id, item.order + 1, None, -1)
                tx.soft_delete(collection, item.id, actor)
                self._record(tx, collection, Activity(
                    task_id=item.id, action=ActivityAction.DELETED, created_by=actor,
                ))
                return self._result(tx, collection, item, [item.container_id])

        result = self._with_retry("delete", attempt)
        log.info("item_deleted", collection=collection.name, item_id=item_id,
                 container_id=result.item.container_id)
        self.fanout.push_all(collection.deleted_event, result.snapshots, result.channels)
        return result

    def resync(self, collection: Collection, item_id: int) -> MutationResult:
        """Re-publish an item's container without writing anything."""
        with self.store.transaction() as tx:
            item = self._load_live(tx, collection, item_id)
            result = self._result(tx, collection, item, [item.container_id], changed=False)
        self.fanout.push_all(collection.updated_event, result.snapshots, result.channels)
        return result
