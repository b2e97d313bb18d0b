"""
Ordered item store.

OrderStore hands out transactional sessions; every write an OrderSession
offers is a single set-based statement so that no intermediate state with
duplicate orders is visible outside the transaction.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import ContextManager, Generator

import psycopg
from psycopg.types.json import Jsonb

from mte_erp.core.database import Database
from mte_erp.core.logging import get_logger
from mte_erp.core.models import (
    DELETED_ORDER,
    Activity,
    ActivityAction,
    Attachment,
    Container,
    OrderedItem,
)
from mte_erp.ordering.collections import TASKS, Collection, ContainerKind

log = get_logger(__name__)


class OrderSession(ABC):
    """Operations available inside one atomic transaction."""

    @abstractmethod
    def container_exists(self, collection: Collection, container_id: int) -> bool:
        pass

    @abstractmethod
    def get(self, collection: Collection, item_id: int) -> OrderedItem | None:
        """Fetch an item by id, soft-deleted items included."""
        pass

    @abstractmethod
    def count(self, collection: Collection, container_id: int) -> int:
        """Number of live items in a container."""
        pass

    @abstractmethod
    def list_items(self, collection: Collection, container_id: int) -> list[OrderedItem]:
        """Live items of a container in ascending order."""
        pass

    @abstractmethod
    def insert(
        self,
        collection: Collection,
        container_id: int,
        order: int,
        payload,
        actor: int | None,
    ) -> OrderedItem:
        pass

    @abstractmethod
    def update_payload(self, collection: Collection, item_id: int, payload, actor: int | None) -> OrderedItem:
        pass

    @abstractmethod
    def shift(
        self,
        collection: Collection,
        container_id: int,
        lower: int,
        upper: int | None,
        delta: int,
    ) -> int:
        """
        Add delta to the order of every live item with lower <= order <= upper.

        Args:
            upper: Inclusive upper bound, None for unbounded.

        Returns:
            Number of items shifted.
        """
        pass

    @abstractmethod
    def reposition(
        self,
        collection: Collection,
        item: OrderedItem,
        lower: int,
        upper: int,
        delta: int,
        target: int,
        actor: int | None,
    ) -> None:
        """Shift siblings in [lower, upper] by delta and set item to target, in one statement."""
        pass

    @abstractmethod
    def place(self, collection: Collection, item_id: int, container_id: int, order: int, actor: int | None) -> None:
        """Re-home an item to a container and order."""
        pass

    @abstractmethod
    def soft_delete(self, collection: Collection, item_id: int, actor: int | None) -> None:
        """Mark deleted and park the order at the DELETED_ORDER sentinel."""
        pass

    @abstractmethod
    def add_activity(self, activity: Activity) -> None:
        pass

    @abstractmethod
    def channel_key(self, collection: Collection, container_id: int) -> int:
        """Id the container's live-update channel is named after."""
        pass

    # Containers

    @abstractmethod
    def get_container(self, kind: ContainerKind, container_id: int) -> Container | None:
        """Fetch a container by id, soft-deleted ones included."""
        pass

    @abstractmethod
    def insert_container(
        self,
        kind: ContainerKind,
        name: str,
        parent_id: int | None,
        actor: int | None,
    ) -> Container:
        pass

    @abstractmethod
    def rename_container(self, kind: ContainerKind, container_id: int, name: str, actor: int | None) -> Container:
        pass

    @abstractmethod
    def soft_delete_container(self, kind: ContainerKind, container_id: int, actor: int | None) -> int:
        """
        Soft-delete a container and park its live items at DELETED_ORDER.

        Returns:
            Number of items deleted with it.
        """
        pass

    @abstractmethod
    def list_containers(
        self,
        kind: ContainerKind,
        parent_id: int | None = None,
        search: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[int, list[Container]]:
        """Live containers (teams by name, checklists by creation) and the total matching."""
        pass

    # Attachments

    @abstractmethod
    def insert_attachment(
        self,
        filename: str,
        object_name: str,
        url: str,
        content_type: str,
        size: int,
        actor: int | None,
    ) -> Attachment:
        pass

    @abstractmethod
    def link_attachments(self, task_id: int, attachment_ids: list[int]) -> list[Attachment]:
        """Link the given unlinked attachments to a task; returns those linked."""
        pass


class OrderStore(ABC):
    """Factory for transactional sessions plus non-transactional reads."""

    @abstractmethod
    def transaction(self) -> ContextManager[OrderSession]:
        """Serializable transaction; raises Conflict on concurrent modification."""
        pass

    @abstractmethod
    def list_activities(self, task_id: int, limit: int, offset: int) -> tuple[int, list[Activity]]:
        pass

    @abstractmethod
    def tasks_assigned_to(self, user_id: int) -> list[OrderedItem]:
        pass

    @abstractmethod
    def task_attachments(self, task_id: int) -> list[Attachment]:
        pass


def _row_to_item(collection: Collection, row: dict) -> OrderedItem:
    return OrderedItem(
        id=row["id"],
        container_id=row[collection.container_column],
        order=row["sort_order"],
        payload=collection.payload_from_dict(row["payload"]),
        deleted_at=row["deleted_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        updated_by=row["updated_by"],
    )


def _row_to_activity(row: dict) -> Activity:
    return Activity(
        id=row["id"],
        task_id=row["task_id"],
        action=ActivityAction(row["action"]),
        created_by=row["created_by"],
        description=row["description"] or "",
        details=row["details"] or {},
        created_at=row["created_at"],
    )


def _row_to_container(row: dict) -> Container:
    return Container(
        id=row["id"],
        name=row["name"],
        parent_id=row["parent_id"],
        created_at=row["created_at"],
        created_by=row["created_by"],
        updated_at=row["updated_at"],
        updated_by=row["updated_by"],
        deleted_at=row["deleted_at"],
    )


ATTACHMENT_COLUMNS = "id, filename, object_name, url, content_type, size, task_id, created_at, created_by"


def _row_to_attachment(row: dict) -> Attachment:
    return Attachment(
        id=row["id"],
        filename=row["filename"],
        object_name=row["object_name"],
        url=row["url"],
        content_type=row["content_type"] or "application/octet-stream",
        size=row["size"] or 0,
        task_id=row["task_id"],
        created_at=row["created_at"],
        created_by=row["created_by"],
    )


class PostgresOrderSession(OrderSession):
    """OrderSession bound to an open psycopg transaction."""

    def __init__(self, conn: psycopg.Connection):
        self.conn = conn

    def _columns(self, collection: Collection) -> str:
        return (
            f"id, {collection.container_column}, sort_order, payload, "
            "deleted_at, created_at, updated_at, updated_by"
        )

    def container_exists(self, collection: Collection, container_id: int) -> bool:
        row = self.conn.execute(
            f"SELECT 1 FROM {collection.container_table} WHERE id = %s AND deleted_at IS NULL",
            (container_id,),
        ).fetchone()
        return row is not None

    def get(self, collection: Collection, item_id: int) -> OrderedItem | None:
        row = self.conn.execute(
            f"SELECT {self._columns(collection)} FROM {collection.table} WHERE id = %s",
            (item_id,),
        ).fetchone()
        return _row_to_item(collection, row) if row else None

    def count(self, collection: Collection, container_id: int) -> int:
        row = self.conn.execute(
            f"""
            SELECT COUNT(*) AS count FROM {collection.table}
            WHERE {collection.container_column} = %s AND deleted_at IS NULL
            """,
            (container_id,),
        ).fetchone()
        return row["count"] if row else 0

    def list_items(self, collection: Collection, container_id: int) -> list[OrderedItem]:
        rows = self.conn.execute(
            f"""
            SELECT {self._columns(collection)} FROM {collection.table}
            WHERE {collection.container_column} = %s AND deleted_at IS NULL
            ORDER BY sort_order ASC
            """,
            (container_id,),
        ).fetchall()
        return [_row_to_item(collection, row) for row in rows]

    def insert(self, collection, container_id, order, payload, actor):
        row = self.conn.execute(
            f"""
            INSERT INTO {collection.table} (
                {collection.container_column}, sort_order, payload, created_by, updated_by
            ) VALUES (%s, %s, %s, %s, %s)
            RETURNING {self._columns(collection)}
            """,
            (container_id, order, Jsonb(payload.to_dict()), actor, actor),
        ).fetchone()
        return _row_to_item(collection, row)

    def update_payload(self, collection, item_id, payload, actor):
        row = self.conn.execute(
            f"""
            UPDATE {collection.table}
            SET payload = %s, updated_at = NOW(), updated_by = %s
            WHERE id = %s
            RETURNING {self._columns(collection)}
            """,
            (Jsonb(payload.to_dict()), actor, item_id),
        ).fetchone()
        return _row_to_item(collection, row)

    def shift(self, collection, container_id, lower, upper, delta):
        sql = f"""
        UPDATE {collection.table}
        SET sort_order = sort_order + %(delta)s
        WHERE {collection.container_column} = %(container_id)s
          AND deleted_at IS NULL
          AND sort_order >= %(lower)s
        """
        params = {"delta": delta, "container_id": container_id, "lower": lower}
        if upper is not None:
            sql += " AND sort_order <= %(upper)s"
            params["upper"] = upper
        cursor = self.conn.execute(sql, params)
        return cursor.rowcount

    def reposition(self, collection, item, lower, upper, delta, target, actor):
        self.conn.execute(
            f"""
            UPDATE {collection.table}
            SET sort_order = CASE
                    WHEN id = %(item_id)s THEN %(target)s
                    ELSE sort_order + %(delta)s
                END,
                updated_at = CASE WHEN id = %(item_id)s THEN NOW() ELSE updated_at END,
                updated_by = CASE WHEN id = %(item_id)s THEN %(actor)s ELSE updated_by END
            WHERE {collection.container_column} = %(container_id)s
              AND deleted_at IS NULL
              AND (id = %(item_id)s OR sort_order BETWEEN %(lower)s AND %(upper)s)
            """,
            {
                "item_id": item.id,
                "target": target,
                "delta": delta,
                "actor": actor,
                "container_id": item.container_id,
                "lower": lower,
                "upper": upper,
            },
        )

    def place(self, collection, item_id, container_id, order, actor):
        self.conn.execute(
            f"""
            UPDATE {collection.table}
            SET {collection.container_column} = %s, sort_order = %s,
                updated_at = NOW(), updated_by = %s
            WHERE id = %s
            """,
            (container_id, order, actor, item_id),
        )

    def soft_delete(self, collection, item_id, actor):
        self.conn.execute(
            f"""
            UPDATE {collection.table}
            SET sort_order = %s, deleted_at = NOW(), updated_at = NOW(), updated_by = %s
            WHERE id = %s
            """,
            (DELETED_ORDER, actor, item_id),
        )

    def add_activity(self, activity: Activity) -> None:
        self.conn.execute(
            """
            INSERT INTO task_activities (task_id, action, description, details, created_by)
            VALUES (%s, %s, %s, %s, %s)
            """,
            (
                activity.task_id,
                activity.action.value,
                activity.description,
                Jsonb(activity.details),
                activity.created_by,
            ),
        )

    def channel_key(self, collection, container_id):
        if collection.channel_column is None:
            return container_id
        row = self.conn.execute(
            f"SELECT {collection.channel_column} AS key FROM {collection.container_table} WHERE id = %s",
            (container_id,),
        ).fetchone()
        return row["key"] if row else container_id

    def _container_columns(self, kind: ContainerKind) -> str:
        parent = kind.parent_column or "NULL::integer"
        return (
            f"id, name, {parent} AS parent_id, created_at, created_by, "
            "updated_at, updated_by, deleted_at"
        )

    def get_container(self, kind, container_id):
        row = self.conn.execute(
            f"SELECT {self._container_columns(kind)} FROM {kind.table} WHERE id = %s",
            (container_id,),
        ).fetchone()
        return _row_to_container(row) if row else None

    def insert_container(self, kind, name, parent_id, actor):
        if kind.parent_column:
            sql = f"""
            INSERT INTO {kind.table} (name, {kind.parent_column}, created_by, updated_by)
            VALUES (%s, %s, %s, %s)
            RETURNING {self._container_columns(kind)}
            """
            params = (name, parent_id, actor, actor)
        else:
            sql = f"""
            INSERT INTO {kind.table} (name, created_by, updated_by)
            VALUES (%s, %s, %s)
            RETURNING {self._container_columns(kind)}
            """
            params = (name, actor, actor)
        return _row_to_container(self.conn.execute(sql, params).fetchone())

    def rename_container(self, kind, container_id, name, actor):
        row = self.conn.execute(
            f"""
            UPDATE {kind.table}
            SET name = %s, updated_at = NOW(), updated_by = %s
            WHERE id = %s
            RETURNING {self._container_columns(kind)}
            """,
            (name, actor, container_id),
        ).fetchone()
        return _row_to_container(row)

    def soft_delete_container(self, kind, container_id, actor):
        items = kind.items
        cursor = self.conn.execute(
            f"""
            UPDATE {items.table}
            SET sort_order = %s, deleted_at = NOW(), updated_at = NOW(), updated_by = %s
            WHERE {items.container_column} = %s AND deleted_at IS NULL
            """,
            (DELETED_ORDER, actor, container_id),
        )
        self.conn.execute(
            f"""
            UPDATE {kind.table}
            SET deleted_at = NOW(), updated_at = NOW(), updated_by = %s
            WHERE id = %s
            """,
            (actor, container_id),
        )
        return cursor.rowcount

    def list_containers(self, kind, parent_id=None, search=None, limit=None, offset=0):
        where = ["deleted_at IS NULL"]
        params: list = []
        if kind.parent_column and parent_id is not None:
            where.append(f"{kind.parent_column} = %s")
            params.append(parent_id)
        if search:
            where.append("(name ILIKE %s OR id::text = %s)")
            params.extend([f"%{search}%", search])
        clause = " AND ".join(where)
        order_by = "id ASC" if kind.parent_column else "name ASC, id ASC"

        total = self.conn.execute(
            f"SELECT COUNT(*) AS count FROM {kind.table} WHERE {clause}",
            params,
        ).fetchone()
        # LIMIT NULL is no limit
        rows = self.conn.execute(
            f"""
            SELECT {self._container_columns(kind)} FROM {kind.table}
            WHERE {clause}
            ORDER BY {order_by}
            LIMIT %s OFFSET %s
            """,
            [*params, limit, offset],
        ).fetchall()
        return (total["count"] if total else 0), [_row_to_container(row) for row in rows]

    def insert_attachment(self, filename, object_name, url, content_type, size, actor):
        row = self.conn.execute(
            f"""
            INSERT INTO attachments (filename, object_name, url, content_type, size, created_by)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {ATTACHMENT_COLUMNS}
            """,
            (filename, object_name, url, content_type, size, actor),
        ).fetchone()
        return _row_to_attachment(row)

    def link_attachments(self, task_id, attachment_ids):
        if not attachment_ids:
            return []
        rows = self.conn.execute(
            f"""
            UPDATE attachments
            SET task_id = %s
            WHERE id = ANY(%s) AND task_id IS NULL AND record_id IS NULL
            RETURNING {ATTACHMENT_COLUMNS}
            """,
            (task_id, list(attachment_ids)),
        ).fetchall()
        return sorted((_row_to_attachment(row) for row in rows), key=lambda a: a.id)


class PostgresOrderStore(OrderStore):
    """OrderStore backed by PostgreSQL."""

    def __init__(self, db: Database | None = None):
        self.db = db or Database()

    @contextmanager
    def transaction(self) -> Generator[OrderSession, None, None]:
        with self.db.transaction(serializable=True) as conn:
            yield PostgresOrderSession(conn)

    def list_activities(self, task_id: int, limit: int, offset: int) -> tuple[int, list[Activity]]:
        with self.db.get_connection() as conn:
            total = conn.execute(
                "SELECT COUNT(*) AS count FROM task_activities WHERE task_id = %s",
                (task_id,),
            ).fetchone()
            rows = conn.execute(
                """
                SELECT id, task_id, action, description, details, created_by, created_at
                FROM task_activities
                WHERE task_id = %s
                ORDER BY created_at DESC, id DESC
                LIMIT %s OFFSET %s
                """,
                (task_id, limit, offset),
            ).fetchall()
            return (total["count"] if total else 0), [_row_to_activity(row) for row in rows]

    def tasks_assigned_to(self, user_id: int) -> list[OrderedItem]:
        sql = """
        SELECT t.id, t.task_list_id, t.sort_order, t.payload,
               t.deleted_at, t.created_at, t.updated_at, t.updated_by
        FROM tasks t
        JOIN task_lists tl ON tl.id = t.task_list_id
        WHERE t.deleted_at IS NULL
          AND tl.deleted_at IS NULL
          AND COALESCE((t.payload->>'completed')::boolean, FALSE) = FALSE
          AND t.payload->'assignee_ids' @> %s::jsonb
        ORDER BY t.payload->>'end_date' ASC NULLS LAST
        """
        with self.db.get_connection() as conn:
            rows = conn.execute(sql, (f"[{int(user_id)}]",)).fetchall()
            log.info("fetched_assigned_tasks", user_id=user_id, count=len(rows))
            return [_row_to_item(TASKS, row) for row in rows]

    def task_attachments(self, task_id: int) -> list[Attachment]:
        with self.db.get_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {ATTACHMENT_COLUMNS} FROM attachments
                WHERE task_id = %s
                ORDER BY created_at ASC, id ASC
                """,
                (task_id,),
            ).fetchall()
            return [_row_to_attachment(row) for row in rows]
