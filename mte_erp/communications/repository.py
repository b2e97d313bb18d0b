"""
Persistence for recipients, line items and communication records.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal

from mte_erp.core.database import Database
from mte_erp.core.errors import NotFound, ValidationFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import (
    CommunicationRecord,
    LineItem,
    Recipient,
    RecipientKind,
    RenderedFile,
    Representative,
    ResendHistoryEntry,
)
from mte_erp.handlers import BaseRecipientHandler, require_handler
from mte_erp.core.workflow import unique

log = get_logger(__name__)


class CommunicationRepository(ABC):
    """Storage operations used by the communication service."""

    @abstractmethod
    def get_recipient(self, handler: BaseRecipientHandler, recipient_id: int) -> Recipient:
        """Raises NotFound for a missing or deleted recipient."""
        pass

    @abstractmethod
    def eligible_items(
        self,
        handler: BaseRecipientHandler,
        recipient_id: int,
        site_id: int | None = None,
        pr_number_and_name: str | None = None,
    ) -> list[LineItem]:
        """Open line items of a recipient not yet sent through this variant."""
        pass

    @abstractmethod
    def items_by_ids(self, handler: BaseRecipientHandler, item_ids: list[int]) -> list[LineItem]:
        """Line items in the given order, regardless of eligibility."""
        pass

    @abstractmethod
    def ready_recipients(self, handler: BaseRecipientHandler) -> list[dict]:
        """Recipients with at least one eligible item: [{id, name, count}]."""
        pass

    @abstractmethod
    def sites(self, customer_id: int) -> list[dict]:
        pass

    @abstractmethod
    def pr_numbers(self, customer_id: int, site_id: int | None = None) -> list[str]:
        pass

    @abstractmethod
    def user_emails(self, user_ids: list[int]) -> list[str]:
        pass

    @abstractmethod
    def create_record(
        self,
        handler: BaseRecipientHandler,
        recipient_id: int,
        item_ids: list[int],
        actor: int | None,
        site_id: int | None = None,
        pr_number_and_name: str | None = None,
        at: datetime | None = None,
        documents: list[RenderedFile] | None = None,
    ) -> CommunicationRecord:
        """
        Create a record with both channel flags false and stamp its items as sent.

        The uploaded documents are registered as the record's attachments in
        the same transaction.

        Raises:
            ValidationFailed: Some items are no longer eligible.
            Conflict: A concurrent Send touched the same items.
        """
        pass

    @abstractmethod
    def record_outcome(self, record_id: int, email_sent: bool, whatsapp_sent: bool) -> CommunicationRecord:
        pass

    @abstractmethod
    def record_resend(
        self,
        record_id: int,
        email_sent: bool,
        whatsapp_sent: bool,
        actor: int | None,
        at: datetime | None = None,
        documents: list[RenderedFile] | None = None,
    ) -> CommunicationRecord:
        """Set the flags, last_resend_at, append a history entry and register documents atomically."""
        pass

    @abstractmethod
    def get_record(self, record_id: int) -> CommunicationRecord:
        """Raises NotFound."""
        pass

    @abstractmethod
    def list_records(
        self,
        kind: RecipientKind,
        page: int = 1,
        limit: int = 10,
        recipient_id: int | None = None,
    ) -> tuple[int, list[CommunicationRecord]]:
        """Newest first."""
        pass


def _number(value) -> float | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return value


def _row_to_item(row: dict) -> LineItem:
    representative = None
    if row.get("rep_id") is not None:
        representative = Representative(
            id=row["rep_id"],
            name=row["rep_name"] or "",
            email=row["rep_email"],
            mobile=row["rep_mobile"],
            whatsapp=row["rep_whatsapp"],
        )
    return LineItem(
        id=row["id"],
        recipient_id=row["recipient_id"],
        description=row["sales_description"] or "",
        unit=row["sales_unit"] or "",
        quantity=_number(row["quantity"]),
        size=row["size"] or "",
        price=_number(row["price"]),
        site_id=row["site_id"],
        site_name=row["site_name"] or "",
        pr_number_and_name=row["pr_number_and_name"] or "",
        remark=row["remark"],
        image_filename=row["image_filename"],
        representative=representative,
    )


class PostgresCommunicationRepository(CommunicationRepository):
    """CommunicationRepository backed by PostgreSQL."""

    def __init__(self, db: Database | None = None):
        self.db = db or Database()

    @staticmethod
    def _item_select(handler: BaseRecipientHandler) -> str:
        return f"""
        SELECT i.id, i.{handler.party_column} AS recipient_id,
               i.sales_description, i.sales_unit, i.quantity, i.size,
               i.{handler.price_column} AS price,
               i.site_id, s.name AS site_name, i.pr_number_and_name,
               i.{handler.remark_column} AS remark, i.image_filename,
               u.id AS rep_id, u.name AS rep_name, u.email AS rep_email,
               u.mobile AS rep_mobile, u.whatsapp AS rep_whatsapp
        FROM inquiries i
        LEFT JOIN sites s ON s.id = i.site_id
        LEFT JOIN users u ON u.id = i.representative_id
        """

    @staticmethod
    def _eligible_where(handler: BaseRecipientHandler) -> str:
        where = f"""
        i.deleted_at IS NULL
          AND i.is_open
          AND i.{handler.sent_column} IS NULL
        """
        if handler.requires_price:
            where += f" AND i.{handler.price_column} IS NOT NULL"
        return where

    def get_recipient(self, handler, recipient_id):
        columns = ", ".join(handler.email_columns + handler.whatsapp_columns)
        with self.db.get_connection() as conn:
            row = conn.execute(
                f"""
                SELECT id, name, {columns} FROM {handler.recipient_table}
                WHERE id = %s AND deleted_at IS NULL
                """,
                (recipient_id,),
            ).fetchone()
        if not row:
            raise NotFound(f"{handler.kind.value.title()} {recipient_id} not found", recipient_id=recipient_id)
        return Recipient(
            id=row["id"],
            kind=handler.kind,
            name=row["name"],
            emails=unique(row[c] for c in handler.email_columns),
            whatsapp_numbers=unique(row[c] for c in handler.whatsapp_columns),
        )

    def eligible_items(self, handler, recipient_id, site_id=None, pr_number_and_name=None):
        sql = self._item_select(handler) + f" WHERE i.{handler.party_column} = %s AND " + self._eligible_where(handler)
        params: list = [recipient_id]
        if handler.supports_filters and site_id is not None:
            sql += " AND i.site_id = %s"
            params.append(site_id)
        if handler.supports_filters and pr_number_and_name:
            sql += " AND i.pr_number_and_name = %s"
            params.append(pr_number_and_name)
        sql += " ORDER BY i.created_at ASC, i.id ASC"
        with self.db.get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_item(row) for row in rows]

    def items_by_ids(self, handler, item_ids):
        if not item_ids:
            return []
        with self.db.get_connection() as conn:
            rows = conn.execute(
                self._item_select(handler) + " WHERE i.id = ANY(%s)",
                (list(item_ids),),
            ).fetchall()
        by_id = {row["id"]: _row_to_item(row) for row in rows}
        return [by_id[item_id] for item_id in item_ids if item_id in by_id]

    def ready_recipients(self, handler):
        sql = f"""
        SELECT r.id, r.name, COUNT(i.id) AS count
        FROM {handler.recipient_table} r
        JOIN inquiries i ON i.{handler.party_column} = r.id
        WHERE r.deleted_at IS NULL AND {self._eligible_where(handler)}
        GROUP BY r.id, r.name
        ORDER BY r.name ASC
        """
        with self.db.get_connection() as conn:
            rows = conn.execute(sql).fetchall()
        return [{"id": row["id"], "name": row["name"], "count": row["count"]} for row in rows]

    def sites(self, customer_id):
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT id, name FROM sites WHERE customer_id = %s ORDER BY name ASC",
                (customer_id,),
            ).fetchall()
        return [{"id": row["id"], "name": row["name"]} for row in rows]

    def pr_numbers(self, customer_id, site_id=None):
        sql = """
        SELECT DISTINCT pr_number_and_name FROM inquiries
        WHERE customer_id = %s AND deleted_at IS NULL AND pr_number_and_name IS NOT NULL
        """
        params: list = [customer_id]
        if site_id is not None:
            sql += " AND site_id = %s"
            params.append(site_id)
        sql += " ORDER BY pr_number_and_name ASC"
        with self.db.get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [row["pr_number_and_name"] for row in rows]

    def user_emails(self, user_ids):
        if not user_ids:
            return []
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT id, email FROM users WHERE id = ANY(%s)",
                (list(user_ids),),
            ).fetchall()
        by_id = {row["id"]: row["email"] for row in rows}
        return list(unique(by_id.get(user_id) for user_id in user_ids))

    @staticmethod
    def _insert_documents(conn, record_id: int, documents: list[RenderedFile] | None, actor: int | None) -> None:
        if not documents:
            return
        with conn.cursor() as cur:
            cur.executemany(
                """
                INSERT INTO attachments (filename, object_name, url, content_type, size, record_id, created_by)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                [
                    (f.filename, f.filename, f.url, f.content_type, len(f.content), record_id, actor)
                    for f in documents
                ],
            )

    def create_record(
        self, handler, recipient_id, item_ids, actor, site_id=None, pr_number_and_name=None, at=None, documents=None,
    ):
        at = at or datetime.now()
        with self.db.transaction(serializable=True) as conn:
            stamped = conn.execute(
                f"""
                UPDATE inquiries i
                SET {handler.sent_column} = %s, updated_by = %s
                WHERE i.id = ANY(%s) AND i.{handler.party_column} = %s AND {self._eligible_where(handler)}
                """,
                (at, actor, list(item_ids), recipient_id),
            ).rowcount
            if stamped != len(item_ids):
                # rolls the stamping back with the transaction
                raise ValidationFailed(
                    "Some items are no longer eligible to be sent",
                    expected=len(item_ids),
                    eligible=stamped,
                )
            row = conn.execute(
                """
                INSERT INTO communication_records (
                    kind, recipient_id, site_id, pr_number_and_name,
                    email_sent, whatsapp_sent, created_at, created_by, updated_by
                ) VALUES (%s, %s, %s, %s, FALSE, FALSE, %s, %s, %s)
                RETURNING id
                """,
                (handler.kind.value, recipient_id, site_id, pr_number_and_name, at, actor, actor),
            ).fetchone()
            record_id = row["id"]
            with conn.cursor() as cur:
                cur.executemany(
                    """
                    INSERT INTO communication_record_items (record_id, inquiry_id, position)
                    VALUES (%s, %s, %s)
                    """,
                    [(record_id, item_id, position) for position, item_id in enumerate(item_ids, start=1)],
                )
            self._insert_documents(conn, record_id, documents, actor)
        log.info("communication_record_created", record_id=record_id, kind=handler.kind.value, items=len(item_ids))
        return self.get_record(record_id)

    def record_outcome(self, record_id, email_sent, whatsapp_sent):
        with self.db.transaction() as conn:
            row = conn.execute(
                """
                UPDATE communication_records
                SET email_sent = %s, whatsapp_sent = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING id
                """,
                (email_sent, whatsapp_sent, record_id),
            ).fetchone()
        if not row:
            raise NotFound(f"Communication record {record_id} not found", record_id=record_id)
        return self.get_record(record_id)

    def record_resend(self, record_id, email_sent, whatsapp_sent, actor, at=None, documents=None):
        at = at or datetime.now()
        with self.db.transaction() as conn:
            row = conn.execute(
                """
                UPDATE communication_records
                SET email_sent = %s, whatsapp_sent = %s, last_resend_at = %s,
                    updated_at = NOW(), updated_by = %s
                WHERE id = %s
                RETURNING id
                """,
                (email_sent, whatsapp_sent, at, actor, record_id),
            ).fetchone()
            if not row:
                raise NotFound(f"Communication record {record_id} not found", record_id=record_id)
            conn.execute(
                """
                INSERT INTO communication_resend_history (record_id, email_sent, whatsapp_sent, created_at, created_by)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (record_id, email_sent, whatsapp_sent, at, actor),
            )
            self._insert_documents(conn, record_id, documents, actor)
        log.info("communication_resend_recorded", record_id=record_id)
        return self.get_record(record_id)

    def _load_record(self, conn, row: dict) -> CommunicationRecord:
        kind = RecipientKind(row["kind"])
        handler = require_handler(kind)
        items = conn.execute(
            "SELECT inquiry_id FROM communication_record_items WHERE record_id = %s ORDER BY position",
            (row["id"],),
        ).fetchall()
        history = conn.execute(
            """
            SELECT id, record_id, email_sent, whatsapp_sent, created_at, created_by
            FROM communication_resend_history
            WHERE record_id = %s
            ORDER BY created_at DESC, id DESC
            """,
            (row["id"],),
        ).fetchall()
        name = conn.execute(
            f"SELECT name FROM {handler.recipient_table} WHERE id = %s",
            (row["recipient_id"],),
        ).fetchone()
        return CommunicationRecord(
            id=row["id"],
            kind=kind,
            recipient_id=row["recipient_id"],
            item_ids=tuple(i["inquiry_id"] for i in items),
            email_sent=row["email_sent"],
            whatsapp_sent=row["whatsapp_sent"],
            last_resend_at=row["last_resend_at"],
            resend_history=tuple(ResendHistoryEntry(**h) for h in history),
            created_at=row["created_at"],
            created_by=row["created_by"],
            site_id=row["site_id"],
            pr_number_and_name=row["pr_number_and_name"],
            recipient_name=name["name"] if name else "",
        )

    _RECORD_COLUMNS = """
        id, kind, recipient_id, site_id, pr_number_and_name, email_sent,
        whatsapp_sent, last_resend_at, created_at, created_by
    """

    def get_record(self, record_id):
        with self.db.get_connection() as conn:
            row = conn.execute(
                f"SELECT {self._RECORD_COLUMNS} FROM communication_records WHERE id = %s",
                (record_id,),
            ).fetchone()
            if not row:
                raise NotFound(f"Communication record {record_id} not found", record_id=record_id)
            return self._load_record(conn, row)

    def list_records(self, kind, page=1, limit=10, recipient_id=None):
        where = "kind = %s"
        params: list = [kind.value]
        if recipient_id is not None:
            where += " AND recipient_id = %s"
            params.append(recipient_id)
        with self.db.get_connection() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) AS count FROM communication_records WHERE {where}",
                params,
            ).fetchone()
            rows = conn.execute(
                f"""
                SELECT {self._RECORD_COLUMNS} FROM communication_records
                WHERE {where}
                ORDER BY created_at DESC, id DESC
                LIMIT %s OFFSET %s
                """,
                params + [limit, (max(page, 1) - 1) * limit],
            ).fetchall()
            return (total["count"] if total else 0), [self._load_record(conn, row) for row in rows]
