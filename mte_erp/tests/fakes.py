"""
In-memory stand-ins for storage and outbound collaborators.

InMemoryOrderStore behaves like a serializable database: each transaction
works on a private snapshot and commits only if nothing else committed
since the snapshot was taken, otherwise it raises Conflict. Commit also
enforces the unique (container, order) rule for live items.
"""

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from itertools import count

from mte_erp.core.errors import Conflict, DispatchFailed, NotFound, StorageUnavailable, ValidationFailed
from mte_erp.core.models import (
    DELETED_ORDER,
    Activity,
    Attachment,
    Channel,
    CommunicationRecord,
    Container,
    LineItem,
    OrderedItem,
    Recipient,
    RecipientKind,
    ResendHistoryEntry,
)
from mte_erp.communications.repository import CommunicationRepository
from mte_erp.ordering.collections import CHECK_LISTS, COLLECTIONS, TASKS, TEAMS
from mte_erp.ordering.store import OrderSession, OrderStore
from mte_erp.services.gateway import MessagingGateway
from mte_erp.services.minio import BlobStore
from mte_erp.services.publisher import Publisher


CONTAINER_KINDS = {kind.table: kind for kind in (TEAMS, CHECK_LISTS)}
# ordered collections that are themselves containers, by table
ITEM_CONTAINERS = {c.table: c for c in COLLECTIONS.values()}


class _State:
    def __init__(self):
        self.items: dict[str, dict[int, OrderedItem]] = {name: {} for name in COLLECTIONS}
        self.containers: dict[str, dict[int, Container]] = {table: {} for table in CONTAINER_KINDS}
        self.activities: list[Activity] = []
        self.attachments: dict[int, Attachment] = {}

    def copy(self) -> "_State":
        clone = _State()
        clone.items = {name: dict(items) for name, items in self.items.items()}
        clone.containers = {table: dict(rows) for table, rows in self.containers.items()}
        clone.activities = list(self.activities)
        clone.attachments = dict(self.attachments)
        return clone


class InMemoryOrderSession(OrderSession):
    def __init__(self, state: _State, ids, activity_ids, container_ids=None, attachment_ids=None):
        self.state = state
        self._ids = ids
        self._activity_ids = activity_ids
        self._container_ids = container_ids
        self._attachment_ids = attachment_ids

    def _live(self, collection, container_id):
        return [
            item for item in self.state.items[collection.name].values()
            if item.container_id == container_id and not item.is_deleted
        ]

    def _put(self, collection, item):
        self.state.items[collection.name][item.id] = item
        return item

    def container_exists(self, collection, container_id):
        if collection.container_table in ITEM_CONTAINERS:
            owner = self.state.items[ITEM_CONTAINERS[collection.container_table].name].get(container_id)
        else:
            owner = self.state.containers[collection.container_table].get(container_id)
        return owner is not None and not owner.is_deleted

    def get(self, collection, item_id):
        return self.state.items[collection.name].get(item_id)

    def count(self, collection, container_id):
        return len(self._live(collection, container_id))

    def list_items(self, collection, container_id):
        return sorted(self._live(collection, container_id), key=lambda i: i.order)

    def insert(self, collection, container_id, order, payload, actor):
        now = datetime.now()
        item = OrderedItem(
            id=next(self._ids),
            container_id=container_id,
            order=order,
            payload=payload,
            created_at=now,
            updated_at=now,
            updated_by=actor,
        )
        return self._put(collection, item)

    def update_payload(self, collection, item_id, payload, actor):
        item = self.state.items[collection.name][item_id]
        return self._put(collection, replace(item, payload=payload, updated_at=datetime.now(), updated_by=actor))

    def shift(self, collection, container_id, lower, upper, delta):
        moved = 0
        for item in self._live(collection, container_id):
            if item.order >= lower and (upper is None or item.order <= upper):
                self._put(collection, replace(item, order=item.order + delta))
                moved += 1
        return moved

    def reposition(self, collection, item, lower, upper, delta, target, actor):
        for sibling in self._live(collection, item.container_id):
            if sibling.id == item.id:
                self._put(collection, replace(sibling, order=target, updated_at=datetime.now(), updated_by=actor))
            elif lower <= sibling.order <= upper:
                self._put(collection, replace(sibling, order=sibling.order + delta))

    def place(self, collection, item_id, container_id, order, actor):
        item = self.state.items[collection.name][item_id]
        self._put(collection, replace(
            item, container_id=container_id, order=order, updated_at=datetime.now(), updated_by=actor,
        ))

    def soft_delete(self, collection, item_id, actor):
        item = self.state.items[collection.name][item_id]
        now = datetime.now()
        self._put(collection, replace(item, order=DELETED_ORDER, deleted_at=now, updated_at=now, updated_by=actor))

    def add_activity(self, activity):
        self.state.activities.append(replace(activity, id=next(self._activity_ids)))

    def channel_key(self, collection, container_id):
        if collection.channel_column is None:
            return container_id
        container = self.state.containers[collection.container_table].get(container_id)
        return container.parent_id if container else container_id

    def get_container(self, kind, container_id):
        return self.state.containers[kind.table].get(container_id)

    def insert_container(self, kind, name, parent_id, actor):
        now = datetime.now()
        container = Container(
            id=next(self._container_ids),
            name=name,
            parent_id=parent_id,
            created_at=now,
            created_by=actor,
            updated_at=now,
            updated_by=actor,
        )
        self.state.containers[kind.table][container.id] = container
        return container

    def rename_container(self, kind, container_id, name, actor):
        container = replace(
            self.state.containers[kind.table][container_id], name=name, updated_at=datetime.now(), updated_by=actor,
        )
        self.state.containers[kind.table][container_id] = container
        return container

    def soft_delete_container(self, kind, container_id, actor):
        removed = 0
        for item in self._live(kind.items, container_id):
            self.soft_delete(kind.items, item.id, actor)
            removed += 1
        container = self.state.containers[kind.table][container_id]
        now = datetime.now()
        self.state.containers[kind.table][container_id] = replace(
            container, deleted_at=now, updated_at=now, updated_by=actor,
        )
        return removed

    def list_containers(self, kind, parent_id=None, search=None, limit=None, offset=0):
        rows = [c for c in self.state.containers[kind.table].values() if not c.is_deleted]
        if kind.parent_column and parent_id is not None:
            rows = [c for c in rows if c.parent_id == parent_id]
        if search:
            rows = [c for c in rows if search.lower() in c.name.lower() or str(c.id) == search]
        if kind.parent_column:
            rows.sort(key=lambda c: c.id)
        else:
            rows.sort(key=lambda c: (c.name, c.id))
        end = None if limit is None else offset + limit
        return len(rows), rows[offset:end]

    def insert_attachment(self, filename, object_name, url, content_type, size, actor):
        attachment = Attachment(
            id=next(self._attachment_ids),
            filename=filename,
            object_name=object_name,
            url=url,
            content_type=content_type,
            size=size,
            created_at=datetime.now(),
            created_by=actor,
        )
        self.state.attachments[attachment.id] = attachment
        return attachment

    def link_attachments(self, task_id, attachment_ids):
        linked = []
        for attachment_id in sorted(set(attachment_ids)):
            attachment = self.state.attachments.get(attachment_id)
            if attachment is None or attachment.task_id is not None:
                continue
            attachment = replace(attachment, task_id=task_id)
            self.state.attachments[attachment_id] = attachment
            linked.append(attachment)
        return linked


class InMemoryOrderStore(OrderStore):
    """Optimistic, snapshot-isolated order store."""

    def __init__(self):
        self._state = _State()
        self._version = 0
        self._lock = threading.Lock()
        self._ids = count(1)
        self._activity_ids = count(1)
        self._container_ids = count(1000)
        self._attachment_ids = count(1)
        self._pending_conflicts = 0
        self.commits = 0
        self.conflicts = 0

    def _session(self, state: _State) -> InMemoryOrderSession:
        return InMemoryOrderSession(state, self._ids, self._activity_ids, self._container_ids, self._attachment_ids)

    def add_container(self, kind, container_id: int, name: str = "", parent_id: int | None = None) -> Container:
        """Seed a team or checklist outside any transaction."""
        container = Container(id=container_id, name=name or f"{kind.name} {container_id}", parent_id=parent_id)
        self._state.containers[kind.table][container_id] = container
        return container

    def inject_conflicts(self, n: int) -> None:
        """Make the next n commits fail with Conflict."""
        self._pending_conflicts = n

    def items(self, collection, container_id: int) -> list[OrderedItem]:
        return self._session(self._state).list_items(collection, container_id)

    def container(self, kind, container_id: int) -> Container | None:
        return self._state.containers[kind.table].get(container_id)

    def attachment(self, attachment_id: int) -> Attachment | None:
        return self._state.attachments.get(attachment_id)

    def all_items(self, collection) -> dict[int, OrderedItem]:
        return dict(self._state.items[collection.name])

    @property
    def activities(self) -> list[Activity]:
        return list(self._state.activities)

    @staticmethod
    def _check_unique(state: _State) -> None:
        for name, items in state.items.items():
            seen = set()
            for item in items.values():
                if item.is_deleted:
                    continue
                key = (item.container_id, item.order)
                if key in seen:
                    raise Conflict(f"duplicate order {key} in {name}")
                seen.add(key)

    @contextmanager
    def transaction(self):
        with self._lock:
            start_version = self._version
            working = self._state.copy()
        yield self._session(working)
        with self._lock:
            if self._pending_conflicts:
                self._pending_conflicts -= 1
                self.conflicts += 1
                raise Conflict("injected serialization failure")
            if self._version != start_version:
                self.conflicts += 1
                raise Conflict("concurrent modification")
            self._check_unique(working)
            self._state = working
            self._version += 1
            self.commits += 1

    def list_activities(self, task_id, limit, offset):
        matching = [a for a in self._state.activities if a.task_id == task_id]
        matching.sort(key=lambda a: (a.created_at, a.id), reverse=True)
        return len(matching), matching[offset:offset + limit]

    def tasks_assigned_to(self, user_id):
        live_lists = {
            item.id for item in self._state.items["task_lists"].values() if not item.is_deleted
        }
        tasks = [
            task for task in self._state.items[TASKS.name].values()
            if not task.is_deleted
            and task.container_id in live_lists
            and not task.payload.completed
            and user_id in task.payload.assignee_ids
        ]
        return sorted(tasks, key=lambda t: (t.payload.end_date is None, t.payload.end_date or datetime.min.date()))

    def task_attachments(self, task_id):
        return sorted(
            (a for a in self._state.attachments.values() if a.task_id == task_id),
            key=lambda a: a.id,
        )


class RecordingPublisher(Publisher):
    def __init__(self, fail: bool = False):
        self.events: list[tuple[str, str, dict]] = []
        self.fail = fail

    def publish(self, channel, event, payload):
        if self.fail:
            raise RuntimeError("pusher unreachable")
        self.events.append((channel, event, payload))


class InMemoryBlobStore(BlobStore):
    """fail rejects every upload; fail_after accepts that many, then rejects."""

    def __init__(self, fail: bool = False, fail_after: int | None = None):
        self.files: dict[str, bytes] = {}
        self.fail = fail
        self.fail_after = fail_after

    def add_file(self, filename, data, content_type="application/octet-stream"):
        if self.fail or (self.fail_after is not None and len(self.files) >= self.fail_after):
            raise StorageUnavailable("blob store down")
        self.files[filename] = data
        return f"memory://files/{filename}"

    def get_file(self, filename):
        if filename not in self.files:
            raise NotFound(f"File {filename} not found")
        return self.files[filename]

    def delete_file(self, filename):
        self.files.pop(filename, None)


class FakeGateway(MessagingGateway):
    """
    Records calls; email_ok/whatsapp_ok decide the outcome.

    raise_* raise DispatchFailed; crash_* raise an arbitrary error from a
    misbehaving client.
    """

    def __init__(
        self,
        email_ok=True,
        whatsapp_ok=True,
        raise_email=False,
        raise_whatsapp=False,
        crash_email=False,
        crash_whatsapp=False,
    ):
        self.email_ok = email_ok
        self.whatsapp_ok = whatsapp_ok
        self.raise_email = raise_email
        self.raise_whatsapp = raise_whatsapp
        self.crash_email = crash_email
        self.crash_whatsapp = crash_whatsapp
        self.emails: list[dict] = []
        self.whatsapps: list[dict] = []

    def send_email(self, to, subject, body, attachments, reply_to):
        self.emails.append({
            "to": to, "subject": subject, "body": body,
            "attachments": [a.filename for a in attachments], "reply_to": reply_to,
        })
        if self.raise_email:
            raise DispatchFailed(Channel.EMAIL.value, "smtp down")
        if self.crash_email:
            raise KeyError("personalizations")
        return self.email_ok

    def send_whatsapp(self, numbers, template, parameters):
        self.whatsapps.append({"numbers": numbers, "template": template, "parameters": parameters})
        if self.raise_whatsapp:
            raise DispatchFailed(Channel.WHATSAPP.value, "graph api down")
        if self.crash_whatsapp:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.whatsapp_ok


class InMemoryCommunicationRepository(CommunicationRepository):
    def __init__(self):
        self.recipients: dict[tuple[RecipientKind, int], Recipient] = {}
        self.items: dict[RecipientKind, dict[int, LineItem]] = {kind: {} for kind in RecipientKind}
        self.sent: dict[RecipientKind, dict[int, datetime]] = {kind: {} for kind in RecipientKind}
        self.customer_sites: dict[int, list[dict]] = {}
        self.users: dict[int, str] = {}
        self.records: dict[int, CommunicationRecord] = {}
        self.attachments: list[tuple[str, str, int]] = []
        self._record_ids = count(1)
        self._history_ids = count(1)

    # seeding

    def add_recipient(self, recipient: Recipient) -> None:
        self.recipients[(recipient.kind, recipient.id)] = recipient

    def add_item(self, kind: RecipientKind, item: LineItem) -> None:
        self.items[kind][item.id] = item

    # queries

    def _eligible(self, handler, item: LineItem) -> bool:
        if item.id in self.sent[handler.kind]:
            return False
        if handler.requires_price and item.price is None:
            return False
        return True

    def get_recipient(self, handler, recipient_id):
        recipient = self.recipients.get((handler.kind, recipient_id))
        if recipient is None:
            raise NotFound(f"{handler.kind.value} {recipient_id} not found")
        return recipient

    def eligible_items(self, handler, recipient_id, site_id=None, pr_number_and_name=None):
        items = [
            item for item in self.items[handler.kind].values()
            if item.recipient_id == recipient_id and self._eligible(handler, item)
        ]
        if handler.supports_filters and site_id is not None:
            items = [i for i in items if i.site_id == site_id]
        if handler.supports_filters and pr_number_and_name:
            items = [i for i in items if i.pr_number_and_name == pr_number_and_name]
        return sorted(items, key=lambda i: i.id)

    def items_by_ids(self, handler, item_ids):
        return [self.items[handler.kind][i] for i in item_ids if i in self.items[handler.kind]]

    def ready_recipients(self, handler):
        counts: dict[int, int] = {}
        for item in self.items[handler.kind].values():
            if self._eligible(handler, item):
                counts[item.recipient_id] = counts.get(item.recipient_id, 0) + 1
        return [
            {"id": rid, "name": self.recipients[(handler.kind, rid)].name, "count": n}
            for rid, n in sorted(counts.items())
            if (handler.kind, rid) in self.recipients
        ]

    def sites(self, customer_id):
        return list(self.customer_sites.get(customer_id, []))

    def pr_numbers(self, customer_id, site_id=None):
        values = {
            item.pr_number_and_name for item in self.items[RecipientKind.CUSTOMER].values()
            if item.recipient_id == customer_id
            and item.pr_number_and_name
            and (site_id is None or item.site_id == site_id)
        }
        return sorted(values)

    def user_emails(self, user_ids):
        emails: dict[str, None] = {}
        for user_id in user_ids:
            if self.users.get(user_id):
                emails.setdefault(self.users[user_id], None)
        return list(emails)

    # writes

    def create_record(
        self, handler, recipient_id, item_ids, actor, site_id=None, pr_number_and_name=None, at=None, documents=None,
    ):
        at = at or datetime.now()
        for item_id in item_ids:
            item = self.items[handler.kind].get(item_id)
            if item is None or item.recipient_id != recipient_id or not self._eligible(handler, item):
                raise ValidationFailed("Some items are no longer eligible to be sent")
        for item_id in item_ids:
            self.sent[handler.kind][item_id] = at
        record = CommunicationRecord(
            id=next(self._record_ids),
            kind=handler.kind,
            recipient_id=recipient_id,
            item_ids=tuple(item_ids),
            created_at=at,
            created_by=actor,
            site_id=site_id,
            pr_number_and_name=pr_number_and_name,
            recipient_name=self.recipients[(handler.kind, recipient_id)].name,
        )
        self.records[record.id] = record
        self._register(record.id, documents)
        return record

    def record_outcome(self, record_id, email_sent, whatsapp_sent):
        record = self.get_record(record_id)
        self.records[record_id] = replace(record, email_sent=email_sent, whatsapp_sent=whatsapp_sent)
        return self.records[record_id]

    def record_resend(self, record_id, email_sent, whatsapp_sent, actor, at=None, documents=None):
        record = self.get_record(record_id)
        at = at or datetime.now()
        entry = ResendHistoryEntry(
            record_id=record_id,
            email_sent=email_sent,
            whatsapp_sent=whatsapp_sent,
            created_at=at,
            created_by=actor,
            id=next(self._history_ids),
        )
        self.records[record_id] = replace(
            record,
            email_sent=email_sent,
            whatsapp_sent=whatsapp_sent,
            last_resend_at=at,
            resend_history=(entry,) + record.resend_history,
        )
        self._register(record_id, documents)
        return self.records[record_id]

    def get_record(self, record_id):
        if record_id not in self.records:
            raise NotFound(f"Communication record {record_id} not found")
        return self.records[record_id]

    def list_records(self, kind, page=1, limit=10, recipient_id=None):
        records = [
            r for r in self.records.values()
            if r.kind is kind and (recipient_id is None or r.recipient_id == recipient_id)
        ]
        records.sort(key=lambda r: r.id, reverse=True)
        start = (max(page, 1) - 1) * limit
        return len(records), records[start:start + limit]

    def _register(self, record_id, documents):
        for f in documents or ():
            self.attachments.append((f.filename, f.url, record_id))
