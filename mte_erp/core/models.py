"""
Data models for ordered collections and outbound communications.

Uses dataclasses for clean, typed data structures.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

DELETED_ORDER = -1


class RecipientKind(str, Enum):
    """External party a communication bundle is sent to."""

    SUPPLIER = "supplier"
    CUSTOMER = "customer"


class Channel(str, Enum):
    """Outbound communication medium."""

    EMAIL = "email"
    WHATSAPP = "whatsapp"


class ActivityAction(str, Enum):
    """Task activity log actions."""

    CREATED = "Task_Created"
    UPDATED = "Task_Updated"
    COMPLETED = "Task_Completed"
    MOVED = "Task_Moved"
    DELETED = "Task_Deleted"
    ATTACHMENT_ADDED = "Task_Attachment_Added"


def _parse_date(value: Any) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class TaskListPayload:
    """Free-form part of a task list."""

    name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskListPayload":
        return cls(name=data.get("name") or "")


@dataclass(frozen=True)
class TaskPayload:
    """Free-form part of a task card."""

    title: str = ""
    description: str = ""
    completed: bool = False
    assignee_ids: tuple[int, ...] = ()
    start_date: date | None = None
    end_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "completed": self.completed,
            "assignee_ids": list(self.assignee_ids),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskPayload":
        return cls(
            title=data.get("title") or "",
            description=data.get("description") or "",
            completed=bool(data.get("completed", False)),
            assignee_ids=tuple(data.get("assignee_ids") or ()),
            start_date=_parse_date(data.get("start_date")),
            end_date=_parse_date(data.get("end_date")),
        )


@dataclass(frozen=True)
class ChecklistItemPayload:
    """Free-form part of a checklist entry."""

    title: str = ""
    checked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "checked": self.checked}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChecklistItemPayload":
        return cls(title=data.get("title") or "", checked=bool(data.get("checked", False)))


def merge_payload(payload, changes: dict[str, Any]):
    """Return a copy of a payload with the known, non-None fields in changes applied."""
    names = {f.name for f in fields(payload)}
    merged = payload.to_dict()
    merged.update({k: v for k, v in changes.items() if k in names and v is not None})
    return type(payload).from_dict(merged)


P = TypeVar("P")


@dataclass(frozen=True)
class OrderedItem(Generic[P]):
    """An item positioned inside a container by a dense 1-based order."""

    id: int
    container_id: int
    order: int
    payload: P
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    updated_by: int | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def with_position(self, container_id: int, order: int) -> "OrderedItem[P]":
        return replace(self, container_id=container_id, order=order)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON responses and fanout payloads."""
        return {
            "id": self.id,
            "container_id": self.container_id,
            "order": self.order,
            **self.payload.to_dict(),
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class Container:
    """
    A named holder of ordered items: a team (task lists) or a task checklist.

    parent_id is the owning task for checklists and None for teams.
    """

    id: int
    name: str
    parent_id: int | None = None
    created_at: datetime | None = None
    created_by: int | None = None
    updated_at: datetime | None = None
    updated_by: int | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
        }


@dataclass(frozen=True)
class Attachment:
    """An uploaded file, optionally linked to a task."""

    id: int
    filename: str
    object_name: str
    url: str
    content_type: str = "application/octet-stream"
    size: int = 0
    task_id: int | None = None
    created_at: datetime | None = None
    created_by: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "url": self.url,
            "content_type": self.content_type,
            "size": self.size,
            "task_id": self.task_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
        }


@dataclass
class Activity:
    """Task activity log entry."""

    task_id: int
    action: ActivityAction
    created_by: int | None = None
    description: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "action": self.action.value,
            "created_by": self.created_by,
            "description": self.description,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Representative:
    """Front person representative (internal user) attached to a line item."""

    id: int
    name: str = ""
    email: str | None = None
    mobile: str | None = None
    whatsapp: str | None = None


@dataclass(frozen=True)
class Recipient:
    """Supplier or customer with the contact addresses stored on its profile."""

    id: int
    kind: RecipientKind
    name: str
    emails: tuple[str, ...] = ()
    whatsapp_numbers: tuple[str, ...] = ()

    def known_addresses(self, channel: Channel) -> tuple[str, ...]:
        if channel is Channel.EMAIL:
            return self.emails
        return self.whatsapp_numbers


@dataclass(frozen=True)
class LineItem:
    """An inquiry line that can be included in a communication bundle."""

    id: int
    recipient_id: int
    description: str = ""
    unit: str = ""
    quantity: float | None = None
    size: str = ""
    price: float | None = None
    site_id: int | None = None
    site_name: str = ""
    pr_number_and_name: str = ""
    remark: str | None = None
    image_filename: str | None = None
    representative: Representative | None = None

    @property
    def total_price(self) -> float | None:
        if self.price is None or self.quantity is None:
            return None
        return round(self.price * self.quantity, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "description": self.description,
            "unit": self.unit,
            "quantity": self.quantity,
            "size": self.size,
            "price": self.price,
            "site_id": self.site_id,
            "site_name": self.site_name,
            "pr_number_and_name": self.pr_number_and_name,
            "remark": self.remark,
        }


@dataclass(frozen=True)
class ResendHistoryEntry:
    """One resend attempt; the flags are that attempt's channel outcomes."""

    record_id: int
    email_sent: bool
    whatsapp_sent: bool
    created_at: datetime
    created_by: int | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email_sent": self.email_sent,
            "whatsapp_sent": self.whatsapp_sent,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
        }


@dataclass(frozen=True)
class CommunicationRecord:
    """
    Persisted result of one Send.

    The referenced items are fixed at creation; resends only change the
    channel flags, last_resend_at and the appended history.
    """

    id: int
    kind: RecipientKind
    recipient_id: int
    item_ids: tuple[int, ...]
    email_sent: bool = False
    whatsapp_sent: bool = False
    last_resend_at: datetime | None = None
    resend_history: tuple[ResendHistoryEntry, ...] = ()
    created_at: datetime | None = None
    created_by: int | None = None
    site_id: int | None = None
    pr_number_and_name: str | None = None
    recipient_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "recipient_id": self.recipient_id,
            "recipient_name": self.recipient_name,
            "item_ids": list(self.item_ids),
            "email_sent": self.email_sent,
            "whatsapp_sent": self.whatsapp_sent,
            "last_resend_at": self.last_resend_at.isoformat() if self.last_resend_at else None,
            "resend_history": [h.to_dict() for h in self.resend_history],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
            "site_id": self.site_id,
            "pr_number_and_name": self.pr_number_and_name,
        }


@dataclass(frozen=True)
class RenderedFile:
    """A rendered document and where it was stored."""

    filename: str
    content: bytes
    content_type: str
    url: str | None = None


@dataclass(frozen=True)
class DocumentBundle:
    """Spreadsheet + PDF pair produced for one communication."""

    spreadsheet: RenderedFile
    pdf: RenderedFile

    @property
    def files(self) -> tuple[RenderedFile, RenderedFile]:
        return (self.spreadsheet, self.pdf)

    @property
    def urls(self) -> list[str]:
        return [f.url for f in self.files if f.url]


@dataclass
class SendResult:
    """Outcome returned to the operator after Send or Resend."""

    record_id: int
    email_sent: bool
    whatsapp_sent: bool
    urls: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.record_id,
            "email_sent": self.email_sent,
            "whatsapp_sent": self.whatsapp_sent,
            "urls": self.urls,
        }
