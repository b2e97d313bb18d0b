"""Unit tests for core models."""

from datetime import date, datetime

from mte_erp.core.models import (
    Channel,
    CommunicationRecord,
    LineItem,
    OrderedItem,
    Recipient,
    RecipientKind,
    ResendHistoryEntry,
    TaskPayload,
    merge_payload,
)


class TestTaskPayload:
    """Tests for TaskPayload serialization."""

    def test_from_dict_parses_dates(self):
        payload = TaskPayload.from_dict({
            "title": "Order cement",
            "assignee_ids": [3, 7],
            "end_date": "2026-03-01T00:00:00",
        })
        assert payload.assignee_ids == (3, 7)
        assert payload.end_date == date(2026, 3, 1)
        assert payload.start_date is None

    def test_from_dict_defaults(self):
        payload = TaskPayload.from_dict({})
        assert payload.title == ""
        assert payload.completed is False


class TestMergePayload:
    def test_ignores_none_and_unknown_fields(self):
        payload = TaskPayload(title="A", description="keep")
        merged = merge_payload(payload, {"title": "B", "description": None, "order": 9})

        assert merged.title == "B"
        assert merged.description == "keep"
        assert payload.title == "A"

    def test_accepts_date_objects(self):
        merged = merge_payload(TaskPayload(), {"start_date": date(2026, 1, 2)})
        assert merged.start_date == date(2026, 1, 2)


class TestOrderedItem:
    def test_to_dict_flattens_payload(self):
        item = OrderedItem(id=1, container_id=4, order=2, payload=TaskPayload(title="Pour"))
        data = item.to_dict()

        assert data["order"] == 2
        assert data["container_id"] == 4
        assert data["title"] == "Pour"
        assert data["deleted_at"] is None

    def test_with_position(self):
        item = OrderedItem(id=1, container_id=4, order=2, payload=TaskPayload())
        moved = item.with_position(5, 1)

        assert (moved.container_id, moved.order) == (5, 1)
        assert (item.container_id, item.order) == (4, 2)


class TestRecipient:
    def test_known_addresses_by_channel(self):
        recipient = Recipient(
            id=1, kind=RecipientKind.SUPPLIER, name="Acme",
            emails=("a@acme.com",), whatsapp_numbers=("+9100",),
        )
        assert recipient.known_addresses(Channel.EMAIL) == ("a@acme.com",)
        assert recipient.known_addresses(Channel.WHATSAPP) == ("+9100",)


class TestLineItem:
    def test_total_price(self):
        assert LineItem(id=1, recipient_id=1, quantity=3, price=2.5).total_price == 7.5
        assert LineItem(id=1, recipient_id=1, quantity=3).total_price is None


class TestCommunicationRecord:
    def test_to_dict(self):
        at = datetime(2026, 2, 1, 10, 30)
        record = CommunicationRecord(
            id=9,
            kind=RecipientKind.CUSTOMER,
            recipient_id=2,
            item_ids=(5, 6),
            email_sent=True,
            last_resend_at=at,
            resend_history=(ResendHistoryEntry(record_id=9, email_sent=True, whatsapp_sent=False, created_at=at),),
        )
        data = record.to_dict()

        assert data["kind"] == "customer"
        assert data["item_ids"] == [5, 6]
        assert data["last_resend_at"] == "2026-02-01T10:30:00"
        assert data["resend_history"][0]["whatsapp_sent"] is False
