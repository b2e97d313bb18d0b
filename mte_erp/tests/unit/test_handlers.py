"""Unit tests for recipient handlers."""

import re
from datetime import datetime

import pytest

from mte_erp.core.errors import ValidationFailed
from mte_erp.core.models import LineItem, Recipient, RecipientKind
from mte_erp.handlers import CustomerHandler, SupplierHandler
from mte_erp.handlers.base import BaseRecipientHandler
from mte_erp.handlers.registry import (
    _handlers,
    clear_handlers,
    get_all_handlers,
    get_handler,
    register_handler,
    require_handler,
)


@pytest.fixture
def isolated_registry():
    """Run with an empty registry and restore the real handlers afterwards."""
    saved = get_all_handlers()
    clear_handlers()
    yield
    clear_handlers()
    _handlers.extend(saved)


class TestHandlerRegistry:
    """Tests for handler registry."""

    def test_builtin_handlers_registered(self):
        assert isinstance(get_handler(RecipientKind.SUPPLIER), SupplierHandler)
        assert isinstance(get_handler(RecipientKind.CUSTOMER), CustomerHandler)

    def test_register_handler(self, isolated_registry):
        @register_handler
        class TestHandler(SupplierHandler):
            pass

        assert isinstance(get_handler(RecipientKind.SUPPLIER), TestHandler)
        assert get_handler(RecipientKind.CUSTOMER) is None

    def test_require_handler_raises_when_missing(self, isolated_registry):
        with pytest.raises(ValidationFailed):
            require_handler(RecipientKind.CUSTOMER)

    def test_handlers_are_abstract(self):
        with pytest.raises(TypeError):
            BaseRecipientHandler()


class TestSubjects:
    def setup_method(self):
        self.handler = get_handler(RecipientKind.SUPPLIER)
        self.recipient = Recipient(id=1, kind=RecipientKind.SUPPLIER, name="Acme")

    def test_subject_lists_distinct_site_pr_refs(self):
        items = [
            LineItem(id=1, recipient_id=1, site_name="Site A", pr_number_and_name="PR-1"),
            LineItem(id=2, recipient_id=1, site_name="Site A", pr_number_and_name="PR-1"),
            LineItem(id=3, recipient_id=1, pr_number_and_name="PR-2"),
        ]
        assert self.handler.subject(self.recipient, items, 42) == "INQUIRY FROM MTE | Acme Site A PR-1,PR-2 #42"

    def test_resend_subject(self):
        assert self.handler.subject(self.recipient, [], 42, resend=True) == "RE: INQUIRY FROM MTE | Acme #42"

    def test_document_filename(self):
        name = self.handler.document_filename(self.recipient, "xlsx", datetime(2026, 1, 2, 3, 4, 5, 678))
        assert re.fullmatch(r"Inquiries-Supplier-Acme-20260102T030405000678-[0-9a-f]{8}\.xlsx", name)

    def test_document_filenames_never_repeat(self):
        at = datetime(2026, 1, 2, 3, 4, 5)
        names = {self.handler.document_filename(self.recipient, "pdf", at) for _ in range(50)}
        assert len(names) == 50


class TestBodies:
    def test_supplier_body_includes_remark_before_signoff(self):
        body = SupplierHandler().email_body("Deliver to gate 3")
        assert body.index("Deliver to gate 3") < body.index("Thank You")

    def test_customer_body_without_remark(self):
        body = CustomerHandler().email_body()
        assert body.startswith("Dear Sir/Madam")
        assert body.endswith("Thank You")

    def test_supplier_price_columns_are_highlighted(self):
        highlighted = [c.header for c in SupplierHandler().columns() if c.highlight]
        assert "SUPPLIER PRICE" in highlighted

    def test_customer_columns_include_total(self):
        item = LineItem(id=1, recipient_id=1, quantity=4, price=2.5)
        values = {c.header: c.value(1, item) for c in CustomerHandler().columns()}
        assert values["TOTAL PRICE"] == 10.0
        assert values["SR. NO."] == 1
