"""
Abstract base class for recipient handlers.

A handler describes one communication variant (supplier inquiry, customer
offer): where its recipients and their addresses live, which line items
are eligible, and how the subject, body and documents are worded.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from mte_erp.core.models import LineItem, Recipient, RecipientKind


@dataclass(frozen=True)
class DocumentColumn:
    """One spreadsheet/PDF column."""

    header: str
    value: Callable[[int, LineItem], Any]
    width: int = 12
    # columns the recipient is expected to fill in
    highlight: bool = False


class BaseRecipientHandler(ABC):
    """Abstract handler interface for one recipient kind."""

    kind: RecipientKind

    # recipient profile
    recipient_table: str
    email_columns: tuple[str, ...]
    whatsapp_columns: tuple[str, ...]

    # line items (inquiries table)
    party_column: str
    sent_column: str
    remark_column: str
    price_column: str
    requires_price: bool = False
    supports_filters: bool = False

    subject_prefix: str
    document_prefix: str
    document_title: str

    def can_handle(self, kind: RecipientKind) -> bool:
        """
        Check if this handler serves the given recipient kind.

        Args:
            kind: Recipient kind

        Returns:
            True if this handler is responsible for the kind
        """
        return kind is self.kind

    @abstractmethod
    def columns(self) -> list[DocumentColumn]:
        """Spreadsheet columns in display order."""
        pass

    @abstractmethod
    def email_body(self, remark: str | None = None) -> str:
        """Plain-text email body, with the chosen remark inserted before the sign-off."""
        pass

    @abstractmethod
    def whatsapp_template(self) -> str:
        """Name of the approved WhatsApp message template."""
        pass

    def whatsapp_parameters(self, urls: list[str]) -> list[str]:
        """Body parameters for the template; the document links by default."""
        return list(urls)

    def subject(
        self,
        recipient: Recipient,
        items: list[LineItem],
        record_id: int,
        resend: bool = False,
    ) -> str:
        """e.g. 'INQUIRY FROM MTE | Acme Site A PR-1 #42'."""
        refs: dict[str, None] = {}
        for item in items:
            ref = " ".join(part for part in (item.site_name, item.pr_number_and_name) if part)
            if ref:
                refs.setdefault(ref, None)
        subject = self.subject_prefix
        if recipient.name:
            subject += f" | {recipient.name}"
        if refs:
            subject += f" {','.join(refs)}"
        subject += f" #{record_id}"
        return f"RE: {subject}" if resend else subject

    def document_filename(self, recipient: Recipient, extension: str, at: datetime | None = None) -> str:
        """
        Blob name for a rendered document, unique per call.

        e.g. 'Inquiries-Supplier-Acme-20240101T101500123456-1a2b3c4d.xlsx'
        """
        at = at or datetime.now()
        name = "-".join(recipient.name.split()) or str(recipient.id)
        return f"{self.document_prefix}-{name}-{at:%Y%m%dT%H%M%S%f}-{uuid4().hex[:8]}.{extension}"
