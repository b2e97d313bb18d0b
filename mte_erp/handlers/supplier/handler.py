"""
Supplier handler: inquiries sent to a supplier for pricing.
"""

from mte_erp.config import settings
from mte_erp.core.models import RecipientKind
from mte_erp.handlers.base import BaseRecipientHandler, DocumentColumn
from mte_erp.handlers.registry import register_handler

INQUIRY_BODY = """Dear Sir/Madam,

I hope this email finds you well. I am writing this to inquire about specific items and have attached the inquiry excel file for your reference. We request you to provide us with your best offer in response.

Kindly provide the details mentioned in the "Green" coloured columns of the attached file.
If you have any queries or require further clarification, please reach out to our representative (FPR) listed in the attached file."""


def _fpr(attr: str):
    def value(_: int, item) -> str:
        rep = item.representative
        return (getattr(rep, attr) or "") if rep else ""

    return value


@register_handler
class SupplierHandler(BaseRecipientHandler):
    """Handler for InquirySentToSupplier communications."""

    kind = RecipientKind.SUPPLIER

    recipient_table = "suppliers"
    email_columns = ("email", "email2", "email3")
    whatsapp_columns = (
        "whatsapp",
        "mobile",
        "alternate_mobile",
        "accounts_contact_mobile",
        "logistic_contact_mobile",
        "purchase_contact_mobile",
    )

    party_column = "supplier_id"
    sent_column = "sent_to_supplier_at"
    remark_column = "supplier_remarks"
    price_column = "supplier_price"

    subject_prefix = f"INQUIRY FROM {settings.company_code}"
    document_prefix = "Inquiries-Supplier"
    document_title = "Inquiry to Supplier"

    def columns(self) -> list[DocumentColumn]:
        return [
            DocumentColumn("SR. NO.", lambda sr, item: sr, width=8),
            DocumentColumn("PR NUMBER & NAME", lambda sr, item: item.pr_number_and_name, width=25),
            DocumentColumn("GOODS DESCRIPTION", lambda sr, item: item.description, width=40),
            DocumentColumn("UNIT", lambda sr, item: item.unit, width=8),
            DocumentColumn("QTY", lambda sr, item: item.quantity, width=8),
            DocumentColumn("SIZE/SPECIFICATION", lambda sr, item: item.size, width=20),
            DocumentColumn("SUPPLIER PRICE", lambda sr, item: None, width=12, highlight=True),
            DocumentColumn("ESTIMATED DELIVERY DAYS", lambda sr, item: None, width=12, highlight=True),
            DocumentColumn("REMARKS", lambda sr, item: item.remark, width=25),
            DocumentColumn("FPR", _fpr("name"), width=14),
            DocumentColumn("FPR EMAIL", _fpr("email"), width=20),
            DocumentColumn("FPR MOBILE", _fpr("mobile"), width=14),
            DocumentColumn("INQUIRY ID", lambda sr, item: item.id, width=10),
        ]

    def email_body(self, remark: str | None = None) -> str:
        body = INQUIRY_BODY
        if remark:
            body += f"\n\n{remark}"
        return body + "\n\nThank You"

    def whatsapp_template(self) -> str:
        return settings.whatsapp_supplier_template
