"""
Customer handler: priced offers sent back to the customer.
"""

from mte_erp.config import settings
from mte_erp.core.models import RecipientKind
from mte_erp.handlers.base import BaseRecipientHandler, DocumentColumn
from mte_erp.handlers.registry import register_handler

OFFER_BODY = """Dear Sir/Madam,

I hope this email finds you well.
Please find the attached offer against your subjected inquiry along with the necessary technical details. Hope this meets your requirements."""

OFFER_CLOSING = """Do let us know in case you require any changes in technicals or have some query.

Thank You"""


@register_handler
class CustomerHandler(BaseRecipientHandler):
    """Handler for OfferSentToCustomer communications."""

    kind = RecipientKind.CUSTOMER

    recipient_table = "customers"
    email_columns = ("contact_email", "contact_email2", "contact_email3")
    whatsapp_columns = ("contact_mobile",)

    party_column = "customer_id"
    sent_column = "offered_to_customer_at"
    remark_column = "customer_remarks"
    price_column = "customer_price"
    # offers only go out for priced items; site and PR narrow the set
    requires_price = True
    supports_filters = True

    subject_prefix = f"OFFER FROM {settings.company_code}"
    document_prefix = "Offer-Customer"
    document_title = "Offer to Customer"

    def columns(self) -> list[DocumentColumn]:
        return [
            DocumentColumn("SR. NO.", lambda sr, item: sr, width=8),
            DocumentColumn("SITE", lambda sr, item: item.site_name, width=18),
            DocumentColumn("PR NUMBER & NAME", lambda sr, item: item.pr_number_and_name, width=25),
            DocumentColumn("GOODS DESCRIPTION", lambda sr, item: item.description, width=40),
            DocumentColumn("UNIT", lambda sr, item: item.unit, width=8),
            DocumentColumn("QTY", lambda sr, item: item.quantity, width=8),
            DocumentColumn("SIZE/SPECIFICATION", lambda sr, item: item.size, width=20),
            DocumentColumn("UNIT PRICE", lambda sr, item: item.price, width=12),
            DocumentColumn("TOTAL PRICE", lambda sr, item: item.total_price, width=14),
            DocumentColumn("REMARKS", lambda sr, item: item.remark, width=25),
            DocumentColumn("INQUIRY ID", lambda sr, item: item.id, width=10),
        ]

    def email_body(self, remark: str | None = None) -> str:
        body = OFFER_BODY
        if remark:
            body += f"\n\n{remark}"
        return f"{body}\n\n{OFFER_CLOSING}"

    def whatsapp_template(self) -> str:
        return settings.whatsapp_customer_template
