"""
Communication endpoints for supplier inquiries and customer offers.

GET  /communications/{kind}/recipients                          - recipients with eligible items
GET  /communications/{kind}/recipients/{id}/items               - eligible line items
GET  /communications/{kind}/recipients/{id}/addresses           - known email/WhatsApp addresses
GET  /communications/customer/recipients/{id}/sites             - customer sites
GET  /communications/customer/recipients/{id}/pr-numbers        - customer PR numbers
POST /communications/{kind}/preview                             - render + upload only
POST /communications/{kind}/send                                - create record and dispatch
GET  /communications/{kind}/records                             - paginated history
GET  /communications/{kind}/records/{record_id}                 - one record with its items and resend history
POST /communications/{kind}/records/{record_id}/resend          - dispatch again
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr

from mte_erp.communications import ChannelDraft, CommunicationService, Draft
from mte_erp.core.errors import ValidationFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import RecipientKind
from mte_erp.routers.deps import get_actor, get_communication_service

log = get_logger(__name__)
router = APIRouter(prefix="/communications", tags=["communications"])


class ChannelsRequest(BaseModel):
    email: bool = True
    whatsapp: bool = True
    emails: list[EmailStr] = []
    whatsapp_numbers: list[str] = []

    def email_draft(self) -> ChannelDraft:
        return ChannelDraft(enabled=self.email, addresses=[str(e) for e in self.emails])

    def whatsapp_draft(self) -> ChannelDraft:
        return ChannelDraft(enabled=self.whatsapp, addresses=list(self.whatsapp_numbers))


class SendRequest(ChannelsRequest):
    recipient_id: int
    item_ids: list[int]
    remark: str | None = None
    site_id: int | None = None
    pr_number_and_name: str | None = None

    def to_draft(self, kind: RecipientKind) -> Draft:
        return Draft(
            kind=kind,
            recipient_id=self.recipient_id,
            item_ids=list(self.item_ids),
            email=self.email_draft(),
            whatsapp=self.whatsapp_draft(),
            remark=self.remark,
            site_id=self.site_id,
            pr_number_and_name=self.pr_number_and_name,
        )


class ResendRequest(ChannelsRequest):
    remark: str | None = None


def _require_customer(kind: RecipientKind) -> None:
    if kind is not RecipientKind.CUSTOMER:
        raise ValidationFailed("Sites and PR numbers exist only for customers", kind=kind.value)


@router.get("/{kind}/recipients")
def ready_recipients(kind: RecipientKind, service: CommunicationService = Depends(get_communication_service)):
    return {"kind": kind.value, "recipients": service.ready_recipients(kind)}


@router.get("/{kind}/recipients/{recipient_id}/items")
def eligible_items(
    kind: RecipientKind,
    recipient_id: int,
    site_id: int | None = None,
    pr_number_and_name: str | None = None,
    service: CommunicationService = Depends(get_communication_service),
):
    items = service.eligible_items(kind, recipient_id, site_id, pr_number_and_name)
    return {"recipient_id": recipient_id, "items": [item.to_dict() for item in items]}


@router.get("/{kind}/recipients/{recipient_id}/addresses")
def known_addresses(
    kind: RecipientKind,
    recipient_id: int,
    service: CommunicationService = Depends(get_communication_service),
):
    return service.known_addresses(kind, recipient_id)


@router.get("/{kind}/recipients/{recipient_id}/sites")
def customer_sites(
    kind: RecipientKind,
    recipient_id: int,
    service: CommunicationService = Depends(get_communication_service),
):
    _require_customer(kind)
    return {"customer_id": recipient_id, "sites": service.sites(recipient_id)}


@router.get("/{kind}/recipients/{recipient_id}/pr-numbers")
def customer_pr_numbers(
    kind: RecipientKind,
    recipient_id: int,
    site_id: int | None = None,
    service: CommunicationService = Depends(get_communication_service),
):
    _require_customer(kind)
    return {"customer_id": recipient_id, "pr_numbers": service.pr_numbers(recipient_id, site_id)}


@router.post("/{kind}/preview")
def preview(
    kind: RecipientKind,
    req: SendRequest,
    service: CommunicationService = Depends(get_communication_service),
    actor: int | None = Depends(get_actor),
):
    """Render and upload the documents; nothing is recorded or dispatched."""
    urls = service.preview(req.to_draft(kind), actor=actor)
    return {"urls": urls}


@router.post("/{kind}/send")
def send(
    kind: RecipientKind,
    req: SendRequest,
    service: CommunicationService = Depends(get_communication_service),
    actor: int | None = Depends(get_actor),
):
    """
    Send the bundle and record it.

    The record is created even when both channels fail; the flags say so.
    """
    result = service.send(req.to_draft(kind), actor=actor)
    log.info("send_requested", kind=kind.value, record_id=result.record_id, actor=actor)
    return result.to_dict()


@router.get("/{kind}/records")
def list_records(
    kind: RecipientKind,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    recipient_id: int | None = None,
    service: CommunicationService = Depends(get_communication_service),
):
    total, records = service.list_records(kind, page, limit, recipient_id)
    return {"total": total, "page": page, "limit": limit, "records": [r.to_dict() for r in records]}


@router.get("/{kind}/records/{record_id}")
def get_record(
    kind: RecipientKind,
    record_id: int,
    service: CommunicationService = Depends(get_communication_service),
):
    """The record plus the line items it was sent with."""
    record, items = service.record_detail(kind, record_id)
    return {**record.to_dict(), "items": [item.to_dict() for item in items]}


@router.post("/{kind}/records/{record_id}/resend")
def resend(
    kind: RecipientKind,
    record_id: int,
    req: ResendRequest,
    service: CommunicationService = Depends(get_communication_service),
    actor: int | None = Depends(get_actor),
):
    result = service.resend(
        kind,
        record_id,
        email=req.email_draft(),
        whatsapp=req.whatsapp_draft(),
        remark=req.remark,
        actor=actor,
    )
    return result.to_dict()
