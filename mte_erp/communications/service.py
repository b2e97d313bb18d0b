"""
Communication service: preview, send and resend document bundles.

Send flow:
1. Replay the operator's choices through the wizard state machine.
2. Render the spreadsheet + PDF and upload both to the blob store.
3. Create the record (flags false), stamp the items and register the
   documents in one transaction. If that is rejected the uploads are removed.
4. Dispatch email and WhatsApp concurrently; a failed channel is a false flag.
5. Write the channel flags back to the record.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any

from mte_erp.core.errors import DispatchFailed, ERPError, StorageUnavailable, ValidationFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import (
    Channel,
    CommunicationRecord,
    DocumentBundle,
    LineItem,
    Recipient,
    RecipientKind,
    SendResult,
)
from mte_erp.core.workflow import (
    Advance,
    ChannelSelection,
    ChooseRemark,
    ConfigureChannel,
    MarkSent,
    SelectItems,
    SelectRecipient,
    WizardState,
    start,
    transition,
)
from mte_erp.communications.repository import CommunicationRepository
from mte_erp.handlers import BaseRecipientHandler, require_handler
from mte_erp.services.documents import DocumentRenderer
from mte_erp.services.gateway import MessagingGateway
from mte_erp.services.minio import BlobStore

log = get_logger(__name__)


@dataclass
class ChannelDraft:
    """Operator input for one channel: addresses may mix known and custom."""

    enabled: bool = True
    addresses: list[str] = field(default_factory=list)


@dataclass
class Draft:
    """Everything the operator chose in the wizard, as submitted by the client."""

    kind: RecipientKind
    recipient_id: int
    item_ids: list[int]
    email: ChannelDraft = field(default_factory=ChannelDraft)
    whatsapp: ChannelDraft = field(default_factory=ChannelDraft)
    remark: str | None = None
    site_id: int | None = None
    pr_number_and_name: str | None = None


def split_addresses(recipient: Recipient, channel: Channel, addresses: list[str]) -> tuple[list[str], list[str]]:
    """Partition addresses into (known on the recipient profile, custom)."""
    known_pool = set(recipient.known_addresses(channel))
    known = [a for a in addresses if a in known_pool]
    custom = [a for a in addresses if a not in known_pool]
    return known, custom


class CommunicationService:
    """Orchestrates the communication workflow for every recipient kind."""

    def __init__(
        self,
        repository: CommunicationRepository,
        blob_store: BlobStore,
        gateway: MessagingGateway,
        renderer: DocumentRenderer | None = None,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.gateway = gateway
        self.renderer = renderer or DocumentRenderer()

    # Reads

    def ready_recipients(self, kind: RecipientKind) -> list[dict]:
        return self.repository.ready_recipients(require_handler(kind))

    def eligible_items(
        self,
        kind: RecipientKind,
        recipient_id: int,
        site_id: int | None = None,
        pr_number_and_name: str | None = None,
    ) -> list[LineItem]:
        handler = require_handler(kind)
        self.repository.get_recipient(handler, recipient_id)
        return self.repository.eligible_items(handler, recipient_id, site_id, pr_number_and_name)

    def known_addresses(self, kind: RecipientKind, recipient_id: int) -> dict[str, list[str]]:
        recipient = self.repository.get_recipient(require_handler(kind), recipient_id)
        return {
            "emails": list(recipient.emails),
            "whatsapp_numbers": list(recipient.whatsapp_numbers),
        }

    def sites(self, customer_id: int) -> list[dict]:
        self.repository.get_recipient(require_handler(RecipientKind.CUSTOMER), customer_id)
        return self.repository.sites(customer_id)

    def pr_numbers(self, customer_id: int, site_id: int | None = None) -> list[str]:
        self.repository.get_recipient(require_handler(RecipientKind.CUSTOMER), customer_id)
        return self.repository.pr_numbers(customer_id, site_id)

    def get_record(self, kind: RecipientKind, record_id: int) -> CommunicationRecord:
        record = self.repository.get_record(record_id)
        if record.kind is not kind:
            raise ValidationFailed(
                f"Record {record_id} is a {record.kind.value} communication",
                record_id=record_id,
            )
        return record

    def record_detail(self, kind: RecipientKind, record_id: int) -> tuple[CommunicationRecord, list[LineItem]]:
        """A record with its line items, in the order they were sent."""
        record = self.get_record(kind, record_id)
        items = self.repository.items_by_ids(require_handler(kind), list(record.item_ids))
        return record, items

    def list_records(
        self,
        kind: RecipientKind,
        page: int = 1,
        limit: int = 10,
        recipient_id: int | None = None,
    ) -> tuple[int, list[CommunicationRecord]]:
        return self.repository.list_records(kind, page, limit, recipient_id)

    # Workflow

    def build_state(self, draft: Draft) -> WizardState:
        """
        Replay a draft through the wizard up to PreviewOrSend.

        Raises:
            NotFound: Recipient missing.
            ValidationFailed: A guard rejected the draft.
        """
        handler = require_handler(draft.kind)
        recipient = self.repository.get_recipient(handler, draft.recipient_id)
        eligible = self.repository.eligible_items(
            handler, recipient.id, draft.site_id, draft.pr_number_and_name
        )
        return self._replay(
            draft.kind, recipient, eligible, draft.item_ids, draft.email, draft.whatsapp, draft.remark,
            site_id=draft.site_id, pr_number_and_name=draft.pr_number_and_name,
        )

    @staticmethod
    def _replay(
        kind: RecipientKind,
        recipient: Recipient,
        eligible: list[LineItem],
        item_ids: list[int],
        email: ChannelDraft,
        whatsapp: ChannelDraft,
        remark: str | None,
        site_id: int | None = None,
        pr_number_and_name: str | None = None,
    ) -> WizardState:
        state = start(kind)
        state = transition(state, SelectRecipient(
            recipient=recipient,
            eligible_items=tuple(eligible),
            site_id=site_id,
            pr_number_and_name=pr_number_and_name,
        ))
        state = transition(state, Advance())
        state = transition(state, SelectItems(tuple(item_ids)))
        state = transition(state, Advance())
        for channel, channel_draft in ((Channel.EMAIL, email), (Channel.WHATSAPP, whatsapp)):
            known, custom = split_addresses(recipient, channel, channel_draft.addresses)
            state = transition(state, ConfigureChannel(
                channel=channel,
                enabled=channel_draft.enabled,
                known=tuple(known),
                custom=tuple(custom),
            ))
        state = transition(state, Advance())
        if remark:
            state = transition(state, ChooseRemark(remark))
        return state

    def _discard(self, files) -> None:
        """Best-effort removal of uploaded documents nothing will reference."""
        for f in files:
            try:
                self.blob_store.delete_file(f.filename)
            except StorageUnavailable as e:
                log.warning("document_cleanup_failed", filename=f.filename, error=e.message)

    def _upload(self, bundle: DocumentBundle) -> DocumentBundle:
        """Upload both files; if one fails the other is removed again."""
        stored = []
        try:
            for f in bundle.files:
                url = self.blob_store.add_file(f.filename, f.content, f.content_type)
                stored.append(replace(f, url=url))
        except StorageUnavailable:
            self._discard(stored)
            raise
        return DocumentBundle(spreadsheet=stored[0], pdf=stored[1])

    def _render(
        self,
        handler: BaseRecipientHandler,
        recipient: Recipient,
        items: list[LineItem],
        remark: str | None,
    ) -> DocumentBundle:
        return self._upload(self.renderer.render_bundle(handler, recipient, items, remark=remark))

    def _reply_to(self, items: list[LineItem], actor: int | None) -> list[str]:
        user_ids: dict[int, None] = {}
        for item in items:
            if item.representative:
                user_ids.setdefault(item.representative.id, None)
        if actor is not None:
            user_ids.setdefault(actor, None)
        return self.repository.user_emails(list(user_ids))

    def _dispatch(
        self,
        handler: BaseRecipientHandler,
        recipient: Recipient,
        items: list[LineItem],
        bundle: DocumentBundle,
        email: ChannelSelection,
        whatsapp: ChannelSelection,
        record_id: int,
        remark: str | None,
        actor: int | None,
        resend: bool = False,
    ) -> tuple[bool, bool]:
        """Attempt both enabled channels independently; returns (email_sent, whatsapp_sent)."""
        jobs: dict[Channel, Any] = {}
        with ThreadPoolExecutor(max_workers=2) as pool:
            if email.enabled and email.resolved:
                jobs[Channel.EMAIL] = pool.submit(
                    self.gateway.send_email,
                    list(email.resolved),
                    handler.subject(recipient, items, record_id, resend=resend),
                    handler.email_body(remark),
                    list(bundle.files),
                    self._reply_to(items, actor),
                )
            if whatsapp.enabled and whatsapp.resolved:
                jobs[Channel.WHATSAPP] = pool.submit(
                    self.gateway.send_whatsapp,
                    list(whatsapp.resolved),
                    handler.whatsapp_template(),
                    handler.whatsapp_parameters(bundle.urls),
                )

            outcome = {channel: False for channel in Channel}
            for channel, future in jobs.items():
                try:
                    outcome[channel] = bool(future.result())
                except DispatchFailed as e:
                    log.warning("dispatch_failed", channel=channel.value, record_id=record_id, error=e.message)
                except Exception as e:
                    # any other error counts as a failed channel
                    log.error(
                        "dispatch_failed",
                        channel=channel.value,
                        record_id=record_id,
                        error_type=type(e).__name__,
                        error=str(e),
                    )

        return outcome[Channel.EMAIL], outcome[Channel.WHATSAPP]

    def preview(self, draft: Draft, actor: int | None = None) -> list[str]:
        """Render and upload the bundle without creating a record or dispatching."""
        state = self.build_state(draft)
        handler = require_handler(draft.kind)
        bundle = self._render(handler, state.recipient, list(state.selected_items), state.remark)
        log.info("communication_previewed", kind=draft.kind.value, recipient_id=draft.recipient_id, actor=actor)
        return bundle.urls

    def send(self, draft: Draft, actor: int | None = None) -> SendResult:
        """
        Send a bundle to the recipient and record the outcome.

        Returns:
            SendResult with the record id, per-channel flags and document URLs.

        Raises:
            NotFound: Recipient missing.
            ValidationFailed: Draft rejected by the workflow guards.
            StorageUnavailable: Documents could not be stored; nothing was persisted.
            Conflict: A concurrent Send claimed the same items.
        """
        state = self.build_state(draft)
        handler = require_handler(draft.kind)
        recipient = state.recipient
        items = list(state.selected_items)

        bundle = self._render(handler, recipient, items, state.remark)
        try:
            record = self.repository.create_record(
                handler,
                recipient.id,
                [item.id for item in items],
                actor,
                site_id=state.site_id,
                pr_number_and_name=state.pr_number_and_name,
                documents=list(bundle.files),
            )
        except ERPError:
            self._discard(bundle.files)
            raise

        email_sent, whatsapp_sent = self._dispatch(
            handler, recipient, items, bundle, state.email, state.whatsapp,
            record_id=record.id, remark=state.remark, actor=actor,
        )
        self.repository.record_outcome(record.id, email_sent, whatsapp_sent)
        state = transition(state, MarkSent(record.id))

        log.info(
            "communication_sent",
            kind=draft.kind.value,
            record_id=record.id,
            stage=state.stage.value,
            email_sent=email_sent,
            whatsapp_sent=whatsapp_sent,
        )
        return SendResult(record_id=record.id, email_sent=email_sent, whatsapp_sent=whatsapp_sent, urls=bundle.urls)

    def resend(
        self,
        kind: RecipientKind,
        record_id: int,
        email: ChannelDraft,
        whatsapp: ChannelDraft,
        remark: str | None = None,
        actor: int | None = None,
    ) -> SendResult:
        """
        Dispatch an existing record again.

        The record's items are fixed; only the channel flags, last_resend_at
        and the resend history change. The choices go through the same
        wizard guards as a Send, with the record's items as the eligible set.

        Raises:
            ValidationFailed: No address for an enabled channel, or a remark
                that none of the record's items carries.
        """
        record = self.get_record(kind, record_id)
        handler = require_handler(kind)
        recipient = self.repository.get_recipient(handler, record.recipient_id)
        items = self.repository.items_by_ids(handler, list(record.item_ids))

        state = self._replay(kind, recipient, items, [item.id for item in items], email, whatsapp, remark)
        items = list(state.selected_items)

        bundle = self._render(handler, recipient, items, state.remark)
        email_sent, whatsapp_sent = self._dispatch(
            handler, recipient, items, bundle, state.email, state.whatsapp,
            record_id=record.id, remark=state.remark, actor=actor, resend=True,
        )
        self.repository.record_resend(record.id, email_sent, whatsapp_sent, actor, documents=list(bundle.files))

        log.info(
            "communication_resent",
            kind=kind.value,
            record_id=record.id,
            email_sent=email_sent,
            whatsapp_sent=whatsapp_sent,
        )
        return SendResult(record_id=record.id, email_sent=email_sent, whatsapp_sent=whatsapp_sent, urls=bundle.urls)
