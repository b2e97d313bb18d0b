"""
Communication wizard state machine.

SelectingRecipient -> SelectingItems -> SelectingChannel -> PreviewOrSend -> Sent

The state is an immutable value. transition(state, action) returns the
next state or raises ValidationFailed; nothing is persisted until the
caller performs the Send and applies MarkSent.
"""

from dataclasses import dataclass, field, replace
from enum import Enum

from mte_erp.core.errors import ValidationFailed
from mte_erp.core.models import Channel, LineItem, Recipient, RecipientKind


class Stage(str, Enum):
    """Wizard stages in order."""

    SELECTING_RECIPIENT = "selecting_recipient"
    SELECTING_ITEMS = "selecting_items"
    SELECTING_CHANNEL = "selecting_channel"
    PREVIEW_OR_SEND = "preview_or_send"
    SENT = "sent"


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)


def unique(values) -> tuple[str, ...]:
    """Strip blanks and drop duplicates, keeping first occurrence."""
    seen: dict[str, None] = {}
    for value in values:
        value = (value or "").strip()
        if value:
            seen.setdefault(value, None)
    return tuple(seen)


@dataclass(frozen=True)
class ChannelSelection:
    """Operator choice for one channel."""

    enabled: bool = True
    known: tuple[str, ...] = ()
    custom: tuple[str, ...] = ()

    @property
    def resolved(self) -> tuple[str, ...]:
        """Known and custom addresses as a set union."""
        return unique(self.known + self.custom)


@dataclass(frozen=True)
class WizardState:
    """Accumulated selections of one wizard run."""

    kind: RecipientKind
    stage: Stage = Stage.SELECTING_RECIPIENT
    recipient: Recipient | None = None
    site_id: int | None = None
    pr_number_and_name: str | None = None
    eligible_items: tuple[LineItem, ...] = ()
    selected_item_ids: tuple[int, ...] = ()
    email: ChannelSelection = field(default_factory=ChannelSelection)
    whatsapp: ChannelSelection = field(default_factory=ChannelSelection)
    remark: str | None = None
    record_id: int | None = None

    def channel(self, channel: Channel) -> ChannelSelection:
        return self.email if channel is Channel.EMAIL else self.whatsapp

    @property
    def selected_items(self) -> tuple[LineItem, ...]:
        by_id = {item.id: item for item in self.eligible_items}
        return tuple(by_id[item_id] for item_id in self.selected_item_ids if item_id in by_id)

    @property
    def available_remarks(self) -> tuple[str, ...]:
        """Distinct free-text remarks carried by the selected items."""
        return unique(item.remark for item in self.selected_items)

    @property
    def enabled_channels(self) -> tuple[Channel, ...]:
        return tuple(c for c in Channel if self.channel(c).enabled)


# Actions


@dataclass(frozen=True)
class SelectRecipient:
    """Pick the recipient; eligible_items is what the caller fetched for it."""

    recipient: Recipient
    eligible_items: tuple[LineItem, ...]
    site_id: int | None = None
    pr_number_and_name: str | None = None


@dataclass(frozen=True)
class SelectItems:
    """Replace the selected item set."""

    item_ids: tuple[int, ...]


@dataclass(frozen=True)
class ConfigureChannel:
    """Enable/disable a channel and choose its addresses."""

    channel: Channel
    enabled: bool
    known: tuple[str, ...] = ()
    custom: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChooseRemark:
    """Pick one shared remark (None clears it)."""

    remark: str | None


@dataclass(frozen=True)
class Advance:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class MarkSent:
    """Terminal transition after a successful Send."""

    record_id: int


def start(kind: RecipientKind) -> WizardState:
    return WizardState(kind=kind)


def _require_stage(state: WizardState, action, *stages: Stage) -> None:
    if state.stage not in stages:
        raise ValidationFailed(
            f"{type(action).__name__} is not allowed while {state.stage.value}",
            stage=state.stage.value,
        )


def _check_recipient(state: WizardState) -> None:
    if state.recipient is None:
        raise ValidationFailed("Select a recipient first", field="recipient")


def _check_items(state: WizardState) -> None:
    if not state.selected_items:
        raise ValidationFailed("Select at least one item", field="item_ids")


def _check_channels(state: WizardState) -> None:
    for channel in state.enabled_channels:
        if not state.channel(channel).resolved:
            raise ValidationFailed(
                f"No {channel.value} address for an enabled channel",
                field=channel.value,
            )


GUARDS = {
    Stage.SELECTING_RECIPIENT: (_check_recipient,),
    Stage.SELECTING_ITEMS: (_check_recipient, _check_items),
    Stage.SELECTING_CHANNEL: (_check_recipient, _check_items, _check_channels),
    Stage.PREVIEW_OR_SEND: (_check_recipient, _check_items, _check_channels),
}


def check_ready(state: WizardState) -> None:
    """Re-run every guard up to the current stage."""
    for guard in GUARDS.get(state.stage, ()):
        guard(state)


def _select_recipient(state: WizardState, action: SelectRecipient) -> WizardState:
    if action.recipient.kind is not state.kind:
        raise ValidationFailed(
            f"Recipient is a {action.recipient.kind.value}, expected {state.kind.value}",
            field="recipient",
        )
    items = tuple(i for i in action.eligible_items if i.recipient_id == action.recipient.id)
    return replace(
        state,
        recipient=action.recipient,
        site_id=action.site_id,
        pr_number_and_name=action.pr_number_and_name,
        eligible_items=items,
        # everything eligible starts selected
        selected_item_ids=tuple(i.id for i in items),
        email=ChannelSelection(known=action.recipient.emails),
        whatsapp=ChannelSelection(known=action.recipient.whatsapp_numbers),
        remark=None,
    )


def _select_items(state: WizardState, action: SelectItems) -> WizardState:
    eligible = {item.id for item in state.eligible_items}
    unknown = [item_id for item_id in action.item_ids if item_id not in eligible]
    if unknown:
        raise ValidationFailed("Items are not eligible for this recipient", item_ids=unknown)
    selected = tuple(dict.fromkeys(action.item_ids))
    remark = state.remark
    next_state = replace(state, selected_item_ids=selected)
    if remark is not None and remark not in next_state.available_remarks:
        remark = None
    return replace(next_state, remark=remark)


def _configure_channel(state: WizardState, action: ConfigureChannel) -> WizardState:
    known_pool = set(state.recipient.known_addresses(action.channel)) if state.recipient else set()
    known = unique(action.known)
    stray = [a for a in known if a not in known_pool]
    if stray:
        raise ValidationFailed(
            f"Addresses are not on the recipient profile: {', '.join(stray)}",
            field=action.channel.value,
        )
    selection = ChannelSelection(enabled=action.enabled, known=known, custom=unique(action.custom))
    if action.channel is Channel.EMAIL:
        return replace(state, email=selection)
    return replace(state, whatsapp=selection)


def _choose_remark(state: WizardState, action: ChooseRemark) -> WizardState:
    if action.remark is None:
        return replace(state, remark=None)
    if action.remark not in state.available_remarks:
        raise ValidationFailed("Remark does not belong to a selected item", field="remark")
    return replace(state, remark=action.remark)


def transition(state: WizardState, action) -> WizardState:
    """
    Apply an action to a wizard state.

    Args:
        state: Current wizard state
        action: One of the action dataclasses above

    Returns:
        The next state; the input state is never modified.

    Raises:
        ValidationFailed: The action is not allowed in this stage or a guard failed.
    """
    if state.stage is Stage.SENT:
        raise ValidationFailed("Communication already sent", stage=state.stage.value)

    if isinstance(action, Advance):
        if state.stage is Stage.PREVIEW_OR_SEND:
            raise ValidationFailed("Use Send to leave the preview stage", stage=state.stage.value)
        check_ready(state)
        return replace(state, stage=STAGE_ORDER[STAGE_ORDER.index(state.stage) + 1])

    if isinstance(action, Back):
        index = STAGE_ORDER.index(state.stage)
        if index == 0:
            raise ValidationFailed("Already at the first step", stage=state.stage.value)
        return replace(state, stage=STAGE_ORDER[index - 1])

    if isinstance(action, SelectRecipient):
        _require_stage(state, action, Stage.SELECTING_RECIPIENT)
        return _select_recipient(state, action)

    if isinstance(action, SelectItems):
        _require_stage(state, action, Stage.SELECTING_ITEMS)
        return _select_items(state, action)

    if isinstance(action, ConfigureChannel):
        _require_stage(state, action, Stage.SELECTING_CHANNEL)
        return _configure_channel(state, action)

    if isinstance(action, ChooseRemark):
        _require_stage(state, action, Stage.PREVIEW_OR_SEND)
        return _choose_remark(state, action)

    if isinstance(action, MarkSent):
        _require_stage(state, action, Stage.PREVIEW_OR_SEND)
        check_ready(state)
        return replace(state, stage=Stage.SENT, record_id=action.record_id)

    raise ValidationFailed(f"Unknown action {type(action).__name__}")
