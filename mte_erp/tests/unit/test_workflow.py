"""Unit tests for the communication wizard state machine."""

import pytest

from mte_erp.core.errors import ValidationFailed
from mte_erp.core.models import Channel, RecipientKind
from mte_erp.core.workflow import (
    Advance,
    Back,
    ChannelSelection,
    ChooseRemark,
    ConfigureChannel,
    MarkSent,
    SelectItems,
    SelectRecipient,
    Stage,
    start,
    transition,
    unique,
)
from mte_erp.handlers import get_handler


@pytest.fixture
def eligible(comm_repo, supplier):
    handler = get_handler(RecipientKind.SUPPLIER)
    return tuple(comm_repo.eligible_items(handler, supplier.id))


@pytest.fixture
def at_items(supplier, eligible):
    state = transition(start(RecipientKind.SUPPLIER), SelectRecipient(supplier, eligible))
    return transition(state, Advance())


@pytest.fixture
def at_channels(at_items):
    return transition(at_items, Advance())


@pytest.fixture
def at_preview(at_channels):
    return transition(at_channels, Advance())


class TestHelpers:
    def test_unique_keeps_first_occurrence(self):
        assert unique(["b", " a ", "b", "", None, "a"]) == ("b", "a")

    def test_resolved_is_union(self):
        selection = ChannelSelection(known=("x@a.com", "y@a.com"), custom=("y@a.com", "z@b.com"))
        assert selection.resolved == ("x@a.com", "y@a.com", "z@b.com")


class TestSelectingRecipient:
    def test_cannot_advance_without_recipient(self):
        with pytest.raises(ValidationFailed):
            transition(start(RecipientKind.SUPPLIER), Advance())

    def test_select_preselects_items_and_known_addresses(self, supplier, eligible):
        state = transition(start(RecipientKind.SUPPLIER), SelectRecipient(supplier, eligible))

        assert state.stage is Stage.SELECTING_RECIPIENT
        assert state.selected_item_ids == (101, 102, 103)
        assert state.email.resolved == supplier.emails
        assert state.whatsapp.resolved == supplier.whatsapp_numbers

    def test_recipient_kind_must_match(self, customer):
        with pytest.raises(ValidationFailed):
            transition(start(RecipientKind.SUPPLIER), SelectRecipient(customer, ()))

    def test_cannot_go_back_from_first_step(self):
        with pytest.raises(ValidationFailed):
            transition(start(RecipientKind.SUPPLIER), Back())


class TestSelectingItems:
    def test_advance_with_zero_items_is_rejected(self, at_items):
        state = transition(at_items, SelectItems(()))
        with pytest.raises(ValidationFailed):
            transition(state, Advance())

    def test_unknown_items_are_rejected(self, at_items):
        with pytest.raises(ValidationFailed):
            transition(at_items, SelectItems((101, 999)))

    def test_selection_keeps_order_without_duplicates(self, at_items):
        state = transition(at_items, SelectItems((103, 101, 103)))
        assert state.selected_item_ids == (103, 101)

    def test_back_returns_to_recipient(self, at_items):
        state = transition(at_items, Back())
        assert state.stage is Stage.SELECTING_RECIPIENT
        assert state.recipient == at_items.recipient

    def test_transition_does_not_mutate_input(self, at_items):
        transition(at_items, SelectItems((102,)))
        assert at_items.selected_item_ids == (101, 102, 103)


class TestSelectingChannel:
    def test_enabled_channel_without_address_is_rejected(self, at_channels):
        state = transition(at_channels, ConfigureChannel(Channel.EMAIL, enabled=True))
        with pytest.raises(ValidationFailed):
            transition(state, Advance())

    def test_disabled_channel_needs_no_address(self, at_channels):
        state = transition(at_channels, ConfigureChannel(Channel.WHATSAPP, enabled=False))
        state = transition(state, Advance())
        assert state.stage is Stage.PREVIEW_OR_SEND
        assert state.enabled_channels == (Channel.EMAIL,)

    def test_custom_addresses_are_merged(self, at_channels, supplier):
        state = transition(at_channels, ConfigureChannel(
            Channel.EMAIL,
            enabled=True,
            known=(supplier.emails[0],),
            custom=("new@acme.example.com", supplier.emails[0]),
        ))
        assert state.email.resolved == (supplier.emails[0], "new@acme.example.com")

    def test_known_must_be_on_profile(self, at_channels):
        with pytest.raises(ValidationFailed):
            transition(at_channels, ConfigureChannel(Channel.EMAIL, enabled=True, known=("stranger@x.com",)))

    def test_action_outside_its_stage_is_rejected(self, at_items):
        with pytest.raises(ValidationFailed):
            transition(at_items, ConfigureChannel(Channel.EMAIL, enabled=False))


class TestPreviewOrSend:
    def test_remark_must_belong_to_selected_items(self, at_preview):
        state = transition(at_preview, ChooseRemark("Urgent"))
        assert state.remark == "Urgent"
        with pytest.raises(ValidationFailed):
            transition(at_preview, ChooseRemark("Something else"))

    def test_deselecting_items_drops_stale_remark(self, at_preview):
        state = transition(at_preview, ChooseRemark("Urgent"))
        state = transition(transition(transition(state, Back()), Back()), SelectItems((102,)))
        assert state.remark is None

    def test_advance_is_not_send(self, at_preview):
        with pytest.raises(ValidationFailed):
            transition(at_preview, Advance())

    def test_mark_sent_is_terminal(self, at_preview):
        sent = transition(at_preview, MarkSent(record_id=5))
        assert sent.stage is Stage.SENT
        assert sent.record_id == 5
        with pytest.raises(ValidationFailed):
            transition(sent, Back())

    def test_mark_sent_rechecks_guards(self, at_preview):
        # back to channels, clear email, then jump forward again is blocked at Advance
        state = transition(at_preview, Back())
        state = transition(state, ConfigureChannel(Channel.EMAIL, enabled=True))
        with pytest.raises(ValidationFailed):
            transition(state, Advance())
