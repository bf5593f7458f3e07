"""Tests for order status derivation and role-gated transitions."""

import itertools

import pytest
from marketplace.eventlog.records import LineItemRef, LogEntry, OrderCreation, ShippingUpdate, StatusUpdate
from marketplace.order.lifecycle import (
    OrderAction,
    OrderView,
    apply_event,
    assert_can_transition,
    available_actions,
    derive_order_view,
    legal_transitions,
)
from marketplace.order.order import Order, ParticipantRole
from marketplace.order.status import OrderStatus, ShippingStatus
from protean.exceptions import ValidationError

BUYER = "buyer-pk"
SELLER = "seller-pk"
STRANGER = "stranger-pk"


def _order(order_id="ord-001"):
    creation = OrderCreation(
        order_id=order_id,
        seller_pubkey=SELLER,
        buyer_pubkey=BUYER,
        line_items=(LineItemRef.for_product(SELLER, "prod-1", 1),),
        total_amount_sats=10_000,
    )
    return Order.from_entry(LogEntry(event_id="creation", author_pubkey=BUYER, created_at=100, record=creation))


def _status(event_id, created_at, status, actor=SELLER, order_id="ord-001", tracking=None):
    record = StatusUpdate(
        order_id=order_id,
        status=status,
        actor_pubkey=actor,
        recipient_pubkey=BUYER if actor == SELLER else SELLER,
        tracking=tracking,
    )
    return LogEntry(event_id=event_id, author_pubkey=actor, created_at=created_at, record=record)


def _shipping(event_id, created_at, shipping_status=ShippingStatus.SHIPPED, tracking="TRK-1", order_id="ord-001"):
    record = ShippingUpdate(
        order_id=order_id,
        shipping_status=shipping_status,
        actor_pubkey=SELLER,
        recipient_pubkey=BUYER,
        tracking=tracking,
        carrier="DHL",
    )
    return LogEntry(event_id=event_id, author_pubkey=SELLER, created_at=created_at, record=record)


def _view(status, shipped=False):
    entries = [_status("e1", 200, status)]
    if shipped:
        entries.append(_shipping("e2", 300))
    return derive_order_view("ord-001", entries)


def _actions(view, actor):
    return [action for _, action, _ in available_actions(_order(), view, actor)]


class TestOrderParticipants:
    def test_roles(self):
        order = _order()
        assert order.roles_of(BUYER) == {ParticipantRole.BUYER}
        assert order.roles_of(SELLER) == {ParticipantRole.SELLER}
        assert order.roles_of(STRANGER) == frozenset()

    def test_counterparty(self):
        order = _order()
        assert order.counterparty_of(SELLER) == BUYER
        assert order.counterparty_of(BUYER) == SELLER

    def test_from_entry_requires_creation_record(self):
        with pytest.raises(ValidationError):
            Order.from_entry(_status("e1", 200, OrderStatus.CONFIRMED))


class TestStatusDerivation:
    def test_no_events_is_pending(self):
        view = derive_order_view("ord-001", [])
        assert view.status is OrderStatus.PENDING
        assert view.shipped is False

    def test_latest_status_wins(self):
        entries = [
            _status("e1", 200, OrderStatus.CONFIRMED),
            _status("e2", 300, OrderStatus.PROCESSING),
        ]
        assert derive_order_view("ord-001", entries).status is OrderStatus.PROCESSING

    def test_repeated_status_is_applied(self):
        entries = [
            _status("e1", 200, OrderStatus.PROCESSING),
            _status("e2", 300, OrderStatus.PROCESSING),
        ]
        view = derive_order_view("ord-001", entries)
        assert view.status is OrderStatus.PROCESSING
        assert view.status_key == (300, "e2")

    def test_out_of_order_arrival_is_resorted(self):
        entries = [
            _status("e3", 400, OrderStatus.COMPLETED),
            _status("e1", 200, OrderStatus.CONFIRMED),
            _status("e2", 300, OrderStatus.PROCESSING),
        ]
        assert derive_order_view("ord-001", entries).status is OrderStatus.COMPLETED

    def test_same_timestamp_is_broken_by_event_id(self):
        entries = [_status("b", 200, OrderStatus.CONFIRMED), _status("a", 200, OrderStatus.CANCELLED)]
        assert derive_order_view("ord-001", entries).status is OrderStatus.CONFIRMED

    def test_events_for_other_orders_are_ignored(self):
        entries = [_status("e1", 200, OrderStatus.CANCELLED, order_id="ord-999")]
        assert derive_order_view("ord-001", entries).status is OrderStatus.PENDING

    def test_replay_is_idempotent(self):
        entries = [
            _status("e1", 200, OrderStatus.CONFIRMED),
            _status("e2", 300, OrderStatus.PROCESSING),
            _shipping("e3", 400),
        ]
        once = derive_order_view("ord-001", entries)
        twice = derive_order_view("ord-001", entries + entries)
        assert once == twice

    def test_any_arrival_order_gives_same_view(self):
        entries = [
            _status("e1", 200, OrderStatus.CONFIRMED),
            _status("e2", 300, OrderStatus.PROCESSING),
            _shipping("e3", 400),
            _status("e4", 500, OrderStatus.PROCESSING),
        ]
        views = {derive_order_view("ord-001", list(p)) for p in itertools.permutations(entries)}
        assert len(views) == 1

    def test_incremental_fold_ignores_late_older_status(self):
        view = OrderView(order_id="ord-001")
        view = apply_event(view, _status("e2", 300, OrderStatus.PROCESSING))
        view = apply_event(view, _status("e1", 200, OrderStatus.CONFIRMED))
        assert view.status is OrderStatus.PROCESSING
        assert "e1" in view.seen_event_ids

    def test_incremental_fold_is_independent_of_arrival_order(self):
        entries = [
            _status("e1", 200, OrderStatus.CONFIRMED),
            _status("e2", 300, OrderStatus.PROCESSING, tracking="FROM-STATUS"),
            _shipping("e3", 400, tracking="FROM-SHIPPING"),
            _shipping("e4", 450, shipping_status=ShippingStatus.DELIVERED, tracking=None),
        ]
        views = set()
        for arrival in itertools.permutations(entries):
            view = OrderView(order_id="ord-001")
            for entry in arrival:
                view = apply_event(view, entry)
            views.add(view)

        assert len(views) == 1
        view = views.pop()
        assert view == derive_order_view("ord-001", entries)
        assert view.tracking == "FROM-SHIPPING"
        assert view.shipping_status is ShippingStatus.DELIVERED
        assert view.carrier == "DHL"

    def test_late_status_does_not_overwrite_newer_tracking(self):
        view = OrderView(order_id="ord-001")
        view = apply_event(view, _shipping("e3", 400, tracking="FROM-SHIPPING"))
        view = apply_event(view, _status("e2", 300, OrderStatus.PROCESSING, tracking="FROM-STATUS"))
        assert view.status is OrderStatus.PROCESSING
        assert view.tracking == "FROM-SHIPPING"

    def test_incremental_fold_rejects_foreign_order(self):
        with pytest.raises(ValidationError):
            apply_event(OrderView(order_id="ord-001"), _status("e1", 200, OrderStatus.CONFIRMED, order_id="ord-2"))


class TestShippedSubState:
    def test_shipped_requires_processing_and_shipping_event(self):
        view = _view(OrderStatus.PROCESSING, shipped=True)
        assert view.status is OrderStatus.PROCESSING
        assert view.shipped is True
        assert view.tracking == "TRK-1"
        assert view.carrier == "DHL"

    def test_shipping_event_does_not_change_status(self):
        view = derive_order_view("ord-001", [_status("e1", 200, OrderStatus.CONFIRMED), _shipping("e2", 300)])
        assert view.status is OrderStatus.CONFIRMED
        assert view.shipped is False
        assert view.has_been_shipped is True

    def test_non_shipped_shipping_status_does_not_set_flag(self):
        entries = [
            _status("e1", 200, OrderStatus.PROCESSING),
            _shipping("e2", 300, shipping_status=ShippingStatus.PROCESSING),
        ]
        view = derive_order_view("ord-001", entries)
        assert view.shipped is False
        assert view.shipping_status is ShippingStatus.PROCESSING

    def test_completed_order_is_no_longer_shipped(self):
        entries = [
            _status("e1", 200, OrderStatus.PROCESSING),
            _shipping("e2", 300),
            _status("e3", 400, OrderStatus.COMPLETED),
        ]
        view = derive_order_view("ord-001", entries)
        assert view.shipped is False
        assert view.has_been_shipped is True


class TestRoleGating:
    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_stranger_has_no_transitions(self, status):
        assert legal_transitions(_order(), _view(status), STRANGER) == []

    def test_pending_seller_can_confirm_or_cancel(self):
        assert _actions(_view(OrderStatus.PENDING), SELLER) == [OrderAction.CONFIRM, OrderAction.CANCEL]

    def test_pending_buyer_can_cancel(self):
        assert _actions(_view(OrderStatus.PENDING), BUYER) == [OrderAction.CANCEL]

    def test_confirmed_transitions(self):
        view = _view(OrderStatus.CONFIRMED)
        assert _actions(view, SELLER) == [OrderAction.START_PROCESSING]
        assert _actions(view, BUYER) == [OrderAction.CANCEL]

    def test_processing_seller_can_ship_or_complete(self):
        transitions = legal_transitions(_order(), _view(OrderStatus.PROCESSING), SELLER)
        assert [(t.action, t.label) for t in transitions] == [
            (OrderAction.MARK_SHIPPED, "Mark as shipped"),
            (OrderAction.COMPLETE, "Complete order"),
        ]

    def test_processing_buyer_can_confirm_receipt_or_cancel(self):
        assert _actions(_view(OrderStatus.PROCESSING), BUYER) == [
            OrderAction.CONFIRM_RECEIPT,
            OrderAction.CANCEL,
        ]

    def test_shipped_order_offers_mark_delivered(self):
        view = _view(OrderStatus.PROCESSING, shipped=True)
        seller = legal_transitions(_order(), view, SELLER)
        assert [(t.target, t.action, t.label) for t in seller] == [
            (OrderStatus.COMPLETED, OrderAction.MARK_DELIVERED, "Mark delivered"),
        ]
        buyer = legal_transitions(_order(), view, BUYER)
        assert buyer[0].action is OrderAction.CONFIRM_RECEIPT

    @pytest.mark.parametrize("status", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    def test_terminal_states_have_no_transitions(self, status):
        view = _view(status)
        assert legal_transitions(_order(), view, BUYER) == []
        assert legal_transitions(_order(), view, SELLER) == []

    def test_buyer_cannot_cancel_completed_order(self):
        with pytest.raises(ValidationError) as exc_info:
            assert_can_transition(_order(), _view(OrderStatus.COMPLETED), BUYER, OrderAction.CANCEL)
        assert "status" in exc_info.value.messages

    def test_buyer_cannot_confirm_order(self):
        with pytest.raises(ValidationError):
            assert_can_transition(_order(), _view(OrderStatus.PENDING), BUYER, OrderAction.CONFIRM)

    def test_assert_returns_matching_transition(self):
        transition = assert_can_transition(
            _order(), _view(OrderStatus.PROCESSING), SELLER, OrderAction.COMPLETE, OrderAction.MARK_DELIVERED
        )
        assert transition.target is OrderStatus.COMPLETED

    def test_self_purchase_gets_both_roles_without_duplicates(self):
        creation = OrderCreation(
            order_id="ord-001",
            seller_pubkey=SELLER,
            buyer_pubkey=SELLER,
            line_items=(),
            total_amount_sats=1,
        )
        order = Order.from_entry(LogEntry(event_id="c", author_pubkey=SELLER, created_at=1, record=creation))
        actions = [t.action for t in legal_transitions(order, _view(OrderStatus.PENDING), SELLER)]
        assert actions == [OrderAction.CONFIRM, OrderAction.CANCEL]
