"""Order lifecycle: status derivation and role-gated transitions.

State Machine:
    PENDING → CONFIRMED → PROCESSING → COMPLETED
    PENDING/CONFIRMED/PROCESSING → CANCELLED

Status is never stored. It is derived by folding the status records published
for an order, latest record wins. Shipping records layer a "shipped" flag on
top of PROCESSING without changing the status itself.

Records can arrive late, out of order, or more than once. Every field of the
view is taken from the newest record, by (created_at, event_id), that sets it,
and event ids already seen are ignored, so any arrival order of the same set
of records yields the same view.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum

from protean.exceptions import ValidationError

from marketplace.eventlog.records import LogEntry, ShippingUpdate, StatusUpdate
from marketplace.order.order import Order, ParticipantRole
from marketplace.order.status import OrderStatus, ShippingStatus


class OrderAction(Enum):
    CONFIRM = "confirm"
    START_PROCESSING = "start-processing"
    MARK_SHIPPED = "mark-shipped"
    MARK_DELIVERED = "mark-delivered"
    COMPLETE = "complete-order"
    CONFIRM_RECEIPT = "confirm-receipt"
    CANCEL = "cancel"


_LABELS = {
    OrderAction.CONFIRM: "Confirm order",
    OrderAction.START_PROCESSING: "Start processing",
    OrderAction.MARK_SHIPPED: "Mark as shipped",
    OrderAction.MARK_DELIVERED: "Mark delivered",
    OrderAction.COMPLETE: "Complete order",
    OrderAction.CONFIRM_RECEIPT: "Confirm receipt",
    OrderAction.CANCEL: "Cancel order",
}


@dataclass(frozen=True)
class OrderView:
    order_id: str
    status: OrderStatus = OrderStatus.PENDING
    has_been_shipped: bool = False
    shipping_status: ShippingStatus | None = None
    tracking: str | None = None
    carrier: str | None = None
    eta: int | None = None
    reason: str | None = None
    status_key: tuple[int, str] | None = None
    shipping_key: tuple[int, str] | None = None
    tracking_key: tuple[int, str] | None = None
    carrier_key: tuple[int, str] | None = None
    eta_key: tuple[int, str] | None = None
    seen_event_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def shipped(self) -> bool:
        return self.status is OrderStatus.PROCESSING and self.has_been_shipped

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


@dataclass(frozen=True)
class Transition:
    source: OrderStatus
    target: OrderStatus
    role: ParticipantRole
    action: OrderAction


@dataclass(frozen=True)
class AvailableTransition:
    target: OrderStatus
    action: OrderAction
    label: str


_TRANSITIONS = (
    Transition(OrderStatus.PENDING, OrderStatus.CONFIRMED, ParticipantRole.SELLER, OrderAction.CONFIRM),
    Transition(OrderStatus.PENDING, OrderStatus.CANCELLED, ParticipantRole.BUYER, OrderAction.CANCEL),
    Transition(OrderStatus.PENDING, OrderStatus.CANCELLED, ParticipantRole.SELLER, OrderAction.CANCEL),
    Transition(OrderStatus.CONFIRMED, OrderStatus.PROCESSING, ParticipantRole.SELLER, OrderAction.START_PROCESSING),
    Transition(OrderStatus.CONFIRMED, OrderStatus.CANCELLED, ParticipantRole.BUYER, OrderAction.CANCEL),
    # Shipping keeps the order in PROCESSING and adds the shipped flag
    Transition(OrderStatus.PROCESSING, OrderStatus.PROCESSING, ParticipantRole.SELLER, OrderAction.MARK_SHIPPED),
    Transition(OrderStatus.PROCESSING, OrderStatus.COMPLETED, ParticipantRole.SELLER, OrderAction.COMPLETE),
    Transition(OrderStatus.PROCESSING, OrderStatus.COMPLETED, ParticipantRole.BUYER, OrderAction.CONFIRM_RECEIPT),
    Transition(OrderStatus.PROCESSING, OrderStatus.CANCELLED, ParticipantRole.BUYER, OrderAction.CANCEL),
)


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------
def _latest(value, key: tuple[int, str], current, current_key: tuple[int, str] | None):
    """Value and key of whichever of the two is newer; a missing value never wins."""
    if value is not None and (current_key is None or key > current_key):
        return value, key
    return current, current_key


def apply_event(view: OrderView, entry: LogEntry) -> OrderView:
    """Fold one log entry into the view.

    Entries already seen leave the view unchanged. Status and shipping status
    come from the newest record of their kind. Tracking, carrier and eta come
    from the newest record that carries them, so a record missing one of them
    keeps the earlier value and an older record arriving late cannot overwrite
    a newer one.
    """
    record = entry.record
    if not isinstance(record, (StatusUpdate, ShippingUpdate)):
        return view
    if record.order_id != view.order_id:
        raise ValidationError({"order_id": [f"Record for order {record.order_id} folded into {view.order_id}"]})
    if entry.event_id in view.seen_event_ids:
        return view

    seen = view.seen_event_ids | {entry.event_id}
    key = entry.sort_key
    tracking, tracking_key = _latest(record.tracking, key, view.tracking, view.tracking_key)

    if isinstance(record, StatusUpdate):
        if view.status_key is not None and key < view.status_key:
            return replace(view, tracking=tracking, tracking_key=tracking_key, seen_event_ids=seen)
        return replace(
            view,
            status=record.status,
            reason=record.reason,
            tracking=tracking,
            tracking_key=tracking_key,
            status_key=key,
            seen_event_ids=seen,
        )

    carrier, carrier_key = _latest(record.carrier, key, view.carrier, view.carrier_key)
    eta, eta_key = _latest(record.eta, key, view.eta, view.eta_key)
    changes = dict(
        has_been_shipped=view.has_been_shipped or record.shipping_status is ShippingStatus.SHIPPED,
        tracking=tracking,
        tracking_key=tracking_key,
        carrier=carrier,
        carrier_key=carrier_key,
        eta=eta,
        eta_key=eta_key,
        seen_event_ids=seen,
    )
    if view.shipping_key is None or key > view.shipping_key:
        changes.update(shipping_status=record.shipping_status, shipping_key=key)
    return replace(view, **changes)


def derive_order_view(order_id: str, entries: Iterable[LogEntry]) -> OrderView:
    """Derive an order's current view from any collection of its log entries."""
    relevant = [
        entry
        for entry in entries
        if isinstance(entry.record, (StatusUpdate, ShippingUpdate)) and entry.record.order_id == order_id
    ]
    view = OrderView(order_id=order_id)
    for entry in sorted(relevant, key=lambda entry: entry.sort_key):
        view = apply_event(view, entry)
    return view


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def _label(transition: Transition, view: OrderView) -> tuple[OrderAction, str]:
    if transition.action is OrderAction.COMPLETE and view.has_been_shipped:
        return OrderAction.MARK_DELIVERED, _LABELS[OrderAction.MARK_DELIVERED]
    return transition.action, _LABELS[transition.action]


def legal_transitions(order: Order, view: OrderView, actor_pubkey: str) -> list[AvailableTransition]:
    """Transitions ``actor_pubkey`` may perform on the order right now.

    Actors who are neither buyer nor seller get none.
    """
    roles = order.roles_of(actor_pubkey)
    if not roles:
        return []

    available: list[AvailableTransition] = []
    for transition in _TRANSITIONS:
        if transition.source is not view.status or transition.role not in roles:
            continue
        if transition.action is OrderAction.MARK_SHIPPED and view.shipped:
            continue
        action, label = _label(transition, view)
        candidate = AvailableTransition(target=transition.target, action=action, label=label)
        if candidate not in available:
            available.append(candidate)
    return available


def available_actions(order: Order, view: OrderView, actor_pubkey: str) -> list[tuple[OrderStatus, OrderAction, str]]:
    return [(t.target, t.action, t.label) for t in legal_transitions(order, view, actor_pubkey)]


def assert_can_transition(
    order: Order,
    view: OrderView,
    actor_pubkey: str,
    *actions: OrderAction,
) -> AvailableTransition:
    """Return the first legal transition matching one of ``actions`` or raise."""
    for transition in legal_transitions(order, view, actor_pubkey):
        if transition.action in actions:
            return transition

    wanted = "/".join(action.value for action in actions)
    raise ValidationError(
        {"status": [f"Cannot {wanted} order {order.order_id} while it is {view.status.value}"]}
    )
