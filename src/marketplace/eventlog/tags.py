"""Wire codec between typed records and event-log tag arrays.

Order messages share kind 16 and are told apart by their ``type`` tag;
payment receipts use kind 17:

    type "1"  order creation
    type "2"  payment request
    type "3"  status update
    type "4"  shipping update
"""

from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError

from marketplace.eventlog.records import (
    LineItemRef,
    OrderCreation,
    PaymentMethod,
    PaymentReceipt,
    PaymentRequest,
    Record,
    ShippingUpdate,
    StatusUpdate,
)
from marketplace.order.status import OrderStatus, ShippingStatus

ORDER_PROCESS_KIND = 16
PAYMENT_RECEIPT_KIND = 17


class OrderMessageType(Enum):
    ORDER_CREATION = "1"
    PAYMENT_REQUEST = "2"
    STATUS_UPDATE = "3"
    SHIPPING_UPDATE = "4"


@dataclass(frozen=True)
class WireEvent:
    kind: int
    content: str
    tags: list[list[str]]


def encode(record: Record) -> WireEvent:
    """Convert a typed record into its kind, content and tags."""
    if isinstance(record, OrderCreation):
        return _encode_order_creation(record)
    if isinstance(record, PaymentRequest):
        return _encode_payment_request(record)
    if isinstance(record, StatusUpdate):
        return _encode_status_update(record)
    if isinstance(record, ShippingUpdate):
        return _encode_shipping_update(record)
    if isinstance(record, PaymentReceipt):
        return _encode_payment_receipt(record)
    raise ValidationError({"record": [f"Unsupported record type: {type(record).__name__}"]})


def decode(event: WireEvent, author_pubkey: str) -> Record:
    """Convert a wire event authored by ``author_pubkey`` back into a typed record."""
    if event.kind == PAYMENT_RECEIPT_KIND:
        return _decode_payment_receipt(event, author_pubkey)
    if event.kind != ORDER_PROCESS_KIND:
        raise ValidationError({"kind": [f"Unsupported event kind: {event.kind}"]})

    raw_type = _required(event.tags, "type")[0]
    try:
        message_type = OrderMessageType(raw_type)
    except ValueError:
        raise ValidationError({"type": [f"Unsupported order message type: {raw_type}"]}) from None

    decoders = {
        OrderMessageType.ORDER_CREATION: _decode_order_creation,
        OrderMessageType.PAYMENT_REQUEST: _decode_payment_request,
        OrderMessageType.STATUS_UPDATE: _decode_status_update,
        OrderMessageType.SHIPPING_UPDATE: _decode_shipping_update,
    }
    return decoders[message_type](event, author_pubkey)


# ---------------------------------------------------------------------------
# Tag helpers
# ---------------------------------------------------------------------------
def _find(tags: list[list[str]], name: str) -> list[str] | None:
    for tag in tags:
        if tag and tag[0] == name:
            return tag[1:]
    return None


def _find_all(tags: list[list[str]], name: str) -> list[list[str]]:
    return [tag[1:] for tag in tags if tag and tag[0] == name]


def _required(tags: list[list[str]], name: str) -> list[str]:
    values = _find(tags, name)
    if not values:
        raise ValidationError({"tags": [f"Missing required tag: {name}"]})
    return values


def _optional(tags: list[list[str]], name: str) -> str | None:
    values = _find(tags, name)
    return values[0] if values else None


def _as_int(value: str, name: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValidationError({name: [f"Expected an integer, got {value!r}"]}) from None


# ---------------------------------------------------------------------------
# Encoders
# ---------------------------------------------------------------------------
def _encode_order_creation(record: OrderCreation) -> WireEvent:
    tags = [
        ["p", record.seller_pubkey],
        ["subject", f"Order {record.order_id[:8]}"],
        ["type", OrderMessageType.ORDER_CREATION.value],
        ["order", record.order_id],
        ["amount", str(record.total_amount_sats)],
    ]
    tags.extend(["item", item.product_ref, str(item.quantity)] for item in record.line_items)

    if record.shipping_ref:
        tags.append(["shipping", record.shipping_ref])
    if record.shipping_address:
        tags.append(["address", record.shipping_address])
    if record.email:
        tags.append(["email", record.email])
    if record.phone:
        tags.append(["phone", record.phone])
    if record.payment_method:
        tags.append(["payment_method", record.payment_method])

    content = record.notes or f"Order for {len(record.line_items)} items"
    return WireEvent(kind=ORDER_PROCESS_KIND, content=content, tags=tags)


def _encode_payment_request(record: PaymentRequest) -> WireEvent:
    tags = [
        ["p", record.buyer_pubkey],
        ["recipient", record.payee_pubkey],
        ["subject", "v4v-payment-request" if record.is_revenue_share else "order-payment"],
        ["type", OrderMessageType.PAYMENT_REQUEST.value],
        ["order", record.order_id],
        ["amount", str(record.amount_sats)],
    ]
    tags.extend(["payment", method.type, method.details] for method in record.payment_methods)
    if record.expiration_time:
        tags.append(["expiration", str(record.expiration_time)])

    content = record.notes or "Payment request for your order"
    return WireEvent(kind=ORDER_PROCESS_KIND, content=content, tags=tags)


def _default_status_content(status: OrderStatus) -> str:
    return f"Order status updated to {status.value}"


def _default_shipping_content(shipping_status: ShippingStatus) -> str:
    return f"Shipping status updated to {shipping_status.value}"


def _reason(content: str, default: str) -> str | None:
    # Content written only because no reason was given is not a reason
    return content if content and content != default else None


def _encode_status_update(record: StatusUpdate) -> WireEvent:
    tags = [
        ["p", record.recipient_pubkey],
        ["subject", "order-info"],
        ["type", OrderMessageType.STATUS_UPDATE.value],
        ["order", record.order_id],
        ["status", record.status.value],
    ]
    if record.tracking:
        tags.append(["tracking", record.tracking])

    content = record.reason or _default_status_content(record.status)
    return WireEvent(kind=ORDER_PROCESS_KIND, content=content, tags=tags)


def _encode_shipping_update(record: ShippingUpdate) -> WireEvent:
    tags = [
        ["p", record.recipient_pubkey],
        ["subject", "shipping-info"],
        ["type", OrderMessageType.SHIPPING_UPDATE.value],
        ["order", record.order_id],
        ["status", record.shipping_status.value],
    ]
    if record.tracking:
        tags.append(["tracking", record.tracking])
    if record.carrier:
        tags.append(["carrier", record.carrier])
    if record.eta is not None:
        tags.append(["eta", str(record.eta)])

    content = record.reason or _default_shipping_content(record.shipping_status)
    return WireEvent(kind=ORDER_PROCESS_KIND, content=content, tags=tags)


def _encode_payment_receipt(record: PaymentReceipt) -> WireEvent:
    tags = [
        ["p", record.recipient_pubkey],
        ["subject", "order-receipt"],
        ["order", record.order_id],
        ["payment", record.medium, record.reference, record.proof],
        ["amount", str(record.amount_sats)],
    ]
    return WireEvent(kind=PAYMENT_RECEIPT_KIND, content="Payment confirmation", tags=tags)


# ---------------------------------------------------------------------------
# Decoders
# ---------------------------------------------------------------------------
def _decode_order_creation(event: WireEvent, author_pubkey: str) -> OrderCreation:
    tags = event.tags
    line_items = []
    for values in _find_all(tags, "item"):
        if len(values) < 2:
            raise ValidationError({"item": ["Item tag requires a product reference and quantity"]})
        line_items.append(LineItemRef(product_ref=values[0], quantity=_as_int(values[1], "item")))

    return OrderCreation(
        order_id=_required(tags, "order")[0],
        seller_pubkey=_required(tags, "p")[0],
        buyer_pubkey=author_pubkey,
        line_items=tuple(line_items),
        total_amount_sats=_as_int(_required(tags, "amount")[0], "amount"),
        shipping_address=_optional(tags, "address"),
        shipping_ref=_optional(tags, "shipping"),
        email=_optional(tags, "email"),
        phone=_optional(tags, "phone"),
        payment_method=_optional(tags, "payment_method"),
        notes=event.content,
    )


def _decode_payment_request(event: WireEvent, author_pubkey: str) -> PaymentRequest:  # noqa: ARG001
    tags = event.tags
    methods = tuple(
        PaymentMethod(type=values[0], details=values[1] if len(values) > 1 else "")
        for values in _find_all(tags, "payment")
        if values
    )
    expiration = _optional(tags, "expiration")
    return PaymentRequest(
        order_id=_required(tags, "order")[0],
        buyer_pubkey=_required(tags, "p")[0],
        payee_pubkey=_required(tags, "recipient")[0],
        amount_sats=_as_int(_required(tags, "amount")[0], "amount"),
        payment_methods=methods,
        expiration_time=_as_int(expiration, "expiration") if expiration else None,
        is_revenue_share=_optional(tags, "subject") == "v4v-payment-request",
        notes=event.content,
    )


def _decode_status_update(event: WireEvent, author_pubkey: str) -> StatusUpdate:
    tags = event.tags
    raw_status = _required(tags, "status")[0]
    try:
        status = OrderStatus(raw_status)
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status: {raw_status}"]}) from None

    return StatusUpdate(
        order_id=_required(tags, "order")[0],
        status=status,
        actor_pubkey=author_pubkey,
        recipient_pubkey=_required(tags, "p")[0],
        reason=_reason(event.content, _default_status_content(status)),
        tracking=_optional(tags, "tracking"),
    )


def _decode_shipping_update(event: WireEvent, author_pubkey: str) -> ShippingUpdate:
    tags = event.tags
    raw_status = _required(tags, "status")[0]
    try:
        shipping_status = ShippingStatus(raw_status)
    except ValueError:
        raise ValidationError({"status": [f"Unknown shipping status: {raw_status}"]}) from None

    eta = _optional(tags, "eta")
    return ShippingUpdate(
        order_id=_required(tags, "order")[0],
        shipping_status=shipping_status,
        actor_pubkey=author_pubkey,
        recipient_pubkey=_required(tags, "p")[0],
        tracking=_optional(tags, "tracking"),
        carrier=_optional(tags, "carrier"),
        eta=_as_int(eta, "eta") if eta else None,
        reason=_reason(event.content, _default_shipping_content(shipping_status)),
    )


def _decode_payment_receipt(event: WireEvent, author_pubkey: str) -> PaymentReceipt:
    tags = event.tags
    payment = _required(tags, "payment")
    return PaymentReceipt(
        order_id=_required(tags, "order")[0],
        payer_pubkey=author_pubkey,
        recipient_pubkey=_required(tags, "p")[0],
        amount_sats=_as_int(_required(tags, "amount")[0], "amount"),
        medium=payment[0],
        reference=payment[1] if len(payment) > 1 else "",
        proof=payment[2] if len(payment) > 2 else "",
    )
