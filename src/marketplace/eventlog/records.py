"""Typed records exchanged with the marketplace event log.

Each record kind is a frozen dataclass. Conversion to and from the loosely
typed tag arrays used on the wire happens only in ``marketplace.eventlog.tags``.
"""

from dataclasses import dataclass, field
from enum import Enum

from marketplace.order.status import OrderStatus, ShippingStatus

PRODUCT_KIND = 30402


class RecordType(Enum):
    ORDER_CREATION = "order-creation"
    PAYMENT_REQUEST = "payment-request"
    STATUS_UPDATE = "status-update"
    SHIPPING_UPDATE = "shipping-update"
    PAYMENT_RECEIPT = "payment-receipt"


@dataclass(frozen=True)
class LineItemRef:
    """A product coordinate (``kind:sellerPubkey:productId``) and quantity."""

    product_ref: str
    quantity: int

    @classmethod
    def for_product(cls, seller_pubkey: str, product_id: str, quantity: int) -> "LineItemRef":
        return cls(product_ref=f"{PRODUCT_KIND}:{seller_pubkey}:{product_id}", quantity=quantity)

    @property
    def product_id(self) -> str:
        return self.product_ref.split(":")[-1]


@dataclass(frozen=True)
class PaymentMethod:
    type: str  # "lightning" | "onchain"
    details: str


@dataclass(frozen=True)
class OrderCreation:
    order_id: str
    seller_pubkey: str
    buyer_pubkey: str
    line_items: tuple[LineItemRef, ...]
    total_amount_sats: int
    shipping_address: str | None = None
    shipping_ref: str | None = None
    email: str | None = None
    phone: str | None = None
    payment_method: str | None = None
    notes: str = ""

    record_type = RecordType.ORDER_CREATION

    @property
    def author_pubkey(self) -> str:
        return self.buyer_pubkey


@dataclass(frozen=True)
class PaymentRequest:
    order_id: str
    buyer_pubkey: str
    payee_pubkey: str
    amount_sats: int
    payment_methods: tuple[PaymentMethod, ...] = ()
    expiration_time: int | None = None
    is_revenue_share: bool = False
    notes: str = ""

    record_type = RecordType.PAYMENT_REQUEST

    @property
    def author_pubkey(self) -> str:
        return self.buyer_pubkey


@dataclass(frozen=True)
class StatusUpdate:
    order_id: str
    status: OrderStatus
    actor_pubkey: str
    recipient_pubkey: str
    reason: str | None = None
    tracking: str | None = None

    record_type = RecordType.STATUS_UPDATE

    @property
    def author_pubkey(self) -> str:
        return self.actor_pubkey


@dataclass(frozen=True)
class ShippingUpdate:
    order_id: str
    shipping_status: ShippingStatus
    actor_pubkey: str
    recipient_pubkey: str
    tracking: str | None = None
    carrier: str | None = None
    eta: int | None = None
    reason: str | None = None

    record_type = RecordType.SHIPPING_UPDATE

    @property
    def author_pubkey(self) -> str:
        return self.actor_pubkey


@dataclass(frozen=True)
class PaymentReceipt:
    order_id: str
    payer_pubkey: str
    recipient_pubkey: str
    amount_sats: int
    medium: str
    reference: str
    proof: str = ""

    record_type = RecordType.PAYMENT_RECEIPT

    @property
    def author_pubkey(self) -> str:
        return self.payer_pubkey


Record = OrderCreation | PaymentRequest | StatusUpdate | ShippingUpdate | PaymentReceipt


@dataclass(frozen=True)
class LogEntry:
    """A record as read back from the log, with the envelope metadata."""

    event_id: str
    author_pubkey: str
    created_at: int
    record: Record = field(compare=False)

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.created_at, self.event_id)
