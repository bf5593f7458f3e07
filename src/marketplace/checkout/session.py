"""Checkout session: everything one checkout attempt owns.

Created by the coordinator and passed explicitly to every step; nothing about
an attempt lives in module-level state. Sessions are discarded once the
attempt completes or is abandoned.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from uuid import NAMESPACE_URL, uuid4, uuid5

from marketplace.cart.cart import Cart, ShippingAddress
from marketplace.cart.splitting import SellerGroup
from marketplace.checkout.outcomes import (
    OrderPublishFailure,
    PaymentRequestPublishFailure,
    ReceiptPublishFailure,
    RecipientInvoiceFailure,
    SellerInvoiceFailure,
)
from marketplace.payment.shares import RevenueShareRecipient, ShareSplit
from marketplace.payment.tracking import PaymentProgressTracker, PaymentSession


class CheckoutStatus(Enum):
    STARTED = "started"
    AWAITING_PAYMENT = "awaiting_payment"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class BuyerDetails:
    buyer_pubkey: str
    shipping_address: ShippingAddress | None = None
    email: str | None = None
    phone: str | None = None
    notes: str = ""


def order_id_for(attempt_id: str, seller_pubkey: str) -> str:
    """Stable order id for a seller within one checkout attempt."""
    return str(uuid5(NAMESPACE_URL, f"marketplace:{attempt_id}:{seller_pubkey}"))


@dataclass
class CheckoutSession:
    buyer: BuyerDetails
    cart: Cart
    revenue_shares: Mapping[str, Sequence[RevenueShareRecipient]] = field(default_factory=dict)
    attempt_id: str = field(default_factory=lambda: uuid4().hex)
    status: CheckoutStatus = CheckoutStatus.STARTED
    seller_groups: tuple[SellerGroup, ...] = ()
    share_splits: dict[str, ShareSplit] = field(default_factory=dict)
    order_ids: dict[str, str] = field(default_factory=dict)
    order_event_ids: dict[str, str] = field(default_factory=dict)
    payment: PaymentSession | None = None
    tracker: PaymentProgressTracker | None = None
    seller_failures: list[SellerInvoiceFailure] = field(default_factory=list)
    recipient_failures: list[RecipientInvoiceFailure] = field(default_factory=list)
    order_failures: list[OrderPublishFailure] = field(default_factory=list)
    payment_request_failures: list[PaymentRequestPublishFailure] = field(default_factory=list)
    receipt_event_ids: dict[str, str] = field(default_factory=dict)
    receipt_failures: list[ReceiptPublishFailure] = field(default_factory=list)

    @property
    def buyer_pubkey(self) -> str:
        return self.buyer.buyer_pubkey

    def order_id_for(self, seller_pubkey: str) -> str:
        return self.order_ids.setdefault(seller_pubkey, order_id_for(self.attempt_id, seller_pubkey))

    def attach_payment(self, payment: PaymentSession) -> None:
        self.payment = payment
        self.tracker = PaymentProgressTracker(payment)

    @property
    def created_order_ids(self) -> list[str]:
        """Ids of orders whose creation record was published, in seller-group order."""
        return [
            self.order_ids[group.seller_pubkey]
            for group in self.seller_groups
            if group.seller_pubkey in self.order_event_ids
        ]

    @property
    def failed_sellers(self) -> list[str]:
        failed = {failure.seller_pubkey for failure in self.seller_failures}
        failed.update(failure.seller_pubkey for failure in self.order_failures)
        return [group.seller_pubkey for group in self.seller_groups if group.seller_pubkey in failed]

    @property
    def capped_sellers(self) -> list[str]:
        """Sellers whose recipient shares were capped to fit the sale."""
        return [seller for seller, split in self.share_splits.items() if split.inconsistent]

    def abandon(self) -> None:
        self.status = CheckoutStatus.ABANDONED
