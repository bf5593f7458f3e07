"""Structured failure reports for a checkout attempt.

Per-seller and per-recipient failures never unwind the whole checkout; each is
captured here with enough detail to show the buyer what happened and to offer
a retry.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SellerInvoiceFailure:
    """The seller's own invoice could not be issued; that seller's order is abandoned."""

    seller_pubkey: str
    order_id: str
    reason: str


@dataclass(frozen=True)
class RecipientInvoiceFailure:
    """A revenue-share invoice could not be issued; the recipient is left out."""

    seller_pubkey: str
    order_id: str
    recipient_pubkey: str
    display_name: str
    amount_sats: int
    reason: str


@dataclass(frozen=True)
class OrderPublishFailure:
    """The order creation record was not accepted; its invoices were discarded."""

    seller_pubkey: str
    order_id: str
    reason: str


@dataclass(frozen=True)
class PaymentRequestPublishFailure:
    order_id: str
    invoice_id: str
    payee_pubkey: str
    reason: str


@dataclass(frozen=True)
class ShippingEventPublishFailure:
    """Status stayed at processing but the shipping detail was not recorded."""

    order_id: str
    status_event_id: str
    reason: str


@dataclass(frozen=True)
class ReceiptPublishFailure:
    """An invoice was paid but its receipt is not on the log yet; finalizing again retries it."""

    order_id: str
    invoice_id: str
    recipient_pubkey: str
    reason: str
