"""Domain events for the Invoice aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Invoice")
class InvoiceCreated:
    """An invoice was issued for one payee of a seller order."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payee_pubkey = String(required=True)
    role = String(required=True)
    amount_sats = Integer(required=True)
    created_at = DateTime(required=True)


@marketplace.event(part_of="Invoice")
class InvoiceProcessing:
    """A payment for the invoice is in flight."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    started_at = DateTime(required=True)


@marketplace.event(part_of="Invoice")
class InvoicePaid:
    """The invoice was paid."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount_sats = Integer(required=True)
    paid_at = DateTime(required=True)


@marketplace.event(part_of="Invoice")
class InvoiceFailed:
    """A payment attempt for the invoice failed."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String()
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Invoice")
class InvoiceExpired:
    """The invoice expired before being paid."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    expired_at = DateTime(required=True)
