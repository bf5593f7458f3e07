"""Invoice aggregate: one payable request for one payee of a seller order.

Everything about an invoice is fixed when it is created except its status,
which tracks local payment progress until a receipt confirms it.

State Machine:
    PENDING → PROCESSING → PAID
    PENDING → PAID
    PENDING/PROCESSING → FAILED → PROCESSING/PAID
    PENDING/PROCESSING → EXPIRED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from marketplace.domain import marketplace
from marketplace.payment.events import (
    InvoiceCreated,
    InvoiceExpired,
    InvoiceFailed,
    InvoicePaid,
    InvoiceProcessing,
)


class InvoiceStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


class InvoiceRole(Enum):
    MERCHANT = "merchant"
    REVENUE_SHARE = "revenue-share"


_VALID_TRANSITIONS = {
    InvoiceStatus.PENDING: {
        InvoiceStatus.PROCESSING,
        InvoiceStatus.PAID,
        InvoiceStatus.FAILED,
        InvoiceStatus.EXPIRED,
    },
    InvoiceStatus.PROCESSING: {InvoiceStatus.PAID, InvoiceStatus.FAILED, InvoiceStatus.EXPIRED},
    InvoiceStatus.FAILED: {InvoiceStatus.PROCESSING, InvoiceStatus.PAID},  # Payer may retry
    InvoiceStatus.PAID: set(),  # Terminal
    InvoiceStatus.EXPIRED: set(),  # Terminal
}


def invoice_id_for(order_id: str, role: InvoiceRole, payee_pubkey: str) -> str:
    return f"{order_id}-{role.value}-{payee_pubkey}"


@marketplace.aggregate
class Invoice:
    order_id = Identifier(required=True)
    seller_pubkey = String(required=True, max_length=128)
    payee_pubkey = String(required=True, max_length=128)
    payee_display_name = String(max_length=255)
    amount_sats = Integer(required=True, min_value=1)
    payment_request = Text(required=True)
    expires_at = Integer()
    status = String(choices=InvoiceStatus, default=InvoiceStatus.PENDING.value)
    role = String(choices=InvoiceRole, required=True)
    is_mock = Boolean(default=False)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    def can_transition_to(self, target_status: InvoiceStatus) -> bool:
        return target_status in _VALID_TRANSITIONS.get(InvoiceStatus(self.status), set())

    def _assert_can_transition(self, target_status: InvoiceStatus) -> None:
        current = InvoiceStatus(self.status)
        if not self.can_transition_to(target_status):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    @classmethod
    def create(
        cls,
        order_id: str,
        seller_pubkey: str,
        payee_pubkey: str,
        amount_sats: int,
        payment_request: str,
        expires_at: int,
        role: InvoiceRole,
        payee_display_name: str = "",
        is_mock: bool = False,
    ):
        """Issue an invoice whose id is derived from order, role and payee."""
        now = datetime.now(UTC)
        invoice_id = invoice_id_for(order_id, role, payee_pubkey)
        invoice = cls(
            id=invoice_id,
            order_id=order_id,
            seller_pubkey=seller_pubkey,
            payee_pubkey=payee_pubkey,
            payee_display_name=payee_display_name,
            amount_sats=amount_sats,
            payment_request=payment_request,
            expires_at=expires_at,
            role=role.value,
            is_mock=is_mock,
            created_at=now,
            updated_at=now,
        )
        invoice.raise_(
            InvoiceCreated(
                invoice_id=invoice_id,
                order_id=order_id,
                payee_pubkey=payee_pubkey,
                role=role.value,
                amount_sats=amount_sats,
                created_at=now,
            )
        )
        return invoice

    @property
    def is_merchant(self) -> bool:
        return self.role == InvoiceRole.MERCHANT.value

    def is_expired_at(self, timestamp: int) -> bool:
        return self.expires_at is not None and timestamp >= self.expires_at

    def mark_processing(self) -> None:
        """Record that a payment for this invoice is in flight."""
        self._assert_can_transition(InvoiceStatus.PROCESSING)
        now = datetime.now(UTC)
        self.status = InvoiceStatus.PROCESSING.value
        self.updated_at = now
        self.raise_(
            InvoiceProcessing(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                started_at=now,
            )
        )

    def mark_paid(self) -> None:
        """Mark the invoice as paid."""
        self._assert_can_transition(InvoiceStatus.PAID)
        now = datetime.now(UTC)
        self.status = InvoiceStatus.PAID.value
        self.failure_reason = None
        self.updated_at = now
        self.raise_(
            InvoicePaid(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                amount_sats=self.amount_sats,
                paid_at=now,
            )
        )

    def mark_failed(self, reason: str | None = None) -> None:
        self._assert_can_transition(InvoiceStatus.FAILED)
        now = datetime.now(UTC)
        self.status = InvoiceStatus.FAILED.value
        self.failure_reason = reason
        self.updated_at = now
        self.raise_(
            InvoiceFailed(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                failed_at=now,
            )
        )

    def mark_expired(self) -> None:
        self._assert_can_transition(InvoiceStatus.EXPIRED)
        now = datetime.now(UTC)
        self.status = InvoiceStatus.EXPIRED.value
        self.updated_at = now
        self.raise_(
            InvoiceExpired(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                expired_at=now,
            )
        )
