"""Payment progress for one checkout attempt.

A ``PaymentSession`` holds the invoices generated for the attempt in a fixed
order; only invoice statuses and the current position change afterwards. The
``PaymentProgressTracker`` drives the step-through payment flow and answers
progress queries. Acting on completion (publishing receipts, clearing the
cart) is left to the caller.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError

from marketplace.domain import logger
from marketplace.payment.invoice import Invoice, InvoiceStatus


class CompletionMode(Enum):
    CHECKOUT = "checkout"  # paid, expired or skipped all count as done
    ORDER = "order"  # only paid counts


class OverallStatus(Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class PaymentSummary:
    total_sats: int
    paid_sats: int
    invoice_count: int
    paid_count: int

    @property
    def outstanding_sats(self) -> int:
        return self.total_sats - self.paid_sats


class PaymentSession:
    def __init__(self, invoices: Iterable[Invoice]) -> None:
        self._invoices: tuple[Invoice, ...] = tuple(invoices)
        self._by_id = {str(invoice.id): invoice for invoice in self._invoices}
        if len(self._by_id) != len(self._invoices):
            raise ValidationError({"invoices": ["Duplicate invoice ids in payment session"]})
        self.current_index = 0

    @property
    def invoices(self) -> tuple[Invoice, ...]:
        return self._invoices

    def __len__(self) -> int:
        return len(self._invoices)

    def __iter__(self) -> Iterator[Invoice]:
        return iter(self._invoices)

    def get(self, invoice_id: str) -> Invoice:
        invoice = self._by_id.get(str(invoice_id))
        if invoice is None:
            raise ValidationError({"invoice_id": [f"Unknown invoice {invoice_id}"]})
        return invoice

    def index_of(self, invoice_id: str) -> int:
        return self._invoices.index(self.get(invoice_id))

    def for_order(self, order_id: str) -> list[Invoice]:
        return [invoice for invoice in self._invoices if str(invoice.order_id) == str(order_id)]


class PaymentProgressTracker:
    def __init__(self, session: PaymentSession) -> None:
        self.session = session
        self._skipped: set[str] = set()

    # -------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------
    @property
    def current(self) -> Invoice | None:
        if not self.session.invoices:
            return None
        return self.session.invoices[self.session.current_index]

    def advance(self) -> None:
        """Move to the next invoice; stays put on the last one."""
        if self.session.current_index < len(self.session) - 1:
            self.session.current_index += 1

    def retreat(self) -> None:
        """Move to the previous invoice; stays put on the first one."""
        if self.session.current_index > 0:
            self.session.current_index -= 1

    def skip(self, invoice_id: str) -> None:
        """Leave an invoice unpaid for now and move past it."""
        self.session.get(invoice_id)
        self._skipped.add(str(invoice_id))
        logger.info("Invoice skipped", invoice_id=str(invoice_id))
        current = self.current
        if current is not None and str(current.id) == str(invoice_id):
            self.advance()

    # -------------------------------------------------------------------
    # Status changes
    # -------------------------------------------------------------------
    def mark_paid(self, invoice_id: str) -> bool:
        """Mark an invoice paid. Returns False when nothing changed.

        Marking an already paid invoice again is a no-op.
        """
        invoice = self.session.get(invoice_id)
        if invoice.status == InvoiceStatus.PAID.value:
            return False
        if not invoice.can_transition_to(InvoiceStatus.PAID):
            logger.warning("Ignoring payment for closed invoice", invoice_id=str(invoice_id), status=invoice.status)
            return False
        invoice.mark_paid()
        self._skipped.discard(str(invoice_id))
        logger.info("Invoice paid", invoice_id=str(invoice_id), amount_sats=invoice.amount_sats)
        return True

    def mark_processing(self, invoice_id: str) -> bool:
        """Move a pending invoice to processing; any other state is left alone."""
        invoice = self.session.get(invoice_id)
        if invoice.status != InvoiceStatus.PENDING.value:
            return False
        invoice.mark_processing()
        return True

    def mark_failed(self, invoice_id: str, reason: str | None = None) -> bool:
        invoice = self.session.get(invoice_id)
        if invoice.status not in (InvoiceStatus.PENDING.value, InvoiceStatus.PROCESSING.value):
            return False
        invoice.mark_failed(reason)
        logger.warning("Invoice payment failed", invoice_id=str(invoice_id), reason=reason)
        return True

    def mark_expired(self, invoice_id: str) -> bool:
        invoice = self.session.get(invoice_id)
        if invoice.status not in (InvoiceStatus.PENDING.value, InvoiceStatus.PROCESSING.value):
            return False
        invoice.mark_expired()
        return True

    def expire_overdue(self, now: int) -> list[str]:
        """Expire every open invoice whose expiry has passed."""
        return [
            str(invoice.id)
            for invoice in self.session
            if invoice.is_expired_at(now) and self.mark_expired(str(invoice.id))
        ]

    def pay_all(self) -> list[str]:
        """Mark every pending invoice paid in one batch.

        Invoices in any other state are left untouched.
        """
        paid = []
        for invoice in self.session:
            if invoice.status == InvoiceStatus.PENDING.value:
                invoice.mark_paid()
                paid.append(str(invoice.id))
        self._skipped.difference_update(paid)
        logger.info("Batch payment recorded", invoices=len(paid))
        return paid

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def is_complete(self) -> bool:
        return all(invoice.status == InvoiceStatus.PAID.value for invoice in self.session)

    def is_skipped(self, invoice_id: str) -> bool:
        return str(invoice_id) in self._skipped

    def payable_invoice_ids(self) -> list[str]:
        payable = (InvoiceStatus.PENDING.value, InvoiceStatus.FAILED.value)
        return [str(invoice.id) for invoice in self.session if invoice.status in payable]

    def overall_status(self) -> OverallStatus:
        statuses = [invoice.status for invoice in self.session]
        paid = statuses.count(InvoiceStatus.PAID.value)
        if statuses and paid == len(statuses):
            return OverallStatus.COMPLETE
        if paid:
            return OverallStatus.PARTIAL
        if InvoiceStatus.FAILED.value in statuses:
            return OverallStatus.FAILED
        return OverallStatus.PENDING

    def completed_count(self, mode: CompletionMode = CompletionMode.CHECKOUT) -> int:
        if mode is CompletionMode.ORDER:
            return sum(1 for invoice in self.session if invoice.status == InvoiceStatus.PAID.value)

        done = (InvoiceStatus.PAID.value, InvoiceStatus.EXPIRED.value)
        return sum(1 for invoice in self.session if invoice.status in done or self.is_skipped(str(invoice.id)))

    def summary(self) -> PaymentSummary:
        paid = [invoice for invoice in self.session if invoice.status == InvoiceStatus.PAID.value]
        return PaymentSummary(
            total_sats=sum(invoice.amount_sats for invoice in self.session),
            paid_sats=sum(invoice.amount_sats for invoice in paid),
            invoice_count=len(self.session),
            paid_count=len(paid),
        )
