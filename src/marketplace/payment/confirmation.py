"""Waiting for a payment to be confirmed.

After an invoice is shown, confirmation comes either from the payer (manual
confirmation or a wallet callback) or from a receipt appearing on the event
log. The wait is bounded by a timeout and can be cancelled through a
``CancellationToken``. Timing out or being cancelled never changes the
invoice's status.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum

from marketplace.domain import logger
from marketplace.eventlog.port import EventReader
from marketplace.eventlog.records import PaymentReceipt
from marketplace.payment.invoice import InvoiceStatus
from marketplace.payment.tracking import PaymentProgressTracker

DEFAULT_CONFIRMATION_TIMEOUT = 75.0


class ConfirmationOutcome(Enum):
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class ConfirmationSource(Enum):
    RECEIPT = "receipt"
    MANUAL = "manual"
    ALREADY_PAID = "already_paid"


@dataclass(frozen=True)
class ConfirmationResult:
    invoice_id: str
    outcome: ConfirmationOutcome
    source: ConfirmationSource | None = None
    receipt: PaymentReceipt | None = None


class CancellationToken:
    """Signals an in-progress confirmation wait to stop."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class PaymentConfirmation:
    def __init__(
        self,
        tracker: PaymentProgressTracker,
        reader: EventReader,
        timeout_seconds: float = DEFAULT_CONFIRMATION_TIMEOUT,
    ) -> None:
        self.tracker = tracker
        self.reader = reader
        self.timeout_seconds = timeout_seconds
        self._manual: dict[str, list[asyncio.Future]] = {}

    def confirm_manually(self, invoice_id: str) -> bool:
        """Resolve every pending wait for ``invoice_id`` as paid by the payer.

        Returns False when no wait is in progress for that invoice.
        """
        pending = [future for future in self._manual.get(str(invoice_id), ()) if not future.done()]
        for future in pending:
            future.set_result(ConfirmationSource.MANUAL)
        return bool(pending)

    def _release(self, invoice_id: str, future: asyncio.Future) -> None:
        futures = self._manual.get(invoice_id, [])
        if future in futures:
            futures.remove(future)
        if not futures:
            self._manual.pop(invoice_id, None)

    @property
    def active_waits(self) -> int:
        return sum(len(futures) for futures in self._manual.values())

    async def wait_for_payment(
        self,
        invoice_id: str,
        cancel_token: CancellationToken | None = None,
        timeout_seconds: float | None = None,
    ) -> ConfirmationResult:
        invoice = self.tracker.session.get(invoice_id)
        invoice_id = str(invoice.id)
        if invoice.status == InvoiceStatus.PAID.value:
            return ConfirmationResult(invoice_id, ConfirmationOutcome.CONFIRMED, ConfirmationSource.ALREADY_PAID)
        if cancel_token is not None and cancel_token.cancelled:
            return ConfirmationResult(invoice_id, ConfirmationOutcome.CANCELLED)

        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        loop = asyncio.get_running_loop()

        receipt_task = asyncio.ensure_future(
            self.reader.wait_for_receipt(str(invoice.order_id), invoice.payment_request)
        )
        manual_future = loop.create_future()
        self._manual.setdefault(invoice_id, []).append(manual_future)
        waiters = {receipt_task, manual_future}
        cancel_task = None
        if cancel_token is not None:
            cancel_task = asyncio.ensure_future(cancel_token.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self._release(invoice_id, manual_future)
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if cancel_task is not None and cancel_task in done:
            logger.info("Payment confirmation cancelled", invoice_id=invoice_id)
            return ConfirmationResult(invoice_id, ConfirmationOutcome.CANCELLED)

        if receipt_task in done:
            receipt = receipt_task.result()
            self.tracker.mark_paid(invoice_id)
            logger.info("Payment confirmed by receipt", invoice_id=invoice_id, reference=receipt.reference)
            return ConfirmationResult(invoice_id, ConfirmationOutcome.CONFIRMED, ConfirmationSource.RECEIPT, receipt)

        if manual_future in done:
            self.tracker.mark_paid(invoice_id)
            logger.info("Payment confirmed manually", invoice_id=invoice_id)
            return ConfirmationResult(invoice_id, ConfirmationOutcome.CONFIRMED, ConfirmationSource.MANUAL)

        logger.warning("Payment confirmation timed out", invoice_id=invoice_id, timeout_seconds=timeout)
        return ConfirmationResult(invoice_id, ConfirmationOutcome.TIMED_OUT)
