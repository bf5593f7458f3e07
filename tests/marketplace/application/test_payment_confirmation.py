"""Tests for waiting on payment confirmation."""

import asyncio

import pytest
from marketplace.eventlog.records import PaymentReceipt
from marketplace.payment.confirmation import (
    CancellationToken,
    ConfirmationOutcome,
    ConfirmationSource,
    PaymentConfirmation,
)
from marketplace.payment.invoice import Invoice, InvoiceRole, InvoiceStatus
from marketplace.payment.tracking import PaymentProgressTracker, PaymentSession


@pytest.fixture
def tracker():
    invoice = Invoice.create(
        order_id="ord-1",
        seller_pubkey="seller-a",
        payee_pubkey="seller-a",
        amount_sats=9_000,
        payment_request="lnbc9000n1pwait",
        expires_at=2_000_000_000,
        role=InvoiceRole.MERCHANT,
    )
    return PaymentProgressTracker(PaymentSession([invoice]))


@pytest.fixture
def invoice_id(tracker):
    return str(tracker.session.invoices[0].id)


def _receipt(reference="lnbc9000n1pwait"):
    return PaymentReceipt(
        order_id="ord-1",
        payer_pubkey="buyer-1",
        recipient_pubkey="seller-a",
        amount_sats=9_000,
        medium="lightning",
        reference=reference,
        proof="preimage",
    )


class TestPaymentConfirmation:
    @pytest.mark.asyncio
    async def test_receipt_on_log_confirms_payment(self, tracker, invoice_id, event_log):
        confirmation = PaymentConfirmation(tracker, event_log, timeout_seconds=1)
        waiting = asyncio.create_task(confirmation.wait_for_payment(invoice_id))
        await asyncio.sleep(0)
        await event_log.publish(_receipt())

        result = await waiting
        assert result.outcome is ConfirmationOutcome.CONFIRMED
        assert result.source is ConfirmationSource.RECEIPT
        assert result.receipt.proof == "preimage"
        assert tracker.session.get(invoice_id).status == InvoiceStatus.PAID.value

    @pytest.mark.asyncio
    async def test_manual_confirmation(self, tracker, invoice_id, event_log):
        confirmation = PaymentConfirmation(tracker, event_log, timeout_seconds=1)
        waiting = asyncio.create_task(confirmation.wait_for_payment(invoice_id))
        await asyncio.sleep(0)
        assert confirmation.confirm_manually(invoice_id) is True

        result = await waiting
        assert result.source is ConfirmationSource.MANUAL
        assert tracker.is_complete() is True
        assert event_log.pending_waiters == 0

    def test_manual_confirmation_without_wait(self, tracker, invoice_id, event_log):
        confirmation = PaymentConfirmation(tracker, event_log)
        assert confirmation.confirm_manually(invoice_id) is False

    @pytest.mark.asyncio
    async def test_timeout_leaves_status_unchanged(self, tracker, invoice_id, event_log):
        tracker.mark_processing(invoice_id)
        confirmation = PaymentConfirmation(tracker, event_log, timeout_seconds=0.01)

        result = await confirmation.wait_for_payment(invoice_id)

        assert result.outcome is ConfirmationOutcome.TIMED_OUT
        assert tracker.session.get(invoice_id).status == InvoiceStatus.PROCESSING.value
        assert event_log.pending_waiters == 0
        assert confirmation.active_waits == 0

    @pytest.mark.asyncio
    async def test_retry_after_timeout(self, tracker, invoice_id, event_log):
        confirmation = PaymentConfirmation(tracker, event_log, timeout_seconds=0.01)
        first = await confirmation.wait_for_payment(invoice_id)
        assert first.outcome is ConfirmationOutcome.TIMED_OUT

        await event_log.publish(_receipt())
        second = await confirmation.wait_for_payment(invoice_id)
        assert second.outcome is ConfirmationOutcome.CONFIRMED

    @pytest.mark.asyncio
    async def test_overlapping_waits_on_same_invoice(self, tracker, invoice_id, event_log):
        confirmation = PaymentConfirmation(tracker, event_log)
        short = asyncio.create_task(confirmation.wait_for_payment(invoice_id, timeout_seconds=0.01))
        long = asyncio.create_task(confirmation.wait_for_payment(invoice_id, timeout_seconds=5))
        await asyncio.sleep(0)

        assert (await short).outcome is ConfirmationOutcome.TIMED_OUT
        assert confirmation.active_waits == 1
        assert confirmation.confirm_manually(invoice_id) is True

        result = await asyncio.wait_for(long, timeout=1)
        assert result.outcome is ConfirmationOutcome.CONFIRMED
        assert result.source is ConfirmationSource.MANUAL
        assert confirmation.active_waits == 0

    @pytest.mark.asyncio
    async def test_cancellation_releases_resources(self, tracker, invoice_id, event_log):
        token = CancellationToken()
        confirmation = PaymentConfirmation(tracker, event_log, timeout_seconds=5)
        waiting = asyncio.create_task(confirmation.wait_for_payment(invoice_id, cancel_token=token))
        await asyncio.sleep(0)
        token.cancel()

        result = await asyncio.wait_for(waiting, timeout=1)

        assert result.outcome is ConfirmationOutcome.CANCELLED
        assert tracker.session.get(invoice_id).status == InvoiceStatus.PENDING.value
        assert event_log.pending_waiters == 0
        assert confirmation.active_waits == 0

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self, tracker, invoice_id, event_log):
        token = CancellationToken()
        token.cancel()
        result = await PaymentConfirmation(tracker, event_log).wait_for_payment(invoice_id, cancel_token=token)
        assert result.outcome is ConfirmationOutcome.CANCELLED

    @pytest.mark.asyncio
    async def test_task_cancellation_releases_resources(self, tracker, invoice_id, event_log):
        confirmation = PaymentConfirmation(tracker, event_log, timeout_seconds=5)
        waiting = asyncio.create_task(confirmation.wait_for_payment(invoice_id))
        await asyncio.sleep(0)
        waiting.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiting
        assert event_log.pending_waiters == 0
        assert confirmation.active_waits == 0

    @pytest.mark.asyncio
    async def test_already_paid_invoice(self, tracker, invoice_id, event_log):
        tracker.mark_paid(invoice_id)
        result = await PaymentConfirmation(tracker, event_log).wait_for_payment(invoice_id)
        assert result.outcome is ConfirmationOutcome.CONFIRMED
        assert result.source is ConfirmationSource.ALREADY_PAID
