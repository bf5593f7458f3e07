"""Checkout coordinator: drives one checkout attempt end to end.

Flow:
    1. Validate the cart and take a snapshot
    2. Split it into seller groups and compute revenue shares on each subtotal
    3. Generate invoices per seller group (seller first, then recipients)
    4. Publish one order creation record per seller group
    5. Publish a payment request for every invoice
    6. Track payment until every invoice is paid, then publish receipts

Failures of one seller, recipient or publish are isolated and collected on the
session so the caller can show partial success and offer retries.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass

from marketplace.cart.cart import Cart, validate_cart
from marketplace.cart.splitting import SellerGroup, split_cart
from marketplace.checkout.outcomes import (
    OrderPublishFailure,
    PaymentRequestPublishFailure,
    ReceiptPublishFailure,
    SellerInvoiceFailure,
)
from marketplace.checkout.session import BuyerDetails, CheckoutSession, CheckoutStatus
from marketplace.checkout.settings import CheckoutSettings
from marketplace.domain import logger
from marketplace.eventlog import get_event_log
from marketplace.eventlog.port import EventLog, PublishError
from marketplace.eventlog.records import (
    LineItemRef,
    OrderCreation,
    PaymentMethod,
    PaymentReceipt,
    PaymentRequest,
)
from marketplace.payment.confirmation import PaymentConfirmation
from marketplace.payment.gateway import get_gateway
from marketplace.payment.gateway.mock_invoices import MockInvoiceGenerator
from marketplace.payment.gateway.port import PaymentGateway
from marketplace.payment.generation import GroupInvoices, GroupPlan, InvoiceOrchestrator
from marketplace.payment.invoice import Invoice, InvoiceStatus
from marketplace.payment.shares import RevenueShareRecipient, calculate_shares, validate_share_configuration
from marketplace.payment.tracking import PaymentSession
from marketplace.utils.logging import log_context

CompletionHook = Callable[[CheckoutSession], Awaitable[None] | None]


@dataclass(frozen=True)
class CheckoutResult:
    session: CheckoutSession

    @property
    def order_ids(self) -> list[str]:
        return self.session.created_order_ids

    @property
    def invoices(self) -> tuple[Invoice, ...]:
        return self.session.payment.invoices if self.session.payment else ()

    @property
    def seller_count(self) -> int:
        return len(self.session.seller_groups)

    @property
    def succeeded(self) -> bool:
        return bool(self.order_ids) and len(self.order_ids) == self.seller_count

    @property
    def has_capped_shares(self) -> bool:
        return bool(self.session.capped_sellers)

    @property
    def is_partial(self) -> bool:
        return bool(self.order_ids) and len(self.order_ids) < self.seller_count

    def summary(self) -> str:
        lines = [f"{len(self.order_ids)} of {self.seller_count} sellers' orders were created"]
        for failure in self.session.seller_failures:
            lines.append(f"Seller {failure.seller_pubkey[:8]}'s checkout failed: {failure.reason}")
        for failure in self.session.order_failures:
            lines.append(f"Seller {failure.seller_pubkey[:8]}'s order was not published: {failure.reason}")
        for failure in self.session.recipient_failures:
            name = failure.display_name or failure.recipient_pubkey[:8]
            lines.append(f"Revenue share for {name} skipped: {failure.reason}")
        for seller_pubkey in self.session.capped_sellers:
            lines.append(f"Seller {seller_pubkey[:8]}'s revenue shares exceeded the sale and were capped")
        return "; ".join(lines)


class CheckoutCoordinator:
    def __init__(
        self,
        gateway: PaymentGateway | None = None,
        event_log: EventLog | None = None,
        settings: CheckoutSettings | None = None,
        on_complete: CompletionHook | None = None,
    ) -> None:
        self.gateway = gateway or get_gateway()
        self.event_log = event_log or get_event_log()
        self.settings = settings or CheckoutSettings.from_env()
        self.on_complete = on_complete
        self.orchestrator = InvoiceOrchestrator(
            self.gateway,
            fallback=self.settings.invoice_fallback,
            mock_generator=MockInvoiceGenerator(ttl_seconds=self.settings.invoice_ttl_seconds),
            concurrent_groups=self.settings.concurrent_groups,
        )

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    async def checkout(
        self,
        cart: Cart,
        buyer: BuyerDetails,
        revenue_shares: Mapping[str, Sequence[RevenueShareRecipient]] | None = None,
        attempt_id: str | None = None,
    ) -> CheckoutResult:
        """Run a checkout attempt.

        Raises ``ValidationError`` before anything is generated or published,
        ``InconsistentShareError`` when a seller's recipients are configured for
        more than the whole sale. Everything after that is reported on the
        returned session.
        """
        validate_cart(cart)
        for recipients in (revenue_shares or {}).values():
            validate_share_configuration(recipients)
        snapshot = cart.snapshot()
        groups = split_cart(snapshot, revenue_shares)

        session = CheckoutSession(buyer=buyer, cart=snapshot, revenue_shares=dict(revenue_shares or {}))
        if attempt_id:
            session.attempt_id = attempt_id
        session.seller_groups = tuple(groups)

        plans = [
            GroupPlan(
                order_id=session.order_id_for(group.seller_pubkey),
                group=group,
                split=calculate_shares(
                    group.subtotal_sats,
                    group.revenue_share_recipients,
                    strict=self.settings.strict_shares,
                ),
            )
            for group in groups
        ]
        session.share_splits = {plan.group.seller_pubkey: plan.split for plan in plans}

        with log_context(attempt_id=session.attempt_id, buyer_pubkey=buyer.buyer_pubkey):
            logger.info("Checkout started", sellers=len(groups), total_sats=snapshot.total_sats)
            await self._run(session, plans)
        return CheckoutResult(session=session)

    async def _run(self, session: CheckoutSession, plans: list[GroupPlan]) -> None:
        generated = await self.orchestrator.generate(session.attempt_id, plans)

        ready: list[tuple[GroupPlan, GroupInvoices]] = []
        for plan, result in zip(plans, generated, strict=True):
            if isinstance(result, SellerInvoiceFailure):
                session.seller_failures.append(result)
                continue
            session.recipient_failures.extend(result.recipient_failures)
            ready.append((plan, result))

        publish_results = await asyncio.gather(
            *(self._publish_order(session, plan.group, plan.order_id) for plan, _ in ready)
        )

        invoices: list[Invoice] = []
        for (plan, group_invoices), outcome in zip(ready, publish_results, strict=True):
            if isinstance(outcome, OrderPublishFailure):
                session.order_failures.append(outcome)
                logger.warning(
                    "Discarding invoices for unpublished order",
                    order_id=plan.order_id,
                    invoices=len(group_invoices.invoices),
                )
                continue
            session.order_event_ids[plan.group.seller_pubkey] = outcome
            invoices.extend(group_invoices.invoices)

        session.attach_payment(PaymentSession(invoices))
        await self._publish_payment_requests(session)

        session.status = CheckoutStatus.AWAITING_PAYMENT if invoices else CheckoutStatus.FAILED
        logger.info(
            "Checkout invoices ready",
            orders=len(session.order_event_ids),
            invoices=len(invoices),
            seller_failures=len(session.seller_failures),
            order_failures=len(session.order_failures),
        )

    async def _publish_order(
        self,
        session: CheckoutSession,
        group: SellerGroup,
        order_id: str,
    ) -> str | OrderPublishFailure:
        buyer = session.buyer
        method_ids = {item.shipping_method_id for item in group.items}
        address = None
        if buyer.shipping_address is not None and not group.all_pickup:
            address = buyer.shipping_address.to_tag_value()

        record = OrderCreation(
            order_id=order_id,
            seller_pubkey=group.seller_pubkey,
            buyer_pubkey=buyer.buyer_pubkey,
            line_items=tuple(
                LineItemRef.for_product(group.seller_pubkey, item.product_id, item.quantity) for item in group.items
            ),
            total_amount_sats=group.total_sats,
            shipping_address=address,
            shipping_ref=method_ids.pop() if len(method_ids) == 1 else None,
            email=buyer.email,
            phone=buyer.phone,
            payment_method="lightning",
            notes=buyer.notes,
        )
        try:
            event_id = await self.event_log.publish(record)
        except PublishError as exc:
            logger.warning(
                "Order not published", order_id=order_id, seller_pubkey=group.seller_pubkey, reason=exc.reason
            )
            return OrderPublishFailure(seller_pubkey=group.seller_pubkey, order_id=order_id, reason=exc.reason)
        logger.info("Order published", order_id=order_id, seller_pubkey=group.seller_pubkey, event_id=event_id)
        return event_id

    async def _publish_payment_requests(self, session: CheckoutSession) -> None:
        for invoice in session.payment:
            record = PaymentRequest(
                order_id=str(invoice.order_id),
                buyer_pubkey=session.buyer_pubkey,
                payee_pubkey=invoice.payee_pubkey,
                amount_sats=invoice.amount_sats,
                payment_methods=(PaymentMethod(type="lightning", details=invoice.payment_request),),
                expiration_time=invoice.expires_at,
                is_revenue_share=not invoice.is_merchant,
                notes=f"Payment for order {invoice.order_id}",
            )
            try:
                await self.event_log.publish(record)
            except PublishError as exc:
                logger.warning("Payment request not published", invoice_id=str(invoice.id), reason=exc.reason)
                session.payment_request_failures.append(
                    PaymentRequestPublishFailure(
                        order_id=str(invoice.order_id),
                        invoice_id=str(invoice.id),
                        payee_pubkey=invoice.payee_pubkey,
                        reason=exc.reason,
                    )
                )

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def confirmation(self, session: CheckoutSession) -> PaymentConfirmation:
        return PaymentConfirmation(
            session.tracker,
            self.event_log,
            timeout_seconds=self.settings.confirmation_timeout_seconds,
        )

    async def finalize(self, session: CheckoutSession) -> list[str]:
        """Publish receipts for newly paid invoices; complete the session once all are paid.

        Returns the event ids of the receipts published by this call. Receipts
        that could not be published are listed on ``session.receipt_failures``
        and are retried by the next call.
        """
        published = []
        session.receipt_failures = []
        for invoice in session.payment or ():
            invoice_id = str(invoice.id)
            if invoice.status != InvoiceStatus.PAID.value or invoice_id in session.receipt_event_ids:
                continue
            receipt = PaymentReceipt(
                order_id=str(invoice.order_id),
                payer_pubkey=session.buyer_pubkey,
                recipient_pubkey=invoice.payee_pubkey,
                amount_sats=invoice.amount_sats,
                medium="lightning",
                reference=invoice.payment_request,
            )
            try:
                event_id = await self.event_log.publish(receipt)
            except PublishError as exc:
                logger.warning("Receipt not published", invoice_id=invoice_id, reason=exc.reason)
                session.receipt_failures.append(
                    ReceiptPublishFailure(
                        order_id=str(invoice.order_id),
                        invoice_id=invoice_id,
                        recipient_pubkey=invoice.payee_pubkey,
                        reason=exc.reason,
                    )
                )
                continue
            session.receipt_event_ids[invoice_id] = event_id
            published.append(event_id)

        if session.tracker is not None and session.payment and session.tracker.is_complete():
            if session.status is not CheckoutStatus.COMPLETED:
                session.status = CheckoutStatus.COMPLETED
                logger.info("Checkout completed", attempt_id=session.attempt_id, orders=len(session.created_order_ids))
                if self.on_complete is not None:
                    outcome = self.on_complete(session)
                    if inspect.isawaitable(outcome):
                        await outcome
        return published

    async def retry_failed(self, session: CheckoutSession) -> CheckoutResult | None:
        """Start a new attempt for the sellers whose orders failed.

        Returns None when nothing failed.
        """
        failed = set(session.failed_sellers)
        if not failed:
            return None
        logger.info("Retrying failed sellers", attempt_id=session.attempt_id, sellers=len(failed))
        shares = {seller: recipients for seller, recipients in session.revenue_shares.items() if seller in failed}
        return await self.checkout(session.cart.restricted_to(failed), session.buyer, revenue_shares=shares)
