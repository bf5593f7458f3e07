"""Invoice generation for seller groups.

For every seller group one invoice is requested for the seller and one per
revenue-share recipient, in that order. A seller-invoice failure aborts the
group; recipient failures are recorded and skipped. When the gateway cannot
produce a payable request, the configured fallback either raises (strict) or
substitutes a mock invoice (mock).
"""

import asyncio
from dataclasses import dataclass
from enum import Enum

from marketplace.cart.splitting import SellerGroup
from marketplace.checkout.outcomes import RecipientInvoiceFailure, SellerInvoiceFailure
from marketplace.domain import logger
from marketplace.payment.gateway.mock_invoices import MockInvoiceGenerator
from marketplace.payment.gateway.port import GatewayError, GatewayInvoice, PaymentGateway
from marketplace.payment.invoice import Invoice, InvoiceRole
from marketplace.payment.shares import RecipientShare, ShareSplit


class InvoiceFallback(Enum):
    STRICT = "strict"
    MOCK = "mock"


class SellerInvoiceError(Exception):
    """The seller's own invoice could not be issued."""

    def __init__(self, seller_pubkey: str, order_id: str, reason: str) -> None:
        super().__init__(f"Seller invoice failed for {seller_pubkey}: {reason}")
        self.seller_pubkey = seller_pubkey
        self.order_id = order_id
        self.reason = reason


@dataclass(frozen=True)
class GroupPlan:
    """What to invoice for one seller group."""

    order_id: str
    group: SellerGroup
    split: ShareSplit

    @property
    def merchant_amount_sats(self) -> int:
        # Shipping is paid to the seller in full
        return self.split.merchant_amount_sats + self.group.shipping_sats


@dataclass(frozen=True)
class GroupInvoices:
    seller_pubkey: str
    order_id: str
    invoices: tuple[Invoice, ...]
    recipient_failures: tuple[RecipientInvoiceFailure, ...] = ()


def idempotency_key(attempt_id: str, seller_pubkey: str, role: InvoiceRole, payee_pubkey: str) -> str:
    return f"{attempt_id}:{seller_pubkey}:{role.value}:{payee_pubkey}"


class InvoiceOrchestrator:
    def __init__(
        self,
        gateway: PaymentGateway,
        fallback: InvoiceFallback,
        mock_generator: MockInvoiceGenerator | None = None,
        concurrent_groups: bool = True,
    ) -> None:
        self.gateway = gateway
        self.fallback = fallback
        self.mock_generator = mock_generator or MockInvoiceGenerator()
        self.concurrent_groups = concurrent_groups

    async def _request(
        self,
        attempt_id: str,
        plan: GroupPlan,
        role: InvoiceRole,
        payee_pubkey: str,
        amount_sats: int,
        description: str,
    ) -> GatewayInvoice:
        key = idempotency_key(attempt_id, plan.group.seller_pubkey, role, payee_pubkey)
        try:
            return await self.gateway.create_invoice(payee_pubkey, amount_sats, description, key)
        except GatewayError as exc:
            if self.fallback is not InvoiceFallback.MOCK:
                raise
            logger.warning(
                "Gateway failed, using mock invoice",
                order_id=plan.order_id,
                payee_pubkey=payee_pubkey,
                role=role.value,
                reason=exc.reason,
            )
            return self.mock_generator.generate(amount_sats)

    def _build(
        self,
        plan: GroupPlan,
        role: InvoiceRole,
        payee_pubkey: str,
        amount_sats: int,
        issued: GatewayInvoice,
        display_name: str = "",
    ) -> Invoice:
        return Invoice.create(
            order_id=plan.order_id,
            seller_pubkey=plan.group.seller_pubkey,
            payee_pubkey=payee_pubkey,
            payee_display_name=display_name,
            amount_sats=amount_sats,
            payment_request=issued.payment_request,
            expires_at=issued.expires_at,
            role=role,
            is_mock=issued.is_mock,
        )

    async def generate_for_group(self, attempt_id: str, plan: GroupPlan) -> GroupInvoices:
        """Issue the seller invoice, then one invoice per recipient.

        Raises ``SellerInvoiceError`` if the seller invoice cannot be issued.
        """
        seller_pubkey = plan.group.seller_pubkey
        invoices: list[Invoice] = []
        failures: list[RecipientInvoiceFailure] = []

        merchant_amount = plan.merchant_amount_sats
        if merchant_amount > 0:
            try:
                issued = await self._request(
                    attempt_id,
                    plan,
                    InvoiceRole.MERCHANT,
                    seller_pubkey,
                    merchant_amount,
                    f"Payment for order {plan.order_id}",
                )
            except GatewayError as exc:
                logger.error(
                    "Seller invoice generation failed",
                    order_id=plan.order_id,
                    seller_pubkey=seller_pubkey,
                    reason=exc.reason,
                )
                raise SellerInvoiceError(seller_pubkey, plan.order_id, exc.reason) from exc
            invoices.append(self._build(plan, InvoiceRole.MERCHANT, seller_pubkey, merchant_amount, issued))
        else:
            logger.info("Seller share is zero, no seller invoice issued", order_id=plan.order_id)

        for share in plan.split.recipient_shares:
            invoice = await self._recipient_invoice(attempt_id, plan, share, failures)
            if invoice is not None:
                invoices.append(invoice)

        logger.info(
            "Invoices generated for seller group",
            order_id=plan.order_id,
            seller_pubkey=seller_pubkey,
            invoices=len(invoices),
            recipient_failures=len(failures),
        )
        return GroupInvoices(
            seller_pubkey=seller_pubkey,
            order_id=plan.order_id,
            invoices=tuple(invoices),
            recipient_failures=tuple(failures),
        )

    async def _recipient_invoice(
        self,
        attempt_id: str,
        plan: GroupPlan,
        share: RecipientShare,
        failures: list[RecipientInvoiceFailure],
    ) -> Invoice | None:
        recipient = share.recipient
        description = f"V4V share for order {plan.order_id} ({recipient.share * 100:.1f}%)"
        try:
            issued = await self._request(
                attempt_id,
                plan,
                InvoiceRole.REVENUE_SHARE,
                share.payee_pubkey,
                share.amount_sats,
                description,
            )
        except GatewayError as exc:
            logger.warning(
                "Revenue share invoice generation failed, skipping recipient",
                order_id=plan.order_id,
                recipient_pubkey=share.payee_pubkey,
                reason=exc.reason,
            )
            failures.append(
                RecipientInvoiceFailure(
                    seller_pubkey=plan.group.seller_pubkey,
                    order_id=plan.order_id,
                    recipient_pubkey=share.payee_pubkey,
                    display_name=recipient.display_name or "",
                    amount_sats=share.amount_sats,
                    reason=exc.reason,
                )
            )
            return None
        return self._build(
            plan,
            InvoiceRole.REVENUE_SHARE,
            share.payee_pubkey,
            share.amount_sats,
            issued,
            display_name=recipient.display_name or "",
        )

    async def _isolated(self, attempt_id: str, plan: GroupPlan) -> GroupInvoices | SellerInvoiceFailure:
        try:
            return await self.generate_for_group(attempt_id, plan)
        except SellerInvoiceError as exc:
            return SellerInvoiceFailure(seller_pubkey=exc.seller_pubkey, order_id=exc.order_id, reason=exc.reason)

    async def generate(
        self,
        attempt_id: str,
        plans: list[GroupPlan],
    ) -> list[GroupInvoices | SellerInvoiceFailure]:
        """Generate invoices for every group, one result per plan in plan order."""
        if self.concurrent_groups:
            return list(await asyncio.gather(*(self._isolated(attempt_id, plan) for plan in plans)))

        results = []
        for plan in plans:
            results.append(await self._isolated(attempt_id, plan))
        return results
