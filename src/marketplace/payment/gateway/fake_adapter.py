"""Configurable fake payment gateway for development and testing.

Simulates Lightning invoice issuance without any network calls. Behavior can
be configured globally or per payee, so tests can make one revenue-share
recipient fail while the seller succeeds.
"""

import asyncio
import time
from uuid import uuid4

from marketplace.payment.gateway.port import (
    GatewayError,
    GatewayInvoice,
    NoPayableAddress,
    PaymentGateway,
)


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "No lightning address"
        self.error_class: type[GatewayError] = NoPayableAddress
        self.failing_payees: dict[str, GatewayError] = {}
        self.delay_seconds: float = 0.0
        self.ttl_seconds = ttl_seconds
        self.calls: list[dict] = []
        self._issued: dict[str, GatewayInvoice] = {}

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "No lightning address",
        error_class: type[GatewayError] = NoPayableAddress,
        delay_seconds: float = 0.0,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.error_class = error_class
        self.delay_seconds = delay_seconds

    def fail_for(self, payee_pubkey: str, error: GatewayError | None = None) -> None:
        """Make every request for one payee fail."""
        self.failing_payees[payee_pubkey] = error or NoPayableAddress(f"No lightning address for {payee_pubkey[:8]}")

    async def create_invoice(
        self,
        payee_pubkey: str,
        amount_sats: int,
        description: str,
        idempotency_key: str,
    ) -> GatewayInvoice:
        call = {
            "method": "create_invoice",
            "payee_pubkey": payee_pubkey,
            "amount_sats": amount_sats,
            "description": description,
            "idempotency_key": idempotency_key,
        }
        self.calls.append(call)

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        if payee_pubkey in self.failing_payees:
            raise self.failing_payees[payee_pubkey]
        if not self.should_succeed:
            raise self.error_class(self.failure_reason)

        if idempotency_key in self._issued:
            return self._issued[idempotency_key]

        invoice = GatewayInvoice(
            payment_request=f"lnbc{amount_sats}n1fake{uuid4().hex}",
            expires_at=int(time.time()) + self.ttl_seconds,
        )
        self._issued[idempotency_key] = invoice
        return invoice
