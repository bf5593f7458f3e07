"""Payment gateway port (abstract interface).

Turns a payee and an amount into a payable Lightning request. How the payee's
payment address is resolved is up to the adapter; the orchestration code only
sees the resulting request string and its expiry.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GatewayInvoice:
    """A payable request issued for one payee."""

    payment_request: str
    expires_at: int
    is_mock: bool = False


class GatewayError(Exception):
    """The gateway could not produce a payable request."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NoPayableAddress(GatewayError):
    """The payee has no payment address the gateway can resolve."""


class GatewayUnavailable(GatewayError):
    """The gateway or the payee's service did not answer."""


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    async def create_invoice(
        self,
        payee_pubkey: str,
        amount_sats: int,
        description: str,
        idempotency_key: str,
    ) -> GatewayInvoice:
        """Request a payable invoice for ``amount_sats`` addressed to the payee."""
        ...
