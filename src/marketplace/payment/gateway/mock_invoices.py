"""Placeholder invoices used when a real payable request cannot be obtained.

Only used when checkout runs in the permissive (mock) fallback mode. The
request strings look like Lightning invoices but cannot be paid.
"""

import secrets
import string
import time
from collections.abc import Callable

from marketplace.payment.gateway.port import GatewayInvoice

DEFAULT_TTL_SECONDS = 3600

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class MockInvoiceGenerator:
    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def generate(self, amount_sats: int) -> GatewayInvoice:
        suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(50))
        return GatewayInvoice(
            payment_request=f"lnbc{amount_sats}n1p{suffix}",
            expires_at=int(self._clock()) + self.ttl_seconds,
            is_mock=True,
        )
