"""Checkout settings read from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from marketplace.payment.confirmation import DEFAULT_CONFIRMATION_TIMEOUT
from marketplace.payment.gateway.mock_invoices import DEFAULT_TTL_SECONDS
from marketplace.payment.generation import InvoiceFallback

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class CheckoutSettings:
    invoice_fallback: InvoiceFallback = InvoiceFallback.STRICT
    confirmation_timeout_seconds: float = DEFAULT_CONFIRMATION_TIMEOUT
    invoice_ttl_seconds: int = DEFAULT_TTL_SECONDS
    strict_shares: bool = False
    concurrent_groups: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "CheckoutSettings":
        environ = os.environ if environ is None else environ

        fallback = environ.get("MARKETPLACE_INVOICE_FALLBACK", InvoiceFallback.STRICT.value).strip().lower()
        try:
            invoice_fallback = InvoiceFallback(fallback)
        except ValueError:
            raise ValueError(f"Unknown invoice fallback: {fallback!r}") from None

        return cls(
            invoice_fallback=invoice_fallback,
            confirmation_timeout_seconds=float(
                environ.get("MARKETPLACE_CONFIRMATION_TIMEOUT", DEFAULT_CONFIRMATION_TIMEOUT)
            ),
            invoice_ttl_seconds=int(environ.get("MARKETPLACE_INVOICE_TTL", DEFAULT_TTL_SECONDS)),
            strict_shares=_flag(environ, "MARKETPLACE_STRICT_SHARES", False),
            concurrent_groups=_flag(environ, "MARKETPLACE_CONCURRENT_GROUPS", True),
        )
