"""Value-for-value revenue shares.

A seller can route part of each sale to third-party recipients. Shares are
stored canonically as a fraction in [0, 1]. Legacy configurations that mixed
whole percents and fractions are converted once, through
``RevenueShareRecipient.from_percentage``.

Amounts are whole sats: every recipient with a non-zero share receives at
least one sat, and the seller keeps the remainder. When the per-recipient
minimums push the total over the order amount the configuration is
inconsistent; the split is then either rejected (strict) or capped pro-rata.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

from protean.exceptions import ValidationError
from protean.fields import Float, String

from marketplace.domain import logger, marketplace


class InconsistentShareError(ValidationError):
    """Recipient shares add up to more than the amount being split."""


@marketplace.value_object
class RevenueShareRecipient:
    recipient_pubkey: String(required=True, max_length=128)
    display_name: String(max_length=255, default="")
    share: Float(required=True, min_value=0.0, max_value=1.0)

    @classmethod
    def from_percentage(cls, recipient_pubkey: str, percentage: float, display_name: str = ""):
        """Migrate a legacy percentage value.

        Values above 1 are whole percents; values up to 1 are fractions. A value
        of exactly 1 cannot be told apart and is read as the fraction 1.0.
        """
        if percentage == 1:
            logger.warning(
                "Ambiguous revenue share percentage read as 100%",
                recipient_pubkey=recipient_pubkey,
                percentage=percentage,
            )
        share = percentage / 100 if percentage > 1 else percentage
        return cls(recipient_pubkey=recipient_pubkey, display_name=display_name, share=share)

    @classmethod
    def from_whole_percent(cls, recipient_pubkey: str, percent: float, display_name: str = ""):
        return cls(recipient_pubkey=recipient_pubkey, display_name=display_name, share=percent / 100)


@dataclass(frozen=True)
class RecipientShare:
    recipient: RevenueShareRecipient
    amount_sats: int

    @property
    def payee_pubkey(self) -> str:
        return self.recipient.recipient_pubkey


@dataclass(frozen=True)
class ShareSplit:
    total_sats: int
    merchant_amount_sats: int
    recipient_shares: tuple[RecipientShare, ...]
    excluded: tuple[RevenueShareRecipient, ...] = ()
    inconsistent: bool = False

    @property
    def recipients_total_sats(self) -> int:
        return sum(share.amount_sats for share in self.recipient_shares)

    def payouts(self) -> list[tuple[str, int]]:
        """(payee_pubkey, amount_sats) pairs for the recipients, in configuration order."""
        return [(share.payee_pubkey, share.amount_sats) for share in self.recipient_shares]


def validate_share_configuration(recipients: Sequence[RevenueShareRecipient]) -> None:
    """Reject a recipient list whose shares add up to more than the whole."""
    total_share = sum(Decimal(str(recipient.share)) for recipient in recipients)
    if total_share > 1:
        raise InconsistentShareError(
            {"recipients": [f"Revenue shares add up to {total_share * 100}%, more than the sale amount"]}
        )


def _raw_amount(total_sats: int, share: float) -> int:
    raw = Decimal(total_sats) * Decimal(str(share))
    return max(1, int(raw.to_integral_value(rounding=ROUND_FLOOR)))


def _cap_pro_rata(amounts: list[int], total_sats: int) -> list[int]:
    """Scale amounts down to ``total_sats`` using largest-remainder rounding."""
    requested = sum(amounts)
    quotas = [Decimal(amount) * total_sats / requested for amount in amounts]
    capped = [int(quota.to_integral_value(rounding=ROUND_FLOOR)) for quota in quotas]
    leftover = total_sats - sum(capped)

    # Ties go to the recipient listed first
    by_remainder = sorted(range(len(amounts)), key=lambda i: (-(quotas[i] - capped[i]), i))
    for index in by_remainder[:leftover]:
        capped[index] += 1
    return capped


def calculate_shares(
    total_sats: int,
    recipients: list[RevenueShareRecipient] | tuple[RevenueShareRecipient, ...],
    strict: bool = False,
) -> ShareSplit:
    """Convert recipient shares of ``total_sats`` into whole-sat amounts."""
    if total_sats < 0:
        raise ValidationError({"total_sats": ["Amount to split must not be negative"]})

    payable = [recipient for recipient in recipients if recipient.share > 0]
    excluded = [recipient for recipient in recipients if recipient.share <= 0]
    amounts = [_raw_amount(total_sats, recipient.share) for recipient in payable]

    inconsistent = sum(amounts) > total_sats
    if inconsistent:
        if strict:
            message = f"Recipient shares total {sum(amounts)} sats, more than the {total_sats} sats available"
            raise InconsistentShareError({"recipients": [message]})
        logger.warning(
            "Revenue shares exceed order amount, capping pro-rata",
            total_sats=total_sats,
            requested_sats=sum(amounts),
            recipients=len(payable),
        )
        amounts = _cap_pro_rata(amounts, total_sats)

    shares = []
    for recipient, amount in zip(payable, amounts, strict=True):
        if amount > 0:
            shares.append(RecipientShare(recipient=recipient, amount_sats=amount))
        else:
            excluded.append(recipient)

    recipients_total = sum(share.amount_sats for share in shares)
    return ShareSplit(
        total_sats=total_sats,
        merchant_amount_sats=total_sats - recipients_total,
        recipient_shares=tuple(shares),
        excluded=tuple(excluded),
        inconsistent=inconsistent,
    )
