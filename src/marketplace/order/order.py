"""Seller order as seen on the event log.

An order is created once, by its creation record, and never changes. Its
status lives in the separate status and shipping records folded by
``marketplace.order.lifecycle``.
"""

from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError

from marketplace.eventlog.records import LineItemRef, LogEntry, OrderCreation


class ParticipantRole(Enum):
    BUYER = "buyer"
    SELLER = "seller"


@dataclass(frozen=True)
class Order:
    order_id: str
    seller_pubkey: str
    buyer_pubkey: str
    line_items: tuple[LineItemRef, ...]
    total_amount_sats: int
    shipping_address: str | None
    created_at: int

    @classmethod
    def from_entry(cls, entry: LogEntry) -> "Order":
        record = entry.record
        if not isinstance(record, OrderCreation):
            raise ValidationError({"record": [f"Expected an order creation record, got {record.record_type.value}"]})
        return cls(
            order_id=record.order_id,
            seller_pubkey=record.seller_pubkey,
            buyer_pubkey=entry.author_pubkey,
            line_items=record.line_items,
            total_amount_sats=record.total_amount_sats,
            shipping_address=record.shipping_address,
            created_at=entry.created_at,
        )

    def roles_of(self, actor_pubkey: str) -> frozenset[ParticipantRole]:
        roles = set()
        if actor_pubkey == self.buyer_pubkey:
            roles.add(ParticipantRole.BUYER)
        if actor_pubkey == self.seller_pubkey:
            roles.add(ParticipantRole.SELLER)
        return frozenset(roles)

    def counterparty_of(self, actor_pubkey: str) -> str:
        """The participant a record from ``actor_pubkey`` is addressed to."""
        return self.buyer_pubkey if actor_pubkey == self.seller_pubkey else self.seller_pubkey
