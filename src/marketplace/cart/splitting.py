"""Split a multi-seller cart into one group per seller."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from marketplace.cart.cart import Cart, CartItem
from marketplace.payment.shares import RevenueShareRecipient


@dataclass(frozen=True)
class SellerGroup:
    seller_pubkey: str
    items: tuple[CartItem, ...]
    subtotal_sats: int
    shipping_sats: int
    revenue_share_recipients: tuple[RevenueShareRecipient, ...] = ()
    all_pickup: bool = False

    @property
    def total_sats(self) -> int:
        return self.subtotal_sats + self.shipping_sats


def split_cart(
    cart: Cart,
    revenue_shares: Mapping[str, Sequence[RevenueShareRecipient]] | None = None,
) -> list[SellerGroup]:
    """Group line items by seller in first-seen order.

    Callers validate the cart first; every item is expected to reference a
    known shipping method. An empty cart yields an empty list.
    """
    revenue_shares = revenue_shares or {}
    grouped: dict[str, list[CartItem]] = {}
    for item in cart.items.values():
        grouped.setdefault(item.seller_pubkey, []).append(item)

    groups = []
    for seller_pubkey, items in grouped.items():
        methods = [cart.shipping_methods[item.shipping_method_id] for item in items]
        groups.append(
            SellerGroup(
                seller_pubkey=seller_pubkey,
                items=tuple(items),
                subtotal_sats=sum(item.amount_sats for item in items),
                shipping_sats=sum(method.cost_sats for method in methods),
                revenue_share_recipients=tuple(revenue_shares.get(seller_pubkey, ())),
                all_pickup=all(method.is_pickup for method in methods),
            )
        )
    return groups
