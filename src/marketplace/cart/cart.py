"""Cart snapshot taken at checkout time.

The cart is session-scoped: it maps product ids to line items and carries the
shipping methods the buyer can choose from. Nothing here is persisted; the
checkout flow takes an immutable snapshot before splitting it.
"""

from dataclasses import dataclass, field

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Integer, String

from marketplace.domain import marketplace


@marketplace.value_object
class CartItem:
    """One product line in the cart."""

    product_id: String(required=True, max_length=255)
    seller_pubkey: String(required=True, max_length=128)
    unit_amount_sats: Integer(required=True, min_value=0)
    quantity: Integer(required=True, min_value=1)
    shipping_method_id: String(max_length=255)

    @property
    def amount_sats(self) -> int:
        return self.unit_amount_sats * self.quantity


@marketplace.value_object
class ShippingMethod:
    """A seller-defined shipping option with its cost in sats."""

    method_id: String(required=True, max_length=255)
    name: String(max_length=255)
    cost_sats: Integer(required=True, min_value=0)
    is_pickup: Boolean(default=False)


@marketplace.value_object
class ShippingAddress:
    name: String(required=True, max_length=255)
    first_line: String(required=True, max_length=500)
    additional_info: String(max_length=500)
    city: String(required=True, max_length=255)
    postcode: String(max_length=50)
    country: String(required=True, max_length=100)

    @invariant.post
    def name_and_street_must_not_be_blank(self):
        if not self.name.strip() or not self.first_line.strip():
            raise ValidationError({"shipping_address": ["Name and first line of address are required"]})

    def to_tag_value(self) -> str:
        """Newline-separated address, skipping empty parts."""
        parts = [self.name, self.first_line, self.additional_info, self.city, self.postcode, self.country]
        return "\n".join(part for part in parts if part)


@dataclass(frozen=True)
class Cart:
    items: dict[str, CartItem] = field(default_factory=dict)
    shipping_methods: dict[str, ShippingMethod] = field(default_factory=dict)

    @classmethod
    def of(cls, items: list[CartItem], shipping_methods: list[ShippingMethod] | None = None) -> "Cart":
        return cls(
            items={item.product_id: item for item in items},
            shipping_methods={method.method_id: method for method in shipping_methods or []},
        )

    def snapshot(self) -> "Cart":
        return Cart(items=dict(self.items), shipping_methods=dict(self.shipping_methods))

    def restricted_to(self, seller_pubkeys: set[str]) -> "Cart":
        """A copy holding only the items sold by the given sellers."""
        return Cart(
            items={pid: item for pid, item in self.items.items() if item.seller_pubkey in seller_pubkeys},
            shipping_methods=dict(self.shipping_methods),
        )

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def total_sats(self) -> int:
        return sum(item.amount_sats for item in self.items.values())


def validate_cart(cart: Cart) -> None:
    """Reject carts that cannot be checked out.

    Every line item needs a chosen shipping method that the cart knows about.
    """
    if cart.is_empty:
        raise ValidationError({"cart": ["Cart is empty"]})

    errors = []
    for product_id, item in cart.items.items():
        if not item.shipping_method_id:
            errors.append(f"No shipping method selected for product {product_id}")
        elif item.shipping_method_id not in cart.shipping_methods:
            errors.append(f"Unknown shipping method {item.shipping_method_id} for product {product_id}")

    if errors:
        raise ValidationError({"shipping_method_id": errors})
