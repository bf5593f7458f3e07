"""Tests for cart validation and splitting carts into seller groups."""

import pytest
from marketplace.cart.cart import Cart, CartItem, ShippingAddress, ShippingMethod, validate_cart
from marketplace.cart.splitting import split_cart
from marketplace.payment.shares import RevenueShareRecipient
from protean.exceptions import ValidationError

STANDARD = ShippingMethod(method_id="standard", name="Standard", cost_sats=500)
EXPRESS = ShippingMethod(method_id="express", name="Express", cost_sats=1_200)
PICKUP = ShippingMethod(method_id="pickup", name="Local pickup", cost_sats=0, is_pickup=True)


def _item(product_id, seller, unit=1_000, quantity=1, method="standard"):
    return CartItem(
        product_id=product_id,
        seller_pubkey=seller,
        unit_amount_sats=unit,
        quantity=quantity,
        shipping_method_id=method,
    )


def _cart(*items):
    return Cart.of(list(items), [STANDARD, EXPRESS, PICKUP])


class TestCartItem:
    def test_amount_is_unit_times_quantity(self):
        assert _item("p1", "seller-a", unit=250, quantity=4).amount_sats == 1_000

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            _item("p1", "seller-a", quantity=0)

    def test_unit_amount_must_not_be_negative(self):
        with pytest.raises(ValidationError):
            _item("p1", "seller-a", unit=-1)


class TestShippingAddress:
    def test_tag_value_skips_empty_parts(self):
        address = ShippingAddress(
            name="Alice",
            first_line="1 Main St",
            city="Lisbon",
            postcode="1000-001",
            country="PT",
        )
        assert address.to_tag_value() == "Alice\n1 Main St\nLisbon\n1000-001\nPT"

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValidationError):
            ShippingAddress(name="  ", first_line="1 Main St", city="Lisbon", country="PT")


class TestValidateCart:
    def test_empty_cart_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_cart(Cart())
        assert "cart" in exc_info.value.messages

    def test_missing_shipping_method_is_rejected(self):
        cart = _cart(_item("p1", "seller-a", method=None))
        with pytest.raises(ValidationError) as exc_info:
            validate_cart(cart)
        assert "shipping_method_id" in exc_info.value.messages

    def test_unknown_shipping_method_is_rejected(self):
        cart = _cart(_item("p1", "seller-a", method="drone"))
        with pytest.raises(ValidationError):
            validate_cart(cart)

    def test_valid_cart_passes(self):
        validate_cart(_cart(_item("p1", "seller-a")))


class TestSplitCart:
    def test_empty_cart_yields_no_groups(self):
        assert split_cart(Cart()) == []

    def test_one_group_per_distinct_seller(self):
        cart = _cart(
            _item("p1", "seller-a"),
            _item("p2", "seller-b"),
            _item("p3", "seller-a"),
            _item("p4", "seller-c"),
        )
        groups = split_cart(cart)
        assert len(groups) == 3

    def test_groups_follow_first_seen_seller_order(self):
        cart = _cart(_item("p1", "seller-b"), _item("p2", "seller-a"), _item("p3", "seller-b"))
        assert [g.seller_pubkey for g in split_cart(cart)] == ["seller-b", "seller-a"]

    def test_subtotals_add_up_to_cart_total(self):
        cart = _cart(
            _item("p1", "seller-a", unit=1_500, quantity=2),
            _item("p2", "seller-b", unit=700, quantity=3),
            _item("p3", "seller-a", unit=99),
        )
        groups = split_cart(cart)
        assert sum(g.subtotal_sats for g in groups) == cart.total_sats
        assert groups[0].subtotal_sats == 3_099
        assert groups[1].subtotal_sats == 2_100

    def test_shipping_is_summed_per_line_item(self):
        cart = _cart(_item("p1", "seller-a", method="standard"), _item("p2", "seller-a", method="express"))
        group = split_cart(cart)[0]
        assert group.shipping_sats == 1_700
        assert group.total_sats == group.subtotal_sats + 1_700

    def test_pickup_only_group_is_flagged(self):
        cart = _cart(_item("p1", "seller-a", method="pickup"), _item("p2", "seller-b"))
        groups = split_cart(cart)
        assert groups[0].all_pickup is True
        assert groups[1].all_pickup is False

    def test_revenue_share_recipients_are_attached_per_seller(self):
        recipient = RevenueShareRecipient(recipient_pubkey="v4v-1", share=0.1)
        cart = _cart(_item("p1", "seller-a"), _item("p2", "seller-b"))
        groups = split_cart(cart, {"seller-a": [recipient]})
        assert groups[0].revenue_share_recipients == (recipient,)
        assert groups[1].revenue_share_recipients == ()

    def test_split_is_deterministic(self):
        cart = _cart(_item("p1", "seller-b"), _item("p2", "seller-a"))
        assert split_cart(cart) == split_cart(cart.snapshot())
