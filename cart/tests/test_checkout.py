from decimal import Decimal

import pytest
from cart.coupons import apply_coupon
from cart.exceptions import CartNotFound, CartValidationError, IntegrityMismatch, PriceChanged
from cart.models import Cart
from cart.ownership import Actor
from cart.services import add_item, checkout_cart, get_cart_view, update_item_quantity
from cart.tests.factories import CartItemFactory, GuestCartFactory
from catalog.tests.factories import ProductFactory, ProductVariantFactory
from promotions.models import Coupon
from promotions.tests.factories import CouponFactory


@pytest.mark.django_db
def test_checkout_places_order_and_converts_cart(guest, variant, deps):
    CouponFactory(code="SAVE10", value=Decimal("200.00"))
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=2, deps=deps)
    apply_coupon(actor=guest, code="SAVE10", deps=deps)
    view = get_cart_view(actor=guest, deps=deps)

    result = checkout_cart(actor=guest, fingerprint=view.fingerprint, deps=deps)

    assert result.order_reference == f"ORD-{cart.id:06d}"
    assert result.cart.total == Decimal("1990.00")
    assert result.cart.status == Cart.STATUS_CONVERTED
    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_CONVERTED
    assert Coupon.objects.get(code="SAVE10").used_count == 1
    assert get_cart_view(actor=guest, deps=deps).id is None


@pytest.mark.django_db
def test_stale_fingerprint_is_rejected_with_line_diff(guest, variant, deps):
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=2, deps=deps)
    stale = get_cart_view(actor=guest, deps=deps)
    item = cart.items.get()
    update_item_quantity(actor=guest, item_id=item.id, quantity=5, deps=deps)

    with pytest.raises(IntegrityMismatch) as excinfo:
        checkout_cart(
            actor=guest,
            fingerprint=stale.fingerprint,
            expected_lines=[{"item_id": item.id, "quantity": 2, "unit_price": Decimal("1000.00")}],
            deps=deps,
        )

    payload = excinfo.value.as_payload()
    assert payload["code"] == "cart_changed"
    assert payload["changed_lines"] == [
        {
            "item_id": item.id,
            "expected_quantity": 2,
            "quantity": 5,
            "expected_unit_price": "1000.00",
            "unit_price": "1000.00",
        }
    ]
    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ACTIVE


@pytest.mark.django_db
def test_catalog_price_change_is_committed_and_reported(guest, variant, deps):
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)
    view = get_cart_view(actor=guest, deps=deps)
    variant.price = Decimal("1200.00")
    variant.save(update_fields=["price"])

    with pytest.raises(PriceChanged) as excinfo:
        checkout_cart(actor=guest, fingerprint=view.fingerprint, deps=deps)

    changed = excinfo.value.changed_lines
    assert changed[0]["old_price"] == "1000.00"
    assert changed[0]["new_price"] == "1200.00"
    assert excinfo.value.as_payload()["code"] == "price_changed"
    cart.refresh_from_db()
    assert cart.items.get().unit_price == Decimal("1200.00")
    assert cart.subtotal == Decimal("1200.00")

    fresh = get_cart_view(actor=guest, deps=deps)
    result = checkout_cart(actor=guest, fingerprint=fresh.fingerprint, deps=deps)
    assert result.cart.subtotal == Decimal("1200.00")


@pytest.mark.django_db
def test_healed_price_is_not_reported_as_changed(deps):
    product = ProductFactory(price=Decimal("2500.00"))
    variant = ProductVariantFactory(product=product, price=Decimal("2000.00"), sale_price=Decimal("1500.00"))
    cart = GuestCartFactory(session_id="S3")
    CartItemFactory(cart=cart, product=product, variant=variant, quantity=1, unit_price=Decimal("0"))

    actor = Actor(session_id="S3")
    view = get_cart_view(actor=actor, deps=deps)

    result = checkout_cart(actor=actor, fingerprint=view.fingerprint, deps=deps)

    assert result.cart.items[0].unit_price == Decimal("1500.00")
    assert cart.items.get().unit_price == Decimal("1500.00")


@pytest.mark.django_db
def test_checkout_requires_items_and_cart(guest, variant, deps):
    with pytest.raises(CartNotFound):
        checkout_cart(actor=guest, fingerprint="x", deps=deps)

    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)
    cart.items.all().delete()
    with pytest.raises(CartValidationError):
        checkout_cart(actor=guest, fingerprint="x", deps=deps)


@pytest.mark.django_db
def test_checkout_with_unavailable_product_is_rejected(guest, variant, deps):
    add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)
    view = get_cart_view(actor=guest, deps=deps)
    variant.status = variant.STATUS_INACTIVE
    variant.save(update_fields=["status"])

    with pytest.raises(CartValidationError) as excinfo:
        checkout_cart(actor=guest, fingerprint=view.fingerprint, deps=deps)
    assert "items" in excinfo.value.errors
