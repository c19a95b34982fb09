from decimal import Decimal

import pytest
from cart.exceptions import CartNotFound, CartValidationError
from cart.models import Cart, CartItem
from cart.ownership import Actor
from cart.services import (
    abandon_cart,
    add_item,
    clear_cart,
    get_cart_view,
    recompute,
    remove_item,
    update_item_quantity,
)
from cart.tests.factories import CartItemFactory, GuestCartFactory, UserFactory
from catalog.models import Product, ProductVariant
from catalog.tests.factories import ProductFactory, ProductVariantFactory
from promotions.tests.factories import CouponFactory


def assert_totals_consistent(cart):
    cart.refresh_from_db()
    assert cart.total == max(cart.subtotal + cart.shipping + cart.tax - cart.discount, Decimal("0.00"))
    assert cart.discount <= cart.subtotal
    line_sum = sum((item.total_price for item in cart.items.all()), Decimal("0.00"))
    assert cart.subtotal == line_sum


@pytest.mark.django_db
def test_add_item_creates_cart_and_snapshots_catalog_price(guest, variant, deps):
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=2, deps=deps)

    cart.refresh_from_db()
    assert cart.session_id == "S1"
    assert cart.user_id is None
    item = cart.items.get()
    assert item.unit_price == Decimal("1000.00")
    assert item.total_price == Decimal("2000.00")
    assert cart.subtotal == Decimal("2000.00")
    assert cart.shipping == Decimal("10.00")
    assert cart.tax == Decimal("200.00")
    assert cart.total == Decimal("2210.00")


@pytest.mark.django_db
def test_adding_same_line_increments_quantity(guest, variant, deps):
    add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=2, deps=deps)
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)

    assert cart.items.count() == 1
    assert cart.items.get().quantity == 3
    assert_totals_consistent(cart)


@pytest.mark.django_db
def test_product_and_variant_lines_are_distinct(guest, variant, deps):
    add_item(actor=guest, product_id=variant.product_id, quantity=1, deps=deps)
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)

    assert cart.items.count() == 2
    assert cart.subtotal == Decimal("3500.00")


@pytest.mark.django_db
def test_consecutive_adds_for_new_session_share_one_cart(guest, deps):
    first = ProductFactory()
    second = ProductFactory()
    add_item(actor=guest, product_id=first.id, quantity=1, deps=deps)
    add_item(actor=guest, product_id=second.id, quantity=1, deps=deps)

    assert Cart.objects.filter(session_id="S1").count() == 1
    assert CartItem.objects.filter(cart__session_id="S1").count() == 2


@pytest.mark.django_db
@pytest.mark.parametrize("quantity", [0, -1])
def test_add_item_rejects_non_positive_quantity(guest, variant, deps, quantity):
    with pytest.raises(CartValidationError) as excinfo:
        add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=quantity, deps=deps)
    assert "quantity" in excinfo.value.errors
    assert not Cart.objects.exists()


@pytest.mark.django_db
def test_add_item_unknown_product_is_not_found(guest, deps):
    with pytest.raises(CartNotFound):
        add_item(actor=guest, product_id=999999, quantity=1, deps=deps)


@pytest.mark.django_db
def test_add_item_rejects_unavailable_product_and_foreign_variant(guest, variant, deps):
    draft = ProductFactory(status=Product.STATUS_DRAFT)
    with pytest.raises(CartValidationError) as excinfo:
        add_item(actor=guest, product_id=draft.id, quantity=1, deps=deps)
    assert "product_id" in excinfo.value.errors

    other = ProductFactory()
    with pytest.raises(CartValidationError) as excinfo:
        add_item(actor=guest, product_id=other.id, variant_id=variant.id, quantity=1, deps=deps)
    assert "variant_id" in excinfo.value.errors

    inactive = ProductVariantFactory(product=other, status=ProductVariant.STATUS_INACTIVE)
    with pytest.raises(CartValidationError):
        add_item(actor=guest, product_id=other.id, variant_id=inactive.id, quantity=1, deps=deps)


@pytest.mark.django_db
def test_add_item_respects_reported_stock(guest, deps):
    variant = ProductVariantFactory(stock_quantity=3)
    add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=2, deps=deps)

    with pytest.raises(CartValidationError) as excinfo:
        add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=2, deps=deps)

    assert excinfo.value.errors["quantity"] == ["Only 3 available."]
    assert CartItem.objects.get(variant=variant).quantity == 2


@pytest.mark.django_db
def test_update_item_quantity_recomputes(guest, variant, deps):
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)
    item = cart.items.get()

    cart = update_item_quantity(actor=guest, item_id=item.id, quantity=4, deps=deps)

    assert cart.items.get().quantity == 4
    assert cart.subtotal == Decimal("4000.00")
    assert_totals_consistent(cart)


@pytest.mark.django_db
def test_update_to_zero_removes_line(guest, variant, deps):
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=2, deps=deps)
    item = cart.items.get()

    cart = update_item_quantity(actor=guest, item_id=item.id, quantity=0, deps=deps)

    assert not cart.items.exists()
    assert cart.subtotal == Decimal("0.00")
    assert cart.total == Decimal("0.00")


@pytest.mark.django_db
def test_update_item_in_someone_elses_cart_is_not_found(guest, variant, deps):
    other_item = CartItemFactory(cart=GuestCartFactory(session_id="S2"))
    add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)

    with pytest.raises(CartNotFound):
        update_item_quantity(actor=guest, item_id=other_item.id, quantity=5, deps=deps)
    other_item.refresh_from_db()
    assert other_item.quantity == 1


@pytest.mark.django_db
def test_remove_item_keeps_empty_cart(guest, variant, deps):
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)

    cart = remove_item(actor=guest, item_id=cart.items.get().id, deps=deps)

    assert Cart.objects.filter(id=cart.id, status=Cart.STATUS_ACTIVE).exists()
    assert cart.total == Decimal("0.00")
    with pytest.raises(CartNotFound):
        remove_item(actor=guest, item_id=123456, deps=deps)


@pytest.mark.django_db
def test_mutating_without_cart_is_not_found(guest, deps):
    with pytest.raises(CartNotFound):
        remove_item(actor=guest, item_id=1, deps=deps)
    with pytest.raises(CartNotFound):
        update_item_quantity(actor=guest, item_id=1, quantity=2, deps=deps)
    assert clear_cart(actor=guest, deps=deps) is None
    assert not Cart.objects.exists()


@pytest.mark.django_db
def test_mutation_without_identity_is_rejected(variant, deps):
    with pytest.raises(CartValidationError) as excinfo:
        add_item(actor=Actor(), product_id=variant.product_id, quantity=1, deps=deps)
    assert "session_id" in excinfo.value.errors


@pytest.mark.django_db
def test_clear_cart_keeps_coupon(guest, variant, deps):
    CouponFactory(code="SAVE10", value=Decimal("200.00"))
    cart = add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=2, deps=deps)
    cart.coupon_code = "SAVE10"
    cart.save(update_fields=["coupon_code"])

    cart = clear_cart(actor=guest, deps=deps)

    cart.refresh_from_db()
    assert not cart.items.exists()
    assert cart.coupon_code == "SAVE10"
    assert cart.discount == Decimal("0.00")
    assert cart.total == Decimal("0.00")


@pytest.mark.django_db
def test_recompute_persists_healed_price(deps):
    product = ProductFactory(price=Decimal("2500.00"))
    variant = ProductVariantFactory(product=product, price=Decimal("2000.00"), sale_price=Decimal("1500.00"))
    item = CartItemFactory(
        cart=GuestCartFactory(), product=product, variant=variant, quantity=2, unit_price=Decimal("0")
    )

    result = recompute(item.cart, deps=deps)

    item.refresh_from_db()
    assert item.unit_price == Decimal("1500.00")
    assert item.total_price == Decimal("3000.00")
    assert result.subtotal == Decimal("3000.00")
    assert_totals_consistent(item.cart)


@pytest.mark.django_db
def test_recompute_keeps_unresolvable_price_and_flags_it(deps):
    product = ProductFactory(price=None)
    item = CartItemFactory(cart=GuestCartFactory(), product=product, unit_price=None)

    result = recompute(item.cart, deps=deps)

    item.refresh_from_db()
    assert item.unit_price is None
    assert result.lines[0].flagged
    assert result.subtotal == Decimal("0.00")


@pytest.mark.django_db
def test_get_cart_view_never_creates_a_cart(guest, deps):
    view = get_cart_view(actor=guest, deps=deps)

    assert view.id is None
    assert view.items == ()
    assert view.total == Decimal("0.00")
    assert view.fingerprint == deps.stamp.stamp(view)
    assert not Cart.objects.exists()


@pytest.mark.django_db
def test_get_cart_view_heals_without_writing(deps):
    product = ProductFactory(price=Decimal("2500.00"))
    variant = ProductVariantFactory(product=product, price=Decimal("2000.00"), sale_price=Decimal("1500.00"))
    cart = GuestCartFactory(session_id="S9")
    item = CartItemFactory(cart=cart, product=product, variant=variant, quantity=1, unit_price=Decimal("0"))

    view = get_cart_view(actor=Actor(session_id="S9"), deps=deps)

    assert view.items[0].unit_price == Decimal("1500.00")
    assert view.price_adjustments[0].item_id == item.id
    assert view.price_adjustments[0].stored_price == Decimal("0")
    assert view.price_adjustments[0].resolved_price == Decimal("1500.00")
    assert not view.price_adjustments[0].flagged
    item.refresh_from_db()
    assert item.unit_price == Decimal("0.00")


@pytest.mark.django_db
def test_get_cart_view_expansions(guest, variant, deps):
    add_item(actor=guest, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)

    plain = get_cart_view(actor=guest, deps=deps)
    expanded = get_cart_view(actor=guest, expand={"product", "variant"}, deps=deps)

    assert plain.items[0].product is None
    assert plain.items[0].variant is None
    assert expanded.items[0].product.slug == variant.product.slug
    assert expanded.items[0].variant.sku == variant.sku
    assert plain.fingerprint == expanded.fingerprint


@pytest.mark.django_db
def test_user_cart_ignores_guest_session(variant, deps):
    user = UserFactory()
    GuestCartFactory(session_id="S1")
    actor = Actor(user_id=user.id, session_id="S1")

    cart = add_item(actor=actor, product_id=variant.product_id, variant_id=variant.id, quantity=1, deps=deps)

    assert cart.user_id == user.id
    assert cart.session_id is None
    assert Cart.objects.get(session_id="S1").items.count() == 0


@pytest.mark.django_db
def test_abandon_cart_marks_active_cart_only():
    cart = GuestCartFactory()
    assert abandon_cart(cart_id=cart.id).status == Cart.STATUS_ABANDONED

    converted = GuestCartFactory(status=Cart.STATUS_CONVERTED)
    assert abandon_cart(cart_id=converted.id).status == Cart.STATUS_CONVERTED

    with pytest.raises(CartNotFound):
        abandon_cart(cart_id=987654)
