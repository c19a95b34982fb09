from dataclasses import replace
from decimal import Decimal

import pytest
from cart.integrity import IntegrityStamp
from cart.presenters import CartLineView, CartView


def make_view(**overrides):
    view = CartView(
        id=7,
        status="active",
        currency="USD",
        items=(
            CartLineView(
                id=2, product_id=1, variant_id=None, quantity=1, unit_price=Decimal("5"), total_price=Decimal("5")
            ),
            CartLineView(
                id=1, product_id=1, variant_id=3, quantity=2, unit_price=Decimal("10.00"), total_price=Decimal("20")
            ),
        ),
        item_count=3,
        subtotal=Decimal("25.00"),
        discount=Decimal("0.00"),
        shipping=Decimal("0.00"),
        tax=Decimal("0.00"),
        total=Decimal("25"),
        coupon_code=None,
        price_adjustments=(),
    )
    return replace(view, **overrides)


def test_canonical_form_is_sorted_compact_json():
    stamp = IntegrityStamp(secret="s3cret")
    assert stamp.canonical(make_view()) == (
        b'{"cart_id":7,"currency":"USD","items":[[1,2,"10.00"],[2,1,"5.00"]],"total":"25.00"}'
    )


def test_stamp_is_deterministic_hex_digest():
    stamp = IntegrityStamp(secret="s3cret")
    fingerprint = stamp.stamp(make_view())
    assert fingerprint == stamp.stamp(make_view())
    assert len(fingerprint) == 64
    int(fingerprint, 16)


def test_line_order_does_not_change_fingerprint():
    stamp = IntegrityStamp(secret="s3cret")
    view = make_view()
    reordered = replace(view, items=tuple(reversed(view.items)))
    assert stamp.stamp(view) == stamp.stamp(reordered)


def test_quantity_change_invalidates_fingerprint():
    stamp = IntegrityStamp(secret="s3cret")
    view = make_view()
    fingerprint = stamp.stamp(view)
    changed = replace(view, items=(replace(view.items[0], quantity=4), view.items[1]))
    assert not stamp.verify(changed, fingerprint)


def test_price_change_invalidates_fingerprint():
    stamp = IntegrityStamp(secret="s3cret")
    view = make_view()
    fingerprint = stamp.stamp(view)
    changed = replace(view, items=(view.items[0], replace(view.items[1], unit_price=Decimal("9.99"))))
    assert not stamp.verify(changed, fingerprint)
    assert not stamp.verify(replace(view, total=Decimal("24.99")), fingerprint)


def test_fields_outside_canonical_form_do_not_matter():
    stamp = IntegrityStamp(secret="s3cret")
    view = make_view()
    assert stamp.verify(replace(view, status="converted", coupon_code="X"), stamp.stamp(view))


def test_secret_is_part_of_the_fingerprint():
    view = make_view()
    assert IntegrityStamp(secret="a").stamp(view) != IntegrityStamp(secret="b").stamp(view)
    assert not IntegrityStamp(secret="a").verify(view, IntegrityStamp(secret="b").stamp(view))


def test_verify_rejects_blank_fingerprint():
    stamp = IntegrityStamp(secret="s3cret")
    assert stamp.verify(make_view(), stamp.stamp(make_view()))
    assert not stamp.verify(make_view(), "")
    assert not stamp.verify(make_view(), None)


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        IntegrityStamp(secret="")
