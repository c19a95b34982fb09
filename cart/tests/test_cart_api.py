from decimal import Decimal
from unittest import mock

import pytest
from cart.models import Cart, CartAuditEntry
from cart.tests.factories import CartItemFactory, GuestCartFactory, UserFactory
from django.db import OperationalError
from promotions.tests.factories import CouponFactory
from rest_framework.test import APIClient

CART_URL = "/api/v1/cart/"
ITEMS_URL = "/api/v1/cart/items/"


@pytest.fixture
def guest_client():
    client = APIClient()
    client.credentials(HTTP_X_SESSION_ID="S1")
    return client


def _add(client, variant, quantity=2):
    return client.post(
        ITEMS_URL,
        {"product_id": variant.product_id, "variant_id": variant.id, "quantity": quantity},
        format="json",
    )


@pytest.mark.django_db
def test_get_without_cart_returns_empty_view(guest_client):
    resp = guest_client.get(CART_URL)

    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] is None
    assert body["items"] == []
    assert body["total"] == "0.00"
    assert resp["X-Cart-Fingerprint"] == body["fingerprint"]
    assert not Cart.objects.exists()


@pytest.mark.django_db
def test_guest_add_item_returns_priced_cart(guest_client, variant):
    resp = _add(guest_client, variant)

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "active"
    assert body["item_count"] == 2
    assert body["items"][0]["unit_price"] == "1000.00"
    assert body["items"][0]["total_price"] == "2000.00"
    assert body["subtotal"] == "2000.00"
    assert body["shipping"] == "10.00"
    assert body["tax"] == "200.00"
    assert body["total"] == "2210.00"
    assert resp["X-Cart-Fingerprint"] == body["fingerprint"]
    assert Cart.objects.get(id=body["id"]).session_id == "S1"


@pytest.mark.django_db
def test_session_id_in_body_identifies_guest(variant):
    client = APIClient()
    resp = client.post(
        ITEMS_URL,
        {"product_id": variant.product_id, "variant_id": variant.id, "quantity": 1, "session_id": "BODY1"},
        format="json",
    )

    assert resp.status_code == 201
    assert Cart.objects.get(id=resp.json()["id"]).session_id == "BODY1"


@pytest.mark.django_db
def test_client_supplied_prices_are_ignored(guest_client, variant):
    resp = guest_client.post(
        ITEMS_URL,
        {"product_id": variant.product_id, "variant_id": variant.id, "quantity": 1, "unit_price": "0.01"},
        format="json",
    )

    assert resp.status_code == 201
    assert resp.json()["items"][0]["unit_price"] == "1000.00"


@pytest.mark.django_db
def test_update_and_delete_item(guest_client, variant):
    item_id = _add(guest_client, variant).json()["items"][0]["id"]

    resp = guest_client.patch(f"{ITEMS_URL}{item_id}/", {"quantity": 3}, format="json")
    assert resp.status_code == 200
    assert resp.json()["items"][0]["quantity"] == 3
    assert resp.json()["subtotal"] == "3000.00"

    resp = guest_client.delete(f"{ITEMS_URL}{item_id}/")
    assert resp.status_code == 200
    assert resp.json()["items"] == []
    assert resp.json()["total"] == "0.00"


@pytest.mark.django_db
def test_update_to_zero_removes_line(guest_client, variant):
    item_id = _add(guest_client, variant).json()["items"][0]["id"]

    resp = guest_client.put(f"{ITEMS_URL}{item_id}/", {"quantity": 0}, format="json")

    assert resp.status_code == 200
    assert resp.json()["items"] == []


@pytest.mark.django_db
def test_unknown_item_is_not_found(guest_client, variant):
    _add(guest_client, variant)

    resp = guest_client.patch(f"{ITEMS_URL}999999/", {"quantity": 3}, format="json")

    assert resp.status_code == 404
    assert resp.json() == {"detail": "Not found."}


@pytest.mark.django_db
def test_clear_keeps_coupon(guest_client, variant):
    CouponFactory(code="SAVE10", value=Decimal("200.00"))
    _add(guest_client, variant)
    guest_client.post("/api/v1/cart/coupon/", {"code": "SAVE10"}, format="json")

    resp = guest_client.delete("/api/v1/cart/clear/")

    assert resp.status_code == 200
    body = resp.json()
    assert body["items"] == []
    assert body["coupon_code"] == "SAVE10"
    assert body["discount"] == "0.00"
    assert body["total"] == "0.00"


@pytest.mark.django_db
def test_apply_and_remove_coupon(guest_client, variant):
    CouponFactory(code="SAVE10", value=Decimal("200.00"))
    _add(guest_client, variant)

    resp = guest_client.post("/api/v1/cart/coupon/", {"code": "save10"}, format="json")
    assert resp.status_code == 200
    assert resp.json()["coupon_code"] == "SAVE10"
    assert resp.json()["discount"] == "200.00"
    assert resp.json()["tax"] == "180.00"
    assert resp.json()["total"] == "1990.00"

    resp = guest_client.delete("/api/v1/cart/coupon/")
    assert resp.status_code == 200
    assert resp.json()["coupon_code"] is None
    assert resp.json()["total"] == "2210.00"


@pytest.mark.django_db
def test_rejected_coupon_reports_reason(guest_client, variant):
    _add(guest_client, variant)

    resp = guest_client.post("/api/v1/cart/coupon/", {"code": "NOPE"}, format="json")

    assert resp.status_code == 400
    assert resp.json()["code"] == "coupon_rejected"
    assert resp.json()["reason"] == "invalid_code"


@pytest.mark.django_db
def test_expand_includes_product_and_variant(guest_client, variant):
    _add(guest_client, variant)

    resp = guest_client.get(CART_URL, {"expand": "product,variant"})

    assert resp.status_code == 200
    line = resp.json()["items"][0]
    assert line["product"]["id"] == variant.product_id
    assert line["product"]["slug"] == variant.product.slug
    assert line["variant"] == {"id": variant.id, "sku": variant.sku}

    plain = guest_client.get(CART_URL).json()["items"][0]
    assert plain["product"] is None
    assert plain["variant"] is None


@pytest.mark.django_db
def test_unknown_expansion_is_rejected(guest_client):
    resp = guest_client.get(CART_URL, {"expand": "owner"})

    assert resp.status_code == 400
    assert "expand" in resp.json()


@pytest.mark.django_db
def test_foreign_cart_id_is_denied_and_audited(guest_client):
    other = GuestCartFactory(session_id="S2")
    CartItemFactory(cart=other)

    resp = guest_client.get(CART_URL, HTTP_X_CART_ID=str(other.id))

    assert resp.status_code == 403
    assert resp.json() == {"detail": "Access denied."}
    entry = CartAuditEntry.objects.get()
    assert entry.cart_id == other.id
    assert entry.event == CartAuditEntry.EVENT_OWNERSHIP_DENIED
    assert entry.actor == "session:S1"
    assert entry.method == "GET"


@pytest.mark.django_db
def test_foreign_cart_mutation_is_denied(guest_client, variant):
    other = GuestCartFactory(session_id="S2")

    resp = guest_client.post(
        ITEMS_URL,
        {"product_id": variant.product_id, "variant_id": variant.id, "quantity": 1},
        format="json",
        HTTP_X_CART_ID=str(other.id),
    )

    assert resp.status_code == 403
    assert not other.items.exists()
    assert CartAuditEntry.objects.filter(cart=other).count() == 1


@pytest.mark.django_db
def test_invalid_cart_id_header(guest_client):
    resp = guest_client.get(CART_URL, HTTP_X_CART_ID="abc")

    assert resp.status_code == 400
    assert "cart_id" in resp.json()


@pytest.mark.django_db
def test_mutation_without_identity_is_rejected(variant):
    resp = _add(APIClient(), variant)

    assert resp.status_code == 400
    assert "session_id" in resp.json()


@pytest.mark.django_db
def test_invalid_payload_is_rejected(guest_client, variant):
    resp = guest_client.post(ITEMS_URL, {"product_id": variant.product_id, "quantity": 0}, format="json")

    assert resp.status_code == 400
    assert "quantity" in resp.json()


@pytest.mark.django_db
def test_lock_contention_is_retryable(guest_client, variant):
    with mock.patch("cart.ownership.bound_lock_wait", side_effect=OperationalError("lock timeout")):
        resp = _add(guest_client, variant)

    assert resp.status_code == 503
    assert resp["Retry-After"] == "1"
    assert resp.json()["code"] == "cart_busy"
    assert resp.json()["retryable"] is True


@pytest.mark.django_db
def test_merge_requires_authentication(guest_client):
    resp = guest_client.post("/api/v1/cart/merge/")

    assert resp.status_code == 401


@pytest.mark.django_db
def test_merge_guest_cart_into_user_cart(guest_client, variant):
    _add(guest_client, variant, quantity=1)
    user = UserFactory()
    guest_client.force_authenticate(user=user)

    resp = guest_client.post("/api/v1/cart/merge/")

    assert resp.status_code == 200
    body = resp.json()
    assert body["item_count"] == 1
    cart = Cart.objects.get(id=body["id"])
    assert cart.user_id == user.id
    assert cart.session_id is None

    # The session no longer resolves to a cart once the user owns it
    resp = APIClient().get(CART_URL, HTTP_X_SESSION_ID="S1")
    assert resp.json()["id"] is None


@pytest.mark.django_db
def test_checkout_with_current_fingerprint(guest_client, variant):
    _add(guest_client, variant)
    fingerprint = guest_client.get(CART_URL)["X-Cart-Fingerprint"]

    resp = guest_client.post("/api/v1/cart/checkout/", {"fingerprint": fingerprint}, format="json")

    assert resp.status_code == 200
    body = resp.json()
    assert body["order_reference"].startswith("ORD-")
    assert body["cart"]["status"] == "converted"
    assert body["cart"]["total"] == "2210.00"


@pytest.mark.django_db
def test_checkout_with_stale_fingerprint_conflicts(guest_client, variant):
    item_id = _add(guest_client, variant).json()["items"][0]["id"]
    fingerprint = guest_client.get(CART_URL)["X-Cart-Fingerprint"]
    guest_client.patch(f"{ITEMS_URL}{item_id}/", {"quantity": 4}, format="json")

    resp = guest_client.post(
        "/api/v1/cart/checkout/",
        {"fingerprint": fingerprint, "expected_lines": [{"item_id": item_id, "quantity": 2, "unit_price": "1000.00"}]},
        format="json",
    )

    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "cart_changed"
    assert body["changed_lines"][0]["item_id"] == item_id
    assert body["changed_lines"][0]["quantity"] == 4
    assert Cart.objects.get().status == Cart.STATUS_ACTIVE


@pytest.mark.django_db
def test_checkout_reports_moved_prices(guest_client, variant):
    _add(guest_client, variant, quantity=1)
    fingerprint = guest_client.get(CART_URL)["X-Cart-Fingerprint"]
    variant.price = Decimal("900.00")
    variant.save(update_fields=["price"])

    resp = guest_client.post("/api/v1/cart/checkout/", {"fingerprint": fingerprint}, format="json")

    assert resp.status_code == 409
    assert resp.json()["code"] == "price_changed"
    assert resp.json()["changed_lines"][0]["new_price"] == "900.00"
    assert guest_client.get(CART_URL).json()["subtotal"] == "900.00"
