import pytest
from cart.tests.factories import UserFactory
from rest_framework.test import APIClient


@pytest.fixture
def tight_rates(settings):
    settings.REST_FRAMEWORK = {
        **settings.REST_FRAMEWORK,
        "DEFAULT_THROTTLE_RATES": {"cart": "2/min", "cart_write": "2/min"},
    }


@pytest.mark.django_db
def test_cart_detail_throttle_exceeded(tight_rates):
    client = APIClient()
    client.credentials(HTTP_X_SESSION_ID="S1")

    assert client.get("/api/v1/cart/").status_code == 200
    assert client.get("/api/v1/cart/").status_code == 200
    assert client.get("/api/v1/cart/").status_code == 429


@pytest.mark.django_db
def test_cart_write_throttle_exceeded(tight_rates, variant):
    client = APIClient()
    client.credentials(HTTP_X_SESSION_ID="S1")
    payload = {"product_id": variant.product_id, "variant_id": variant.id, "quantity": 1}

    assert client.post("/api/v1/cart/items/", payload, format="json").status_code == 201
    assert client.post("/api/v1/cart/items/", payload, format="json").status_code == 201
    assert client.post("/api/v1/cart/items/", payload, format="json").status_code == 429


@pytest.mark.django_db
def test_guest_sessions_are_throttled_separately(tight_rates):
    first = APIClient()
    first.credentials(HTTP_X_SESSION_ID="S1")
    second = APIClient()
    second.credentials(HTTP_X_SESSION_ID="S2")

    first.get("/api/v1/cart/")
    first.get("/api/v1/cart/")
    assert first.get("/api/v1/cart/").status_code == 429
    assert second.get("/api/v1/cart/").status_code == 200


@pytest.mark.django_db
def test_rotating_session_header_cannot_lift_ip_limit(settings):
    settings.REST_FRAMEWORK = {
        **settings.REST_FRAMEWORK,
        "DEFAULT_THROTTLE_RATES": {"cart": "100/min", "cart_ip": "2/min"},
    }
    client = APIClient()

    assert client.get("/api/v1/cart/", HTTP_X_SESSION_ID="R1").status_code == 200
    assert client.get("/api/v1/cart/", HTTP_X_SESSION_ID="R2").status_code == 200
    assert client.get("/api/v1/cart/", HTTP_X_SESSION_ID="R3").status_code == 429


@pytest.mark.django_db
def test_ip_limit_does_not_apply_to_authenticated_users(settings):
    settings.REST_FRAMEWORK = {
        **settings.REST_FRAMEWORK,
        "DEFAULT_THROTTLE_RATES": {"cart": "100/min", "cart_ip": "1/min"},
    }
    client = APIClient()
    client.force_authenticate(user=UserFactory())

    assert client.get("/api/v1/cart/").status_code == 200
    assert client.get("/api/v1/cart/").status_code == 200
