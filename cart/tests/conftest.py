from decimal import Decimal

import pytest
from cart.collaborators import CartDependencies
from cart.ownership import Actor
from catalog.tests.factories import ProductFactory, ProductVariantFactory
from django.core.cache import cache


@pytest.fixture(autouse=True)
def _clear_throttle_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def deps():
    return CartDependencies.from_settings()


@pytest.fixture
def guest():
    return Actor(session_id="S1", route="/api/v1/cart/", method="POST", ip="127.0.0.1")


@pytest.fixture
def variant(db):
    """P1/V1: variant priced 1000.00 under a product priced 2500.00."""
    product = ProductFactory(price=Decimal("2500.00"))
    return ProductVariantFactory(product=product, price=Decimal("1000.00"))
