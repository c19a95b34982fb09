from decimal import Decimal

import factory
from factory.django import DjangoModelFactory
from promotions.models import Coupon


class CouponFactory(DjangoModelFactory):
    class Meta:
        model = Coupon
        django_get_or_create = ("code",)

    code = factory.Sequence(lambda n: f"CODE{n:04d}")
    discount_type = Coupon.TYPE_FIXED
    value = Decimal("10.00")
    max_discount = None
    min_order_amount = None
    expires_at = None
    usage_limit = None
    used_count = 0
    is_active = True
