"""Promotions app models."""

from decimal import Decimal

from common.choices import DiscountType
from django.db import models
from django.utils import timezone


class Coupon(models.Model):
    """Redeemable discount code.

    `value` is an absolute amount for fixed coupons and a percentage
    (0-100) for percentage coupons; `max_discount` caps either kind.
    """

    TYPE_FIXED = DiscountType.FIXED
    TYPE_PERCENTAGE = DiscountType.PERCENTAGE

    code = models.CharField(max_length=64, unique=True)
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices, default=TYPE_FIXED)
    value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    max_discount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["code"]
        constraints = [
            models.CheckConstraint(name="coupon_value_non_negative", condition=models.Q(value__gte=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.code

    def save(self, *args, **kwargs):
        # Codes are matched case-insensitively by storing them upper-cased
        if self.code:
            self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at and self.expires_at <= timezone.now())
