"""Discount rules backed by the `Coupon` table."""

import logging
from decimal import ROUND_HALF_UP, Decimal

from cart.collaborators import DiscountDecision
from common.choices import CouponRejectReason
from django.db.models import F

from .models import Coupon

logger = logging.getLogger("storefront.promotions")

CENTS = Decimal("0.01")


def coupon_amount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Return the raw discount a coupon grants on `subtotal`.

    The cart caps the result at the subtotal; this only applies the coupon's
    own rules (percentage of subtotal, optional `max_discount`).
    """

    if coupon.discount_type == Coupon.TYPE_PERCENTAGE:
        amount = subtotal * coupon.value / Decimal("100")
    else:
        amount = coupon.value
    if coupon.max_discount is not None:
        amount = min(amount, coupon.max_discount)
    return max(Decimal("0.00"), amount).quantize(CENTS, rounding=ROUND_HALF_UP)


class CouponRulesService:
    """Validate codes for the cart and record redemptions at checkout."""

    def validate_code(self, code: str, cart_subtotal: Decimal) -> DiscountDecision:
        normalized = (code or "").strip().upper()
        try:
            coupon = Coupon.objects.get(code=normalized, is_active=True)
        except Coupon.DoesNotExist:
            return self._reject(normalized, CouponRejectReason.INVALID_CODE)
        if coupon.is_expired:
            return self._reject(normalized, CouponRejectReason.EXPIRED)
        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            return self._reject(normalized, CouponRejectReason.USAGE_EXCEEDED)
        if coupon.min_order_amount is not None and cart_subtotal < coupon.min_order_amount:
            return self._reject(normalized, CouponRejectReason.MINIMUM_NOT_MET)
        return DiscountDecision(code=normalized, discount_amount=coupon_amount(coupon, cart_subtotal))

    def redeem(self, code: str) -> None:
        Coupon.objects.filter(code=(code or "").strip().upper()).update(used_count=F("used_count") + 1)

    def _reject(self, code: str, reason: str) -> DiscountDecision:
        logger.info("coupon.rejected", extra={"event": "coupon.rejected", "code": code, "reason": str(reason)})
        return DiscountDecision(code=code, reject_reason=str(reason))
