"""Applying and removing the single discount code a cart may carry."""

import logging
from typing import Optional

from .collaborators import CartDependencies
from .exceptions import CartNotFound, CartValidationError, CouponRejected
from .models import Cart
from .ownership import Actor, locked_cart
from .pricing import price_cart
from .services import recompute

logger = logging.getLogger("storefront.cart")


def apply_coupon(
    *,
    actor: Actor,
    code: str,
    cart_id: Optional[int] = None,
    deps: Optional[CartDependencies] = None,
) -> Cart:
    """Validate `code` against the current subtotal and apply it, replacing any previous code.

    A rejected code leaves the cart exactly as it was.
    """

    deps = deps or CartDependencies.from_settings()
    code = (code or "").strip()
    if not code:
        raise CartValidationError({"code": ["This field may not be blank."]})

    with locked_cart(actor, cart_id, create=False, deps=deps) as cart:
        if cart is None:
            raise CartNotFound()
        subtotal = price_cart(cart, list(cart.items.all()), deps=deps).subtotal
        decision = deps.discounts.validate_code(code, subtotal)
        if not decision.accepted:
            logger.info(
                "cart.coupon_rejected",
                extra={
                    "event": "cart.coupon_rejected",
                    "cart_id": cart.id,
                    "actor": actor.label,
                    "reason": decision.reject_reason,
                },
            )
            raise CouponRejected(decision.reject_reason)
        previous = cart.coupon_code
        cart.coupon_code = decision.code
        pricing = recompute(cart, deps=deps)

    logger.info(
        "cart.coupon_applied",
        extra={
            "event": "cart.coupon_applied",
            "cart_id": cart.id,
            "actor": actor.label,
            "coupon_code": cart.coupon_code,
            "replaced": previous,
            "discount": str(pricing.discount),
        },
    )
    return cart


def remove_coupon(
    *,
    actor: Actor,
    cart_id: Optional[int] = None,
    deps: Optional[CartDependencies] = None,
) -> Optional[Cart]:
    """Drop the cart's coupon. Idempotent: no cart or no coupon is a no-op."""

    deps = deps or CartDependencies.from_settings()
    with locked_cart(actor, cart_id, create=False, deps=deps) as cart:
        if cart is None or not cart.coupon_code:
            return cart
        removed = cart.coupon_code
        cart.coupon_code = None
        recompute(cart, deps=deps)

    logger.info(
        "cart.coupon_removed",
        extra={"event": "cart.coupon_removed", "cart_id": cart.id, "actor": actor.label, "coupon_code": removed},
    )
    return cart
