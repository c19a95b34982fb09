"""Price resolution and the pure pricing pass over a cart.

Healing happens here and only here: a stored `unit_price` that is missing
or not positive is replaced by the live catalog price whenever the cart is
priced, for display or for persistence alike.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from .collaborators import RatedCart

logger = logging.getLogger("storefront.cart")

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value) -> Decimal:
    return Decimal(value or 0).quantize(CENTS, rounding=ROUND_HALF_UP)


def _positive(value) -> bool:
    return value is not None and Decimal(value) > 0


@dataclass(frozen=True)
class ResolvedPrice:
    unit_price: Decimal
    healed: bool = False
    flagged: bool = False


def catalog_price(*, product=None, variant=None) -> Optional[Decimal]:
    """Return the live catalog price, sale price first, variant before product.

    Returns None when neither source has a positive price.
    """

    for source in (variant, product):
        if source is None:
            continue
        for candidate in (source.sale_price, source.price):
            if _positive(candidate):
                return quantize(candidate)
    return None


def resolve(item, *, catalog) -> ResolvedPrice:
    """Return the authoritative unit price for a cart line.

    Stored prices above zero are trusted without touching the catalog.
    """

    if _positive(item.unit_price):
        return ResolvedPrice(unit_price=quantize(item.unit_price))

    healed = None
    if item.variant_id:
        healed = catalog_price(variant=catalog.get_variant(item.variant_id))
    if healed is None:
        healed = catalog_price(product=catalog.get_product(item.product_id))
    if healed is None:
        logger.warning(
            "cart.price_unresolved",
            extra={"event": "cart.price_unresolved", "item_id": item.id, "product_id": item.product_id},
        )
        return ResolvedPrice(unit_price=ZERO, healed=True, flagged=True)
    logger.info(
        "cart.price_healed",
        extra={
            "event": "cart.price_healed",
            "item_id": item.id,
            "stored_price": str(item.unit_price),
            "resolved_price": str(healed),
        },
    )
    return ResolvedPrice(unit_price=healed, healed=True)


@dataclass(frozen=True)
class LinePricing:
    item: object
    unit_price: Decimal
    total_price: Decimal
    healed: bool
    flagged: bool


@dataclass(frozen=True)
class PricingResult:
    lines: List[LinePricing]
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    coupon_code: Optional[str]
    # Reason the previously applied coupon no longer validates, if it was dropped
    coupon_dropped: Optional[str] = None

    @property
    def item_count(self) -> int:
        return sum(int(line.item.quantity) for line in self.lines)


def price_cart(cart, items: Iterable, *, deps) -> PricingResult:
    """Price `items` for `cart` without writing anything."""

    lines = []
    for item in items:
        resolved = resolve(item, catalog=deps.catalog)
        lines.append(
            LinePricing(
                item=item,
                unit_price=resolved.unit_price,
                total_price=quantize(resolved.unit_price * int(item.quantity)),
                healed=resolved.healed,
                flagged=resolved.flagged,
            )
        )
    subtotal = quantize(sum((line.total_price for line in lines), ZERO))

    discount = ZERO
    coupon_code = cart.coupon_code or None
    coupon_dropped = None
    if coupon_code:
        decision = deps.discounts.validate_code(coupon_code, subtotal)
        if decision.accepted:
            discount = min(max(quantize(decision.discount_amount), ZERO), subtotal)
        else:
            coupon_dropped = decision.reject_reason
            coupon_code = None

    rated = RatedCart(
        cart_id=cart.id,
        currency=cart.currency,
        subtotal=subtotal,
        discount=discount,
        item_count=sum(int(line.item.quantity) for line in lines),
    )
    shipping = max(quantize(deps.rates.shipping_for(rated)), ZERO)
    tax = max(quantize(deps.rates.tax_for(rated)), ZERO)
    total = max(subtotal + shipping + tax - discount, ZERO)

    return PricingResult(
        lines=lines,
        subtotal=subtotal,
        discount=discount,
        shipping=shipping,
        tax=tax,
        total=quantize(total),
        coupon_code=coupon_code,
        coupon_dropped=coupon_dropped,
    )
