"""Typed cart views handed to serializers and to the integrity stamp.

A view is built from a cart plus an explicit set of requested expansions.
Every field is always present; unexpanded relations are None rather than
missing keys.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import FrozenSet, Iterable, Optional, Tuple

from django.conf import settings

from .exceptions import CartValidationError
from .pricing import ZERO, PricingResult, price_cart

EXPANSIONS = frozenset({"product", "variant"})


@dataclass(frozen=True)
class ProductSummary:
    id: int
    title: str
    slug: str


@dataclass(frozen=True)
class VariantSummary:
    id: int
    sku: str


@dataclass(frozen=True)
class CartLineView:
    id: int
    product_id: int
    variant_id: Optional[int]
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    product: Optional[ProductSummary] = None
    variant: Optional[VariantSummary] = None


@dataclass(frozen=True)
class PriceAdjustment:
    """A line whose displayed price differs from what was stored."""

    item_id: int
    stored_price: Optional[Decimal]
    resolved_price: Decimal
    flagged: bool


@dataclass(frozen=True)
class CartView:
    id: Optional[int]
    status: str
    currency: str
    items: Tuple[CartLineView, ...]
    item_count: int
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    coupon_code: Optional[str]
    price_adjustments: Tuple[PriceAdjustment, ...]
    fingerprint: str = ""


def parse_expand(raw: Optional[str]) -> FrozenSet[str]:
    """Parse `?expand=product,variant` into a validated set."""

    if not raw:
        return frozenset()
    requested = frozenset(part.strip() for part in raw.split(",") if part.strip())
    unknown = requested - EXPANSIONS
    if unknown:
        raise CartValidationError({"expand": [f"Unknown expansion: {name}" for name in sorted(unknown)]})
    return requested


def _line_view(line, *, deps, expand: FrozenSet[str]) -> CartLineView:
    item = line.item
    product = variant = None
    if "product" in expand:
        snapshot = deps.catalog.get_product(item.product_id)
        if snapshot is not None:
            product = ProductSummary(id=snapshot.id, title=snapshot.title, slug=snapshot.slug)
    if "variant" in expand and item.variant_id:
        snapshot = deps.catalog.get_variant(item.variant_id)
        if snapshot is not None:
            variant = VariantSummary(id=snapshot.id, sku=snapshot.sku)
    return CartLineView(
        id=item.id,
        product_id=item.product_id,
        variant_id=item.variant_id,
        quantity=int(item.quantity),
        unit_price=line.unit_price,
        total_price=line.total_price,
        product=product,
        variant=variant,
    )


def empty_view(*, deps) -> CartView:
    view = CartView(
        id=None,
        status="active",
        currency=getattr(settings, "CART_DEFAULT_CURRENCY", "USD"),
        items=(),
        item_count=0,
        subtotal=ZERO,
        discount=ZERO,
        shipping=ZERO,
        tax=ZERO,
        total=ZERO,
        coupon_code=None,
        price_adjustments=(),
    )
    return replace(view, fingerprint=deps.stamp.stamp(view))


def build_cart_view(
    cart,
    *,
    deps,
    expand: Iterable[str] = (),
    pricing: Optional[PricingResult] = None,
) -> CartView:
    """Build the stamped view of `cart`.

    Pass `pricing` when the caller just recomputed, so the view reflects
    exactly what was persisted; otherwise the cart is priced on the fly.
    """

    if cart is None:
        return empty_view(deps=deps)
    expand = frozenset(expand)
    if pricing is None:
        pricing = price_cart(cart, list(cart.items.all()), deps=deps)

    adjustments = tuple(
        PriceAdjustment(
            item_id=line.item.id,
            stored_price=line.item.unit_price,
            resolved_price=line.unit_price,
            flagged=line.flagged,
        )
        for line in pricing.lines
        if line.healed
    )
    view = CartView(
        id=cart.id,
        status=str(cart.status),
        currency=cart.currency,
        items=tuple(_line_view(line, deps=deps, expand=expand) for line in pricing.lines),
        item_count=pricing.item_count,
        subtotal=pricing.subtotal,
        discount=pricing.discount,
        shipping=pricing.shipping,
        tax=pricing.tax,
        total=pricing.total,
        coupon_code=pricing.coupon_code,
        price_adjustments=adjustments,
    )
    return replace(view, fingerprint=deps.stamp.stamp(view))
