"""Cart ledger: every mutation of a cart's contents and its monetary state.

Each mutation runs in one transaction holding the cart row lock and ends
with `recompute`, the only routine that writes derived money fields.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional

from django.db import transaction

from .collaborators import CartDependencies
from .exceptions import CartNotFound, CartValidationError, IntegrityMismatch, PriceChanged
from .models import Cart, CartItem
from .ownership import Actor, authorized_cart, contention_guard, locked_cart, resolve_cart
from .presenters import CartView, build_cart_view
from .pricing import PricingResult, catalog_price, price_cart, quantize, resolve

logger = logging.getLogger("storefront.cart")

MONEY_FIELDS = ["coupon_code", "subtotal", "discount", "shipping", "tax", "total", "updated_at"]


def _quantity(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CartValidationError({"quantity": ["A valid integer is required."]})
    return value


def _positive_quantity(value) -> int:
    value = _quantity(value)
    if value < 1:
        raise CartValidationError({"quantity": ["Ensure this value is greater than or equal to 1."]})
    return value


def _check_stock(quantity: int, *, product, variant=None) -> None:
    stock = variant.stock if variant is not None and variant.stock is not None else None
    if stock is None and product is not None:
        stock = product.stock
    if stock is not None and quantity > stock:
        raise CartValidationError({"quantity": [f"Only {stock} available."]})


def recompute(cart: Cart, *, deps) -> PricingResult:
    """Re-derive line totals, discount, shipping, tax and total, and persist them.

    Healed prices are written back; lines that could not be priced keep
    their stored value so the next recompute tries again.
    """

    result = price_cart(cart, list(cart.items.all()), deps=deps)
    for line in result.lines:
        item = line.item
        changed = []
        if line.healed and not line.flagged:
            item.unit_price = line.unit_price
            changed.append("unit_price")
        if item.total_price != line.total_price:
            item.total_price = line.total_price
            changed.append("total_price")
        if changed:
            item.save(update_fields=changed + ["updated_at"])

    if result.coupon_dropped:
        logger.info(
            "cart.coupon_dropped",
            extra={
                "event": "cart.coupon_dropped",
                "cart_id": cart.id,
                "coupon_code": cart.coupon_code,
                "reason": result.coupon_dropped,
            },
        )
    cart.coupon_code = result.coupon_code
    cart.subtotal = result.subtotal
    cart.discount = result.discount
    cart.shipping = result.shipping
    cart.tax = result.tax
    cart.total = result.total
    cart.save(update_fields=MONEY_FIELDS)
    return result


def add_item(
    *,
    actor: Actor,
    product_id: int,
    variant_id: Optional[int] = None,
    quantity: int,
    cart_id: Optional[int] = None,
    deps: Optional[CartDependencies] = None,
) -> Cart:
    """Add a product (or one of its variants) to the caller's cart.

    Adding an existing (product, variant) line increments its quantity. The
    cart is created on the first add.
    """

    deps = deps or CartDependencies.from_settings()
    quantity = _positive_quantity(quantity)
    product = deps.catalog.get_product(product_id)
    if product is None:
        raise CartNotFound("Product not found.")
    if not product.is_active:
        raise CartValidationError({"product_id": ["This product is not available."]})
    variant = None
    if variant_id is not None:
        variant = deps.catalog.get_variant(variant_id)
        if variant is None or variant.product_id != product.id:
            raise CartValidationError({"variant_id": ["Invalid variant for this product."]})
        if not variant.is_active:
            raise CartValidationError({"variant_id": ["This variant is not available."]})

    with locked_cart(actor, cart_id, create=True, deps=deps) as cart:
        item = (
            CartItem.objects.select_for_update()
            .filter(cart=cart, product_id=product.id, variant_id=variant_id)
            .first()
        )
        new_quantity = quantity + (int(item.quantity) if item is not None else 0)
        _check_stock(new_quantity, product=product, variant=variant)
        if item is not None:
            item.quantity = new_quantity
            item.save(update_fields=["quantity", "updated_at"])
            event = "cart.item_updated"
        else:
            item = CartItem.objects.create(
                cart=cart,
                product_id=product.id,
                variant_id=variant_id,
                quantity=new_quantity,
                unit_price=catalog_price(product=product, variant=variant),
            )
            event = "cart.item_added"
        recompute(cart, deps=deps)

    logger.info(
        event,
        extra={
            "event": event,
            "cart_id": cart.id,
            "actor": actor.label,
            "product_id": product.id,
            "variant_id": variant_id,
            "quantity": new_quantity,
            "guest": not actor.user_id,
        },
    )
    return cart


def update_item_quantity(
    *,
    actor: Actor,
    item_id: int,
    quantity: int,
    cart_id: Optional[int] = None,
    deps: Optional[CartDependencies] = None,
) -> Cart:
    """Set a line's quantity; zero or less removes the line."""

    deps = deps or CartDependencies.from_settings()
    quantity = _quantity(quantity)
    if quantity <= 0:
        return remove_item(actor=actor, item_id=item_id, cart_id=cart_id, deps=deps)

    with locked_cart(actor, cart_id, create=False, deps=deps) as cart:
        if cart is None:
            raise CartNotFound()
        item = CartItem.objects.select_for_update().filter(id=item_id, cart=cart).first()
        if item is None:
            raise CartNotFound()
        variant = deps.catalog.get_variant(item.variant_id) if item.variant_id else None
        _check_stock(quantity, product=deps.catalog.get_product(item.product_id), variant=variant)
        item.quantity = quantity
        item.save(update_fields=["quantity", "updated_at"])
        recompute(cart, deps=deps)

    logger.info(
        "cart.item_updated",
        extra={
            "event": "cart.item_updated",
            "cart_id": cart.id,
            "actor": actor.label,
            "item_id": item_id,
            "quantity": quantity,
            "guest": not actor.user_id,
        },
    )
    return cart


def remove_item(
    *,
    actor: Actor,
    item_id: int,
    cart_id: Optional[int] = None,
    deps: Optional[CartDependencies] = None,
) -> Cart:
    """Delete a line. An emptied cart is kept along with its coupon."""

    deps = deps or CartDependencies.from_settings()
    with locked_cart(actor, cart_id, create=False, deps=deps) as cart:
        if cart is None:
            raise CartNotFound()
        deleted, _ = CartItem.objects.filter(id=item_id, cart=cart).delete()
        if not deleted:
            raise CartNotFound()
        recompute(cart, deps=deps)

    logger.info(
        "cart.item_removed",
        extra={
            "event": "cart.item_removed",
            "cart_id": cart.id,
            "actor": actor.label,
            "item_id": item_id,
            "guest": not actor.user_id,
        },
    )
    return cart


def clear_cart(
    *,
    actor: Actor,
    cart_id: Optional[int] = None,
    deps: Optional[CartDependencies] = None,
) -> Optional[Cart]:
    """Delete every line of the caller's cart; the coupon stays applied."""

    deps = deps or CartDependencies.from_settings()
    with locked_cart(actor, cart_id, create=False, deps=deps) as cart:
        if cart is None:
            return None
        CartItem.objects.filter(cart=cart).delete()
        recompute(cart, deps=deps)

    logger.info(
        "cart.cleared",
        extra={"event": "cart.cleared", "cart_id": cart.id, "actor": actor.label, "guest": not actor.user_id},
    )
    return cart


def get_cart_view(
    *,
    actor: Actor,
    cart_id: Optional[int] = None,
    expand: Iterable[str] = (),
    deps: Optional[CartDependencies] = None,
) -> CartView:
    """Return the stamped view of the caller's cart. Never creates or writes."""

    deps = deps or CartDependencies.from_settings()
    if cart_id is not None:
        cart = authorized_cart(actor, cart_id, deps=deps)
    else:
        cart = resolve_cart(actor.user_id, actor.session_id)
    return build_cart_view(cart, deps=deps, expand=expand)


@dataclass(frozen=True)
class CheckoutResult:
    order_reference: str
    cart: CartView


def _reprice_to_catalog(cart: Cart, *, deps) -> List[dict]:
    """Move every line to the live catalog price; return the lines whose price moved."""

    changed = []
    for item in CartItem.objects.select_for_update().filter(cart=cart).order_by("id"):
        variant = deps.catalog.get_variant(item.variant_id) if item.variant_id else None
        product = deps.catalog.get_product(item.product_id)
        if product is None or not product.is_active or (variant is not None and not variant.is_active):
            raise CartValidationError({"items": [f"Item {item.id} is no longer available."]})
        live = catalog_price(product=product, variant=variant)
        if live is None:
            raise CartValidationError({"items": [f"Item {item.id} has no price."]})
        seen = resolve(item, catalog=deps.catalog).unit_price
        if live != seen:
            changed.append(
                {
                    "item_id": item.id,
                    "product_id": item.product_id,
                    "variant_id": item.variant_id,
                    "old_price": str(seen),
                    "new_price": str(live),
                }
            )
        if item.unit_price is None or quantize(item.unit_price) != live:
            item.unit_price = live
            item.save(update_fields=["unit_price", "updated_at"])
    return changed


def _diff_lines(view: CartView, expected_lines) -> List[dict]:
    if not expected_lines:
        return []
    expected = {int(line["item_id"]): line for line in expected_lines}
    diff = []
    for line in view.items:
        seen = expected.pop(line.id, None)
        if seen is None:
            diff.append({"item_id": line.id, "quantity": line.quantity, "unit_price": str(line.unit_price), "added": True})
            continue
        seen_quantity = int(seen.get("quantity", 0))
        seen_price = quantize(seen.get("unit_price"))
        if seen_quantity != line.quantity or seen_price != line.unit_price:
            diff.append(
                {
                    "item_id": line.id,
                    "expected_quantity": seen_quantity,
                    "quantity": line.quantity,
                    "expected_unit_price": str(seen_price),
                    "unit_price": str(line.unit_price),
                }
            )
    diff.extend({"item_id": item_id, "removed": True} for item_id in sorted(expected))
    return diff


def checkout_cart(
    *,
    actor: Actor,
    fingerprint: str,
    expected_lines=None,
    cart_id: Optional[int] = None,
    deps: Optional[CartDependencies] = None,
) -> CheckoutResult:
    """Convert the caller's cart into an order.

    Lines are first moved to live catalog prices and committed; any movement
    aborts with `PriceChanged` so the client can review. The fingerprint the
    client last saw must then match the freshly stamped cart.
    """

    deps = deps or CartDependencies.from_settings()
    with locked_cart(actor, cart_id, create=False, deps=deps) as cart:
        if cart is None:
            raise CartNotFound()
        if not cart.items.exists():
            raise CartValidationError({"cart": ["Cart is empty."]})
        changed = _reprice_to_catalog(cart, deps=deps)
        if changed:
            recompute(cart, deps=deps)
    if changed:
        logger.info(
            "cart.checkout_price_changed",
            extra={"event": "cart.checkout_price_changed", "cart_id": cart.id, "lines": len(changed)},
        )
        raise PriceChanged(changed_lines=changed)

    with locked_cart(actor, cart.id, create=False, deps=deps) as cart:
        pricing = recompute(cart, deps=deps)
        view = build_cart_view(cart, deps=deps, pricing=pricing)
        if not deps.stamp.verify(view, fingerprint):
            logger.warning(
                "cart.integrity_mismatch",
                extra={"event": "cart.integrity_mismatch", "cart_id": cart.id, "actor": actor.label},
            )
            raise IntegrityMismatch(changed_lines=_diff_lines(view, expected_lines))
        order_reference = deps.orders.place_order(view)
        if view.coupon_code:
            deps.discounts.redeem(view.coupon_code)
        cart.status = Cart.STATUS_CONVERTED
        cart.save(update_fields=["status", "updated_at"])

    logger.info(
        "cart.checked_out",
        extra={
            "event": "cart.checked_out",
            "cart_id": cart.id,
            "actor": actor.label,
            "order_reference": order_reference,
            "total": str(view.total),
            "guest": not actor.user_id,
        },
    )
    return CheckoutResult(order_reference=order_reference, cart=replace(view, status=str(Cart.STATUS_CONVERTED)))


def abandon_cart(*, cart_id: int) -> Cart:
    """Mark an active cart abandoned; carts in any other status are left alone."""

    with contention_guard(cart_id), transaction.atomic():
        cart = Cart.objects.select_for_update().filter(id=cart_id).first()
        if cart is None:
            raise CartNotFound()
        if not cart.is_active:
            return cart
        cart.status = Cart.STATUS_ABANDONED
        cart.save(update_fields=["status", "updated_at"])

    logger.info(
        "cart.abandoned",
        extra={"event": "cart.abandoned", "cart_id": cart.id, "user_id": cart.user_id, "guest": not cart.user_id},
    )
    return cart
