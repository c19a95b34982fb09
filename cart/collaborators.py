"""Collaborators the cart engine consumes, and their default implementations.

Catalog, discount rules, rates, audit and order placement live outside the
cart; each is reached through the protocol declared here and configured by
dotted path in settings. `CartDependencies` bundles them for injection so no
cart module looks up a collaborator or secret globally.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol

from django.conf import settings
from django.utils import timezone
from django.utils.module_loading import import_string

from .integrity import IntegrityStamp

logger = logging.getLogger("storefront.cart")


@dataclass(frozen=True)
class DiscountDecision:
    """Outcome of validating a coupon code: an amount or a rejection reason."""

    code: str
    discount_amount: Decimal = Decimal("0.00")
    reject_reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.reject_reason is None


@dataclass(frozen=True)
class RatedCart:
    """What the rate service sees of a cart when quoting shipping and tax."""

    cart_id: Optional[int]
    currency: str
    subtotal: Decimal
    discount: Decimal
    item_count: int


@dataclass(frozen=True)
class AuditEvent:
    event: str
    cart_id: Optional[int]
    actor: str
    route: str = ""
    method: str = ""
    ip: Optional[str] = None
    timestamp: datetime = field(default_factory=timezone.now)


class Catalog(Protocol):
    def get_product(self, product_id: int): ...

    def get_variant(self, variant_id: int): ...


class DiscountRules(Protocol):
    def validate_code(self, code: str, cart_subtotal: Decimal) -> DiscountDecision: ...

    def redeem(self, code: str) -> None: ...


class RateService(Protocol):
    def shipping_for(self, cart: RatedCart) -> Decimal: ...

    def tax_for(self, cart: RatedCart, address=None) -> Decimal: ...


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None: ...


class OrderPlacement(Protocol):
    def place_order(self, view) -> str: ...


class FlatRateService:
    """Flat shipping with an optional free-shipping threshold; tax as a rate on the discounted subtotal.

    A threshold of 0 disables free shipping. Empty carts ship for free.
    """

    def __init__(self, *, shipping_flat: Decimal, free_shipping_threshold: Decimal, tax_rate: Decimal):
        self.shipping_flat = shipping_flat
        self.free_shipping_threshold = free_shipping_threshold
        self.tax_rate = tax_rate

    @classmethod
    def from_settings(cls) -> "FlatRateService":
        return cls(
            shipping_flat=Decimal(str(settings.CART_SHIPPING_FLAT)),
            free_shipping_threshold=Decimal(str(settings.CART_FREE_SHIPPING_THRESHOLD)),
            tax_rate=Decimal(str(settings.CART_TAX_RATE)),
        )

    def shipping_for(self, cart: RatedCart) -> Decimal:
        if cart.item_count == 0:
            return Decimal("0.00")
        if self.free_shipping_threshold > 0 and cart.subtotal >= self.free_shipping_threshold:
            return Decimal("0.00")
        return self.shipping_flat

    def tax_for(self, cart: RatedCart, address=None) -> Decimal:
        taxable = max(Decimal("0.00"), cart.subtotal - cart.discount)
        return taxable * self.tax_rate


class DatabaseAuditSink:
    """Persist audit events as `CartAuditEntry` rows."""

    def record(self, event: AuditEvent) -> None:
        from .models import CartAuditEntry

        CartAuditEntry.objects.create(
            cart_id=event.cart_id,
            event=event.event,
            actor=event.actor,
            route=event.route[:255],
            method=event.method,
            ip=event.ip,
            occurred_at=event.timestamp,
        )
        logger.debug(
            "cart.audit_recorded",
            extra={
                "event": "cart.audit_recorded",
                "audited_event": event.event,
                "cart_id": event.cart_id,
                "actor": event.actor,
                "route": event.route,
                "method": event.method,
                "ip": event.ip,
                "timestamp": event.timestamp.isoformat(),
            },
        )


class OrderNumberPlacement:
    """Stand-in for the order service: returns a reference derived from the cart id."""

    def place_order(self, view) -> str:
        return f"ORD-{int(view.id):06d}"


def _build(path: str):
    cls = import_string(path)
    factory = getattr(cls, "from_settings", None)
    return factory() if callable(factory) else cls()


@dataclass
class CartDependencies:
    catalog: Catalog
    discounts: DiscountRules
    rates: RateService
    audit: AuditSink
    orders: OrderPlacement
    stamp: IntegrityStamp

    @classmethod
    def from_settings(cls) -> "CartDependencies":
        return cls(
            catalog=_build(settings.CART_CATALOG_SERVICE),
            discounts=_build(settings.CART_DISCOUNT_RULES),
            rates=_build(settings.CART_RATE_SERVICE),
            audit=_build(settings.CART_AUDIT_SINK),
            orders=_build(settings.CART_ORDER_PLACEMENT),
            stamp=IntegrityStamp(secret=settings.CART_INTEGRITY_SECRET),
        )
