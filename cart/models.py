"""Cart app models.

A cart belongs to exactly one owner: an authenticated user or a guest
session. Monetary columns on `Cart` and `CartItem.total_price` are derived
by the ledger's recompute step and are never written from client input.
"""

from decimal import Decimal

from common.choices import CartStatus
from django.conf import settings
from django.db import models
from django.utils import timezone


def default_currency() -> str:
    return getattr(settings, "CART_DEFAULT_CURRENCY", "USD")


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Cart(TimeStampedModel):
    """Shopping cart bound to a user or a guest session."""

    STATUS_ACTIVE = CartStatus.ACTIVE
    STATUS_MERGED = CartStatus.MERGED
    STATUS_ABANDONED = CartStatus.ABANDONED
    STATUS_CONVERTED = CartStatus.CONVERTED
    STATUS_CHOICES = CartStatus.choices

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="carts",
        null=True,
        blank=True,
        on_delete=models.CASCADE,
    )
    session_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    currency = models.CharField(max_length=3, default=default_currency)
    coupon_code = models.CharField(max_length=64, null=True, blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    shipping = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    merged_into = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        related_name="merged_carts",
        on_delete=models.SET_NULL,
    )

    class Meta:
        ordering = ["-updated_at"]
        constraints = [
            models.CheckConstraint(
                name="cart_single_owner",
                condition=~models.Q(user__isnull=False, session_id__isnull=False),
            ),
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(status=CartStatus.ACTIVE, user__isnull=False),
                name="unique_active_cart_per_user",
            ),
            models.UniqueConstraint(
                fields=["session_id"],
                condition=models.Q(status=CartStatus.ACTIVE, session_id__isnull=False),
                name="unique_active_cart_per_session",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "status"], name="cart_user_status_idx"),
            models.Index(fields=["session_id", "status"], name="cart_session_status_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        owner = f"user={self.user_id}" if self.user_id else f"session={(self.session_id or '-')[:8]}"
        return f"Cart#{self.id} ({owner}, {self.status})"

    @property
    def has_owner(self) -> bool:
        return bool(self.user_id or self.session_id)

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE


class CartItem(TimeStampedModel):
    """Line item in a shopping cart.

    Line identity is the (product, variant) pair, not the row id.
    """

    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="cart_items", on_delete=models.CASCADE)
    variant = models.ForeignKey(
        "catalog.ProductVariant",
        related_name="cart_items",
        null=True,
        blank=True,
        on_delete=models.CASCADE,
    )
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart", "product", "variant"],
                condition=models.Q(variant__isnull=False),
                name="unique_variant_line_per_cart",
            ),
            models.UniqueConstraint(
                fields=["cart", "product"],
                condition=models.Q(variant__isnull=True),
                name="unique_product_line_per_cart",
            ),
            models.CheckConstraint(
                name="quantity_positive",
                condition=models.Q(quantity__gte=1),
            ),
        ]
        indexes = [
            models.Index(fields=["cart", "product", "variant"], name="cartitem_line_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartItem#{self.id} cart={self.cart_id} product={self.product_id} variant={self.variant_id}"

    @property
    def line_key(self) -> tuple:
        return (self.product_id, self.variant_id)


class CartAuditEntry(models.Model):
    """Audit trail for ownership violations and other security-relevant events."""

    EVENT_OWNERSHIP_DENIED = "cart.ownership_denied"

    cart = models.ForeignKey(Cart, null=True, blank=True, related_name="audit_entries", on_delete=models.SET_NULL)
    event = models.CharField(max_length=64, db_index=True)
    actor = models.CharField(max_length=128)
    route = models.CharField(max_length=255, blank=True)
    method = models.CharField(max_length=16, blank=True)
    ip = models.GenericIPAddressField(null=True, blank=True)
    occurred_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-occurred_at"]
        verbose_name_plural = "cart audit entries"

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.event} cart={self.cart_id} actor={self.actor}"
