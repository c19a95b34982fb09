"""Read-only catalog service consumed by the cart.

Returns immutable snapshots rather than model instances so callers cannot
accidentally write catalog rows while pricing a cart.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .models import Product, ProductVariant


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    title: str
    slug: str
    price: Optional[Decimal]
    sale_price: Optional[Decimal]
    stock: Optional[int]
    is_active: bool


@dataclass(frozen=True)
class VariantSnapshot:
    id: int
    product_id: int
    sku: str
    price: Optional[Decimal]
    sale_price: Optional[Decimal]
    stock: Optional[int]
    is_active: bool


class CatalogService:
    """Database-backed catalog lookups."""

    def get_product(self, product_id: int) -> Optional[ProductSnapshot]:
        try:
            product = Product.objects.get(id=product_id)
        except Product.DoesNotExist:
            return None
        return ProductSnapshot(
            id=product.id,
            title=product.title,
            slug=product.slug,
            price=product.price,
            sale_price=product.sale_price,
            stock=product.stock_quantity,
            is_active=product.is_active,
        )

    def get_variant(self, variant_id: int) -> Optional[VariantSnapshot]:
        try:
            variant = ProductVariant.objects.get(id=variant_id)
        except ProductVariant.DoesNotExist:
            return None
        return VariantSnapshot(
            id=variant.id,
            product_id=variant.product_id,
            sku=variant.sku,
            price=variant.price,
            sale_price=variant.sale_price,
            stock=variant.stock_quantity,
            is_active=variant.is_active,
        )
