"""Seed a small catalog and a demo coupon for local development.

Re-running is idempotent; existing rows are reused by slug, sku and code.
"""

from decimal import Decimal

from catalog.models import Product, ProductVariant
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils.text import slugify
from promotions.models import Coupon


class Command(BaseCommand):
    help = "Seed development catalog data (products, variants) and a demo coupon"

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write("Seeding catalog data...")

        products = [
            {
                "title": "Studio Monitor Speakers",
                "description": "High-fidelity nearfield monitors for accurate mixing.",
                "price": Decimal("299.99"),
                "variants": [
                    {"sku": "SMS-BLK", "price": Decimal("299.99")},
                    {"sku": "SMS-WHT", "price": Decimal("309.99"), "sale_price": Decimal("279.99")},
                ],
            },
            {
                "title": "HDMI Cable 2m",
                "description": "High-speed HDMI 2.1 cable.",
                "price": Decimal("12.50"),
                "stock_quantity": 200,
                "variants": [],
            },
            {
                "title": "Wireless Lavalier Mic",
                "description": "Clip-on microphone with a 50m range.",
                "price": Decimal("149.00"),
                "sale_price": Decimal("129.00"),
                "variants": [{"sku": "LAV-SINGLE", "price": Decimal("149.00"), "stock_quantity": 25}],
            },
        ]

        created = 0
        for data in products:
            variants = data.pop("variants")
            product, was_created = Product.objects.get_or_create(
                slug=slugify(data["title"]),
                defaults={**data, "status": Product.STATUS_PUBLISHED},
            )
            created += int(was_created)
            for variant in variants:
                ProductVariant.objects.get_or_create(sku=variant["sku"], defaults={**variant, "product": product})

        Coupon.objects.get_or_create(
            code="WELCOME10",
            defaults={"discount_type": Coupon.TYPE_PERCENTAGE, "value": Decimal("10"), "max_discount": Decimal("50.00")},
        )

        self.stdout.write(self.style.SUCCESS(f"Seeded {created} new products."))
