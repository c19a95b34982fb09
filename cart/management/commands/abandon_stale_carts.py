from datetime import timedelta

from cart.exceptions import CartError
from cart.models import Cart
from cart.services import abandon_cart
from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone


class Command(BaseCommand):
    help = "Abandon active carts untouched for longer than CART_ABANDON_TTL_MINUTES"

    def add_arguments(self, parser):
        parser.add_argument("--ttl-minutes", type=int, default=None, help="Override CART_ABANDON_TTL_MINUTES")
        parser.add_argument("--dry-run", action="store_true", help="Only report how many carts would be abandoned")

    def handle(self, *args, **options):
        ttl_minutes = options["ttl_minutes"]
        if ttl_minutes is None:
            ttl_minutes = getattr(settings, "CART_ABANDON_TTL_MINUTES", 10080)
        cutoff = timezone.now() - timedelta(minutes=int(ttl_minutes))
        qs = Cart.objects.filter(status=Cart.STATUS_ACTIVE, updated_at__lt=cutoff)
        if options["dry_run"]:
            self.stdout.write(f"{qs.count()} stale carts would be abandoned.")
            return
        count = 0
        for cart_id in qs.values_list("id", flat=True).iterator():
            try:
                abandon_cart(cart_id=cart_id)
            except CartError as exc:
                self.stderr.write(f"Cart {cart_id}: {exc.detail}")
                continue
            count += 1
        self.stdout.write(self.style.SUCCESS(f"Abandoned {count} stale carts."))
