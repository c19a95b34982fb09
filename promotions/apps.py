"""Django app configuration for promotions."""

from django.apps import AppConfig


class PromotionsConfig(AppConfig):
    """Coupons and the discount rules consumed by the cart."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "promotions"
