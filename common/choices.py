"""Shared enumerations and choices used across apps."""

from django.db import models


class ActiveInactive(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class DraftPublished(models.TextChoices):
    DRAFT = "draft", "Draft"
    PUBLISHED = "published", "Published"


class CartStatus(models.TextChoices):
    """Statuses for shopping carts.

    `merged` and `converted` are terminal; only `active` carts are addressable.
    """

    ACTIVE = "active", "Active"
    MERGED = "merged", "Merged"
    ABANDONED = "abandoned", "Abandoned"
    CONVERTED = "converted", "Converted"


class DiscountType(models.TextChoices):
    FIXED = "fixed", "Fixed amount"
    PERCENTAGE = "percentage", "Percentage"


class CouponRejectReason(models.TextChoices):
    """Typed reasons the discount rules service may give for refusing a code."""

    INVALID_CODE = "invalid_code", "Invalid code"
    EXPIRED = "expired", "Expired"
    MINIMUM_NOT_MET = "minimum_not_met", "Minimum order amount not met"
    USAGE_EXCEEDED = "usage_exceeded", "Usage limit exceeded"
