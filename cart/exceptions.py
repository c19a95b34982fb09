"""Typed failures raised by cart operations.

Each error carries the HTTP status and machine-readable code the API layer
reports, so views never need to inspect messages.
"""

from typing import Iterable, Optional


class CartError(Exception):
    """Base class for cart operation failures."""

    status_code = 400
    code = "cart_error"
    default_detail = "Unable to update cart."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def as_payload(self) -> dict:
        return {"code": self.code, "detail": self.detail}


class CartValidationError(CartError):
    """Input rejected before any mutation; `errors` maps fields to messages."""

    code = "validation_error"
    default_detail = "Invalid input."

    def __init__(self, errors: dict):
        self.errors = {field: list(msgs) if isinstance(msgs, (list, tuple)) else [msgs] for field, msgs in errors.items()}
        super().__init__()

    def as_payload(self) -> dict:
        return dict(self.errors)


class CartNotFound(CartError):
    status_code = 404
    code = "not_found"
    default_detail = "Not found."

    def as_payload(self) -> dict:
        return {"detail": self.detail}


class OwnershipViolation(CartError):
    """Access denied; intentionally does not say which identity mismatched."""

    status_code = 403
    code = "access_denied"
    default_detail = "Access denied."

    def as_payload(self) -> dict:
        return {"detail": self.detail}


class CouponRejected(CartError):
    code = "coupon_rejected"
    default_detail = "This coupon code cannot be applied to your order."

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__()

    def as_payload(self) -> dict:
        return {"code": self.code, "reason": self.reason, "detail": self.detail}


class PriceChanged(CartError):
    """The freshly recomputed cart disagrees with what the client last saw."""

    status_code = 409
    code = "price_changed"
    default_detail = "Some prices have changed. Please review your cart."

    def __init__(self, changed_lines: Iterable[dict] = (), detail: Optional[str] = None):
        self.changed_lines = list(changed_lines)
        super().__init__(detail)

    def as_payload(self) -> dict:
        return {"code": self.code, "detail": self.detail, "changed_lines": self.changed_lines}


class IntegrityMismatch(PriceChanged):
    code = "cart_changed"
    default_detail = "Your cart changed. Please refresh it and try again."


class CartContention(CartError):
    """The cart is locked by a concurrent request; safe to retry."""

    status_code = 503
    code = "cart_busy"
    default_detail = "Cart is being updated. Please retry."
    retry_after = 1

    def as_payload(self) -> dict:
        return {"code": self.code, "detail": self.detail, "retryable": True}
