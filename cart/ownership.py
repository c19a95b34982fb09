"""Cart ownership: identity context, lookup, authorization, locking and merge.

A cart is owned by exactly one user or one guest session. Lookups only ever
return active carts, so merged, converted and abandoned carts are no longer
addressable by anyone.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, OperationalError, connection, transaction

from .collaborators import AuditEvent, CartDependencies
from .exceptions import CartContention, CartNotFound, CartValidationError, OwnershipViolation
from .models import Cart, CartAuditEntry, CartItem

logger = logging.getLogger("storefront.cart")

SESSION_HEADER = "X-Session-Id"
SESSION_ID_MAX_LENGTH = 64


def _client_ip(request) -> Optional[str]:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.META.get("REMOTE_ADDR") or None


def _body_session_id(request) -> Optional[str]:
    data = getattr(request, "data", None)
    if hasattr(data, "get"):
        value = data.get("session_id")
        return str(value) if value else None
    return None


@dataclass(frozen=True)
class Actor:
    """Who is calling: an authenticated user, a guest session, or both."""

    user_id: Optional[int] = None
    session_id: Optional[str] = None
    ip: Optional[str] = None
    route: str = ""
    method: str = ""

    @classmethod
    def from_request(cls, request) -> "Actor":
        user = getattr(request, "user", None)
        user_id = user.id if user is not None and user.is_authenticated else None
        session_id = (request.headers.get(SESSION_HEADER) or "").strip() or _body_session_id(request)
        if session_id and len(session_id) > SESSION_ID_MAX_LENGTH:
            raise CartValidationError(
                {"session_id": [f"Ensure this field has no more than {SESSION_ID_MAX_LENGTH} characters."]}
            )
        return cls(
            user_id=user_id,
            session_id=session_id or None,
            ip=_client_ip(request),
            route=request.path,
            method=request.method,
        )

    @property
    def has_identity(self) -> bool:
        return bool(self.user_id or self.session_id)

    @property
    def label(self) -> str:
        if self.user_id:
            return f"user:{self.user_id}"
        if self.session_id:
            return f"session:{self.session_id[:8]}"
        return "anonymous"


def resolve_cart(user_id=None, session_id=None, *, for_update: bool = False) -> Optional[Cart]:
    """Return the caller's active cart, or None.

    An authenticated user only ever resolves to their own cart, even when a
    session id is also presented.
    """

    qs = Cart.objects.filter(status=Cart.STATUS_ACTIVE)
    if for_update:
        qs = qs.select_for_update()
    if user_id:
        return qs.filter(user_id=user_id).first()
    if session_id:
        return qs.filter(session_id=session_id).first()
    return None


def authorize(cart: Cart, actor: Actor, *, audit) -> bool:
    """Return whether `actor` may touch `cart`; record every denial."""

    if cart.user_id:
        allowed = actor.user_id == cart.user_id
    elif cart.session_id:
        allowed = bool(actor.session_id) and actor.session_id == cart.session_id
    else:
        # Ownerless carts are claimable by any identified caller
        allowed = actor.has_identity
    if allowed:
        return True

    event = AuditEvent(
        event=CartAuditEntry.EVENT_OWNERSHIP_DENIED,
        cart_id=cart.id,
        actor=actor.label,
        route=actor.route,
        method=actor.method,
        ip=actor.ip,
    )
    logger.warning(
        "cart.ownership_denied",
        extra={
            "event": "cart.ownership_denied",
            "cart_id": cart.id,
            "actor": actor.label,
            "route": actor.route,
            "method": actor.method,
            "ip": actor.ip,
            "timestamp": event.timestamp.isoformat(),
        },
    )
    audit.record(event)
    return False


def claim(cart: Cart, actor: Actor) -> Cart:
    """Assign an ownerless cart to `actor`. Reassignment only happens via merge."""

    if cart.has_owner:
        return cart
    if actor.user_id:
        cart.user_id = actor.user_id
    else:
        cart.session_id = actor.session_id
    try:
        with transaction.atomic():
            cart.save(update_fields=["user", "session_id", "updated_at"])
    except IntegrityError:
        raise CartValidationError({"cart_id": ["You already have an active cart."]})
    logger.info("cart.claimed", extra={"event": "cart.claimed", "cart_id": cart.id, "actor": actor.label})
    return cart


def authorized_cart(actor: Actor, cart_id: int, *, deps) -> Cart:
    """Fetch an explicitly targeted active cart and authorize the caller, without locking."""

    cart = Cart.objects.filter(id=cart_id, status=Cart.STATUS_ACTIVE).first()
    if cart is None:
        raise CartNotFound()
    if not authorize(cart, actor, audit=deps.audit):
        raise OwnershipViolation()
    return cart


def bound_lock_wait() -> None:
    """Cap how long the current transaction waits for row locks."""

    if connection.vendor != "postgresql":
        return
    timeout_ms = int(getattr(settings, "CART_LOCK_TIMEOUT_MS", 2000))
    with connection.cursor() as cursor:
        cursor.execute(f"SET LOCAL lock_timeout = {timeout_ms}")


@contextmanager
def contention_guard(cart_id=None):
    """Translate lock timeouts into a retryable `CartContention`."""

    try:
        yield
    except OperationalError as exc:
        logger.warning(
            "cart.lock_contention",
            extra={"event": "cart.lock_contention", "cart_id": cart_id, "error": str(exc)},
        )
        raise CartContention() from exc


def _create_cart(actor: Actor) -> Cart:
    owner = {"user_id": actor.user_id} if actor.user_id else {"session_id": actor.session_id}
    try:
        with transaction.atomic():
            cart = Cart.objects.create(**owner)
    except IntegrityError:
        # A concurrent first mutation won the race; reuse its cart
        cart = resolve_cart(actor.user_id, actor.session_id, for_update=True)
        if cart is None:
            raise
        return cart
    logger.info(
        "cart.created",
        extra={"event": "cart.created", "cart_id": cart.id, "actor": actor.label, "guest": not actor.user_id},
    )
    return cart


def load_cart_for_mutation(actor: Actor, cart_id=None, *, create: bool, deps) -> Optional[Cart]:
    """Lock and return the cart a mutation targets.

    Must run inside a transaction. Denials recorded here roll back with the
    transaction, so callers targeting an explicit `cart_id` authorize first
    with `authorized_cart` (as `locked_cart` does).
    """

    bound_lock_wait()
    if cart_id is not None:
        cart = Cart.objects.select_for_update().filter(id=cart_id, status=Cart.STATUS_ACTIVE).first()
        if cart is None:
            raise CartNotFound()
        if not authorize(cart, actor, audit=deps.audit):
            raise OwnershipViolation()
        return claim(cart, actor)

    if not actor.has_identity:
        raise CartValidationError({"session_id": ["A session id or authentication is required."]})
    cart = resolve_cart(actor.user_id, actor.session_id, for_update=True)
    if cart is None and create:
        cart = _create_cart(actor)
    return cart


@contextmanager
def locked_cart(actor: Actor, cart_id=None, *, create: bool, deps):
    """Open the transaction a cart mutation runs in and yield the locked cart."""

    if cart_id is not None:
        authorized_cart(actor, cart_id, deps=deps)
    with contention_guard(cart_id), transaction.atomic():
        yield load_cart_for_mutation(actor, cart_id, create=create, deps=deps)


def _active_cart_id(**owner) -> Optional[int]:
    return Cart.objects.filter(status=Cart.STATUS_ACTIVE, **owner).values_list("id", flat=True).first()


def _merge_raced(guest_id: int, user_id: int, reason: str) -> None:
    logger.warning(
        "cart.merge_retry",
        extra={"event": "cart.merge_retry", "src_cart_id": guest_id, "user_id": user_id, "reason": reason},
    )


def merge_guest_cart(*, user_id: int, session_id: str, deps: Optional[CartDependencies] = None) -> Cart:
    """Fold the guest session's cart into the user's active cart.

    Lines for the same (product, variant) are summed. The guest coupon is
    carried over only when the user cart has none. Without a user cart the
    guest cart is promoted to the user instead. Everything happens in one
    transaction. If the user cart changes between lookup and lock the merge
    is rolled back with a retryable `CartContention`.
    """

    from .services import recompute

    deps = deps or CartDependencies.from_settings()
    if not session_id:
        raise CartValidationError({"session_id": ["This field is required."]})

    with contention_guard(), transaction.atomic():
        bound_lock_wait()
        guest_id = _active_cart_id(session_id=session_id)
        if guest_id is None:
            raise CartNotFound()
        user_cart_id = _active_cart_id(user_id=user_id)
        ids = sorted(cart_id for cart_id in (guest_id, user_cart_id) if cart_id is not None)
        locked = {cart.id: cart for cart in Cart.objects.select_for_update().filter(id__in=ids).order_by("id")}

        guest = locked.get(guest_id)
        if guest is None or not guest.is_active:
            raise CartNotFound()

        if user_cart_id is None:
            guest.user_id = user_id
            guest.session_id = None
            try:
                with transaction.atomic():
                    guest.save(update_fields=["user", "session_id", "updated_at"])
            except IntegrityError as exc:
                # A user cart appeared after the lookup
                _merge_raced(guest_id, user_id, "user_cart_created")
                raise CartContention() from exc
            recompute(guest, deps=deps)
            logger.info(
                "cart.merged",
                extra={
                    "event": "cart.merged",
                    "src_cart_id": guest.id,
                    "dest_cart_id": guest.id,
                    "user_id": user_id,
                    "promoted": True,
                },
            )
            return guest

        recipient = locked.get(user_cart_id)
        if recipient is None or not recipient.is_active:
            # The user cart was checked out or abandoned after the lookup
            _merge_raced(guest_id, user_id, "user_cart_closed")
            raise CartContention()
        existing = {item.line_key: item for item in CartItem.objects.select_for_update().filter(cart=recipient)}
        moved = 0
        for item in CartItem.objects.select_for_update().filter(cart=guest).order_by("id"):
            target = existing.get(item.line_key)
            if target is not None:
                target.quantity = int(target.quantity) + int(item.quantity)
                target.save(update_fields=["quantity", "updated_at"])
                item.delete()
            else:
                item.cart = recipient
                item.save(update_fields=["cart", "updated_at"])
                existing[item.line_key] = item
            moved += 1

        if not recipient.coupon_code and guest.coupon_code:
            recipient.coupon_code = guest.coupon_code
            recipient.save(update_fields=["coupon_code", "updated_at"])

        guest.status = Cart.STATUS_MERGED
        guest.merged_into = recipient
        guest.save(update_fields=["status", "merged_into", "updated_at"])
        recompute(recipient, deps=deps)

    logger.info(
        "cart.merged",
        extra={
            "event": "cart.merged",
            "src_cart_id": guest.id,
            "dest_cart_id": recipient.id,
            "user_id": user_id,
            "lines": moved,
            "promoted": False,
        },
    )
    return recipient
