"""Rate limits for cart endpoints.

Scopes `cart` (reads) and `cart_write` (mutations). Rates are looked up in
settings on every request so overrides in tests take effect immediately.
"""

from django.conf import settings
from rest_framework.throttling import ScopedRateThrottle

from .ownership import SESSION_HEADER


def _rates() -> dict:
    return getattr(settings, "REST_FRAMEWORK", {}).get("DEFAULT_THROTTLE_RATES", {})


class CartScopedRateThrottle(ScopedRateThrottle):
    def get_rate(self):
        return _rates().get(self.scope)

    def get_ident(self, request):
        # Guests sharing an IP are throttled per cart session
        session_id = (request.headers.get(SESSION_HEADER) or "").strip()
        if session_id:
            return f"session:{session_id[:64]}"
        return super().get_ident(request)


class CartClientRateThrottle(ScopedRateThrottle):
    """Per-IP ceiling for anonymous callers, read from the `<scope>_ip` rate.

    The session header is chosen by the client, so rotating it must not
    lift the limit for a single address.
    """

    def get_rate(self):
        return _rates().get(f"{self.scope}_ip")

    def get_cache_key(self, request, view):
        if request.user and request.user.is_authenticated:
            return None
        return self.cache_format % {"scope": f"{self.scope}_ip", "ident": self.get_ident(request)}
