"""JWT sign-in endpoints.

Authenticated users carry a bearer token on cart requests; the cart merge
endpoint requires one.
"""

import logging

from drf_spectacular.utils import extend_schema
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

logger = logging.getLogger("storefront.users")


def log_auth_event(action: str, request, *, status: str) -> None:
    logger.info(
        f"auth.{action}",
        extra={
            "event": f"auth.{action}",
            "status": status,
            "ip": request.META.get("REMOTE_ADDR"),
            "route": request.path,
        },
    )


class SignInView(TokenObtainPairView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "signin"

    @extend_schema(tags=["User Endpoints"])
    def post(self, request, *args, **kwargs):
        resp = super().post(request, *args, **kwargs)
        log_auth_event("signin", request, status="success" if resp.status_code == 200 else "failed")
        return resp


class RefreshView(TokenRefreshView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "token_refresh"

    @extend_schema(tags=["User Endpoints"])
    def post(self, request, *args, **kwargs):
        resp = super().post(request, *args, **kwargs)
        log_auth_event("token_refresh", request, status="success" if resp.status_code == 200 else "failed")
        return resp
