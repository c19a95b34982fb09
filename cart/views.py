"""DRF views for cart operations.

Guests identify with the `X-Session-Id` header (or `session_id` in the
body); authenticated users through the configured DRF authentication. An
optional `X-Cart-Id` header targets a specific cart, which is authorized
against the caller like any other.
"""

from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema, inline_serializer
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .collaborators import CartDependencies
from .coupons import apply_coupon, remove_coupon
from .exceptions import CartContention, CartError, CartValidationError
from .ownership import SESSION_HEADER, Actor, merge_guest_cart
from .presenters import build_cart_view, parse_expand
from .serializers import (
    AddItemSerializer,
    ApplyCouponSerializer,
    CartViewSerializer,
    CheckoutResultSerializer,
    CheckoutSerializer,
    UpdateItemQuantitySerializer,
)
from .services import add_item, checkout_cart, clear_cart, get_cart_view, remove_item, update_item_quantity
from .throttling import CartClientRateThrottle, CartScopedRateThrottle

CART_ID_HEADER = "X-Cart-Id"
FINGERPRINT_HEADER = "X-Cart-Fingerprint"

IDENTITY_PARAMETERS = [
    OpenApiParameter(
        name=SESSION_HEADER,
        location=OpenApiParameter.HEADER,
        required=False,
        description="Guest session identifier (optional for authenticated users)",
        type=str,
    ),
    OpenApiParameter(
        name=CART_ID_HEADER,
        location=OpenApiParameter.HEADER,
        required=False,
        description="Target a specific cart; must belong to the caller",
        type=int,
    ),
    OpenApiParameter(
        name="expand",
        location=OpenApiParameter.QUERY,
        required=False,
        description="Comma-separated relations to include: product, variant",
        type=str,
    ),
]

ERROR_RESPONSES = {
    400: inline_serializer(name="CartMutationError", fields={"detail": rf_serializers.CharField()}),
    403: inline_serializer(name="CartAccessDenied", fields={"detail": rf_serializers.CharField()}),
    404: inline_serializer(name="NotFoundError", fields={"detail": rf_serializers.CharField()}),
    503: inline_serializer(
        name="CartBusy",
        fields={
            "code": rf_serializers.CharField(),
            "detail": rf_serializers.CharField(),
            "retryable": rf_serializers.BooleanField(),
        },
    ),
}

CART_EXAMPLE = OpenApiExample(
    "Cart",
    value={
        "id": 1,
        "status": "active",
        "currency": "USD",
        "items": [
            {
                "id": 10,
                "product_id": 3,
                "variant_id": 100,
                "quantity": 2,
                "unit_price": "1000.00",
                "total_price": "2000.00",
                "product": None,
                "variant": None,
            }
        ],
        "item_count": 2,
        "subtotal": "2000.00",
        "discount": "200.00",
        "shipping": "0.00",
        "tax": "144.00",
        "total": "1944.00",
        "coupon_code": "SAVE10",
        "price_adjustments": [],
        "fingerprint": "3f1c...",
    },
)


class CartAPIView(APIView):
    """Base view: identity, collaborators and typed error responses for cart endpoints."""

    permission_classes = [AllowAny]
    throttle_classes = [CartScopedRateThrottle, CartClientRateThrottle]
    throttle_scope = "cart_write"

    def handle_exception(self, exc):
        if isinstance(exc, CartError):
            response = Response(exc.as_payload(), status=exc.status_code)
            if isinstance(exc, CartContention):
                response["Retry-After"] = str(exc.retry_after)
            return response
        return super().handle_exception(exc)

    def get_deps(self) -> CartDependencies:
        return CartDependencies.from_settings()

    def get_actor(self, request) -> Actor:
        return Actor.from_request(request)

    def get_cart_id(self, request):
        raw = (request.headers.get(CART_ID_HEADER) or "").strip()
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            raise CartValidationError({"cart_id": ["A valid integer is required."]})

    def render_cart(self, request, cart, *, deps, status_code=status.HTTP_200_OK) -> Response:
        view = build_cart_view(cart, deps=deps, expand=parse_expand(request.query_params.get("expand")))
        return self.render_view(view, status_code=status_code)

    def render_view(self, view, *, status_code=status.HTTP_200_OK) -> Response:
        response = Response(CartViewSerializer(view).data, status=status_code)
        response[FINGERPRINT_HEADER] = view.fingerprint
        return response


class CartDetailView(CartAPIView):
    """Return the caller's active cart."""

    throttle_scope = "cart"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Get active cart",
        description="Returns the caller's active cart with healed prices, totals and a fresh fingerprint. "
        "Never creates a cart; callers without one get an empty cart with id null.",
        parameters=IDENTITY_PARAMETERS,
        responses={200: CartViewSerializer, **ERROR_RESPONSES},
        examples=[CART_EXAMPLE],
    )
    def get(self, request):
        deps = self.get_deps()
        view = get_cart_view(
            actor=self.get_actor(request),
            cart_id=self.get_cart_id(request),
            expand=parse_expand(request.query_params.get("expand")),
            deps=deps,
        )
        return self.render_view(view)


class CartItemsView(CartAPIView):
    """Add an item to the cart."""

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Add item to cart",
        description="Adds a product or product variant. Adding the same line again increments its quantity. "
        "The cart is created on the first add.",
        request=AddItemSerializer,
        parameters=IDENTITY_PARAMETERS,
        responses={201: CartViewSerializer, **ERROR_RESPONSES},
        examples=[OpenApiExample("Add", value={"product_id": 3, "variant_id": 100, "quantity": 2}, request_only=True)],
    )
    def post(self, request):
        serializer = AddItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        deps = self.get_deps()
        cart = add_item(
            actor=self.get_actor(request),
            product_id=serializer.validated_data["product_id"],
            variant_id=serializer.validated_data.get("variant_id"),
            quantity=serializer.validated_data["quantity"],
            cart_id=self.get_cart_id(request),
            deps=deps,
        )
        return self.render_cart(request, cart, deps=deps, status_code=status.HTTP_201_CREATED)


class CartItemDetailView(CartAPIView):
    """Update or remove a single cart line."""

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Update cart item quantity",
        description="Sets the line quantity. A quantity of zero or less removes the line.",
        request=UpdateItemQuantitySerializer,
        parameters=IDENTITY_PARAMETERS,
        responses={200: CartViewSerializer, **ERROR_RESPONSES},
        examples=[OpenApiExample("Update", value={"quantity": 3}, request_only=True)],
    )
    def put(self, request, item_id: int):
        serializer = UpdateItemQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        deps = self.get_deps()
        cart = update_item_quantity(
            actor=self.get_actor(request),
            item_id=item_id,
            quantity=serializer.validated_data["quantity"],
            cart_id=self.get_cart_id(request),
            deps=deps,
        )
        return self.render_cart(request, cart, deps=deps)

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Update cart item quantity",
        request=UpdateItemQuantitySerializer,
        parameters=IDENTITY_PARAMETERS,
        responses={200: CartViewSerializer, **ERROR_RESPONSES},
    )
    def patch(self, request, item_id: int):
        return self.put(request, item_id)

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Delete cart item",
        description="Removes the line and returns the recomputed cart.",
        parameters=IDENTITY_PARAMETERS,
        responses={200: CartViewSerializer, **ERROR_RESPONSES},
    )
    def delete(self, request, item_id: int):
        deps = self.get_deps()
        cart = remove_item(
            actor=self.get_actor(request),
            item_id=item_id,
            cart_id=self.get_cart_id(request),
            deps=deps,
        )
        return self.render_cart(request, cart, deps=deps)


class CartClearView(CartAPIView):
    """Clear the active cart; an applied coupon stays."""

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Clear cart",
        description="Deletes every line. The applied coupon, if any, is kept.",
        parameters=IDENTITY_PARAMETERS,
        responses={200: CartViewSerializer, **ERROR_RESPONSES},
    )
    def delete(self, request):
        deps = self.get_deps()
        cart = clear_cart(actor=self.get_actor(request), cart_id=self.get_cart_id(request), deps=deps)
        return self.render_cart(request, cart, deps=deps)


class CartCouponView(CartAPIView):
    """Apply or remove the cart's discount code."""

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Apply coupon",
        description="Applies a coupon, replacing any previous one. A rejected code leaves the cart unchanged.",
        request=ApplyCouponSerializer,
        parameters=IDENTITY_PARAMETERS,
        responses={
            200: CartViewSerializer,
            **ERROR_RESPONSES,
            400: inline_serializer(
                name="CouponRejectedError",
                fields={
                    "code": rf_serializers.CharField(),
                    "reason": rf_serializers.CharField(),
                    "detail": rf_serializers.CharField(),
                },
            ),
        },
        examples=[
            OpenApiExample("Apply", value={"code": "SAVE10"}, request_only=True),
            OpenApiExample(
                "Rejected",
                value={"code": "coupon_rejected", "reason": "expired", "detail": "This coupon code cannot be applied to your order."},
                response_only=True,
                status_codes=["400"],
            ),
        ],
    )
    def post(self, request):
        serializer = ApplyCouponSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        deps = self.get_deps()
        cart = apply_coupon(
            actor=self.get_actor(request),
            code=serializer.validated_data["code"],
            cart_id=self.get_cart_id(request),
            deps=deps,
        )
        return self.render_cart(request, cart, deps=deps)

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Remove coupon",
        description="Removes the applied coupon. Idempotent.",
        parameters=IDENTITY_PARAMETERS,
        responses={200: CartViewSerializer, **ERROR_RESPONSES},
    )
    def delete(self, request):
        deps = self.get_deps()
        cart = remove_coupon(actor=self.get_actor(request), cart_id=self.get_cart_id(request), deps=deps)
        return self.render_cart(request, cart, deps=deps)


class CartMergeView(CartAPIView):
    """Authenticated endpoint to merge a guest cart into the user's cart."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Merge guest cart into user cart",
        description="Provide X-Session-Id; guest lines are folded into the user's cart (duplicates summed). "
        "Without a user cart the guest cart is promoted.",
        parameters=[
            OpenApiParameter(
                name=SESSION_HEADER,
                location=OpenApiParameter.HEADER,
                required=True,
                description="Guest session identifier",
                type=str,
            )
        ],
        request=None,
        responses={200: CartViewSerializer, **ERROR_RESPONSES},
    )
    def post(self, request):
        actor = self.get_actor(request)
        deps = self.get_deps()
        cart = merge_guest_cart(user_id=request.user.id, session_id=actor.session_id, deps=deps)
        return self.render_cart(request, cart, deps=deps)


class CartCheckoutView(CartAPIView):
    """Checkout the active cart."""

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Checkout cart",
        description="Re-prices lines to the live catalog, verifies the fingerprint the client last received "
        "and places the order. Moved prices return 409 price_changed; a stale fingerprint returns 409 cart_changed.",
        request=CheckoutSerializer,
        parameters=IDENTITY_PARAMETERS,
        responses={
            200: CheckoutResultSerializer,
            **ERROR_RESPONSES,
            409: inline_serializer(
                name="CartChangedError",
                fields={
                    "code": rf_serializers.CharField(),
                    "detail": rf_serializers.CharField(),
                    "changed_lines": rf_serializers.ListField(child=rf_serializers.DictField()),
                },
            ),
        },
        examples=[
            OpenApiExample("Checkout", value={"fingerprint": "3f1c..."}, request_only=True),
            OpenApiExample(
                "Cart Changed",
                value={"code": "cart_changed", "detail": "Your cart changed. Please refresh it and try again.", "changed_lines": []},
                response_only=True,
                status_codes=["409"],
            ),
        ],
    )
    def post(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = checkout_cart(
            actor=self.get_actor(request),
            fingerprint=serializer.validated_data["fingerprint"],
            expected_lines=serializer.validated_data.get("expected_lines"),
            cart_id=self.get_cart_id(request),
            deps=self.get_deps(),
        )
        return Response(CheckoutResultSerializer(result).data, status=status.HTTP_200_OK)
