"""Cart URL routes (v1)."""

from django.urls import path

from .views import (
    CartCheckoutView,
    CartClearView,
    CartCouponView,
    CartDetailView,
    CartItemDetailView,
    CartItemsView,
    CartMergeView,
)

app_name = "cart"

urlpatterns = [
    path("", CartDetailView.as_view(), name="cart-detail"),
    path("items/", CartItemsView.as_view(), name="cart-add-item"),
    path("items/<int:item_id>/", CartItemDetailView.as_view(), name="cart-item"),
    path("clear/", CartClearView.as_view(), name="cart-clear"),
    path("coupon/", CartCouponView.as_view(), name="cart-coupon"),
    path("merge/", CartMergeView.as_view(), name="cart-merge"),
    path("checkout/", CartCheckoutView.as_view(), name="cart-checkout"),
]
