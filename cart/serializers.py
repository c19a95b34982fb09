"""Cart serializers: request shapes for mutations and the read-only cart view."""

from rest_framework import serializers

from .ownership import SESSION_ID_MAX_LENGTH


class ProductSummarySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    title = serializers.CharField()
    slug = serializers.CharField()


class VariantSummarySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    sku = serializers.CharField()


class CartLineSerializer(serializers.Serializer):
    """Read serializer for a cart line; `product`/`variant` are null unless expanded."""

    id = serializers.IntegerField()
    product_id = serializers.IntegerField()
    variant_id = serializers.IntegerField(allow_null=True)
    quantity = serializers.IntegerField()
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    total_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    product = ProductSummarySerializer(allow_null=True)
    variant = VariantSummarySerializer(allow_null=True)


class PriceAdjustmentSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    stored_price = serializers.DecimalField(max_digits=12, decimal_places=2, allow_null=True)
    resolved_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    flagged = serializers.BooleanField()


class CartViewSerializer(serializers.Serializer):
    """Read serializer for a `CartView`. Every monetary field is derived server-side."""

    id = serializers.IntegerField(allow_null=True)
    status = serializers.CharField()
    currency = serializers.CharField()
    items = CartLineSerializer(many=True)
    item_count = serializers.IntegerField()
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2)
    shipping = serializers.DecimalField(max_digits=12, decimal_places=2)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2)
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    coupon_code = serializers.CharField(allow_null=True)
    price_adjustments = PriceAdjustmentSerializer(many=True)
    fingerprint = serializers.CharField()


class CheckoutResultSerializer(serializers.Serializer):
    order_reference = serializers.CharField()
    cart = CartViewSerializer()


class SessionMixin(serializers.Serializer):
    session_id = serializers.CharField(max_length=SESSION_ID_MAX_LENGTH, required=False, write_only=True)


class AddItemSerializer(SessionMixin):
    """Write serializer for adding an item to the cart."""

    product_id = serializers.IntegerField()
    variant_id = serializers.IntegerField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1)


class UpdateItemQuantitySerializer(SessionMixin):
    """Write serializer for updating a cart item quantity; zero removes the line."""

    quantity = serializers.IntegerField()


class ApplyCouponSerializer(SessionMixin):
    code = serializers.CharField(max_length=64)


class ExpectedLineSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    quantity = serializers.IntegerField()
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)


class CheckoutSerializer(SessionMixin):
    """The fingerprint the client last received, plus the lines it believes it is buying."""

    fingerprint = serializers.CharField(max_length=128)
    expected_lines = ExpectedLineSerializer(many=True, required=False)
