"""Admin registration for cart models.

Provides admin interfaces for `Cart`, `CartItem` and the ownership audit
trail, with inline items on the cart page for support. Every admin action
goes through the ledger so totals stay consistent.
"""

from django import forms
from django.contrib import admin, messages
from django.contrib.admin.helpers import ActionForm
from django.contrib.auth import get_user_model
from django.db import transaction

from .collaborators import CartDependencies
from .exceptions import CartError
from .models import Cart, CartAuditEntry, CartItem
from .ownership import Actor, merge_guest_cart
from .services import abandon_cart, clear_cart, recompute


class CartMergeActionForm(ActionForm):
    """Extra inputs for admin actions.

    Provides a `user` field so support can merge a guest cart into a user.
    """

    user = forms.ModelChoiceField(
        queryset=get_user_model().objects.all(),
        required=False,
        label="Target user for merge (guest carts only)",
        help_text="Select when using 'Merge guest cart into user'.",
    )


class CartItemInline(admin.TabularInline):
    """Read-only view of the lines; edits go through the ledger actions."""

    model = CartItem
    extra = 0
    fields = ("product", "variant", "quantity", "unit_price", "total_price", "created_at", "updated_at")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OwnerTypeFilter(admin.SimpleListFilter):
    title = "owner type"
    parameter_name = "owner_type"

    def lookups(self, request, model_admin):
        return (
            ("user", "User carts"),
            ("guest", "Guest carts"),
            ("none", "Ownerless carts"),
        )

    def queryset(self, request, queryset):
        value = self.value()
        if value == "user":
            return queryset.filter(user__isnull=False)
        if value == "guest":
            return queryset.filter(user__isnull=True, session_id__isnull=False)
        if value == "none":
            return queryset.filter(user__isnull=True, session_id__isnull=True)
        return queryset


def _owner_actor(cart: Cart, request) -> Actor:
    return Actor(
        user_id=cart.user_id,
        session_id=cart.session_id,
        ip=request.META.get("REMOTE_ADDR"),
        route=request.path,
        method="ADMIN",
    )


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "session_id", "status", "coupon_code", "total", "updated_at", "created_at")
    list_filter = ("status", OwnerTypeFilter)
    search_fields = ("session_id", "user__username", "user__email", "coupon_code")
    ordering = ("-updated_at",)
    # Owner, status, coupon and money only change through the ledger
    readonly_fields = (
        "user",
        "session_id",
        "status",
        "currency",
        "coupon_code",
        "subtotal",
        "discount",
        "shipping",
        "tax",
        "total",
        "merged_into",
        "created_at",
        "updated_at",
    )
    inlines = [CartItemInline]
    list_select_related = ("user",)

    # Enable action extra form input
    action_form = CartMergeActionForm

    def has_add_permission(self, request):
        # Carts are created by the first mutation of their owner
        return False

    def _run(self, request, queryset, operation, verb: str) -> None:
        successes = 0
        failures = 0
        for cart in queryset:
            try:
                operation(cart)
                successes += 1
            except CartError:
                failures += 1
        if successes:
            messages.success(request, f"{verb} {successes} cart(s).")
        if failures:
            messages.error(request, f"Failed on {failures} cart(s).")

    @admin.action(description="Clear cart (delete items, keep status active)")
    def action_clear_cart(self, request, queryset):
        deps = CartDependencies.from_settings()
        active = queryset.filter(status=Cart.STATUS_ACTIVE)
        ownerless = active.filter(user__isnull=True, session_id__isnull=True)
        skipped = ownerless.count()
        self._run(
            request,
            active.exclude(pk__in=ownerless.values("pk")),
            lambda cart: clear_cart(actor=_owner_actor(cart, request), cart_id=cart.id, deps=deps),
            "Cleared",
        )
        if skipped:
            messages.info(request, f"Skipped {skipped} ownerless cart(s); they have no owner to act for.")

    @admin.action(description="Recompute totals")
    def action_recompute(self, request, queryset):
        deps = CartDependencies.from_settings()

        def _recompute(cart):
            with transaction.atomic():
                recompute(Cart.objects.select_for_update().get(pk=cart.pk), deps=deps)

        self._run(request, queryset.filter(status=Cart.STATUS_ACTIVE), _recompute, "Recomputed")

    @admin.action(description="Abandon cart (mark abandoned)")
    def action_abandon_cart(self, request, queryset):
        self._run(request, queryset, lambda cart: abandon_cart(cart_id=cart.id), "Abandoned")

    @admin.action(description="Merge guest cart into selected user")
    def action_merge_guest_cart_to_user(self, request, queryset):
        User = get_user_model()
        user_id = request.POST.get("user")
        if not user_id:
            messages.error(request, "Please select a target user in the action form.")
            return
        try:
            target_user = User.objects.get(pk=user_id)
        except User.DoesNotExist:
            messages.error(request, "Selected user not found.")
            return

        deps = CartDependencies.from_settings()
        guest_carts = queryset.filter(user__isnull=True, session_id__isnull=False, status=Cart.STATUS_ACTIVE)
        skipped = queryset.count() - guest_carts.count()
        self._run(
            request,
            guest_carts,
            lambda cart: merge_guest_cart(user_id=target_user.pk, session_id=cart.session_id, deps=deps),
            f"Merged into {target_user.email or target_user.username}:",
        )
        if skipped:
            messages.info(request, f"Skipped {skipped} cart(s); merge applies to active guest carts only.")

    actions = [
        "action_clear_cart",
        "action_recompute",
        "action_abandon_cart",
        "action_merge_guest_cart_to_user",
    ]


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ("id", "cart", "product", "variant", "quantity", "unit_price", "total_price", "updated_at")
    search_fields = ("variant__sku", "product__title", "cart__user__email", "cart__session_id")
    ordering = ("id",)
    readonly_fields = ("total_price", "created_at", "updated_at")
    raw_id_fields = ("cart", "product", "variant")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CartAuditEntry)
class CartAuditEntryAdmin(admin.ModelAdmin):
    list_display = ("id", "event", "cart", "actor", "method", "route", "ip", "occurred_at")
    list_filter = ("event",)
    search_fields = ("actor", "route", "ip")
    ordering = ("-occurred_at",)
    raw_id_fields = ("cart",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
