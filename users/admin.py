"""Admin registration for the custom User model."""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.db.models import Count, Q

from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Default user admin plus the number of active carts per user."""

    list_display = (
        "username",
        "email",
        "active_carts",
        "is_staff",
        "is_active",
        "last_login",
        "date_joined",
    )
    list_filter = ("is_staff", "is_superuser", "is_active", "groups")
    search_fields = ("username", "email", "first_name", "last_name")
    ordering = ("-date_joined",)
    readonly_fields = ("last_login", "date_joined")

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("username", "email", "password1", "password2"),
            },
        ),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(_active_carts=Count("carts", filter=Q(carts__status="active")))

    @admin.display(description="Active carts", ordering="_active_carts")
    def active_carts(self, obj):
        return obj._active_carts
