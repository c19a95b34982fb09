"""User model for the identity context.

Extends Django's `AbstractUser` with a unique, normalized email. Carts refer
to users through `settings.AUTH_USER_MODEL`.
"""

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Custom user with a unique email address."""

    email = models.EmailField(unique=True)

    def save(self, *args, **kwargs):
        """Normalize the email so uniqueness checks are reliable."""
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)
