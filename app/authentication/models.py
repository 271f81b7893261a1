"""
Authentication models.

User is the slim, email-login account shared by buyers, sellers and
operators. Who may release or refund escrowed funds is decided by Django
model permissions granted to the user or their groups (see
orders.capabilities), never by hardcoded identity checks.

Related files:
    - managers.py: Custom user manager for email-based creation
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        display_name: Public name shown on listings and orders
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified

    Usage:
        seller = User.objects.create_user(email="seller@example.com", password="...")
        operator = User.objects.create_superuser(email="ops@example.com", password="...")
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    display_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="Public name shown to other marketplace users",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        return self.display_name or self.email

    def get_short_name(self):
        return self.display_name or self.email.split("@")[0]
