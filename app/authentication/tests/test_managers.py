"""
Tests for UserManager.

The manager creates email-login users; superusers created through it hold
every Django permission, which is what grants them escrow capabilities.
"""

import pytest

from authentication.models import User


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user()."""

    def test_creates_user_with_email_and_password(self, db):
        user = User.objects.create_user(email="buyer@example.com", password="SecurePass123!")

        assert user.pk is not None
        assert user.email == "buyer@example.com"
        assert user.check_password("SecurePass123!") is True

    def test_normalizes_email_domain_to_lowercase(self, db):
        user = User.objects.create_user(email="Seller@EXAMPLE.COM", password="pw")

        assert user.email == "Seller@example.com"

    def test_user_without_password_gets_unusable_password(self, db):
        user = User.objects.create_user(email="provisioned@example.com")

        assert user.has_usable_password() is False

    def test_regular_user_has_no_elevated_flags(self, db):
        user = User.objects.create_user(email="plain@example.com", password="pw")

        assert user.is_staff is False
        assert user.is_superuser is False
        assert user.is_active is True

    def test_missing_email_raises_value_error(self, db):
        with pytest.raises(ValueError, match="Email field must be set"):
            User.objects.create_user(email="", password="pw")


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser()."""

    def test_creates_superuser_with_flags(self, db):
        admin = User.objects.create_superuser(email="ops@example.com", password="pw")

        assert admin.is_staff is True
        assert admin.is_superuser is True

    def test_superuser_holds_any_model_permission(self, db):
        admin = User.objects.create_superuser(email="ops2@example.com", password="pw")

        assert admin.has_perm("orders.release_funds") is True

    def test_rejects_superuser_without_staff_flag(self, db):
        with pytest.raises(ValueError, match="is_staff=True"):
            User.objects.create_superuser(
                email="bad@example.com", password="pw", is_staff=False
            )

    def test_rejects_superuser_without_superuser_flag(self, db):
        with pytest.raises(ValueError, match="is_superuser=True"):
            User.objects.create_superuser(
                email="bad2@example.com", password="pw", is_superuser=False
            )


class TestUserDisplayNames:
    """Tests for the name helpers used in order listings."""

    def test_full_name_falls_back_to_email(self, db):
        user = User.objects.create_user(email="anon@example.com")

        assert user.get_full_name() == "anon@example.com"
        assert user.get_short_name() == "anon"

    def test_display_name_preferred_when_set(self, db):
        user = User.objects.create_user(email="named@example.com", display_name="Vintage Vera")

        assert user.get_full_name() == "Vintage Vera"
        assert str(user) == "named@example.com"
