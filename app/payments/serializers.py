"""
Serializers for the payout account API.

Serializer Hierarchy:
    PayoutAccountSerializer: Stored account and readiness
    PayoutAccountStatusSerializer: GET response, with provider requirements
    PayPalEmailSerializer: PATCH body
    OnboardingLinkSerializer / DashboardLinkSerializer: Hosted provider URLs
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import ConnectedAccount


class PayoutAccountSerializer(serializers.ModelSerializer):
    """Seller payout account as stored locally."""

    is_ready_for_payouts = serializers.BooleanField(read_only=True)

    class Meta:
        model = ConnectedAccount
        fields = [
            "id",
            "stripe_account_id",
            "paypal_email",
            "onboarding_status",
            "payouts_enabled",
            "is_ready_for_payouts",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PayoutAccountStatusSerializer(serializers.Serializer):
    """
    Payout account overview.

    ``account`` is null for sellers who never started onboarding.
    """

    has_account = serializers.BooleanField()
    account = PayoutAccountSerializer(allow_null=True)
    details_submitted = serializers.BooleanField()
    requirements_due = serializers.ListField(child=serializers.CharField())
    disabled_reason = serializers.CharField(allow_blank=True)


class PayPalEmailSerializer(serializers.Serializer):
    paypal_email = serializers.EmailField()


class OnboardingLinkSerializer(serializers.Serializer):
    url = serializers.URLField()
    expires_at = serializers.DateTimeField(allow_null=True)


class DashboardLinkSerializer(serializers.Serializer):
    url = serializers.URLField()
