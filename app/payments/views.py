"""
API views for seller payout accounts.

Endpoints (prefixed with /api/v1/payments/):
    GET   payout-account/                  Account status, synced from the provider
    POST  payout-account/                  Create the provider account (idempotent)
    PATCH payout-account/                  Set the PayPal payout email
    POST  payout-account/onboarding-link/  Hosted onboarding URL
    POST  payout-account/dashboard-link/   Provider dashboard login URL

Security:
    - All endpoints require authentication and act on the caller's own
      account only
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.serializers import (
    DashboardLinkSerializer,
    OnboardingLinkSerializer,
    PayoutAccountSerializer,
    PayoutAccountStatusSerializer,
    PayPalEmailSerializer,
)
from payments.services import PayoutAccountService

GATEWAY_ERROR_RESPONSES = {
    422: OpenApiResponse(description="Payment provider rejected the operation"),
    502: OpenApiResponse(description="Payment provider unavailable, retry later"),
}


class PayoutAccountView(APIView):
    """
    The caller's payout account.

    GET   /api/v1/payments/payout-account/
    POST  /api/v1/payments/payout-account/
    PATCH /api/v1/payments/payout-account/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payout_account",
        summary="Payout account status",
        responses={200: PayoutAccountStatusSerializer, **GATEWAY_ERROR_RESPONSES},
        tags=["Payouts"],
    )
    def get(self, request):
        account, provider_status = PayoutAccountService().refresh_status(request.user)

        data = PayoutAccountStatusSerializer(
            {
                "has_account": account is not None,
                "account": account,
                "details_submitted": bool(provider_status and provider_status.details_submitted),
                "requirements_due": list(provider_status.requirements_due) if provider_status else [],
                "disabled_reason": provider_status.disabled_reason if provider_status else "",
            }
        ).data
        return Response(data)

    @extend_schema(
        operation_id="create_payout_account",
        summary="Create payout account",
        description="Create the seller's provider account. Returns the existing one if present.",
        request=None,
        responses={
            200: PayoutAccountSerializer,
            201: PayoutAccountSerializer,
            **GATEWAY_ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request):
        account, created = PayoutAccountService().create_account(request.user)
        return Response(
            PayoutAccountSerializer(account).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @extend_schema(
        operation_id="set_paypal_payout_email",
        summary="Set PayPal payout email",
        request=PayPalEmailSerializer,
        responses={200: PayoutAccountSerializer},
        tags=["Payouts"],
    )
    def patch(self, request):
        serializer = PayPalEmailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        account = PayoutAccountService().set_paypal_email(
            request.user, serializer.validated_data["paypal_email"]
        )
        return Response(PayoutAccountSerializer(account).data)


class OnboardingLinkView(APIView):
    """POST /api/v1/payments/payout-account/onboarding-link/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_onboarding_link",
        summary="Start hosted onboarding",
        request=None,
        responses={
            200: OnboardingLinkSerializer,
            404: OpenApiResponse(description="No payout account yet"),
            **GATEWAY_ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request):
        link = PayoutAccountService().create_onboarding_link(request.user)
        return Response(OnboardingLinkSerializer(link).data)


class DashboardLinkView(APIView):
    """POST /api/v1/payments/payout-account/dashboard-link/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_dashboard_link",
        summary="Provider dashboard login",
        request=None,
        responses={
            200: DashboardLinkSerializer,
            404: OpenApiResponse(description="No payout account yet"),
            **GATEWAY_ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request):
        url = PayoutAccountService().create_dashboard_link(request.user)
        return Response(DashboardLinkSerializer({"url": url}).data)
