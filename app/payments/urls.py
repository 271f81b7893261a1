"""
URL configuration for the payments app.

Routes:
    - POST /webhooks/<provider>/ - Payment provider webhook endpoint
    - GET/POST/PATCH /payout-account/ - Seller payout account
    - POST /payout-account/onboarding-link/ - Hosted onboarding URL
    - POST /payout-account/dashboard-link/ - Provider dashboard login

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments.views import DashboardLinkView, OnboardingLinkView, PayoutAccountView
from payments.webhooks.views import payment_webhook

app_name = "payments"

urlpatterns = [
    path("webhooks/<str:provider>/", payment_webhook, name="payment_webhook"),
    path("payout-account/", PayoutAccountView.as_view(), name="payout_account"),
    path(
        "payout-account/onboarding-link/",
        OnboardingLinkView.as_view(),
        name="onboarding_link",
    ),
    path(
        "payout-account/dashboard-link/",
        DashboardLinkView.as_view(),
        name="dashboard_link",
    ),
]
