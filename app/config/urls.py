"""
URL configuration for the escrow backend.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/token/            - Obtain JWT pair (email/password)
    /api/v1/auth/token/refresh/    - Refresh access token
    /api/v1/orders/                - Buyer and seller order endpoints
        listings/{id}/checkout/    - Start checkout for a listing
        mine/                      - Own purchases and sales
        {id}/                      - Order detail
        {id}/mark-shipped/         - Seller reports shipping
        {id}/mark-delivered/       - Seller reports delivery
        {id}/confirm-delivery/     - Buyer confirms delivery
        {id}/release-funds/        - Release escrow to the seller (admin)
        {id}/refund/               - Refund escrow to the buyer (admin)
    /api/v1/admin/orders/          - Escrow dashboard
        held/                      - Orders currently held
        stats/                     - Order counts per status
    /api/v1/payments/              - Payment endpoints
        webhooks/{provider}/       - Provider webhook endpoint (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check
from orders.urls import admin_urlpatterns as order_admin_urlpatterns

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Orders
    path("orders/", include("orders.urls")),
    path("admin/orders/", include((order_admin_urlpatterns, "orders_admin"))),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Marketplace Escrow Admin"
admin.site.site_title = "Escrow Admin"
admin.site.index_title = "Orders, payouts and webhooks"
