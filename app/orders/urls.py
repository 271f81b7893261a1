"""
URL configuration for the orders app.

``urlpatterns`` is mounted at /api/v1/orders/ and ``admin_urlpatterns``
at /api/v1/admin/orders/ (see config/urls.py).
"""

from django.urls import path

from orders import views

app_name = "orders"

urlpatterns = [
    path("mine/", views.MyOrdersView.as_view(), name="my_orders"),
    path(
        "listings/<uuid:listing_id>/checkout/",
        views.CheckoutView.as_view(),
        name="checkout",
    ),
    path("<uuid:order_id>/", views.OrderDetailView.as_view(), name="order_detail"),
    path(
        "<uuid:order_id>/mark-shipped/",
        views.MarkShippedView.as_view(),
        name="mark_shipped",
    ),
    path(
        "<uuid:order_id>/mark-delivered/",
        views.MarkDeliveredView.as_view(),
        name="mark_delivered",
    ),
    path(
        "<uuid:order_id>/confirm-delivery/",
        views.ConfirmDeliveryView.as_view(),
        name="confirm_delivery",
    ),
    path(
        "<uuid:order_id>/release-funds/",
        views.ReleaseFundsView.as_view(),
        name="release_funds",
    ),
    path("<uuid:order_id>/refund/", views.RefundView.as_view(), name="refund"),
]

admin_urlpatterns = [
    path("held/", views.HeldOrdersView.as_view(), name="held_orders"),
    path("stats/", views.OrderStatsView.as_view(), name="order_stats"),
]
