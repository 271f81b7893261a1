"""
Webhook intake for payment provider events.

Events are verified, recorded for audit and dispatched inline to the
order state machine.

Usage:
    # In urls.py
    from payments.webhooks.views import payment_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", payment_webhook, name="payment_webhook"),
    ]
"""

from payments.webhooks.events import NormalizedPaymentEvent, normalize_event
from payments.webhooks.handlers import dispatch_payment_event, register_handler
from payments.webhooks.views import payment_webhook

__all__ = [
    "NormalizedPaymentEvent",
    "dispatch_payment_event",
    "normalize_event",
    "payment_webhook",
    "register_handler",
]
