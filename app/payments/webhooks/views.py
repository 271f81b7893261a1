"""
Webhook endpoint for payment provider events.

One endpoint serves every configured provider:

    POST /api/v1/payments/webhooks/<provider>/

The view:
1. Verifies the signature with the provider's gateway
2. Records the event in WebhookEvent (once per provider event id)
3. Dispatches it to the registered handler
4. Reports the outcome back to the provider

Dispatch runs inline rather than on a queue: the response code tells the
provider whether to retry (502 on gateway trouble), and the dispatch is
idempotent, so a redelivered event is simply processed again.

Usage:
    # In payments/urls.py
    path("webhooks/<str:provider>/", payment_webhook, name="payment_webhook")
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.exception_handler import render_application_error
from core.exceptions import BaseApplicationError, ExternalServiceError
from payments.adapters import get_gateway
from payments.models import WebhookEvent
from payments.webhooks.events import get_event_id, get_event_type
from payments.webhooks.handlers import IGNORED, dispatch_payment_event

logger = logging.getLogger(__name__)


def _error_response(exc: BaseApplicationError) -> JsonResponse:
    return JsonResponse(render_application_error(exc), status=exc.status_code)


@csrf_exempt
@require_POST
def payment_webhook(request: HttpRequest, provider: str) -> JsonResponse:
    """
    Receive, verify and apply a payment provider event.

    Security:
    - Signature verification prevents spoofed webhooks
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Returns:
        JsonResponse with status:
        - 200: {"received": true, "outcome": "applied" | "duplicate" | "refunded"
          | "declined" | "updated" | "ignored"}
        - 400: Invalid signature or malformed payload
        - 404: Unknown provider or unknown order
        - 409: Amount mismatch, conflicting reference, invalid transition
        - 502: Gateway unavailable, provider should retry
    """
    if provider not in getattr(settings, "PAYMENT_GATEWAYS", {}):
        logger.warning("Webhook for unknown provider", extra={"provider": provider})
        return JsonResponse(
            {"error": "Unknown payment provider", "error_code": "NOT_FOUND"},
            status=404,
        )

    # Step 1: Verify signature
    try:
        gateway = get_gateway(provider)
        signature = gateway.read_webhook_signature(request.headers)
        event = gateway.verify_webhook(request.body, signature)
        event_id = get_event_id(event)
        event_type = get_event_type(event)
    except BaseApplicationError as e:
        log = logger.error if isinstance(e, ExternalServiceError) else logger.warning
        log(
            f"Webhook rejected: {e.message}",
            extra={"provider": provider, "error_code": e.error_code},
        )
        return _error_response(e)

    logger.info(
        f"Received {provider} webhook: {event_type}",
        extra={"provider": provider, "event_id": event_id, "event_type": event_type},
    )

    # Step 2: Record the event (audit only; dispatch is idempotent on its own)
    webhook_event, created = WebhookEvent.objects.get_or_create(
        provider=provider,
        provider_event_id=event_id,
        defaults={"event_type": event_type, "payload": event},
    )
    if not created:
        logger.info(
            f"Webhook redelivered, previous status: {webhook_event.status}",
            extra={"provider": provider, "event_id": event_id},
        )
    webhook_event.mark_received()
    webhook_event.save(update_fields=["attempts", "updated_at"])

    # Step 3: Dispatch
    try:
        result = dispatch_payment_event(event)
    except BaseApplicationError as e:
        webhook_event.mark_failed(str(e))
        webhook_event.save()
        log = logger.error if isinstance(e, ExternalServiceError) else logger.warning
        log(
            f"Webhook processing refused: {e.message}",
            extra={
                "provider": provider,
                "event_id": event_id,
                "error_code": e.error_code,
            },
        )
        return _error_response(e)

    # Step 4: Record outcome and acknowledge
    outcome = result.data
    if outcome == IGNORED:
        webhook_event.mark_ignored()
    else:
        webhook_event.mark_processed(outcome)
    webhook_event.save()

    return JsonResponse({"received": True, "outcome": outcome})
