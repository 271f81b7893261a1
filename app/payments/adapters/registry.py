"""
Lookup of the gateway implementation serving each payment method.

settings.PAYMENT_GATEWAYS maps a payment method (``stripe``, ``paypal``)
to the dotted path of a PaymentGateway subclass. Instances are created
once per process and reused.

Usage:
    from payments.adapters import get_gateway

    gateway = get_gateway(order.payment_method)

Tests that override PAYMENT_GATEWAYS call ``reset_gateways()`` so the
next lookup builds fresh instances.
"""

from __future__ import annotations

import functools
import logging

from django.conf import settings
from django.utils.module_loading import import_string

from payments.adapters.base import PaymentGateway
from payments.exceptions import GatewayAuthFailureError

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=None)
def _load_gateway(path: str) -> PaymentGateway:
    gateway_class = import_string(path)
    return gateway_class()


def get_gateway(payment_method: str) -> PaymentGateway:
    """
    Return the gateway configured for a payment method.

    Raises:
        GatewayAuthFailureError: No gateway is configured for the method
    """
    path = getattr(settings, "PAYMENT_GATEWAYS", {}).get(payment_method)
    if not path:
        logger.error(
            "No payment gateway configured",
            extra={"payment_method": payment_method},
        )
        raise GatewayAuthFailureError(
            "Payment gateway is not configured",
            provider=payment_method,
            provider_code="gateway_not_configured",
        )
    return _load_gateway(path)


def reset_gateways() -> None:
    """Drop cached gateway instances."""
    _load_gateway.cache_clear()
