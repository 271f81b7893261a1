"""
DRF exception handler translating application errors into API responses.

Registered in settings as REST_FRAMEWORK["EXCEPTION_HANDLER"]. Views can
simply let BaseApplicationError subclasses propagate; this handler turns
them into ``{"error", "error_code", "details"?}`` bodies with the status
code the exception declares. Everything else falls through to DRF's
default handler (authentication, throttling, serializer errors).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from core.exceptions import BaseApplicationError, ExternalServiceError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

# Detail keys carrying raw provider output
UPSTREAM_DETAIL_KEYS = frozenset({"provider_message", "provider_code"})


def render_application_error(exc: BaseApplicationError) -> dict[str, Any]:
    """
    Build the response body for an application error.

    Provider messages are only exposed when the deployment sets
    EXPOSE_UPSTREAM_ERROR_DETAIL (operator-facing installs).
    """
    body = exc.to_dict()
    if "details" in body and not getattr(settings, "EXPOSE_UPSTREAM_ERROR_DETAIL", False):
        details = {
            key: value
            for key, value in body["details"].items()
            if key not in UPSTREAM_DETAIL_KEYS
        }
        if details:
            body["details"] = details
        else:
            body.pop("details")
    return body


def application_exception_handler(exc, context):
    """Map BaseApplicationError to a JSON response, defer the rest to DRF."""
    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        log_context = {
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "view": view.__class__.__name__ if view else None,
        }
        if isinstance(exc, ExternalServiceError):
            logger.error(f"Upstream failure: {exc.message}", extra=log_context)
        else:
            logger.warning(f"Request refused: {exc.message}", extra=log_context)

        return Response(render_application_error(exc), status=exc.status_code)

    return drf_exception_handler(exc, context)
