"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps. No business logic
lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for recorded outcomes

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - ValidationError, NotFoundError, PermissionDeniedError,
      ConflictError, ExternalServiceError

API (import from core.exception_handler):
    - application_exception_handler: DRF EXCEPTION_HANDLER

Note:
    Models and model mixins are NOT imported here to avoid AppRegistryNotReady
    errors. Import them directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalServiceError",
]
