# =============================================================================
# himas_core/errors/__init__.py
# Centralized Error Handling for Himas Hospital
# =============================================================================

from .exceptions import (
    HimasError,
    ValidationError,
    DuplicateRecordError,
    RecordNotFoundError,
    RemoteStoreError,
    MalformedPayloadError,
    AuthenticationError,
    IntegrationError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    ErrorContext,
    error_boundary,
)

__all__ = [
    # Exceptions
    "HimasError",
    "ValidationError",
    "DuplicateRecordError",
    "RecordNotFoundError",
    "RemoteStoreError",
    "MalformedPayloadError",
    "AuthenticationError",
    "IntegrationError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "ErrorContext",
    "error_boundary",
]
