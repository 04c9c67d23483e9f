# =============================================================================
# himas_core/errors/exceptions.py
# Custom Exception Hierarchy for Himas Hospital
# =============================================================================

from typing import Optional, Dict, Any


class HimasError(Exception):
    """
    Base exception for all Himas Hospital errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "VAL_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "HMS_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================

class ValidationError(HimasError):
    """Raised when a form submission fails validation before any mutation"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field

        super().__init__(
            message=message,
            code=kwargs.pop("code", "VAL_001"),
            details=details,
            **kwargs,
        )


class DuplicateRecordError(ValidationError):
    """Raised when a registration code or staff email is already taken"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if value is not None:
            details["value"] = value

        super().__init__(
            message=message,
            field=field,
            code="VAL_002",
            details=details,
            **kwargs,
        )


class RecordNotFoundError(ValidationError):
    """Raised when a mutation targets a patient id that is not in the collection"""

    def __init__(self, message: str, record_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if record_id is not None:
            details["record_id"] = record_id

        super().__init__(
            message=message,
            code="VAL_003",
            details=details,
            **kwargs,
        )


# =============================================================================
# SYNC LAYER EXCEPTIONS
# =============================================================================

class RemoteStoreError(HimasError):
    """Raised when the remote row store is unreachable or rejects a request"""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        row_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if row_key:
            details["row_key"] = row_key

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            **kwargs,
        )


class MalformedPayloadError(HimasError):
    """Raised when a cached or remote collection payload is not a list"""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        actual_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if source:
            details["source"] = source
        if actual_type:
            details["actual_type"] = actual_type

        super().__init__(
            message=message,
            code="SYNC_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# AUTH & INTEGRATION EXCEPTIONS
# =============================================================================

class AuthenticationError(HimasError):
    """Raised when staff credentials or a one-time code are rejected"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, code="AUTH_001", **kwargs)


class IntegrationError(HimasError):
    """Raised when a third-party collaborator (storage, mail, AI) fails"""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if service:
            details["service"] = service

        super().__init__(
            message=message,
            code="INT_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(HimasError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
