# =============================================================================
# himas_core/services/base_service.py
# Base Class for Collaborator Services
# =============================================================================
"""
Collaborators (AI strategy, OTP delivery, sheet export, file storage) are
optional. Each one reports whether it is configured and degrades on its own
when it is not.
"""

from __future__ import annotations
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from himas_core.errors import HimasError, IntegrationError
from himas_core.logging import LogContext, get_logger


@dataclass
class ServiceResult:
    """Outcome of a collaborator call, for UI code that branches instead of catching."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None) -> ServiceResult:
        return cls(success=True, data=data)

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        if isinstance(e, HimasError):
            return cls(success=False, error=e.message, error_code=e.code, details=e.details)
        return cls(success=False, error=str(e), error_code="EXCEPTION")


class BaseService(ABC):
    """
    Usage:
        class StorageService(BaseService):
            service_name = "storage"

            @property
            def is_configured(self): return self.client is not None

            def upload(self, ...):
                self.require_configured()
                ...
    """

    service_name = "service"

    def __init__(self):
        self.logger = get_logger(f"himas_core.services.{self.__class__.__name__}")

    @property
    def is_configured(self) -> bool:
        return True

    def require_configured(self) -> None:
        """
        Raises:
            IntegrationError: Credentials or endpoint missing
        """
        if not self.is_configured:
            raise IntegrationError(f"{self.service_name} is not configured", service=self.service_name)

    def log_operation(self, operation: str) -> LogContext:
        return LogContext(self.logger, f"[{self.service_name}] {operation}")

    def safe_execute(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> ServiceResult:
        """Run func inside a timed log block and wrap the outcome in a ServiceResult."""
        try:
            with self.log_operation(operation):
                return ServiceResult.ok(func(*args, **kwargs))
        except Exception as e:
            return ServiceResult.from_exception(e)
