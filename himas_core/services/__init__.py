# =============================================================================
# himas_core/services/__init__.py
# Collaborator Services for Himas Hospital
# =============================================================================
"""
Third-party collaborators used by the dashboards. None of them touch the
synchronized collections; they only read the records handed to them.

Usage Example:
-------------
    from himas_core.services import StrategyService, SheetsWebhookService

    strategy = StrategyService(api_key=settings.openai_api_key)
    text = strategy.generate_counseling_strategy(patient)

    SheetsWebhookService(settings.sheets_webhook_url).push_patient(patient)
"""

from .base_service import BaseService, ServiceResult
from .strategy_service import StrategyService, FALLBACK_STRATEGY
from .notification_service import SmsOtpChannel, EmailOtpChannel
from .sheets_service import SheetsWebhookService, flatten_patient
from .blob_service import BlobService

__all__ = [
    # Base classes
    "BaseService",
    "ServiceResult",
    # AI strategy
    "StrategyService",
    "FALLBACK_STRATEGY",
    # OTP delivery
    "SmsOtpChannel",
    "EmailOtpChannel",
    # Spreadsheet export
    "SheetsWebhookService",
    "flatten_patient",
    # File upload
    "BlobService",
]
