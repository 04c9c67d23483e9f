# =============================================================================
# himas_core/services/sheets_service.py
# Spreadsheet Webhook Export
# =============================================================================
"""
Pushes a flattened patient snapshot to a Google Apps Script web app, which
appends or updates the matching row of the sheet by ``id``.

Fire-and-forget: failures are logged and never reach the caller.
"""

from __future__ import annotations
import threading
from datetime import datetime
from typing import Any, Dict, Optional

import requests

from himas_core.models import Patient
from .base_service import BaseService


def flatten_patient(patient: Patient) -> Dict[str, Any]:
    """One flat row per patient, keyed by the sheet's header names."""
    da = patient.doctor_assessment
    pp = patient.package_proposal
    return {
        "id": patient.id,
        "name": patient.name,
        "entry_date": patient.entry_date,
        "age": patient.age,
        "gender": patient.gender.value,
        "mobile": patient.mobile,
        "occupation": patient.occupation,
        "condition": patient.condition.value,
        "insurance": patient.has_insurance.value,
        "insurance_name": patient.insurance_name or "N/A",
        "source": patient.source,
        # Doctor assessment
        "doctor_code": da.quick_code.value if da else "",
        "pain_severity": da.pain_severity.value if da else "",
        "affordability": da.affordability.value if da else "",
        "readiness": da.conversion_readiness.value if da else "",
        "surgery_date": (da.tentative_surgery_date or "") if da else "",
        "doctor_signature": da.doctor_signature if da else "",
        # Package team
        "proposal_status": pp.status.value if pp else "",
        "decision_pattern": pp.decision_pattern if pp else "",
        "objection": pp.objection_identified if pp else "",
        "strategy": pp.counseling_strategy if pp else "",
        "follow_up": (pp.follow_up_date or "") if pp else "",
        "last_updated": datetime.now().isoformat(),
    }


class SheetsWebhookService(BaseService):
    """
    Usage:
        sheets = SheetsWebhookService(settings.sheets_webhook_url)
        sheets.push_patient(patient)                     # background thread
        sheets.push_patient(patient, background=False)   # returns bool
    """

    service_name = "sheets"

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        super().__init__()
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    def push_patient(self, patient: Patient, background: bool = True) -> bool:
        """
        Send the patient snapshot.

        Returns:
            True when sent (or queued, in background mode)
        """
        if not self.is_configured:
            self.logger.debug("Sheets webhook not configured; skipping export")
            return False

        payload = flatten_patient(patient)
        if background:
            threading.Thread(
                target=self._post,
                args=(payload,),
                daemon=True,
                name=f"SheetsPush[{patient.id}]",
            ).start()
            return True
        return self._post(payload)

    def _post(self, payload: Dict[str, Any]) -> bool:
        try:
            response = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Sheets sync failed for {payload.get('id')}: {e}")
            return False
        self.logger.info(f"Sheets sync: data pushed for {payload.get('name')}")
        return True
