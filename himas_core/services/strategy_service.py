# =============================================================================
# himas_core/services/strategy_service.py
# AI Counseling Strategy Suggestions
# =============================================================================
"""
Suggests a short counseling approach for the package team from the patient
profile and the doctor's assessment. Best-effort: any failure returns a
fixed fallback message instead of raising.
"""

from __future__ import annotations
from typing import Optional

import openai

from himas_core.models import Patient
from .base_service import BaseService

FALLBACK_STRATEGY = "AI Strategy unavailable. Please ensure API Key is set."
EMPTY_STRATEGY = "Could not generate strategy."

SYSTEM_PROMPT = """You are an expert medical sales counselor.
Create a brief, empathetic, and effective counseling strategy (max 50 words)
for this patient to help them make a decision about their treatment.
Do NOT use markdown formatting. Just plain text."""


class StrategyService(BaseService):
    """
    Usage:
        service = StrategyService(api_key=settings.openai_api_key)
        text = service.generate_counseling_strategy(patient)
    """

    service_name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o-mini", client=None):
        super().__init__()
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self):
        if self._client is None:
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    @staticmethod
    def build_prompt(patient: Patient) -> str:
        da = patient.doctor_assessment
        return f"""
Patient Profile:
- Name: {patient.name}
- Age: {patient.age}
- Occupation: {patient.occupation or "Unknown"}
- Condition: {patient.condition.value}

Doctor's Assessment:
- Recommendation: {da.quick_code.value if da else "Not assessed"}
- Procedure: {(da.procedure_label or "") if da else ""}
- Pain Level: {da.pain_severity.value if da else ""}
- Affordability: {da.affordability.value if da else ""}
- Readiness: {da.conversion_readiness.value if da else ""}

Provide a specific conversational approach to address their likely concerns
based on readiness and affordability.
"""

    def generate_counseling_strategy(self, patient: Patient) -> str:
        """Strategy text, or FALLBACK_STRATEGY when the model is unreachable."""
        if not self.is_configured:
            self.logger.info("No OpenAI key configured; returning fallback strategy")
            return FALLBACK_STRATEGY

        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_prompt(patient)},
                ],
                max_tokens=120,
                temperature=0.4,
            )
            text = (response.choices[0].message.content or "").strip()
            return text or EMPTY_STRATEGY
        except Exception as e:
            self.logger.error(f"Strategy generation failed for {patient.id}: {e}")
            return FALLBACK_STRATEGY
