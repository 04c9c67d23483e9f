# =============================================================================
# himas_core/data/export.py
# Patient Report Export
# =============================================================================
"""
Flat tabular view of the patients collection for CSV download.

One row per patient, with the doctor assessment and package proposal
flattened into columns. Filters mirror the report panel: an inclusive entry
date range, a presenting condition and a treatment category (M1 / S1).
"""

from __future__ import annotations
from datetime import date
from typing import Iterable, List, Optional, Union

import pandas as pd

from himas_core.models import Condition, Patient, SurgeonCode

EXPORT_COLUMNS: List[str] = [
    "File Registration No",
    "Name",
    "DOB",
    "Entry Date (DOP)",
    "Gender",
    "Age",
    "Phone Number",
    "Occupation",
    "Insurance",
    "Insurance Provider",
    "Source",
    "Condition",
    "Doctor Assessed",
    "Surgeon Code",
    "Pain Severity",
    "Affordability",
    "Readiness",
    "Surgery Date",
    "Doctor Signature",
    "Proposal Created",
    "Proposal Status",
    "Decision Pattern",
    "Objection",
    "Strategy",
    "Follow Up Date",
]

TREATMENT_CODES = {"M1": SurgeonCode.M1, "S1": SurgeonCode.S1}


def _to_iso(value: Union[str, date, None]) -> Optional[str]:
    if value is None or value == "":
        return None
    return value.isoformat() if isinstance(value, date) else str(value)[:10]


def _row(p: Patient) -> list:
    da = p.doctor_assessment
    pp = p.package_proposal
    return [
        p.id,
        p.name,
        p.dob or "",
        p.entry_date or "",
        p.gender.value,
        p.age,
        p.mobile,
        p.occupation or "",
        p.has_insurance.value,
        p.insurance_name or "N/A",
        p.source,
        p.condition.value,
        "Yes" if da else "No",
        da.quick_code.value if da else "",
        da.pain_severity.value if da else "",
        da.affordability.value if da else "",
        da.conversion_readiness.value if da else "",
        (da.tentative_surgery_date or "") if da else "",
        da.doctor_signature if da else "",
        "Yes" if pp else "No",
        pp.status.value if pp else "",
        pp.decision_pattern if pp else "",
        pp.objection_identified if pp else "",
        pp.counseling_strategy if pp else "",
        (pp.follow_up_date or "") if pp else "",
    ]


def patients_to_dataframe(
    patients: Iterable[Patient],
    start_date: Union[str, date, None] = None,
    end_date: Union[str, date, None] = None,
    condition: Union[str, Condition, None] = None,
    treatment: Optional[str] = None,
) -> pd.DataFrame:
    """
    Build the report table.

    Args:
        patients: Typed patient records, in collection order
        start_date: Earliest entry date to include (inclusive)
        end_date: Latest entry date to include (inclusive)
        condition: Only this presenting condition ("ALL" or None for any)
        treatment: "M1", "S1", or "ALL"/None

    Returns:
        DataFrame with EXPORT_COLUMNS, collection order preserved
    """
    start = _to_iso(start_date)
    end = _to_iso(end_date)
    condition_value = condition.value if isinstance(condition, Condition) else condition
    if condition_value == "ALL":
        condition_value = None
    code = TREATMENT_CODES.get((treatment or "").upper())

    selected = []
    for p in patients:
        if start and (p.entry_date or "") < start:
            continue
        if end and (p.entry_date or "") > end:
            continue
        if condition_value and p.condition.value != condition_value:
            continue
        if code and (p.doctor_assessment is None or p.doctor_assessment.quick_code != code):
            continue
        selected.append(_row(p))

    return pd.DataFrame(selected, columns=EXPORT_COLUMNS)


def export_csv(patients: Iterable[Patient], **filters) -> str:
    """CSV text of the filtered report, every cell quoted."""
    df = patients_to_dataframe(patients, **filters)
    return df.to_csv(index=False, quoting=1)


def export_filename(condition: Optional[str] = None, treatment: Optional[str] = None, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"himas_report_{condition or 'ALL'}_{treatment or 'ALL'}_{today.isoformat()}.csv"
