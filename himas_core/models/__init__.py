"""
Record types for the patients and staff collections.
"""
from .patient import (
    Gender,
    InsuranceStatus,
    Condition,
    SurgeonCode,
    SurgeryProcedure,
    PainSeverity,
    Affordability,
    ConversionReadiness,
    ProposalStatus,
    PrescriptionFile,
    DoctorAssessment,
    PackageProposal,
    Patient,
    can_transition,
    derive_age,
)
from .staff import StaffRole, StaffUser

__all__ = [
    "Gender",
    "InsuranceStatus",
    "Condition",
    "SurgeonCode",
    "SurgeryProcedure",
    "PainSeverity",
    "Affordability",
    "ConversionReadiness",
    "ProposalStatus",
    "PrescriptionFile",
    "DoctorAssessment",
    "PackageProposal",
    "Patient",
    "can_transition",
    "derive_age",
    "StaffRole",
    "StaffUser",
]
