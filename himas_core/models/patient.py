# =============================================================================
# himas_core/models/patient.py
# Patient Record, Doctor Assessment and Package Proposal
# =============================================================================
"""
Typed views over the JSON records held in the patients collection.

The sync layer stores plain dicts; these dataclasses are built with
``from_dict`` when a dashboard reads a record and flattened back with
``to_dict`` when a mutation writes one. Unknown keys are dropped and
unrecognised enum values and non-numeric amounts fall back to a default
so that one bad record never breaks the whole list.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union
import logging

from himas_core.errors import ValidationError

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)
N = TypeVar("N", int, float)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class InsuranceStatus(str, Enum):
    YES = "Yes"
    NO = "No"
    NOT_SURE = "Not Sure"


class Condition(str, Enum):
    PILES = "Piles"
    FISSURE = "Fissure"
    FISTULA = "Fistula"
    HERNIA = "Hernia"
    GALLSTONES = "Gallstones"
    APPENDIX = "Appendix"
    VARICOSE_VEINS = "Varicose Veins"
    OTHER = "Other"


class SurgeonCode(str, Enum):
    M1 = "M1 - Medication Only"
    S1 = "S1 - Surgery Recommended"


class SurgeryProcedure(str, Enum):
    LAP_CHOLE = "Lap Cholecystectomy"
    LAP_APPENDECTOMY = "Lap Appendectomy"
    LAP_UMBILICAL = "Lap Umbilical Hernioplasty"
    LAP_INGUINAL = "Lap Inguinal Hernioplasty"
    LASER_VARICOSE = "Laser Varicose Veins"
    LASER_PILES = "Laser Piles"
    LASER_PILONIDAL = "Laser Pilonidoplasty"
    LASER_FISTULA = "Laser Fistula + Perianal Abscess"
    LASER_FISSURE = "Laser Fissure"
    STAPLER_HAEMORRHOIDECTOMY = "Stapler Haemorrhoidectomy"
    OTHERS = "Others"


class PainSeverity(str, Enum):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"


class Affordability(str, Enum):
    A1 = "A1 - Basic"
    A2 = "A2 - Mid"
    A3 = "A3 - Premium"


class ConversionReadiness(str, Enum):
    CR1 = "CR1 - Ready"
    CR2 = "CR2 - Needs Push"
    CR3 = "CR3 - Needs Counseling"
    CR4 = "CR4 - Not Ready"


class ProposalStatus(str, Enum):
    PENDING = "Pending Counseling"
    FOLLOW_UP = "Follow Up Scheduled"
    SURGERY_FIXED = "Surgery Fixed"
    SURGERY_LOST = "Surgery Lost"

    @property
    def is_outcome(self) -> bool:
        return self in (ProposalStatus.SURGERY_FIXED, ProposalStatus.SURGERY_LOST)


# Counseling workflow: outcomes are terminal, follow-ups may repeat.
PROPOSAL_TRANSITIONS = {
    ProposalStatus.PENDING: {
        ProposalStatus.PENDING,
        ProposalStatus.FOLLOW_UP,
        ProposalStatus.SURGERY_FIXED,
        ProposalStatus.SURGERY_LOST,
    },
    ProposalStatus.FOLLOW_UP: {
        ProposalStatus.FOLLOW_UP,
        ProposalStatus.SURGERY_FIXED,
        ProposalStatus.SURGERY_LOST,
    },
    ProposalStatus.SURGERY_FIXED: {ProposalStatus.SURGERY_FIXED},
    ProposalStatus.SURGERY_LOST: {ProposalStatus.SURGERY_LOST},
}


def can_transition(current: Optional[ProposalStatus], target: ProposalStatus) -> bool:
    """A patient without a proposal may enter the workflow at any status."""
    if current is None:
        return True
    return target in PROPOSAL_TRANSITIONS[current]


# =============================================================================
# HELPERS
# =============================================================================

def _coerce_enum(enum_cls: Type[E], value: Any, default: Optional[E] = None) -> Optional[E]:
    """Parse an enum by value or member name, falling back to ``default``."""
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        pass
    try:
        return enum_cls[str(value).upper()]
    except KeyError:
        logger.warning(f"Unknown {enum_cls.__name__} value {value!r}; using {default!r}")
        return default


def _coerce_number(cast: Callable[[Any], N], value: Any, label: str, default: Optional[N] = None) -> Optional[N]:
    """Parse a number from a stored record, falling back to ``default``."""
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric {label} {value!r}; using {default!r}")
        return default


def _enum_value(value: Optional[Enum]) -> Optional[str]:
    return value.value if value is not None else None


def _parse_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError("Date of birth must be YYYY-MM-DD", field="dob") from None


def derive_age(dob: Union[str, date, None], today: Optional[date] = None) -> Optional[int]:
    """
    Whole years between ``dob`` and ``today``, clamped to zero.

    The birthday itself counts: DOB 2000-06-15 gives 23 on 2024-06-14 and
    24 on 2024-06-15.

    Raises:
        ValidationError: dob is not an ISO date
    """
    birth = _parse_date(dob)
    if birth is None:
        return None
    today = today or date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return max(age, 0)


def now_iso() -> str:
    return datetime.now().isoformat()


# =============================================================================
# DOCTOR ASSESSMENT
# =============================================================================

@dataclass
class PrescriptionFile:
    """A prescription scan attached to an assessment, stored inline as base64."""
    id: str
    filename: str
    mime_type: str
    content: str
    uploaded_at: str = field(default_factory=now_iso)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PrescriptionFile:
        return cls(
            id=str(data.get("id", "")),
            filename=data.get("filename", ""),
            mime_type=data.get("mime_type", "application/octet-stream"),
            content=data.get("content", ""),
            uploaded_at=data.get("uploaded_at") or now_iso(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "mime_type": self.mime_type,
            "content": self.content,
            "uploaded_at": self.uploaded_at,
        }


@dataclass
class DoctorAssessment:
    """Clinician's evaluation; its presence moves a patient out of the doctor queue."""
    quick_code: SurgeonCode
    pain_severity: PainSeverity
    affordability: Affordability
    conversion_readiness: ConversionReadiness
    doctor_signature: str
    surgery_procedure: Optional[SurgeryProcedure] = None
    other_surgery_name: Optional[str] = None
    tentative_surgery_date: Optional[str] = None
    notes: str = ""
    prescriptions: List[PrescriptionFile] = field(default_factory=list)
    assessed_at: str = field(default_factory=now_iso)

    @property
    def recommends_surgery(self) -> bool:
        return self.quick_code == SurgeonCode.S1

    @property
    def procedure_label(self) -> Optional[str]:
        """Free-text name wins when the procedure is 'Others'."""
        if self.surgery_procedure == SurgeryProcedure.OTHERS and self.other_surgery_name:
            return self.other_surgery_name
        return _enum_value(self.surgery_procedure)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DoctorAssessment:
        return cls(
            quick_code=_coerce_enum(SurgeonCode, data.get("quick_code"), SurgeonCode.M1),
            pain_severity=_coerce_enum(PainSeverity, data.get("pain_severity"), PainSeverity.LOW),
            affordability=_coerce_enum(Affordability, data.get("affordability"), Affordability.A1),
            conversion_readiness=_coerce_enum(
                ConversionReadiness, data.get("conversion_readiness"), ConversionReadiness.CR4
            ),
            doctor_signature=data.get("doctor_signature", ""),
            surgery_procedure=_coerce_enum(SurgeryProcedure, data.get("surgery_procedure")),
            other_surgery_name=data.get("other_surgery_name"),
            tentative_surgery_date=data.get("tentative_surgery_date"),
            notes=data.get("notes", ""),
            prescriptions=[PrescriptionFile.from_dict(p) for p in data.get("prescriptions") or []],
            assessed_at=data.get("assessed_at") or now_iso(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quick_code": _enum_value(self.quick_code),
            "pain_severity": _enum_value(self.pain_severity),
            "affordability": _enum_value(self.affordability),
            "conversion_readiness": _enum_value(self.conversion_readiness),
            "doctor_signature": self.doctor_signature,
            "surgery_procedure": _enum_value(self.surgery_procedure),
            "other_surgery_name": self.other_surgery_name,
            "tentative_surgery_date": self.tentative_surgery_date,
            "notes": self.notes,
            "prescriptions": [p.to_dict() for p in self.prescriptions],
            "assessed_at": self.assessed_at,
        }


# =============================================================================
# PACKAGE PROPOSAL
# =============================================================================

@dataclass
class PackageProposal:
    """Counseling team's package offer and follow-up tracking."""
    status: ProposalStatus = ProposalStatus.PENDING
    decision_pattern: str = ""
    objection_identified: str = ""
    counseling_strategy: str = ""
    follow_up_date: Optional[str] = None
    outcome_date: Optional[str] = None
    package_amount: Optional[float] = None
    payment_mode: Optional[str] = None
    insurance_docs_shared: bool = False
    pre_op_investigation: str = ""
    medicines: str = ""
    icu_charges: str = ""
    room_type: Optional[str] = None
    stay_days: Optional[int] = None
    post_op_follow_up: str = ""
    equipment: List[str] = field(default_factory=list)
    proposal_created_at: str = field(default_factory=now_iso)
    last_follow_up_at: Optional[str] = None

    def __post_init__(self):
        # equipment is a set; keep it ordered for stable payloads
        self.equipment = sorted(set(self.equipment))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PackageProposal:
        amount = data.get("package_amount")
        stay = data.get("stay_days")
        return cls(
            status=_coerce_enum(ProposalStatus, data.get("status"), ProposalStatus.PENDING),
            decision_pattern=data.get("decision_pattern", ""),
            objection_identified=data.get("objection_identified", ""),
            counseling_strategy=data.get("counseling_strategy", ""),
            follow_up_date=data.get("follow_up_date"),
            outcome_date=data.get("outcome_date"),
            package_amount=_coerce_number(float, amount, "package_amount"),
            payment_mode=data.get("payment_mode"),
            insurance_docs_shared=bool(data.get("insurance_docs_shared", False)),
            pre_op_investigation=data.get("pre_op_investigation", ""),
            medicines=data.get("medicines", ""),
            icu_charges=data.get("icu_charges", ""),
            room_type=data.get("room_type"),
            stay_days=_coerce_number(int, stay, "stay_days"),
            post_op_follow_up=data.get("post_op_follow_up", ""),
            equipment=list(data.get("equipment") or []),
            proposal_created_at=data.get("proposal_created_at") or now_iso(),
            last_follow_up_at=data.get("last_follow_up_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": _enum_value(self.status),
            "decision_pattern": self.decision_pattern,
            "objection_identified": self.objection_identified,
            "counseling_strategy": self.counseling_strategy,
            "follow_up_date": self.follow_up_date,
            "outcome_date": self.outcome_date,
            "package_amount": self.package_amount,
            "payment_mode": self.payment_mode,
            "insurance_docs_shared": self.insurance_docs_shared,
            "pre_op_investigation": self.pre_op_investigation,
            "medicines": self.medicines,
            "icu_charges": self.icu_charges,
            "room_type": self.room_type,
            "stay_days": self.stay_days,
            "post_op_follow_up": self.post_op_follow_up,
            "equipment": list(self.equipment),
            "proposal_created_at": self.proposal_created_at,
            "last_follow_up_at": self.last_follow_up_at,
        }


# =============================================================================
# PATIENT
# =============================================================================

@dataclass
class Patient:
    """
    Front-desk intake record. ``id`` is the file registration number and is
    compared case-insensitively; it is stored upper-cased.
    """
    id: str
    name: str
    mobile: str
    gender: Gender = Gender.MALE
    age: int = 0
    dob: Optional[str] = None
    occupation: str = ""
    has_insurance: InsuranceStatus = InsuranceStatus.NO
    insurance_name: Optional[str] = None
    source: str = ""
    source_doctor_name: Optional[str] = None
    condition: Condition = Condition.OTHER
    entry_date: str = field(default_factory=lambda: date.today().isoformat())
    created_at: str = field(default_factory=now_iso)
    hospital_id: Optional[str] = None
    doctor_assessment: Optional[DoctorAssessment] = None
    package_proposal: Optional[PackageProposal] = None
    is_follow_up_visit: bool = False
    last_follow_up_visit_date: Optional[str] = None

    def __post_init__(self):
        self.age = max(_coerce_number(int, self.age, "age", 0), 0)
        if self.has_insurance != InsuranceStatus.YES:
            self.insurance_name = None

    @property
    def in_counseling_queue(self) -> bool:
        """Only surgery-recommended patients go on to package counseling."""
        return self.doctor_assessment is not None and self.doctor_assessment.recommends_surgery

    def with_dob(self, dob: Optional[str], today: Optional[date] = None) -> Patient:
        """Copy with a new DOB and the age recomputed from it."""
        age = derive_age(dob, today)
        return replace(self, dob=dob, age=self.age if age is None else age)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Patient:
        assessment = data.get("doctor_assessment")
        proposal = data.get("package_proposal")
        return cls(
            id=str(data.get("id", "")).strip().upper(),
            name=data.get("name", ""),
            mobile=str(data.get("mobile", "")),
            gender=_coerce_enum(Gender, data.get("gender"), Gender.OTHER),
            age=data.get("age") or 0,
            dob=data.get("dob") or None,
            occupation=data.get("occupation", ""),
            has_insurance=_coerce_enum(InsuranceStatus, data.get("has_insurance"), InsuranceStatus.NOT_SURE),
            insurance_name=data.get("insurance_name"),
            source=data.get("source", ""),
            source_doctor_name=data.get("source_doctor_name"),
            condition=_coerce_enum(Condition, data.get("condition"), Condition.OTHER),
            entry_date=data.get("entry_date") or str(data.get("created_at") or now_iso())[:10],
            created_at=data.get("created_at") or now_iso(),
            hospital_id=data.get("hospital_id"),
            doctor_assessment=DoctorAssessment.from_dict(assessment) if isinstance(assessment, dict) else None,
            package_proposal=PackageProposal.from_dict(proposal) if isinstance(proposal, dict) else None,
            is_follow_up_visit=bool(data.get("is_follow_up_visit", False)),
            last_follow_up_visit_date=data.get("last_follow_up_visit_date"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mobile": self.mobile,
            "gender": _enum_value(self.gender),
            "age": self.age,
            "dob": self.dob,
            "occupation": self.occupation,
            "has_insurance": _enum_value(self.has_insurance),
            "insurance_name": self.insurance_name,
            "source": self.source,
            "source_doctor_name": self.source_doctor_name,
            "condition": _enum_value(self.condition),
            "entry_date": self.entry_date,
            "created_at": self.created_at,
            "hospital_id": self.hospital_id,
            "doctor_assessment": self.doctor_assessment.to_dict() if self.doctor_assessment else None,
            "package_proposal": self.package_proposal.to_dict() if self.package_proposal else None,
            "is_follow_up_visit": self.is_follow_up_visit,
            "last_follow_up_visit_date": self.last_follow_up_visit_date,
        }
