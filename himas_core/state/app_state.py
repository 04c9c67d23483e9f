# =============================================================================
# himas_core/state/app_state.py
# Application State Provider for Himas Hospital
# =============================================================================
"""
AppState - the object the dashboards talk to.

It owns the SyncEngine and exposes the two synchronized collections as
typed records, the mutation API, and the coarse save status. Every
mutation works on the in-memory collection and returns immediately; the
engine persists it after the debounce window.

Lifecycle:
    INIT      constructed; staff directory loads on start()
    ACTIVE    a staff role is set; patients are loaded and editable
    TEARDOWN  logout in progress; patient data is being cleared
"""

from __future__ import annotations
import secrets
import string
import threading
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from himas_core.auth import authenticate_staff, hash_password
from himas_core.errors import (
    AuthenticationError,
    DuplicateRecordError,
    RecordNotFoundError,
    ValidationError,
)
from himas_core.logging import LogContext, get_logger
from himas_core.models import (
    DoctorAssessment,
    PackageProposal,
    Patient,
    ProposalStatus,
    StaffRole,
    StaffUser,
    can_transition,
)
from himas_core.models.patient import _coerce_enum, now_iso
from himas_core.offline import (
    PATIENTS,
    ROLE_KEY,
    STAFF,
    LocalCache,
    PushScheduler,
    RemoteStore,
    SaveStatus,
    SyncEngine,
)

logger = get_logger(__name__)

CODE_PREFIX = "HMS-"
CODE_ALPHABET = string.ascii_uppercase + string.digits


class AppLifecycle(Enum):
    INIT = "init"
    ACTIVE = "active"
    TEARDOWN = "teardown"


def generate_registration_code(length: int = 6) -> str:
    """Short random file registration number, e.g. HMS-7QX2KD."""
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _required(value: Optional[str], field_name: str, label: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{label} is required", field=field_name)
    return text


class AppState:
    """
    Application state provider.

    Usage:
        state = AppState(remote, cache)
        state.start()                          # staff directory, restore role
        state.begin_session(StaffRole.DOCTOR)  # loads patients
        state.create_patient({"name": "A", "mobile": "9000000000"})
        state.end_session()                    # logout
    """

    def __init__(
        self,
        remote: Optional[RemoteStore],
        cache: LocalCache,
        debounce_seconds: float = 1.0,
        scheduler: Optional[PushScheduler] = None,
        hospital_id: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ):
        self.cache = cache
        self.hospital_id = hospital_id
        self._today = today
        self._role: Optional[StaffRole] = None
        self._lock = threading.RLock()
        self.lifecycle = AppLifecycle.INIT
        self.engine = SyncEngine(
            remote,
            cache,
            debounce_seconds=debounce_seconds,
            session_active=lambda: self._role is not None,
            scheduler=scheduler,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def role(self) -> Optional[StaffRole]:
        return self._role

    @property
    def is_active(self) -> bool:
        return self.lifecycle is AppLifecycle.ACTIVE

    def start(self) -> None:
        """Subscribe to changes, load the staff directory, restore a saved role."""
        self.engine.start()
        self.engine.load(STAFF)

        saved = self.cache.get(ROLE_KEY)
        role = _coerce_enum(StaffRole, saved) if saved else None
        if role is not None:
            logger.info(f"Restoring {role.value} session")
            self.begin_session(role)

    def begin_session(self, role: Union[StaffRole, str]) -> None:
        """Set the signed-in role and load the patients collection."""
        role = _coerce_enum(StaffRole, role)
        if role is None:
            raise AuthenticationError("Unknown staff role")
        with self._lock:
            self._role = role
            self.lifecycle = AppLifecycle.ACTIVE
        self.cache.set(ROLE_KEY, role.value)
        with LogContext(logger, f"Loading patients for {role.value} session"):
            self.engine.load(PATIENTS)

    def end_session(self) -> None:
        """Logout: forget the role and clear patient data from memory and cache."""
        with self._lock:
            self.lifecycle = AppLifecycle.TEARDOWN
            self._role = None
            self.engine.clear(PATIENTS)
            self.cache.remove(ROLE_KEY)
            self.lifecycle = AppLifecycle.INIT
        logger.info("Session ended")

    def shutdown(self) -> None:
        """Flush pending pushes and stop listening for remote changes."""
        self.engine.stop(flush=True)

    def authenticate(self, email: str, password: str) -> StaffUser:
        """Password check against the staff directory."""
        return authenticate_staff(self.staff, email, password)

    # =========================================================================
    # READ SIDE
    # =========================================================================

    def _records(self, key: str, parse: Callable[[Dict[str, Any]], Any]) -> List[Any]:
        """Parse a collection, skipping (and logging) records that cannot be read."""
        records = []
        for item in self.engine.items(key):
            if not isinstance(item, dict):
                logger.warning(f"Skipping non-object entry in {key}: {type(item).__name__}")
                continue
            try:
                records.append(parse(item))
            except (ValidationError, AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed {key} record {item.get('id')!r}: {e}")
        return records

    @property
    def patients(self) -> List[Patient]:
        return self._records(PATIENTS, Patient.from_dict)

    @property
    def staff(self) -> List[StaffUser]:
        return self._records(STAFF, StaffUser.from_dict)

    @property
    def save_status(self) -> Optional[SaveStatus]:
        return self.engine.status(PATIENTS)

    @property
    def last_synced_at(self) -> Optional[datetime]:
        return self.engine.state(PATIENTS).last_synced_at

    @property
    def last_error(self) -> Optional[str]:
        return self.engine.state(PATIENTS).last_error

    @property
    def is_loading(self) -> bool:
        return self.engine.state(PATIENTS).loading

    @property
    def is_staff_loaded(self) -> bool:
        return self.engine.state(STAFF).loaded

    def clear_error(self) -> None:
        self.engine.state(PATIENTS).last_error = None

    def get_patient_by_id(self, patient_id: str) -> Optional[Patient]:
        key = (patient_id or "").strip().upper()
        for patient in self.patients:
            if patient.id == key:
                return patient
        return None

    def counseling_queue(self) -> List[Patient]:
        """Surgery-recommended patients, in collection order."""
        return [p for p in self.patients if p.in_counseling_queue]

    def pending_assessment(self) -> List[Patient]:
        """Patients the doctor has not seen yet."""
        return [p for p in self.patients if p.doctor_assessment is None]

    # =========================================================================
    # PATIENT MUTATIONS
    # =========================================================================

    def _require_session(self) -> None:
        if not self.is_active:
            raise AuthenticationError("Sign in before changing patient records")

    def _patient_dicts(self) -> List[Dict[str, Any]]:
        return self.engine.items(PATIENTS)

    def _index_of(self, items: List[Dict[str, Any]], patient_id: str) -> int:
        key = (patient_id or "").strip().upper()
        for i, item in enumerate(items):
            if str(item.get("id", "")).strip().upper() == key:
                return i
        raise RecordNotFoundError(f"Patient {patient_id} not found", record_id=patient_id)

    def create_patient(self, draft: Union[Patient, Dict[str, Any]]) -> Patient:
        """
        Register a patient at the front desk.

        A blank registration code is replaced by a generated one. The new
        record goes to the top of the list.

        Raises:
            ValidationError: Name or mobile missing
            DuplicateRecordError: Registration code already in use
        """
        self._require_session()
        patient = draft if isinstance(draft, Patient) else Patient.from_dict(draft)
        patient.name = _required(patient.name, "name", "Patient name")
        patient.mobile = _required(patient.mobile, "mobile", "Mobile number")

        with self._lock:
            items = self._patient_dicts()
            taken = {str(item.get("id", "")).strip().upper() for item in items}

            code = (patient.id or "").strip().upper()
            if not code:
                code = generate_registration_code()
                while code in taken:
                    code = generate_registration_code()
            elif code in taken:
                raise DuplicateRecordError(
                    f'Patient File ID "{code}" is already registered.',
                    field="id",
                    value=code,
                )

            patient.id = code
            patient.created_at = now_iso()
            if patient.hospital_id is None:
                patient.hospital_id = self.hospital_id
            if patient.dob:
                patient = patient.with_dob(patient.dob, self._today())

            self.engine.commit(PATIENTS, [patient.to_dict()] + items)

        logger.info(f"Registered patient {patient.id}")
        return patient

    def update_patient(self, patient: Patient) -> Patient:
        """Replace the record with the same id. Age follows DOB when one is set."""
        self._require_session()
        if patient.dob:
            patient = patient.with_dob(patient.dob, self._today())
        with self._lock:
            items = self._patient_dicts()
            index = self._index_of(items, patient.id)
            items[index] = patient.to_dict()
            self.engine.commit(PATIENTS, items)
        return patient

    def delete_patient(self, patient_id: str) -> bool:
        """Remove a patient. Returns False (and changes nothing) if absent."""
        self._require_session()
        with self._lock:
            items = self._patient_dicts()
            try:
                index = self._index_of(items, patient_id)
            except RecordNotFoundError:
                logger.debug(f"Delete of unknown patient {patient_id} ignored")
                return False
            del items[index]
            self.engine.commit(PATIENTS, items)
        logger.info(f"Deleted patient {patient_id}")
        return True

    def update_doctor_assessment(self, patient_id: str, assessment: DoctorAssessment) -> Patient:
        """Attach or replace the doctor's assessment."""
        self._require_session()
        assessment.doctor_signature = _required(
            assessment.doctor_signature, "doctor_signature", "Doctor signature"
        )
        with self._lock:
            items = self._patient_dicts()
            index = self._index_of(items, patient_id)
            patient = Patient.from_dict(items[index])
            patient.doctor_assessment = assessment
            items[index] = patient.to_dict()
            self.engine.commit(PATIENTS, items)
        return patient

    def update_package_proposal(self, patient_id: str, proposal: PackageProposal) -> Patient:
        """
        Attach or replace the counseling proposal.

        Only surgery-recommended patients can have one, and the status must
        follow the counseling workflow (see PROPOSAL_TRANSITIONS).
        """
        self._require_session()
        with self._lock:
            items = self._patient_dicts()
            index = self._index_of(items, patient_id)
            patient = Patient.from_dict(items[index])

            if not patient.in_counseling_queue:
                raise ValidationError(
                    f"Patient {patient.id} has no surgery recommendation",
                    field="doctor_assessment",
                )
            current = patient.package_proposal.status if patient.package_proposal else None
            if not can_transition(current, proposal.status):
                raise ValidationError(
                    f"Cannot move proposal from {current.value} to {proposal.status.value}",
                    field="status",
                )

            if proposal.status.is_outcome and not proposal.outcome_date:
                proposal.outcome_date = self._today().isoformat()
            if proposal.status is ProposalStatus.FOLLOW_UP:
                proposal.last_follow_up_at = now_iso()

            patient.package_proposal = proposal
            items[index] = patient.to_dict()
            self.engine.commit(PATIENTS, items)
        return patient

    # =========================================================================
    # STAFF
    # =========================================================================

    def register_staff(
        self,
        name: str,
        email: str,
        mobile: str,
        role: Union[StaffRole, str],
        password: str,
    ) -> StaffUser:
        """
        Add a staff member to the directory.

        Raises:
            ValidationError: Missing field or unknown role
            DuplicateRecordError: E-mail already registered (case-insensitive)
        """
        name = _required(name, "name", "Name")
        email = _required(email, "email", "E-mail")
        mobile = _required(mobile, "mobile", "Mobile number")
        if not password:
            raise ValidationError("Password is required", field="password")
        staff_role = _coerce_enum(StaffRole, role)
        if staff_role is None:
            raise ValidationError(f"Unknown role {role!r}", field="role")

        with self._lock:
            items = self.engine.items(STAFF)
            key = email.lower()
            if any(str(item.get("email", "")).strip().lower() == key for item in items):
                raise DuplicateRecordError(
                    f"{email} is already registered", field="email", value=email
                )

            user = StaffUser(
                id=uuid.uuid4().hex,
                name=name,
                email=email,
                mobile=mobile,
                role=staff_role,
                password_hash=hash_password(password),
            )
            self.engine.commit(STAFF, items + [user.to_dict()])

        logger.info(f"Registered staff {user.email_key} as {staff_role.value}")
        return user

    # =========================================================================
    # SYNC CONTROLS
    # =========================================================================

    def refresh(self) -> None:
        """Re-run the patient load (the retry action after an error)."""
        self.engine.force_refresh()

    def force_stop_loading(self) -> None:
        self.engine.force_stop_loading()

    def get_status_display(self) -> Dict[str, Any]:
        status = self.engine.get_status_display()
        status["role"] = self._role.value if self._role else None
        status["lifecycle"] = self.lifecycle.value
        return status
