# =============================================================================
# himas_core/models/staff.py
# Staff Directory Records
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from himas_core.errors import ValidationError
from .patient import _coerce_enum, now_iso


class StaffRole(str, Enum):
    """The three dashboards a staff member can sign in to."""
    FRONT_OFFICE = "FRONT_OFFICE"
    DOCTOR = "DOCTOR"
    PACKAGE_TEAM = "PACKAGE_TEAM"


@dataclass
class StaffUser:
    """
    Staff directory entry. Only a bcrypt hash of the password is stored;
    ``mobile`` receives the one-time login code.
    """
    id: str
    name: str
    email: str
    mobile: str
    role: StaffRole
    password_hash: str
    registered_at: str = field(default_factory=now_iso)

    @property
    def email_key(self) -> str:
        return self.email.strip().lower()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StaffUser:
        """
        Build a directory entry from a stored record.

        There is no fallback role; AppState.staff skips records that raise.

        Raises:
            ValidationError: E-mail missing or role missing/unknown
        """
        email = data.get("email")
        if not isinstance(email, str) or not email.strip():
            raise ValidationError("Staff record has no e-mail", field="email")
        role = _coerce_enum(StaffRole, data.get("role"))
        if role is None:
            raise ValidationError(f"Staff record has unknown role {data.get('role')!r}", field="role")

        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            email=email,
            mobile=str(data.get("mobile", "")),
            role=role,
            password_hash=data.get("password_hash", ""),
            registered_at=data.get("registered_at") or now_iso(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "mobile": self.mobile,
            "role": self.role.value,
            "password_hash": self.password_hash,
            "registered_at": self.registered_at,
        }

    def public_dict(self) -> Dict[str, Optional[str]]:
        """Directory view without the credential hash."""
        data = self.to_dict()
        data.pop("password_hash")
        return data
