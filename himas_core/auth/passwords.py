# =============================================================================
# himas_core/auth/passwords.py
# Staff Password Hashing and Credential Check
# =============================================================================
"""
Staff passwords are stored as bcrypt hashes in the staff collection.
Raw passwords are never stored or compared.
"""

from __future__ import annotations
from typing import Iterable, Optional
import logging

import bcrypt

from himas_core.errors import AuthenticationError
from himas_core.models import StaffUser

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password to hash

    Returns:
        str: Hashed password

    Example:
        >>> hash_password("mypassword123")
        '$2b$12$...'
    """
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def find_staff_by_email(staff: Iterable[StaffUser], email: str) -> Optional[StaffUser]:
    key = (email or "").strip().lower()
    for user in staff:
        if user.email_key == key:
            return user
    return None


def authenticate_staff(staff: Iterable[StaffUser], email: str, password: str) -> StaffUser:
    """
    First login factor: e-mail (case-insensitive) and password.

    Raises:
        AuthenticationError: Unknown e-mail or wrong password. The message
            does not say which.
    """
    user = find_staff_by_email(staff, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info(f"Rejected login for {email!r}")
        raise AuthenticationError("Invalid e-mail or password")
    logger.info(f"Password accepted for {user.email_key} ({user.role.value})")
    return user
