# =============================================================================
# himas_core/auth/__init__.py
# Staff Login: Password + One-Time Code
# =============================================================================

from .passwords import (
    hash_password,
    verify_password,
    find_staff_by_email,
    authenticate_staff,
)

from .otp import (
    OtpChannel,
    OtpChallenge,
    generate_code,
)

__all__ = [
    "hash_password",
    "verify_password",
    "find_staff_by_email",
    "authenticate_staff",
    "OtpChannel",
    "OtpChallenge",
    "generate_code",
]
