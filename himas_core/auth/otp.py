# =============================================================================
# himas_core/auth/otp.py
# One-Time Code Second Factor
# =============================================================================
"""
OtpChallenge - issues a 6-digit code over an OtpChannel and verifies it.

Usage:
    challenge = OtpChallenge(SmsOtpChannel())
    challenge.issue(user.mobile)
    ...
    challenge.verify(code_from_form)   # True once, then the challenge is spent
"""

from __future__ import annotations
import hmac
import secrets
import time
from typing import Callable, Optional, Protocol
import logging

from himas_core.errors import AuthenticationError

logger = logging.getLogger(__name__)

OTP_LENGTH = 6
MAX_ATTEMPTS = 5


class OtpChannel(Protocol):
    """Delivery channel: (destination, code) -> whether the code was sent."""

    def send(self, destination: str, code: str) -> bool:
        ...


def generate_code(length: int = OTP_LENGTH) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


class OtpChallenge:
    """A single pending one-time code for one destination."""

    def __init__(
        self,
        channel: OtpChannel,
        ttl_seconds: int = 300,
        max_attempts: int = MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channel = channel
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self._clock = clock
        self._code: Optional[str] = None
        self._issued_at: Optional[float] = None
        self.destination: Optional[str] = None
        self.attempts = 0

    @property
    def is_pending(self) -> bool:
        return self._code is not None and not self.is_expired

    @property
    def is_expired(self) -> bool:
        if self._issued_at is None:
            return True
        return self._clock() - self._issued_at > self.ttl_seconds

    def issue(self, destination: str) -> bool:
        """
        Generate a fresh code and send it. Any earlier code is invalidated.

        Returns:
            True if the channel reported the code as sent
        """
        if not destination:
            raise AuthenticationError("No destination registered for one-time code")

        self._code = generate_code()
        self._issued_at = self._clock()
        self.destination = destination
        self.attempts = 0

        sent = self.channel.send(destination, self._code)
        if not sent:
            logger.warning(f"One-time code could not be delivered to {destination}")
        return sent

    def verify(self, code: str) -> bool:
        """
        Check a submitted code.

        Raises:
            AuthenticationError: No code pending, code expired, or too many attempts
        """
        if self._code is None:
            raise AuthenticationError("No one-time code has been issued")
        if self.is_expired:
            self.reset()
            raise AuthenticationError("One-time code expired, request a new one")
        if self.attempts >= self.max_attempts:
            self.reset()
            raise AuthenticationError("Too many attempts, request a new code")

        self.attempts += 1
        if hmac.compare_digest((code or "").strip(), self._code):
            self.reset()
            return True
        return False

    def reset(self) -> None:
        self._code = None
        self._issued_at = None
        self.attempts = 0
