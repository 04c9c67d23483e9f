# =============================================================================
# tests/unit/test_auth.py
# Unit Tests for Staff Login
# =============================================================================

import pytest

from himas_core.auth import (
    OtpChallenge,
    authenticate_staff,
    generate_code,
    hash_password,
    verify_password,
)
from himas_core.errors import AuthenticationError
from himas_core.models import StaffRole, StaffUser


class RecordingChannel:
    """OtpChannel that remembers what it was asked to send"""

    def __init__(self, succeed=True):
        self.sent = []
        self.succeed = succeed

    def send(self, destination, code):
        self.sent.append((destination, code))
        return self.succeed


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def staff():
    return [
        StaffUser(
            id="u1", name="Dr. Rao", email="Doctor@Himas.com", mobile="9000000001",
            role=StaffRole.DOCTOR, password_hash=hash_password("Doctor8419@"),
        ),
        StaffUser(
            id="u2", name="Front Desk", email="office@himas.com", mobile="9000000002",
            role=StaffRole.FRONT_OFFICE, password_hash="not-a-bcrypt-hash",
        ),
    ]


class TestPasswords:
    """Test bcrypt hashing"""

    def test_hash_is_salted_and_verifies(self):
        """Same password, different hashes, both verify"""
        first = hash_password("secret")
        second = hash_password("secret")

        assert first != second
        assert first.startswith("$2")
        assert verify_password("secret", first)
        assert not verify_password("Secret", first)

    def test_malformed_hash_never_matches(self):
        """Stored plaintext or junk is rejected rather than compared"""
        assert not verify_password("secret", "secret")
        assert not verify_password("", hash_password("x"))


class TestAuthenticateStaff:
    """Test the password factor against the staff directory"""

    def test_email_is_case_insensitive(self, staff):
        """Login e-mail matches regardless of case"""
        user = authenticate_staff(staff, " doctor@HIMAS.com ", "Doctor8419@")

        assert user.id == "u1"

    def test_wrong_password_rejected(self, staff):
        """Bad password raises AuthenticationError"""
        with pytest.raises(AuthenticationError):
            authenticate_staff(staff, "doctor@himas.com", "wrong")

    def test_unknown_email_rejected(self, staff):
        """Unknown e-mail gets the same error"""
        with pytest.raises(AuthenticationError) as exc:
            authenticate_staff(staff, "nobody@himas.com", "Doctor8419@")

        assert exc.value.code == "AUTH_001"

    def test_legacy_plaintext_password_rejected(self, staff):
        """A record holding a non-bcrypt value cannot log in"""
        with pytest.raises(AuthenticationError):
            authenticate_staff(staff, "office@himas.com", "not-a-bcrypt-hash")


class TestOtpChallenge:
    """Test the one-time code second factor"""

    def test_generated_code_is_six_digits(self):
        """Codes are numeric and fixed length"""
        code = generate_code()

        assert len(code) == 6
        assert code.isdigit()

    def test_issue_and_verify(self):
        """The sent code verifies once"""
        channel = RecordingChannel()
        challenge = OtpChallenge(channel)

        assert challenge.issue("9000000001")
        destination, code = channel.sent[0]

        assert destination == "9000000001"
        assert challenge.verify(code)
        with pytest.raises(AuthenticationError):
            challenge.verify(code)

    def test_wrong_code_counts_attempts(self):
        """Wrong codes fail until the attempt limit is hit"""
        channel = RecordingChannel()
        challenge = OtpChallenge(channel, max_attempts=2)
        challenge.issue("9000000001")
        code = channel.sent[0][1]
        wrong = "000000" if code != "000000" else "111111"

        assert not challenge.verify(wrong)
        assert not challenge.verify(wrong)
        with pytest.raises(AuthenticationError):
            challenge.verify(code)

    def test_expired_code_rejected(self):
        """Codes older than the TTL are refused"""
        clock = FakeClock()
        channel = RecordingChannel()
        challenge = OtpChallenge(channel, ttl_seconds=300, clock=clock)
        challenge.issue("9000000001")

        clock.now += 301

        assert not challenge.is_pending
        with pytest.raises(AuthenticationError):
            challenge.verify(channel.sent[0][1])

    def test_reissue_invalidates_previous_code(self):
        """Only the latest code is accepted"""
        channel = RecordingChannel()
        challenge = OtpChallenge(channel)
        challenge.issue("9000000001")
        challenge.issue("9000000001")
        old, new = channel.sent[0][1], channel.sent[1][1]

        if old != new:
            assert not challenge.verify(old)
        assert challenge.verify(new)

    def test_failed_delivery_reported(self):
        """Channel failure is returned to the caller"""
        challenge = OtpChallenge(RecordingChannel(succeed=False))

        assert not challenge.issue("9000000001")

    def test_verify_without_issue(self):
        """Verifying before a code exists is an error"""
        with pytest.raises(AuthenticationError):
            OtpChallenge(RecordingChannel()).verify("123456")

    def test_missing_destination(self):
        """A staff member without a mobile cannot receive a code"""
        with pytest.raises(AuthenticationError):
            OtpChallenge(RecordingChannel()).issue("")
