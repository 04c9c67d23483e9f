# =============================================================================
# himas_core/services/notification_service.py
# One-Time Code Delivery Channels
# =============================================================================
"""
OtpChannel implementations.

- SmsOtpChannel: no SMS gateway is wired up; the code is written to the log
  so the operator can relay it
- EmailOtpChannel: SendGrid v3 mail send over HTTPS
"""

from __future__ import annotations
from typing import Optional

import requests

from .base_service import BaseService

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class SmsOtpChannel(BaseService):
    """Simulated SMS delivery."""

    service_name = "sms"

    def send(self, destination: str, code: str) -> bool:
        self.logger.info(f"[SMS] Sending OTP {code} to {destination}")
        return True


class EmailOtpChannel(BaseService):
    """
    Usage:
        channel = EmailOtpChannel(api_key=settings.sendgrid_api_key)
        channel.send("doctor@himas.com", "123456")
    """

    service_name = "sendgrid"

    def __init__(
        self,
        api_key: Optional[str],
        sender: str = "auth@himashospital.com",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        super().__init__()
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def build_message(self, destination: str, code: str) -> dict:
        return {
            "personalizations": [{"to": [{"email": destination}]}],
            "from": {"email": self.sender, "name": "Himas Hospital Security"},
            "subject": "Himas Hospital Access Code",
            "content": [
                {
                    "type": "text/plain",
                    "value": (
                        "Your One-Time Password (OTP) for Himas Hospital Management "
                        f"System is: {code}\n\nDo not share this code with anyone."
                    ),
                }
            ],
        }

    def send(self, destination: str, code: str) -> bool:
        if not self.is_configured:
            self.logger.error("SendGrid API key is missing")
            return False

        try:
            response = self.session.post(
                SENDGRID_URL,
                json=self.build_message(destination, code),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"E-mail transport error: {e}")
            return False

        if response.ok:
            self.logger.info(f"OTP e-mail sent to {destination}")
            return True
        self.logger.warning(f"SendGrid API error {response.status_code}: {response.text}")
        return False
