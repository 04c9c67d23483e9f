# =============================================================================
# himas_core/config.py
# Application Settings for Himas Hospital
# =============================================================================
"""
Settings are read from Streamlit secrets when running under Streamlit, and
from environment variables (optionally loaded from a .env file) otherwise.

Expected secrets.toml format:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"
    table = "himas_data"

    [integrations]
    openai_api_key = "sk-..."
    sheets_webhook_url = "https://script.google.com/macros/s/.../exec"
    sendgrid_api_key = "SG...."
    storage_bucket = "prescriptions"
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import logging

from dotenv import load_dotenv

from himas_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent.parent / "local_data" / "himas.db"


@dataclass
class AppSettings:
    """Runtime configuration for the sync layer and its collaborators."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    table_name: str = "himas_data"
    debounce_seconds: float = 1.0
    poll_interval: float = 5.0
    local_db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)

    # Collaborators
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    sheets_webhook_url: Optional[str] = None
    sendgrid_api_key: Optional[str] = None
    sendgrid_sender: str = "auth@himashospital.com"
    storage_bucket: str = "prescriptions"
    otp_ttl_seconds: int = 300

    @property
    def is_remote_configured(self) -> bool:
        """Both the endpoint URL and the access key must be present."""
        return bool(self.supabase_url and self.supabase_key)


def _read_streamlit_secrets() -> Dict[str, Dict[str, Any]]:
    """Return the [supabase] and [integrations] sections, or {} outside Streamlit."""
    try:
        import streamlit as st
        sections = {}
        for name in ("supabase", "integrations"):
            if name in st.secrets:
                sections[name] = dict(st.secrets[name])
        return sections
    except Exception as e:
        # st.secrets raises when no secrets.toml exists
        logger.debug(f"Streamlit secrets not available: {e}")
        return {}


def _positive(value: Any, key: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {value!r}", config_key=key)
    if number <= 0:
        raise ConfigurationError(f"{key} must be positive, got {number}", config_key=key)
    return number


def load_settings(use_secrets: bool = True) -> AppSettings:
    """
    Build AppSettings from Streamlit secrets, falling back to the environment.

    Args:
        use_secrets: Whether to consult st.secrets before the environment

    Returns:
        Populated AppSettings

    Raises:
        ConfigurationError: A numeric setting is not a positive number
    """
    load_dotenv()

    secrets = _read_streamlit_secrets() if use_secrets else {}
    supabase = secrets.get("supabase", {})
    integrations = secrets.get("integrations", {})

    def pick(section: Dict[str, Any], key: str, env_name: str, default=None):
        value = section.get(key)
        if value in (None, ""):
            value = os.getenv(env_name, default)
        return value

    settings = AppSettings(
        supabase_url=pick(supabase, "url", "SUPABASE_URL"),
        supabase_key=pick(supabase, "key", "SUPABASE_KEY"),
        table_name=pick(supabase, "table", "HIMAS_TABLE", "himas_data"),
        debounce_seconds=_positive(pick(supabase, "debounce_seconds", "HIMAS_DEBOUNCE_SECONDS", 1.0), "debounce_seconds"),
        poll_interval=_positive(pick(supabase, "poll_interval", "HIMAS_POLL_INTERVAL", 5.0), "poll_interval"),
        local_db_path=Path(os.getenv("HIMAS_LOCAL_DB", str(DEFAULT_DB_PATH))),
        openai_api_key=pick(integrations, "openai_api_key", "OPENAI_API_KEY"),
        openai_model=pick(integrations, "openai_model", "OPENAI_MODEL", "gpt-4o-mini"),
        sheets_webhook_url=pick(integrations, "sheets_webhook_url", "SHEETS_WEBHOOK_URL"),
        sendgrid_api_key=pick(integrations, "sendgrid_api_key", "SENDGRID_API_KEY"),
        sendgrid_sender=pick(integrations, "sendgrid_sender", "SENDGRID_SENDER", "auth@himashospital.com"),
        storage_bucket=pick(integrations, "storage_bucket", "HIMAS_STORAGE_BUCKET", "prescriptions"),
        otp_ttl_seconds=int(_positive(pick(integrations, "otp_ttl_seconds", "HIMAS_OTP_TTL", 300), "otp_ttl_seconds")),
    )

    if not settings.is_remote_configured:
        logger.warning("Supabase credentials not configured; running against the in-memory row store")

    return settings
