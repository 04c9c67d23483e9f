# =============================================================================
# himas_core/state/session.py
# Streamlit Session Wiring for AppState
# =============================================================================

from __future__ import annotations
from typing import Optional

import streamlit as st

from himas_core.config import AppSettings, load_settings
from himas_core.data.supabase_client import build_row_store, get_cached_supabase_client
from himas_core.offline import get_local_cache
from himas_core.state.app_state import AppState

# Central registry for session-state keys used across the app.
SESSION_DEFAULTS = {
    "app_state": None,
    "otp_challenge": None,
    "pending_user": None,
    "debug_mode": False,
}


def init_state() -> None:
    """Initialize session state with defaults."""
    for k, v in SESSION_DEFAULTS.items():
        if k not in st.session_state:
            st.session_state[k] = v


def get_app_state(settings: Optional[AppSettings] = None) -> AppState:
    """
    AppState for the current browser session, created and started on first use.
    """
    init_state()
    state = st.session_state["app_state"]
    if state is None:
        settings = settings or load_settings()
        client = get_cached_supabase_client() if settings.is_remote_configured else None
        state = AppState(
            build_row_store(settings, client),
            get_local_cache(settings.local_db_path),
            debounce_seconds=settings.debounce_seconds,
        )
        state.start()
        st.session_state["app_state"] = state
    return state


def clear_login_flow() -> None:
    """Drop any half-finished login (pending user, outstanding code)."""
    st.session_state["otp_challenge"] = None
    st.session_state["pending_user"] = None
