"""
Application state provider and its Streamlit session wiring.
"""
from .app_state import AppState, AppLifecycle, generate_registration_code

__all__ = ["AppState", "AppLifecycle", "generate_registration_code"]
