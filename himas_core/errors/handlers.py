# =============================================================================
# himas_core/errors/handlers.py
# Error Handling Utilities for Himas Hospital
# =============================================================================
"""
Turning exceptions into user feedback.

Nothing in the sync layer is fatal: remote problems mean the app keeps
working from the local cache, validation problems mean the form is shown
again. These helpers log every error and, when a Streamlit script is
running, tell the user in the matching tone.
"""

from __future__ import annotations
import functools
from typing import Any, Callable, Optional, TypeVar

import streamlit as st
from streamlit import runtime

from himas_core.logging import get_logger
from .exceptions import HimasError

logger = get_logger(__name__)

T = TypeVar("T")


def _ui_available() -> bool:
    """True inside `streamlit run`; False in tests and scripts."""
    return runtime.exists()


def user_message_for(error: Exception) -> str:
    """Text shown to staff for an error."""
    if not isinstance(error, HimasError):
        return "Something went wrong. Please try again."
    if error.code.startswith("SYNC_"):
        return f"Working from local data: {error.message}"
    return error.message


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Log an error and, in a running app, show it.

    Validation and sync errors are warnings; everything else is an error
    box. Details are only shown in debug mode.
    """
    if isinstance(error, HimasError):
        logger.warning(f"[{error.code}] {error.message}", extra={"details": error.details})
    else:
        logger.error(f"Unexpected {type(error).__name__}: {error}", exc_info=error)

    if not (show_user_message and _ui_available()):
        return

    message = user_message or user_message_for(error)
    if isinstance(error, HimasError) and error.recoverable:
        st.warning(message)
    else:
        st.error(message)

    if isinstance(error, HimasError) and error.details and st.session_state.get("debug_mode", False):
        with st.expander("Error Details", expanded=False):
            st.json(error.to_dict())


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    **kwargs,
) -> Optional[T]:
    """
    Call func, reporting any exception and returning ``default`` instead.

    Usage:
        sent = safe_execute(challenge.issue, user.mobile, default=False)
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, user_message=error_message)
        return default


class ErrorContext:
    """
    Wraps a UI action.

    Recoverable HimasErrors are reported and swallowed; anything else is
    reported and re-raised.

    Usage:
        with ErrorContext("Saving doctor assessment", success_message="Saved"):
            app_state.update_doctor_assessment(patient_id, assessment)
    """

    def __init__(self, operation: str, success_message: Optional[str] = None):
        self.operation = operation
        self.success_message = success_message
        self.error: Optional[BaseException] = None

    def __enter__(self) -> ErrorContext:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"{self.operation}: ok")
            if self.success_message and _ui_available():
                st.success(self.success_message)
            return False

        if not isinstance(exc_val, Exception):
            return False

        self.error = exc_val
        if isinstance(exc_val, HimasError):
            handle_error(exc_val)
            return exc_val.recoverable
        handle_error(exc_val, user_message=f"{self.operation} failed")
        return False


def error_boundary(default_return: Any = None, error_message: Optional[str] = None):
    """
    Decorator form of safe_execute for render helpers.

    Usage:
        @error_boundary(error_message="Export unavailable")
        def render_export(patients): ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            return safe_execute(func, *args, default=default_return, error_message=error_message, **kwargs)

        return wrapper

    return decorator
