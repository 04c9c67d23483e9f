# =============================================================================
# himas_core/logging/config.py
# Logging Configuration for Himas Hospital
# =============================================================================
"""
Streamlit re-executes the entry script on every interaction, so
setup_logging() is idempotent: the first call installs handlers, later calls
only adjust the level.

The level comes from the ``level`` argument, else the HIMAS_LOG_LEVEL
environment variable, else INFO.
"""

import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_DIR = Path("logs")

# HTTP clients log every request at INFO
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "supabase", "postgrest", "openai")

_configured = False


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.getenv("HIMAS_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        value = logging.getLevelName(level.upper())
        return value if isinstance(value, int) else logging.INFO
    return level


def setup_logging(
    level: Union[int, str, None] = None,
    log_to_file: bool = False,
    log_dir: Path = LOG_DIR,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level name or number
        log_to_file: Also write to log_dir/himas_YYYY-MM-DD.log
        log_dir: Directory for the daily log file
    """
    global _configured
    resolved = _resolve_level(level)

    if _configured:
        logging.getLogger().setLevel(resolved)
        return

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / f"himas_{datetime.now():%Y-%m-%d}.log"))

    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    logging.getLogger("himas_core").info(f"Logging initialized at {logging.getLevelName(resolved)}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Usage:
        from himas_core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


class LogContext:
    """
    Times a block and logs how it ended.

    Usage:
        with LogContext(logger, "Loading patients"):
            engine.load("patients")
        # "Loading patients... done in 42 ms"
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.elapsed_ms: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.debug(f"{self.operation}...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
        if exc_type is None:
            self.logger.log(self.level, f"{self.operation}... done in {self.elapsed_ms:.0f} ms")
        else:
            self.logger.warning(f"{self.operation}... failed after {self.elapsed_ms:.0f} ms: {exc_val}")
        return False
