# =============================================================================
# himas_core/offline/push_scheduler.py
# Debounced, Cancellable Push Tasks
# =============================================================================
"""
PushScheduler - one pending timer per collection.

Scheduling a task for a key cancels the task already waiting for that key,
so a burst of edits produces a single push once the quiet window elapses.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class _PendingTask:
    timer: threading.Timer
    task: Callable[[], None]
    token: object


class PushScheduler:
    """
    Usage:
        scheduler = PushScheduler(delay=1.0)
        scheduler.schedule("patients", push_patients)
        scheduler.schedule("patients", push_patients)   # resets the window
        scheduler.flush("patients")                     # run now instead
    """

    def __init__(
        self,
        delay: float = 1.0,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.delay = delay
        self._timer_factory = timer_factory
        self._pending: Dict[str, _PendingTask] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, task: Callable[[], None]) -> None:
        """Cancel any pending task for ``key`` and start a fresh quiet window."""
        with self._lock:
            previous = self._pending.pop(key, None)
            if previous:
                previous.timer.cancel()

            token = object()
            timer = self._timer_factory(self.delay, self._fire, args=(key, token))
            timer.daemon = True
            self._pending[key] = _PendingTask(timer=timer, task=task, token=token)
            timer.start()

    def _fire(self, key: str, token: object) -> None:
        with self._lock:
            entry = self._pending.get(key)
            # A newer schedule() replaced this entry after the timer fired
            if entry is None or entry.token is not token:
                return
            del self._pending[key]
        self._run(key, entry.task)

    def _run(self, key: str, task: Callable[[], None]) -> None:
        try:
            task()
        except Exception as e:
            logger.error(f"Scheduled push for {key} failed: {e}", exc_info=True)

    def cancel(self, key: str) -> bool:
        """Drop the pending task for ``key``. Returns True if one was pending."""
        with self._lock:
            entry = self._pending.pop(key, None)
        if entry:
            entry.timer.cancel()
            return True
        return False

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    def flush(self, key: Optional[str] = None) -> int:
        """
        Run pending tasks immediately instead of waiting for their timers.

        Args:
            key: Only flush this key (default: all keys)

        Returns:
            Number of tasks run
        """
        with self._lock:
            keys = [key] if key is not None else list(self._pending)
            entries = [(k, self._pending.pop(k)) for k in keys if k in self._pending]
        for k, entry in entries:
            entry.timer.cancel()
            self._run(k, entry.task)
        return len(entries)

    def cancel_all(self) -> None:
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()
        for entry in entries:
            entry.timer.cancel()
