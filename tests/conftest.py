# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import pytest
from datetime import date
from typing import List
from unittest.mock import MagicMock

from himas_core.errors import RemoteStoreError
from himas_core.offline import (
    InMemoryRowStore,
    LocalCache,
    PushScheduler,
    RemoteRow,
    SyncEngine,
)
from himas_core.state import AppState


# =============================================================================
# TEST DOUBLES
# =============================================================================

class ManualTimer:
    """threading.Timer stand-in that only fires when a test tells it to."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


class RecordingRowStore(InMemoryRowStore):
    """In-memory row store that records calls and can be told to fail."""

    def __init__(self):
        super().__init__()
        self.fetch_calls: List[str] = []
        self.insert_calls: List[str] = []
        self.update_calls: List[str] = []
        self.fail_fetch = False
        self.fail_insert = False
        self.fail_update = False

    def fetch(self, key):
        self.fetch_calls.append(key)
        if self.fail_fetch:
            raise RemoteStoreError("Lookup failed: connection refused", operation="fetch", row_key=key)
        return super().fetch(key)

    def insert(self, key, payload, updated_at):
        self.insert_calls.append(key)
        if self.fail_insert:
            raise RemoteStoreError("Insert failed: permission denied", operation="insert", row_key=key)
        super().insert(key, payload, updated_at)

    def update(self, key, payload, updated_at):
        self.update_calls.append(key)
        if self.fail_update:
            raise RemoteStoreError("Update failed: timeout", operation="update", row_key=key)
        super().update(key, payload, updated_at)

    def seed(self, key, payload, updated_at="2024-01-01T00:00:00+00:00"):
        """Put a row in place without recording it or notifying anyone."""
        with self._lock:
            self._rows[key] = RemoteRow(key, payload, updated_at)


# =============================================================================
# SYNC LAYER FIXTURES
# =============================================================================

@pytest.fixture
def cache(tmp_path):
    """Local cache in a temporary SQLite file"""
    local_cache = LocalCache(tmp_path / "himas.db")
    yield local_cache
    local_cache.close()


@pytest.fixture
def remote():
    """Recording in-memory row store"""
    return RecordingRowStore()


@pytest.fixture
def timers():
    """Timers created by the scheduler fixture, in creation order"""
    return []


@pytest.fixture
def scheduler(timers):
    """PushScheduler whose timers never fire on their own"""
    def factory(interval, function, args=None, kwargs=None):
        timer = ManualTimer(interval, function, args, kwargs)
        timers.append(timer)
        return timer

    return PushScheduler(delay=1.0, timer_factory=factory)


@pytest.fixture
def session():
    """Mutable session flag read by the engine"""
    return {"active": True}


@pytest.fixture
def engine(remote, cache, scheduler, session):
    """Subscribed SyncEngine with manual pushes"""
    sync = SyncEngine(
        remote,
        cache,
        session_active=lambda: session["active"],
        scheduler=scheduler,
    )
    sync.start()
    yield sync
    sync.stop(flush=False)


@pytest.fixture
def app_state(remote, cache, scheduler):
    """Started AppState on a fixed calendar day, no role yet"""
    state = AppState(remote, cache, scheduler=scheduler, today=lambda: date(2024, 6, 15))
    state.start()
    yield state
    state.engine.stop(flush=False)


@pytest.fixture
def front_office(app_state):
    """AppState with a front-office session"""
    app_state.begin_session("FRONT_OFFICE")
    return app_state


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_patient_dict():
    """A registered patient as stored in the collection"""
    return {
        "id": "HMS-1001",
        "name": "Ravi Kumar",
        "mobile": "9876543210",
        "gender": "Male",
        "age": 42,
        "dob": None,
        "occupation": "Driver",
        "has_insurance": "Yes",
        "insurance_name": "Star Health",
        "source": "Google",
        "condition": "Hernia",
        "entry_date": "2024-06-10",
        "created_at": "2024-06-10T09:30:00",
    }


@pytest.fixture
def sample_patients(sample_patient_dict):
    """Two patient records"""
    second = dict(sample_patient_dict, id="HMS-1002", name="Anita Rao", gender="Female", condition="Piles")
    return [sample_patient_dict, second]


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value.select.return_value.execute.return_value.data = []
    mock_client.table.return_value.insert.return_value.execute.return_value = MagicMock()
    return mock_client
