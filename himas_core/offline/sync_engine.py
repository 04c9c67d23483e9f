# =============================================================================
# himas_core/offline/sync_engine.py
# Collection Synchronization Engine
# =============================================================================
"""
SyncEngine - keeps each collection consistent across memory, the local
cache and its single remote row.

Features:
- Cache-first initial load, then remote lookup / seed / fallback
- Debounced whole-collection push after local mutations
- Remote change events applied directly, never echoed back
- Coarse save status per collection for the UI

Every state change is tagged with an Origin. Only LOCAL transitions
schedule a push; a REMOTE transition cancels whatever push is waiting for
that collection, which is what keeps a remote update from bouncing
straight back to the remote store.
"""

from __future__ import annotations
import copy
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging

from himas_core.errors import MalformedPayloadError, RemoteStoreError
from himas_core.offline.local_cache import LocalCache, PATIENTS_CACHE_KEY, STAFF_CACHE_KEY
from himas_core.offline.push_scheduler import PushScheduler
from himas_core.offline.remote_store import ChangeEvent, RemoteStore, Subscription

logger = logging.getLogger(__name__)


PATIENTS = "patients"
STAFF = "staff"


class Origin(Enum):
    """Where the current value of a collection came from."""
    LOAD = "load"
    LOCAL = "local"
    REMOTE = "remote"


class SaveStatus(Enum):
    """Coarse sync status shown next to the patient list."""
    UNSAVED = "unsaved"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass(frozen=True)
class CollectionSpec:
    """Binding of a collection to its remote row and cache entry."""
    name: str
    row_key: str
    cache_key: str
    requires_session: bool


DEFAULT_COLLECTIONS = (
    CollectionSpec(PATIENTS, "himas_patients", PATIENTS_CACHE_KEY, requires_session=True),
    CollectionSpec(STAFF, "himas_staff", STAFF_CACHE_KEY, requires_session=False),
)


@dataclass
class CollectionState:
    """Current sync state of one collection."""
    spec: CollectionSpec
    items: List[Dict[str, Any]] = field(default_factory=list)
    origin: Origin = Origin.LOAD
    loaded: bool = False
    loading: bool = False
    status: Optional[SaveStatus] = None
    last_synced_at: Optional[datetime] = None
    last_pushed_stamp: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.spec.name


_STAMP_PATTERN = re.compile(r"^(?P<base>[^.+Z]+?)(?:\.(?P<fraction>\d+))?(?P<offset>Z|[+-]\d{2}(?::?\d{2})?)?$")


def _parse_stamp(value: str) -> datetime:
    """
    Parse a server timestamp. Postgres trims trailing zeros from the
    fraction and may send "+00" offsets, neither of which
    datetime.fromisoformat accepts before Python 3.11.
    """
    match = _STAMP_PATTERN.match(value.strip())
    if match is None:
        raise ValueError(f"Unrecognised timestamp {value!r}")
    text = match.group("base")
    if match.group("fraction"):
        text += "." + match.group("fraction")[:6].ljust(6, "0")
    offset = match.group("offset")
    if offset == "Z":
        offset = "+00:00"
    elif offset and len(offset) == 3:
        offset += ":00"
    elif offset and ":" not in offset:
        offset = f"{offset[:3]}:{offset[3:]}"
    return datetime.fromisoformat(text + (offset or ""))


def _same_stamp(a: Optional[str], b: Optional[str]) -> bool:
    """Compare ISO timestamps that may differ only in formatting."""
    if a is None or b is None:
        return False
    if a == b:
        return True
    try:
        return _parse_stamp(a) == _parse_stamp(b)
    except ValueError:
        return False


class SyncEngine:
    """
    Synchronization engine for the patients and staff collections.

    Usage:
        engine = SyncEngine(remote, cache, session_active=lambda: role is not None)
        engine.start()                 # subscribe to remote changes
        engine.load(STAFF)             # always, login needs it
        engine.load(PATIENTS)          # once a role is set
        engine.commit(PATIENTS, items) # push follows after the quiet window
    """

    def __init__(
        self,
        remote: Optional[RemoteStore],
        cache: LocalCache,
        debounce_seconds: float = 1.0,
        session_active: Callable[[], bool] = lambda: False,
        collections: Iterable[CollectionSpec] = DEFAULT_COLLECTIONS,
        scheduler: Optional[PushScheduler] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.remote = remote
        self.cache = cache
        self.scheduler = scheduler or PushScheduler(delay=debounce_seconds)
        self._session_active = session_active
        self._clock = clock
        self._states: Dict[str, CollectionState] = {
            spec.name: CollectionState(spec=spec) for spec in collections
        }
        self._by_row_key = {state.spec.row_key: state for state in self._states.values()}
        self._lock = threading.RLock()
        self._subscription: Optional[Subscription] = None
        self._callbacks: List[Callable[[str, CollectionState], None]] = []

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        """A remote store exists and is configured."""
        return self.remote is not None and self.remote.is_configured

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def state(self, name: str) -> CollectionState:
        return self._states[name]

    def items(self, name: str) -> List[Dict[str, Any]]:
        """Deep copy of the collection; callers never alias engine state."""
        with self._lock:
            return copy.deepcopy(self._states[name].items)

    def status(self, name: str) -> Optional[SaveStatus]:
        return self._states[name].status

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Subscribe to remote change events."""
        if self.is_subscribed or not self.is_connected:
            return
        try:
            self._subscription = self.remote.subscribe(self.apply_remote)
            logger.info("Subscribed to remote change events")
        except RemoteStoreError as e:
            logger.error(f"Change subscription failed: {e.message}")

    def stop(self, flush: bool = True) -> None:
        """Unsubscribe and settle pending pushes."""
        if flush:
            self.scheduler.flush()
        else:
            self.scheduler.cancel_all()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        logger.info("SyncEngine stopped")

    # =========================================================================
    # INITIAL LOAD
    # =========================================================================

    def _read_cache(self, spec: CollectionSpec) -> Optional[List[Dict[str, Any]]]:
        """Cached collection, or None when absent or not a list."""
        cached = self.cache.get(spec.cache_key)
        if cached is None:
            return None
        if not isinstance(cached, list):
            error = MalformedPayloadError(
                f"Ignoring cached {spec.name}: not a list",
                source="cache",
                actual_type=type(cached).__name__,
            )
            logger.warning(str(error))
            return None
        return cached

    def load(self, name: str) -> CollectionState:
        """
        Initial load of one collection.

        1. Adopt the cached copy, if any, so there is something to render.
        2. Look up the remote row:
           - present: it wins; cache overwritten, status SAVED
           - absent:  seed it from the provisional copy
           - error:   status ERROR, keep operating on the cached copy

        The patients collection is only loaded while a session is active.
        """
        state = self._states[name]
        spec = state.spec

        if spec.requires_session and not self._session_active():
            logger.debug(f"Skipping {name} load: no active session")
            return state

        cached = self._read_cache(spec)
        provisional = cached if cached is not None else []
        with self._lock:
            state.loading = True
            if cached is not None:
                state.items = copy.deepcopy(cached)
                state.origin = Origin.LOAD
        self._notify(state)

        try:
            if not self.is_connected:
                raise RemoteStoreError("Remote store is not configured", operation="fetch", row_key=spec.row_key)
            row = self.remote.fetch(spec.row_key)
            if row is not None and not isinstance(row.payload, list):
                raise MalformedPayloadError(
                    f"Remote {name} payload is not a list",
                    source="remote",
                    actual_type=type(row.payload).__name__,
                )
        except (RemoteStoreError, MalformedPayloadError) as e:
            logger.error(f"Loading {name} failed, using cached copy: {e.message}")
            with self._lock:
                state.status = SaveStatus.ERROR
                state.last_error = e.message
                state.loaded = cached is not None
                state.loading = False
            self._notify(state)
            return state

        if row is not None:
            with self._lock:
                state.items = copy.deepcopy(row.payload)
                state.origin = Origin.LOAD
                state.status = SaveStatus.SAVED
                state.last_synced_at = self._clock()
                state.last_error = None
                state.loaded = True
                state.loading = False
            self.cache.set(spec.cache_key, row.payload)
            logger.info(f"Loaded {len(row.payload)} {name} from remote")
            self._notify(state)
            return state

        self._seed_remote(state, provisional, had_cache=cached is not None)
        return state

    def _seed_remote(self, state: CollectionState, items: List[Dict[str, Any]], had_cache: bool) -> None:
        """Create the missing remote row from the provisional copy."""
        spec = state.spec
        stamp = self._stamp()
        with self._lock:
            state.last_pushed_stamp = stamp
        try:
            self.remote.insert(spec.row_key, copy.deepcopy(items), stamp)
        except RemoteStoreError as e:
            logger.error(f"Seeding remote {spec.name} row failed: {e.message}")
            with self._lock:
                state.last_error = e.message
                state.loaded = had_cache
                state.loading = False
            self._notify(state)
            return

        with self._lock:
            state.status = SaveStatus.SAVED
            state.last_synced_at = self._clock()
            state.last_error = None
            state.loaded = True
            state.loading = False
        logger.info(f"Seeded remote {spec.name} row with {len(items)} records")
        self._notify(state)

    def force_refresh(self) -> CollectionState:
        """Re-run the patient load, whatever its current status."""
        return self.load(PATIENTS)

    def force_stop_loading(self) -> None:
        """Escape hatch for a load that never returns."""
        with self._lock:
            for state in self._states.values():
                state.loading = False

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def commit(self, name: str, items: List[Dict[str, Any]]) -> None:
        """Replace a collection after a local mutation."""
        self._transition(self._states[name], items, Origin.LOCAL)

    def _transition(self, state: CollectionState, items: List[Dict[str, Any]], origin: Origin) -> None:
        with self._lock:
            state.items = copy.deepcopy(items)
            state.origin = origin
            if origin is Origin.LOCAL:
                state.status = SaveStatus.UNSAVED
                self.scheduler.schedule(state.name, lambda: self._push(state.name))
            elif origin is Origin.REMOTE:
                if self.scheduler.cancel(state.name):
                    logger.debug(f"Dropped pending {state.name} push superseded by remote change")
                state.status = SaveStatus.SAVED
                state.last_synced_at = self._clock()
                state.last_error = None
                state.loaded = True
        self._notify(state)

    def apply_remote(self, event: ChangeEvent) -> bool:
        """
        Apply a change notification from the remote store.

        Returns:
            True if the event replaced a collection
        """
        state = self._by_row_key.get(event.key)
        if state is None:
            logger.debug(f"Ignoring change event for unknown row {event.key}")
            return False
        if not isinstance(event.payload, list):
            logger.warning(
                f"Ignoring malformed {state.name} change event: payload is {type(event.payload).__name__}"
            )
            return False
        if state.spec.requires_session and not self._session_active():
            logger.debug(f"Ignoring {state.name} change event: no active session")
            return False

        with self._lock:
            if _same_stamp(event.updated_at, state.last_pushed_stamp):
                logger.debug(f"Ignoring own {state.name} write coming back")
                return False
            self._transition(state, event.payload, Origin.REMOTE)

        self.cache.set(state.spec.cache_key, event.payload)
        logger.info(f"Applied remote {state.name} change ({len(event.payload)} records)")
        return True

    # =========================================================================
    # PUSH
    # =========================================================================

    def _push(self, name: str) -> None:
        """Write the collection to the cache and, when allowed, to the remote row."""
        state = self._states[name]
        spec = state.spec

        with self._lock:
            if state.origin is not Origin.LOCAL:
                logger.debug(f"Skipping {name} push: value came from {state.origin.value}")
                return
            items = copy.deepcopy(state.items)

        self.cache.set(spec.cache_key, items)

        if not self.is_connected:
            logger.debug(f"{name} saved to local cache only: remote not configured")
            return
        if spec.requires_session and not self._session_active():
            logger.debug(f"{name} saved to local cache only: no active session")
            return

        stamp = self._stamp()
        with self._lock:
            state.status = SaveStatus.SAVING
            state.last_pushed_stamp = stamp
        self._notify(state)

        try:
            self.remote.update(spec.row_key, items, stamp)
        except RemoteStoreError as e:
            logger.error(f"Pushing {name} failed: {e.message}")
            with self._lock:
                state.status = SaveStatus.ERROR
                state.last_error = e.message
            self._notify(state)
            return

        with self._lock:
            # A remote change may have landed while the update was in flight
            if state.status is SaveStatus.SAVING:
                state.status = SaveStatus.SAVED
            state.last_synced_at = self._clock()
            state.last_error = None
        logger.info(f"Pushed {len(items)} {name} to remote")
        self._notify(state)

    def flush(self, name: Optional[str] = None) -> int:
        """Run pending pushes now. Returns the number of pushes run."""
        return self.scheduler.flush(name)

    def has_pending_push(self, name: str) -> bool:
        return self.scheduler.is_pending(name)

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def clear(self, name: str) -> None:
        """Forget a collection in memory and in the cache (logout)."""
        state = self._states[name]
        self.scheduler.cancel(name)
        with self._lock:
            state.items = []
            state.origin = Origin.LOAD
            state.loaded = False
            state.loading = False
            state.status = None
            state.last_error = None
            state.last_pushed_stamp = None
        self.cache.remove(state.spec.cache_key)
        self._notify(state)

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: Callable[[str, CollectionState], None]) -> None:
        """Register a callback for collection changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[str, CollectionState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify(self, state: CollectionState) -> None:
        for callback in list(self._callbacks):
            try:
                callback(state.name, state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def _stamp(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def get_status_display(self) -> Dict[str, Any]:
        """Sync status for UI display."""
        patients = self._states[PATIENTS]
        return {
            "status": patients.status.value if patients.status else None,
            "loaded": patients.loaded,
            "loading": patients.loading,
            "records": len(patients.items),
            "last_synced": patients.last_synced_at.isoformat() if patients.last_synced_at else None,
            "error": patients.last_error,
            "connected": self.is_connected,
            "subscribed": self.is_subscribed,
        }
