# =============================================================================
# himas_core/offline/remote_store.py
# Remote Row Store Clients
# =============================================================================
"""
RemoteStore - thin access layer over the remote keyed-row table.

Each row is ``{id, payload, updated_at}``: ``id`` is one of the fixed
collection keys, ``payload`` the whole collection as a JSON array. The
clients expose point lookup, insert, update and a change subscription
scoped to the table; filtering events down to known keys is the sync
engine's job.

Backends:
- SupabaseRowStore: Supabase/PostgREST table, changes detected by a
  polling RowChangeWatcher thread
- InMemoryRowStore: process-local stand-in used when Supabase is not
  configured, and in tests
"""

from __future__ import annotations
import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import logging

from himas_core.errors import RemoteStoreError

logger = logging.getLogger(__name__)


@dataclass
class RemoteRow:
    """One keyed row of the backing table."""
    key: str
    payload: Any
    updated_at: Optional[str] = None


@dataclass
class ChangeEvent:
    """A change notification for one row."""
    key: str
    payload: Any
    updated_at: Optional[str] = None
    event_type: str = "UPDATE"
    received_at: datetime = field(default_factory=datetime.now)


ChangeCallback = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by ``RemoteStore.subscribe``."""

    def __init__(self, on_unsubscribe: Callable[[], None]):
        self._on_unsubscribe = on_unsubscribe
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._on_unsubscribe()


class RemoteStore(ABC):
    """Interface the sync engine talks to."""

    table_name: str = "himas_data"

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether remote calls can be attempted at all."""

    @abstractmethod
    def fetch(self, key: str) -> Optional[RemoteRow]:
        """Point lookup. Returns None when the row is absent; raises RemoteStoreError on failure."""

    @abstractmethod
    def insert(self, key: str, payload: Any, updated_at: str) -> None:
        """Create the row for ``key``."""

    @abstractmethod
    def update(self, key: str, payload: Any, updated_at: str) -> None:
        """Replace the payload of an existing row."""

    @abstractmethod
    def subscribe(self, callback: ChangeCallback) -> Subscription:
        """Deliver a ChangeEvent for every row change in the table."""


# =============================================================================
# CHANGE WATCHER
# =============================================================================

class RowChangeWatcher:
    """
    Background thread that polls the table and emits a ChangeEvent for each
    row whose ``updated_at`` moved since the previous poll.

    The first poll only records the current timestamps.
    """

    def __init__(
        self,
        fetch_all: Callable[[], List[RemoteRow]],
        interval: float = 5.0,
        name: str = "RowChangeWatcher",
    ):
        self._fetch_all = fetch_all
        self.interval = interval
        self.name = name
        self._seen: Dict[str, Optional[str]] = {}
        self._primed = False
        self._callbacks: List[ChangeCallback] = []
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def register_callback(self, callback: ChangeCallback) -> None:
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unregister_callback(self, callback: ChangeCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    @property
    def callback_count(self) -> int:
        return len(self._callbacks)

    def start(self) -> None:
        """Start background polling."""
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name=self.name)
        self._thread.start()
        logger.debug(f"{self.name} started (every {self.interval}s)")

    def stop(self) -> None:
        """Stop background polling."""
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 5)
        self._thread = None
        logger.debug(f"{self.name} stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except RemoteStoreError as e:
                logger.warning(f"Change poll failed: {e.message}")
            if self._stop.wait(timeout=self.interval):
                break

    def poll_once(self) -> List[ChangeEvent]:
        """
        Read the table once and dispatch events for changed rows.

        Returns:
            The events that were dispatched
        """
        rows = self._fetch_all()
        events = []
        for row in rows:
            previous = self._seen.get(row.key)
            known = row.key in self._seen
            self._seen[row.key] = row.updated_at
            if not self._primed:
                continue
            if not known:
                events.append(ChangeEvent(row.key, row.payload, row.updated_at, "INSERT"))
            elif previous != row.updated_at:
                events.append(ChangeEvent(row.key, row.payload, row.updated_at, "UPDATE"))
        self._primed = True

        with self._lock:
            callbacks = list(self._callbacks)
        for event in events:
            for callback in callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.error(f"Error in change callback for {event.key}: {e}", exc_info=True)
        return events


# =============================================================================
# SUPABASE BACKEND
# =============================================================================

class SupabaseRowStore(RemoteStore):
    """
    Row store on a Supabase table.

    Table layout:
        create table himas_data (
            id text primary key,
            payload jsonb not null,
            updated_at timestamptz
        );
    """

    def __init__(self, client, table_name: str = "himas_data", poll_interval: float = 5.0):
        """
        Args:
            client: supabase.Client or None when not configured
            table_name: Backing table
            poll_interval: Seconds between change polls
        """
        self.client = client
        self.table_name = table_name
        self.poll_interval = poll_interval
        self._watcher: Optional[RowChangeWatcher] = None

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def _require_client(self, operation: str, key: Optional[str] = None):
        if self.client is None:
            raise RemoteStoreError("Supabase client is not configured", operation=operation, row_key=key)
        return self.client

    def fetch(self, key: str) -> Optional[RemoteRow]:
        client = self._require_client("fetch", key)
        try:
            response = (
                client.table(self.table_name)
                .select("*")
                .eq("id", key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise RemoteStoreError(f"Lookup failed: {e}", operation="fetch", row_key=key) from e

        rows = response.data or []
        if not rows:
            return None
        row = rows[0]
        return RemoteRow(key=row["id"], payload=row.get("payload"), updated_at=row.get("updated_at"))

    def fetch_all(self) -> List[RemoteRow]:
        """Read every row of the table (the table holds only a handful)."""
        client = self._require_client("fetch_all")
        try:
            response = client.table(self.table_name).select("id, payload, updated_at").execute()
        except Exception as e:
            raise RemoteStoreError(f"Table scan failed: {e}", operation="fetch_all") from e
        return [
            RemoteRow(key=row["id"], payload=row.get("payload"), updated_at=row.get("updated_at"))
            for row in (response.data or [])
        ]

    def insert(self, key: str, payload: Any, updated_at: str) -> None:
        client = self._require_client("insert", key)
        try:
            client.table(self.table_name).insert(
                {"id": key, "payload": payload, "updated_at": updated_at}
            ).execute()
        except Exception as e:
            raise RemoteStoreError(f"Insert failed: {e}", operation="insert", row_key=key) from e

    def update(self, key: str, payload: Any, updated_at: str) -> None:
        client = self._require_client("update", key)
        try:
            response = (
                client.table(self.table_name)
                .update({"payload": payload, "updated_at": updated_at})
                .eq("id", key)
                .execute()
            )
        except Exception as e:
            raise RemoteStoreError(f"Update failed: {e}", operation="update", row_key=key) from e

        if not response.data:
            raise RemoteStoreError("Update matched no row", operation="update", row_key=key)

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        self._require_client("subscribe")
        if self._watcher is None:
            self._watcher = RowChangeWatcher(
                self.fetch_all,
                interval=self.poll_interval,
                name=f"RowChangeWatcher[{self.table_name}]",
            )
        watcher = self._watcher
        watcher.register_callback(callback)
        watcher.start()

        def _release():
            watcher.unregister_callback(callback)
            if watcher.callback_count == 0:
                watcher.stop()

        return Subscription(_release)


# =============================================================================
# IN-MEMORY BACKEND
# =============================================================================

class InMemoryRowStore(RemoteStore):
    """
    Process-local row store. Writes are broadcast synchronously to every
    subscriber, including the writer, the way a realtime channel echoes a
    client's own changes back to it.
    """

    def __init__(self, table_name: str = "himas_data"):
        self.table_name = table_name
        self._rows: Dict[str, RemoteRow] = {}
        self._subscribers: List[ChangeCallback] = []
        self._lock = threading.RLock()

    @property
    def is_configured(self) -> bool:
        return True

    def fetch(self, key: str) -> Optional[RemoteRow]:
        with self._lock:
            row = self._rows.get(key)
            return copy.deepcopy(row) if row else None

    def insert(self, key: str, payload: Any, updated_at: str) -> None:
        with self._lock:
            if key in self._rows:
                raise RemoteStoreError("Duplicate row key", operation="insert", row_key=key)
            self._rows[key] = RemoteRow(key, copy.deepcopy(payload), updated_at)
        self._broadcast(ChangeEvent(key, copy.deepcopy(payload), updated_at, "INSERT"))

    def update(self, key: str, payload: Any, updated_at: str) -> None:
        with self._lock:
            if key not in self._rows:
                raise RemoteStoreError("Update matched no row", operation="update", row_key=key)
            self._rows[key] = RemoteRow(key, copy.deepcopy(payload), updated_at)
        self._broadcast(ChangeEvent(key, copy.deepcopy(payload), updated_at, "UPDATE"))

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        with self._lock:
            self._subscribers.append(callback)

        def _release():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return Subscription(_release)

    def _broadcast(self, event: ChangeEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(copy.deepcopy(event))
            except Exception as e:
                logger.error(f"Error in change callback for {event.key}: {e}", exc_info=True)
