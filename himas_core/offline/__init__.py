# =============================================================================
# himas_core/offline/__init__.py
# Offline-First Synchronization Layer for Himas Hospital
# =============================================================================
"""
Offline-First Synchronization Module

Each collection lives in three places: the in-memory copy owned by the
SyncEngine, a durable LocalCache mirror, and one row of the remote store.

Architecture:
------------
┌──────────────────────────────────────────────────────────┐
│                        AppState                          │
│           (mutation API used by the dashboards)          │
└──────────────────────────────────────────────────────────┘
                            │
                            ▼
┌──────────────────────────────────────────────────────────┐
│                       SyncEngine                         │
│   load ─ commit ─ debounced push ─ apply_remote          │
└──────────────────────────────────────────────────────────┘
          │                                   ▲
          ▼                                   │ ChangeEvent
┌──────────────────┐                ┌──────────────────────┐
│   LocalCache     │                │     RemoteStore      │
│   (SQLite k/v)   │                │ Supabase / InMemory  │
└──────────────────┘                └──────────────────────┘

Usage:
------
from himas_core.offline import SyncEngine, InMemoryRowStore, LocalCache, PATIENTS

engine = SyncEngine(InMemoryRowStore(), LocalCache(), session_active=lambda: True)
engine.start()
engine.load(PATIENTS)
engine.commit(PATIENTS, [{"id": "HMS-1"}])
"""

from himas_core.offline.local_cache import (
    LocalCache,
    get_local_cache,
    ROLE_KEY,
    PATIENTS_CACHE_KEY,
    STAFF_CACHE_KEY,
    CACHE_ENTRY_PREFIX,
)

from himas_core.offline.remote_store import (
    RemoteStore,
    RemoteRow,
    ChangeEvent,
    Subscription,
    RowChangeWatcher,
    SupabaseRowStore,
    InMemoryRowStore,
)

from himas_core.offline.push_scheduler import PushScheduler

from himas_core.offline.sync_engine import (
    SyncEngine,
    CollectionSpec,
    CollectionState,
    Origin,
    SaveStatus,
    PATIENTS,
    STAFF,
    DEFAULT_COLLECTIONS,
)

__all__ = [
    # Local cache
    "LocalCache",
    "get_local_cache",
    "ROLE_KEY",
    "PATIENTS_CACHE_KEY",
    "STAFF_CACHE_KEY",
    "CACHE_ENTRY_PREFIX",
    # Remote store
    "RemoteStore",
    "RemoteRow",
    "ChangeEvent",
    "Subscription",
    "RowChangeWatcher",
    "SupabaseRowStore",
    "InMemoryRowStore",
    # Scheduling
    "PushScheduler",
    # Sync engine
    "SyncEngine",
    "CollectionSpec",
    "CollectionState",
    "Origin",
    "SaveStatus",
    "PATIENTS",
    "STAFF",
    "DEFAULT_COLLECTIONS",
]
