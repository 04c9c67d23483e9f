# =============================================================================
# himas_core/offline/local_cache.py
# Durable Key-Value Cache for Offline Operation
# =============================================================================
"""
LocalCache - SQLite-backed key-value store that survives restarts.

Features:
- JSON-serialized values under string keys
- Write-through mirror of the last known remote collections
- Thread-local connections (timer and watcher threads write too)
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional
import logging

logger = logging.getLogger(__name__)


# Storage keys shared by the sync layer
ROLE_KEY = "himas_hospital_role_session"
PATIENTS_CACHE_KEY = "himas_patients_cache_v13"
STAFF_CACHE_KEY = "himas_staff_cache_v2"
CACHE_ENTRY_PREFIX = "cache_"


class LocalCache:
    """
    Local durable cache for offline fallback.

    Usage:
        cache = LocalCache(Path("local_data/himas.db"))
        cache.set(PATIENTS_CACHE_KEY, [{"id": "R1"}])
        cache.get(PATIENTS_CACHE_KEY)   # [{"id": "R1"}]
    """

    DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "local_data" / "himas.db"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize local cache.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._initialized = False
        self.initialize()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._local.connection = conn
            with self._connections_lock:
                self._connections.append(conn)
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Create the key-value table."""
        if self._initialized:
            return
        with self.transaction() as conn:
            conn.execute(self.SCHEMA)
        self._initialized = True
        logger.info(f"Local cache initialized at: {self.db_path}")

    # =========================================================================
    # KEY-VALUE OPERATIONS
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read a value. Unreadable JSON is treated as absent.

        Args:
            key: Storage key
            default: Returned when the key is missing or corrupt

        Returns:
            Decoded JSON value or default
        """
        try:
            row = self._get_connection().execute(
                "SELECT value FROM kv_store WHERE key = ?", [key]
            ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Local cache read failed for {key}: {e}")
            return default

        if row is None or row["value"] is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding corrupt cache entry {key}: {e}")
            return default

    def set(self, key: str, value: Any) -> bool:
        """
        Write a JSON-serializable value.

        Returns:
            True if the value was persisted
        """
        try:
            payload = json.dumps(value, default=str)
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    [key, payload, datetime.now().isoformat()]
                )
            return True
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Local cache write failed for {key}: {e}")
            return False

    def remove(self, key: str) -> bool:
        """Delete a key. Returns True if something was removed."""
        try:
            with self.transaction() as conn:
                cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", [key])
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Local cache delete failed for {key}: {e}")
            return False

    def has(self, key: str) -> bool:
        row = self._get_connection().execute(
            "SELECT 1 FROM kv_store WHERE key = ?", [key]
        ).fetchone()
        return row is not None

    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys, optionally restricted to a namespace prefix."""
        rows = self._get_connection().execute(
            "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
            [len(prefix), prefix]
        ).fetchall()
        return [row["key"] for row in rows]

    def close(self) -> None:
        """Close every connection opened by this cache."""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()


# Singleton accessor
_local_cache: Optional[LocalCache] = None


def get_local_cache(db_path: Optional[Path] = None) -> LocalCache:
    """Get the global LocalCache instance."""
    global _local_cache
    if _local_cache is None:
        _local_cache = LocalCache(db_path)
    return _local_cache
