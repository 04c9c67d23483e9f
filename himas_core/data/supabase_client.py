# =============================================================================
# himas_core/data/supabase_client.py
# Supabase Client Configuration for Himas Hospital
# Builds the client and the row store the sync engine talks to
# =============================================================================

from __future__ import annotations
from typing import Optional
import logging

import streamlit as st
from supabase import Client, create_client

from himas_core.config import AppSettings, load_settings
from himas_core.offline.remote_store import InMemoryRowStore, RemoteStore, SupabaseRowStore

logger = logging.getLogger(__name__)


def get_supabase_client(settings: Optional[AppSettings] = None) -> Optional[Client]:
    """
    Initialize and return a Supabase client.

    Expects secrets in .streamlit/secrets.toml (or SUPABASE_URL / SUPABASE_KEY):
        [supabase]
        url = "https://your-project.supabase.co"
        key = "your-anon-key"

    Returns:
        Supabase client instance or None if not configured
    """
    settings = settings or load_settings()
    if not settings.is_remote_configured:
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {e}")
        return None


@st.cache_resource(ttl=3600)  # Cache for 1 hour, then refresh
def get_cached_supabase_client() -> Optional[Client]:
    """Supabase client shared across Streamlit sessions."""
    return get_supabase_client()


def build_row_store(settings: AppSettings, client: Optional[Client] = None) -> RemoteStore:
    """
    Pick the remote row store for the current configuration.

    Without Supabase credentials the app runs against a process-local
    InMemoryRowStore, so every session in the same server process still
    sees each other's changes.
    """
    if client is None and settings.is_remote_configured:
        client = get_supabase_client(settings)

    if client is None:
        logger.warning("Using in-memory row store; data will not leave this process")
        return _get_shared_memory_store(settings.table_name)

    return SupabaseRowStore(
        client,
        table_name=settings.table_name,
        poll_interval=settings.poll_interval,
    )


_memory_store: Optional[InMemoryRowStore] = None


def _get_shared_memory_store(table_name: str) -> InMemoryRowStore:
    global _memory_store
    if _memory_store is None:
        _memory_store = InMemoryRowStore(table_name=table_name)
    return _memory_store
