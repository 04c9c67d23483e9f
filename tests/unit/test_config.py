# =============================================================================
# tests/unit/test_config.py
# Unit Tests for Settings and Row Store Selection
# =============================================================================

import pytest

from himas_core.config import AppSettings, load_settings
from himas_core.data.supabase_client import build_row_store
from himas_core.errors import (
    ConfigurationError,
    DuplicateRecordError,
    ErrorContext,
    RemoteStoreError,
    ValidationError,
    error_boundary,
    safe_execute,
)
from himas_core.errors.handlers import user_message_for
from himas_core.offline import InMemoryRowStore, SupabaseRowStore


class TestLoadSettings:
    """Test environment-driven configuration"""

    def test_reads_environment(self, monkeypatch):
        """Env vars populate the settings when no secrets are used"""
        monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "anon-key")
        monkeypatch.setenv("HIMAS_DEBOUNCE_SECONDS", "2.5")

        settings = load_settings(use_secrets=False)

        assert settings.is_remote_configured
        assert settings.debounce_seconds == 2.5
        assert settings.table_name == "himas_data"

    def test_missing_key_is_unconfigured(self, monkeypatch):
        """A URL without a key does not count as configured"""
        monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
        monkeypatch.delenv("SUPABASE_KEY", raising=False)

        assert not load_settings(use_secrets=False).is_remote_configured

    def test_bad_number_rejected(self, monkeypatch):
        """A non-numeric debounce is a configuration error"""
        monkeypatch.setenv("HIMAS_DEBOUNCE_SECONDS", "soon")

        with pytest.raises(ConfigurationError) as exc:
            load_settings(use_secrets=False)

        assert exc.value.details["config_key"] == "debounce_seconds"
        assert not exc.value.recoverable


class TestBuildRowStore:
    """Test choosing the remote row store"""

    def test_unconfigured_uses_shared_memory_store(self):
        """Every session in the process shares one in-memory store"""
        first = build_row_store(AppSettings())
        second = build_row_store(AppSettings())

        assert isinstance(first, InMemoryRowStore)
        assert first is second

    def test_client_gives_supabase_store(self, mock_supabase):
        """An explicit client is wrapped with the configured table"""
        store = build_row_store(AppSettings(table_name="himas_rows", poll_interval=30), client=mock_supabase)

        assert isinstance(store, SupabaseRowStore)
        assert store.table_name == "himas_rows"


class TestErrors:
    """Test error codes and details"""

    def test_duplicate_record_details(self):
        """Duplicate errors carry the offending field and value"""
        error = DuplicateRecordError("taken", field="id", value="HMS-1001")

        assert error.code == "VAL_002"
        assert error.to_dict()["details"] == {"field": "id", "value": "HMS-1001"}

    def test_remote_error_string(self):
        """String form includes the code and details"""
        error = RemoteStoreError("Lookup failed", operation="fetch", row_key="himas_patients")

        assert str(error).startswith("[SYNC_001] Lookup failed")
        assert error.details["operation"] == "fetch"


class TestHandlers:
    """Test error reporting helpers outside a running app"""

    def test_sync_errors_mention_local_data(self):
        """Remote failures are explained as offline operation"""
        message = user_message_for(RemoteStoreError("Lookup failed"))

        assert message == "Working from local data: Lookup failed"

    def test_safe_execute_returns_default(self):
        """Errors become the default value"""
        def fail():
            raise ValidationError("Mobile number is required", field="mobile")

        assert safe_execute(fail, default="fallback") == "fallback"
        assert safe_execute(lambda x: x * 2, 4) == 8

    def test_error_context_swallows_recoverable(self):
        """Recoverable errors stop at the context"""
        with ErrorContext("Saving patient") as ctx:
            raise ValidationError("Patient name is required")

        assert isinstance(ctx.error, ValidationError)

    def test_error_context_reraises_unexpected(self):
        """Programming errors still propagate"""
        with pytest.raises(KeyError):
            with ErrorContext("Saving patient"):
                raise KeyError("id")

    def test_error_boundary(self):
        """Decorated helpers return the default on failure"""
        @error_boundary(default_return=[])
        def rows():
            raise RemoteStoreError("down")

        assert rows() == []
