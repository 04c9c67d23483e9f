# =============================================================================
# tests/unit/test_sync_engine.py
# Unit Tests for SyncEngine
# =============================================================================

import pytest

from himas_core.offline import (
    PATIENTS,
    PATIENTS_CACHE_KEY,
    STAFF,
    STAFF_CACHE_KEY,
    ChangeEvent,
    LocalCache,
    Origin,
    PushScheduler,
    SaveStatus,
    SyncEngine,
)
from himas_core.offline.sync_engine import _same_stamp

PATIENTS_ROW = "himas_patients"
STAFF_ROW = "himas_staff"


class TestInitialLoad:
    """Test cache-first load followed by the remote lookup"""

    def test_remote_row_wins_over_cache(self, engine, remote, cache, sample_patients):
        """A present remote row replaces the cached copy everywhere"""
        cache.set(PATIENTS_CACHE_KEY, [{"id": "STALE"}])
        remote.seed(PATIENTS_ROW, sample_patients)

        state = engine.load(PATIENTS)

        assert engine.items(PATIENTS) == sample_patients
        assert cache.get(PATIENTS_CACHE_KEY) == sample_patients
        assert state.status is SaveStatus.SAVED
        assert state.loaded
        assert not state.loading
        assert state.last_synced_at is not None
        assert remote.insert_calls == []

    def test_missing_row_is_seeded_from_cache(self, engine, remote, cache, sample_patient_dict):
        """No remote row + cached [R] inserts a row holding [R]"""
        cache.set(PATIENTS_CACHE_KEY, [sample_patient_dict])

        state = engine.load(PATIENTS)

        assert remote.insert_calls == [PATIENTS_ROW]
        assert remote.fetch(PATIENTS_ROW).payload == [sample_patient_dict]
        assert state.status is SaveStatus.SAVED
        assert state.loaded
        assert engine.items(PATIENTS) == [sample_patient_dict]

    def test_seed_echo_is_not_applied_or_pushed(self, engine, remote, cache, sample_patient_dict):
        """The insert notification for our own seed changes nothing"""
        cache.set(PATIENTS_CACHE_KEY, [sample_patient_dict])

        engine.load(PATIENTS)

        assert engine.state(PATIENTS).origin is Origin.LOAD
        assert not engine.has_pending_push(PATIENTS)
        assert remote.update_calls == []

    def test_missing_row_and_empty_cache_seeds_empty_list(self, engine, remote):
        """First run against an empty store creates the row with []"""
        state = engine.load(PATIENTS)

        assert remote.fetch(PATIENTS_ROW).payload == []
        assert state.loaded
        assert state.status is SaveStatus.SAVED

    def test_seed_failure_with_cache_degrades_to_cache(self, engine, remote, cache, sample_patient_dict):
        """Insert failure still marks loaded when cache data existed"""
        cache.set(PATIENTS_CACHE_KEY, [sample_patient_dict])
        remote.fail_insert = True

        state = engine.load(PATIENTS)

        assert state.loaded
        assert state.status is None
        assert engine.items(PATIENTS) == [sample_patient_dict]

    def test_seed_failure_without_cache_stays_unloaded(self, engine, remote):
        """Insert failure with nothing cached leaves the collection unloaded"""
        remote.fail_insert = True

        state = engine.load(PATIENTS)

        assert not state.loaded
        assert state.status is None
        assert engine.items(PATIENTS) == []

    def test_lookup_error_falls_back_to_cache(self, engine, remote, cache, sample_patients):
        """Lookup failure with two cached records: loaded, both records, status error"""
        cache.set(PATIENTS_CACHE_KEY, sample_patients)
        remote.fail_fetch = True

        state = engine.load(PATIENTS)

        assert state.loaded
        assert engine.items(PATIENTS) == sample_patients
        assert state.status is SaveStatus.ERROR
        assert "connection refused" in state.last_error

    def test_force_refresh_retries_same_lookup(self, engine, remote, cache, sample_patients):
        """force_refresh re-issues the patients lookup and recovers"""
        cache.set(PATIENTS_CACHE_KEY, sample_patients)
        remote.fail_fetch = True
        engine.load(PATIENTS)

        engine.force_refresh()
        assert remote.fetch_calls == [PATIENTS_ROW, PATIENTS_ROW]

        remote.fail_fetch = False
        remote.seed(PATIENTS_ROW, sample_patients[:1])
        state = engine.force_refresh()

        assert remote.fetch_calls == [PATIENTS_ROW] * 3
        assert state.status is SaveStatus.SAVED
        assert state.last_error is None
        assert engine.items(PATIENTS) == sample_patients[:1]

    def test_restart_with_remote_unreachable_restores_cache(self, tmp_path, remote, sample_patients):
        """Collection written before a restart reloads intact and in order"""
        path = tmp_path / "device.db"
        before = SyncEngine(remote, LocalCache(path), session_active=lambda: True, scheduler=PushScheduler(delay=60))
        before.load(PATIENTS)
        remote.fail_update = True
        before.commit(PATIENTS, list(reversed(sample_patients)))
        before.flush()
        before.cache.close()

        remote.fail_fetch = True
        after = SyncEngine(remote, LocalCache(path), session_active=lambda: True, scheduler=PushScheduler(delay=60))
        state = after.load(PATIENTS)

        assert state.loaded
        assert after.items(PATIENTS) == list(reversed(sample_patients))
        after.cache.close()

    def test_lookup_error_without_cache_stays_unloaded(self, engine, remote):
        """Lookup failure with nothing cached: empty, unloaded, error"""
        remote.fail_fetch = True

        state = engine.load(PATIENTS)

        assert not state.loaded
        assert engine.items(PATIENTS) == []
        assert state.status is SaveStatus.ERROR

    def test_malformed_cache_entry_is_ignored(self, engine, remote, cache, sample_patient_dict):
        """A cached value that is not a list is not adopted"""
        cache.set(PATIENTS_CACHE_KEY, {"id": "not-a-list"})
        remote.fail_fetch = True

        state = engine.load(PATIENTS)

        assert not state.loaded
        assert engine.items(PATIENTS) == []

    def test_malformed_remote_payload_treated_as_error(self, engine, remote, cache, sample_patient_dict):
        """A remote payload that is not a list keeps the cached copy"""
        cache.set(PATIENTS_CACHE_KEY, [sample_patient_dict])
        remote.seed(PATIENTS_ROW, {"unexpected": True})

        state = engine.load(PATIENTS)

        assert state.status is SaveStatus.ERROR
        assert state.loaded
        assert engine.items(PATIENTS) == [sample_patient_dict]
        assert cache.get(PATIENTS_CACHE_KEY) == [sample_patient_dict]

    def test_patient_load_requires_session(self, engine, remote, session):
        """No active role means no patients lookup at all"""
        session["active"] = False

        state = engine.load(PATIENTS)

        assert remote.fetch_calls == []
        assert not state.loaded

    def test_staff_load_runs_without_session(self, engine, remote, session):
        """Staff directory loads before anyone is signed in"""
        session["active"] = False

        state = engine.load(STAFF)

        assert remote.fetch_calls == [STAFF_ROW]
        assert state.loaded

    def test_unconfigured_remote_runs_from_cache(self, cache, scheduler, sample_patients):
        """No remote store behaves like an unreachable one"""
        cache.set(PATIENTS_CACHE_KEY, sample_patients)
        engine = SyncEngine(None, cache, session_active=lambda: True, scheduler=scheduler)

        state = engine.load(PATIENTS)

        assert not engine.is_connected
        assert state.loaded
        assert state.status is SaveStatus.ERROR
        assert engine.items(PATIENTS) == sample_patients


class TestLocalPush:
    """Test debounced push of local mutations"""

    def test_commit_marks_unsaved_and_waits(self, engine, remote, sample_patient_dict):
        """A commit only schedules; nothing reaches the remote yet"""
        engine.load(PATIENTS)

        engine.commit(PATIENTS, [sample_patient_dict])

        assert engine.status(PATIENTS) is SaveStatus.UNSAVED
        assert engine.has_pending_push(PATIENTS)
        assert remote.update_calls == []

    def test_flush_writes_cache_then_remote(self, engine, remote, cache, sample_patient_dict):
        """A push updates both mirrors and marks the collection saved"""
        engine.load(PATIENTS)
        engine.commit(PATIENTS, [sample_patient_dict])

        assert engine.flush() == 1

        assert cache.get(PATIENTS_CACHE_KEY) == [sample_patient_dict]
        assert remote.fetch(PATIENTS_ROW).payload == [sample_patient_dict]
        assert remote.update_calls == [PATIENTS_ROW]
        assert engine.status(PATIENTS) is SaveStatus.SAVED

    def test_rapid_commits_collapse_into_one_push(self, engine, remote, timers, sample_patients):
        """Each commit resets the quiet window"""
        engine.load(PATIENTS)

        engine.commit(PATIENTS, sample_patients[:1])
        engine.commit(PATIENTS, sample_patients)
        engine.commit(PATIENTS, sample_patients[1:])

        assert [t.cancelled for t in timers] == [True, True, False]
        assert engine.flush() == 1
        assert remote.update_calls == [PATIENTS_ROW]
        assert remote.fetch(PATIENTS_ROW).payload == sample_patients[1:]

    def test_timer_expiry_pushes(self, engine, remote, timers, sample_patient_dict):
        """The scheduled timer performs the push when it fires"""
        engine.load(PATIENTS)
        engine.commit(PATIENTS, [sample_patient_dict])

        timers[-1].fire()

        assert remote.update_calls == [PATIENTS_ROW]
        assert not engine.has_pending_push(PATIENTS)

    def test_push_failure_sets_error_without_retry(self, engine, remote, cache, sample_patient_dict):
        """A failed update is reported, the cache still holds the data"""
        engine.load(PATIENTS)
        remote.fail_update = True
        engine.commit(PATIENTS, [sample_patient_dict])

        engine.flush()

        assert engine.status(PATIENTS) is SaveStatus.ERROR
        assert "timeout" in engine.state(PATIENTS).last_error
        assert cache.get(PATIENTS_CACHE_KEY) == [sample_patient_dict]
        assert not engine.has_pending_push(PATIENTS)

    def test_next_commit_after_failure_retries(self, engine, remote, sample_patient_dict):
        """Recovery comes from the next local mutation"""
        engine.load(PATIENTS)
        remote.fail_update = True
        engine.commit(PATIENTS, [sample_patient_dict])
        engine.flush()

        remote.fail_update = False
        engine.commit(PATIENTS, [sample_patient_dict])
        engine.flush()

        assert engine.status(PATIENTS) is SaveStatus.SAVED
        assert remote.fetch(PATIENTS_ROW).payload == [sample_patient_dict]

    def test_patient_push_without_session_is_cache_only(self, engine, remote, cache, session, sample_patient_dict):
        """Patients are not sent to the remote once the session is gone"""
        engine.load(PATIENTS)
        session["active"] = False
        engine.commit(PATIENTS, [sample_patient_dict])

        engine.flush()

        assert cache.get(PATIENTS_CACHE_KEY) == [sample_patient_dict]
        assert remote.update_calls == []

    def test_staff_push_ignores_session(self, engine, remote, session):
        """Staff changes are pushed with or without a session"""
        session["active"] = False
        engine.load(STAFF)
        engine.commit(STAFF, [{"id": "u1", "email": "a@himas.com"}])

        engine.flush()

        assert remote.update_calls == [STAFF_ROW]

    def test_unconfigured_remote_push_is_cache_only(self, cache, scheduler, sample_patient_dict):
        """Without a remote store the push still writes the cache"""
        engine = SyncEngine(None, cache, session_active=lambda: True, scheduler=scheduler)
        engine.commit(PATIENTS, [sample_patient_dict])

        engine.flush()

        assert cache.get(PATIENTS_CACHE_KEY) == [sample_patient_dict]


class TestRemoteChanges:
    """Test application of remote change notifications"""

    def _event(self, payload, key=PATIENTS_ROW, stamp="2024-06-15T10:00:00+00:00"):
        return ChangeEvent(key=key, payload=payload, updated_at=stamp)

    def test_apply_remote_replaces_state_and_cache(self, engine, cache, sample_patients):
        """A remote change is adopted directly"""
        engine.load(PATIENTS)

        assert engine.apply_remote(self._event(sample_patients))

        state = engine.state(PATIENTS)
        assert engine.items(PATIENTS) == sample_patients
        assert cache.get(PATIENTS_CACHE_KEY) == sample_patients
        assert state.status is SaveStatus.SAVED
        assert state.origin is Origin.REMOTE
        assert state.last_synced_at is not None

    def test_remote_apply_is_not_echoed(self, engine, remote, sample_patients):
        """Remote notify followed by the push path issues no update"""
        engine.load(PATIENTS)

        engine.apply_remote(self._event(sample_patients))
        engine._push(PATIENTS)

        assert engine.flush() == 0
        assert remote.update_calls == []

    def test_remote_apply_cancels_pending_local_push(self, engine, remote, timers, sample_patients):
        """A waiting local push is dropped when a remote change lands"""
        engine.load(PATIENTS)
        engine.commit(PATIENTS, sample_patients[:1])
        stale = timers[-1]

        engine.apply_remote(self._event(sample_patients))
        stale.function(*stale.args)

        assert engine.flush() == 0
        assert remote.update_calls == []
        assert engine.items(PATIENTS) == sample_patients

    def test_two_sessions_converge_without_echo(self, engine, remote, tmp_path, sample_patient_dict):
        """One push reaches the other session and is not bounced back"""
        engine.load(PATIENTS)
        other = SyncEngine(
            remote,
            LocalCache(tmp_path / "other.db"),
            session_active=lambda: True,
            scheduler=PushScheduler(delay=60),
        )
        other.start()
        other.load(PATIENTS)

        engine.commit(PATIENTS, [sample_patient_dict])
        engine.flush()

        assert other.items(PATIENTS) == [sample_patient_dict]
        assert other.status(PATIENTS) is SaveStatus.SAVED
        assert other.flush() == 0
        assert engine.state(PATIENTS).origin is Origin.LOCAL
        assert remote.update_calls == [PATIENTS_ROW]
        other.stop(flush=False)
        other.cache.close()

    def test_own_write_coming_back_is_ignored(self, engine, sample_patient_dict):
        """An event carrying our own stamp is recognised, whatever its format"""
        engine.load(PATIENTS)
        engine.commit(PATIENTS, [sample_patient_dict])
        engine.flush()
        stamp = engine.state(PATIENTS).last_pushed_stamp

        assert not engine.apply_remote(self._event([], stamp=stamp))
        assert not engine.apply_remote(self._event([], stamp=stamp.replace("+00:00", "Z")))
        assert engine.items(PATIENTS) == [sample_patient_dict]

    def test_own_write_with_trimmed_fraction_is_ignored(self, engine, sample_patient_dict):
        """Postgres drops trailing zeros and offset minutes from the echoed stamp"""
        engine.load(PATIENTS)
        engine.commit(PATIENTS, [sample_patient_dict])
        engine.flush()
        engine.state(PATIENTS).last_pushed_stamp = "2024-06-15T11:00:00.123450Z"

        assert not engine.apply_remote(self._event([], stamp="2024-06-15 11:00:00.12345+00"))
        assert engine.items(PATIENTS) == [sample_patient_dict]

    @pytest.mark.parametrize("a, b, same", [
        ("2024-06-15T11:00:00.12345+00:00", "2024-06-15T11:00:00.123450Z", True),
        ("2024-06-15T11:00:00.1+00:00", "2024-06-15T11:00:00.100000+00:00", True),
        ("2024-06-15T16:30:00+0530", "2024-06-15T11:00:00Z", True),
        ("2024-06-15T11:00:00.12345+00:00", "2024-06-15T11:00:00.12346+00:00", False),
        ("2024-06-15T11:00:00Z", "not a stamp", False),
        (None, "2024-06-15T11:00:00Z", False),
    ])
    def test_stamp_comparison(self, a, b, same):
        """Stamps are compared as instants, not strings"""
        assert _same_stamp(a, b) is same

    def test_unknown_row_is_ignored(self, engine, sample_patients):
        """Only the two collection rows are applied"""
        engine.load(PATIENTS)

        assert not engine.apply_remote(self._event(sample_patients, key="himas_settings"))
        assert engine.items(PATIENTS) == []

    def test_malformed_payload_is_ignored(self, engine):
        """Non-list payloads leave the collection as it was"""
        engine.load(PATIENTS)
        before = engine.state(PATIENTS).status

        assert not engine.apply_remote(self._event({"id": "oops"}))
        assert engine.items(PATIENTS) == []
        assert engine.state(PATIENTS).status is before

    def test_patient_event_ignored_without_session(self, engine, session, sample_patients):
        """Patient data is not pulled in while signed out"""
        session["active"] = False

        assert not engine.apply_remote(self._event(sample_patients))
        assert engine.items(PATIENTS) == []

    def test_staff_event_applied_independently(self, engine, cache, session):
        """Staff row changes land in the staff collection only"""
        session["active"] = False
        staff = [{"id": "u1", "email": "doctor@himas.com"}]

        assert engine.apply_remote(self._event(staff, key=STAFF_ROW))
        assert engine.items(STAFF) == staff
        assert cache.get(STAFF_CACHE_KEY) == staff
        assert engine.items(PATIENTS) == []

    def test_stopped_engine_no_longer_listens(self, engine, remote, sample_patients):
        """Unsubscribing stops remote changes from being applied"""
        engine.load(PATIENTS)
        engine.stop(flush=False)

        remote.update(PATIENTS_ROW, sample_patients, "2024-06-15T11:00:00+00:00")

        assert not engine.is_subscribed
        assert engine.items(PATIENTS) == []


class TestEngineHousekeeping:
    """Test clearing, callbacks and copies"""

    def test_clear_forgets_collection_and_cache(self, engine, cache, sample_patient_dict):
        """Logout clears memory, cache entry and pending push"""
        engine.load(PATIENTS)
        engine.commit(PATIENTS, [sample_patient_dict])

        engine.clear(PATIENTS)

        state = engine.state(PATIENTS)
        assert engine.items(PATIENTS) == []
        assert not state.loaded
        assert state.status is None
        assert not cache.has(PATIENTS_CACHE_KEY)
        assert not engine.has_pending_push(PATIENTS)

    def test_items_are_copies(self, engine, sample_patient_dict):
        """Mutating a returned list does not touch engine state"""
        engine.commit(PATIENTS, [sample_patient_dict])

        items = engine.items(PATIENTS)
        items[0]["name"] = "Changed"
        items.append({"id": "X"})

        assert engine.items(PATIENTS) == [sample_patient_dict]

    def test_callbacks_receive_changes(self, engine, sample_patient_dict):
        """Registered callbacks see every transition"""
        seen = []
        engine.register_callback(lambda name, state: seen.append((name, state.status)))

        engine.commit(PATIENTS, [sample_patient_dict])

        assert seen == [(PATIENTS, SaveStatus.UNSAVED)]

    def test_failing_callback_does_not_break_commit(self, engine, sample_patient_dict):
        """Callback errors are logged, not raised"""
        def boom(name, state):
            raise RuntimeError("render failed")

        engine.register_callback(boom)
        engine.commit(PATIENTS, [sample_patient_dict])

        assert engine.items(PATIENTS) == [sample_patient_dict]

    def test_force_stop_loading(self, engine):
        """The escape hatch clears the loading flag"""
        engine.state(PATIENTS).loading = True

        engine.force_stop_loading()

        assert not engine.state(PATIENTS).loading

    def test_status_display(self, engine, sample_patients, remote):
        """Status summary reflects the patients collection"""
        remote.seed(PATIENTS_ROW, sample_patients)
        engine.load(PATIENTS)

        display = engine.get_status_display()

        assert display["status"] == "saved"
        assert display["records"] == 2
        assert display["connected"]
        assert display["subscribed"]
