"""
Tests for BackendSyncEngine.

Covers:
- Debounce collapse of rapid change notifications
- Skipping unchanged state (no network call at all)
- Circuit breaker after repeated network failures
- Backoff re-probe and force sync
- Network vs application error handling
- Backend load into a StatePatch
"""

from __future__ import annotations

import asyncio

import pytest

from navi.domain.models.app_state import JournalEntry, Quest, Session
from navi.domain.models.sync_state import FullStateSyncResult
from navi.domain.sync.errors import NetworkSyncError, RemoteSyncError


def _add_quest(index: int):
    def mutate(state):
        return state.model_copy(update={"quests": state.quests + [Quest(id=f"extra-{index}", title=f"Quest {index}")]})
    return mutate


# ── Guards ────────────────────────────────────────────────────────

class TestGuards:
    @pytest.mark.asyncio
    async def test_not_loaded_is_noop(self, make_engine, remote):
        _, engine = await make_engine(load=False)
        assert await engine.sync_full_state() is False
        remote.full_state_sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_identical_hash_makes_no_call(self, make_engine, remote):
        _, engine = await make_engine()

        assert await engine.sync_full_state() is True
        assert remote.full_state_sync.await_count == 1

        remote.full_state_sync.reset_mock()
        assert await engine.sync_full_state() is False
        assert remote.full_state_sync.await_count == 0

    @pytest.mark.asyncio
    async def test_single_push_in_flight(self, make_engine, remote):
        _, engine = await make_engine()
        release = asyncio.Event()

        async def slow_push(user_id, payload):
            await release.wait()
            return FullStateSyncResult(success=True, timestamp="2026-01-01T00:00:00.000Z")

        remote.full_state_sync.side_effect = slow_push
        first = asyncio.create_task(engine.sync_full_state())
        await asyncio.sleep(0.01)

        assert engine.is_syncing is True
        assert await engine.sync_full_state() is False

        release.set()
        assert await first is True
        assert remote.full_state_sync.await_count == 1
        assert engine.is_syncing is False


# ── Push outcomes ─────────────────────────────────────────────────

class TestPush:
    @pytest.mark.asyncio
    async def test_success_updates_status(self, make_engine, remote, config):
        manager, engine = await make_engine()
        engine.request_sync()
        engine.request_sync()
        assert engine.pending_sync_count == 2

        assert await engine.sync_full_state() is True

        status = engine.status()
        assert status.last_sync_time == "2026-01-01T00:00:00.000Z"
        assert status.pending_sync_count == 0
        assert status.backend_available is True
        assert status.backend_checked is True
        assert status.retry_count == 0
        assert status.is_online is True
        assert status.sync_error is None
        assert engine.last_synced_hash == engine.compute_state_hash(await manager.get_current_state())

        user_id, payload = remote.full_state_sync.await_args.args
        assert user_id == config.user_id
        assert payload.user_id == config.user_id
        assert [q.id for q in payload.quests] == ["q1"]
        assert payload.to_wire()["naviProfile"]["name"] == "Navi"
        await engine.stop()

    @pytest.mark.asyncio
    async def test_application_error_keeps_backend_state(self, make_engine, remote):
        _, engine = await make_engine()
        remote.full_state_sync.side_effect = RemoteSyncError("Backend rejected /fullstate/sync with status 500", 500)

        assert await engine.sync_full_state() is False

        assert engine.sync_error == "Backend rejected /fullstate/sync with status 500"
        assert engine.is_online is False
        assert engine.backend_checked is False
        assert engine.retry_count == 0
        assert engine.backoff_pending is False
        assert engine.last_synced_hash is None

    @pytest.mark.asyncio
    async def test_rejected_result_is_application_error(self, make_engine, remote):
        _, engine = await make_engine()
        remote.full_state_sync.return_value = FullStateSyncResult(success=False, error="quota exceeded")

        assert await engine.sync_full_state() is False
        assert engine.sync_error == "quota exceeded"
        assert engine.retry_count == 0
        assert engine.last_synced_hash is None

    @pytest.mark.asyncio
    async def test_network_error_marks_backend_down(self, make_engine, remote):
        _, engine = await make_engine()
        remote.full_state_sync.side_effect = NetworkSyncError("Network request failed: connection refused")

        assert await engine.sync_full_state() is False

        assert engine.backend_available is False
        assert engine.backend_checked is True
        assert engine.retry_count == 1
        assert engine.is_online is False
        assert engine.sync_error is None
        assert engine.backoff_pending is True
        await engine.stop()

    @pytest.mark.asyncio
    async def test_message_pattern_counts_as_network_error(self, make_engine, remote):
        _, engine = await make_engine()
        remote.full_state_sync.side_effect = RuntimeError("TypeError: Failed to fetch")

        await engine.sync_full_state()
        assert engine.retry_count == 1
        assert engine.sync_error is None
        await engine.stop()

    @pytest.mark.asyncio
    async def test_timeout_counts_as_network_error(self, make_engine, remote, config):
        _, engine = await make_engine()
        engine.config = config.model_copy(update={"request_timeout_seconds": 0.02})

        async def hang(user_id, payload):
            await asyncio.sleep(1)

        remote.full_state_sync.side_effect = hang
        assert await engine.sync_full_state() is False
        assert engine.retry_count == 1
        assert engine.is_syncing is False
        await engine.stop()


# ── Debounce ──────────────────────────────────────────────────────

class TestDebounce:
    @pytest.mark.asyncio
    async def test_rapid_changes_collapse_into_one_push(self, make_engine, remote):
        manager, engine = await make_engine()
        manager.subscribe(engine.on_state_changed)

        for i in range(5):
            await manager.update_state(_add_quest(i))

        assert engine.pending_sync_count == 5
        assert remote.full_state_sync.await_count == 0

        await asyncio.sleep(0.2)

        assert remote.full_state_sync.await_count == 1
        payload = remote.full_state_sync.await_args.args[1]
        assert len(payload.quests) == 6
        assert engine.pending_sync_count == 0

    @pytest.mark.asyncio
    async def test_journal_edit_is_pushed(self, make_engine, remote):
        manager, engine = await make_engine()
        manager.subscribe(engine.on_state_changed)
        assert await engine.sync_full_state() is True

        entry = JournalEntry(id="j1", date="2026-01-02", mood=4, text="Long run felt easy")
        await manager.update_state(lambda s: s.model_copy(update={"journal": s.journal + [entry]}))

        assert engine.pending_sync_count == 1
        await asyncio.sleep(0.2)

        assert remote.full_state_sync.await_count == 2
        payload = remote.full_state_sync.await_args.args[1]
        assert [j.id for j in payload.journal] == ["j1"]

    @pytest.mark.asyncio
    async def test_change_outside_hash_does_not_request(self, make_engine):
        manager, engine = await make_engine()
        manager.subscribe(engine.on_state_changed)

        await manager.update_state(lambda s: s.model_copy(update={"sessions": [Session(id="s1", notes="deep work")]}))

        assert engine.pending_sync_count == 0
        assert engine.debounce_pending is False

    @pytest.mark.asyncio
    async def test_force_sync_cancels_debounce(self, make_engine, remote):
        _, engine = await make_engine()
        engine.request_sync()
        assert engine.debounce_pending is True

        assert await engine.force_sync() is True
        assert engine.debounce_pending is False

        await asyncio.sleep(0.1)
        assert remote.full_state_sync.await_count == 1


# ── Circuit breaker ───────────────────────────────────────────────

class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_after_max_failures(self, make_engine, remote):
        manager, engine = await make_engine()
        remote.full_state_sync.side_effect = NetworkSyncError("Network request failed")

        await engine.sync_full_state()
        await engine.sync_full_state()
        assert engine.retry_count == 2
        assert engine.status().circuit_open is True

        await manager.update_state(_add_quest(1))
        assert await engine.sync_full_state() is False
        assert remote.full_state_sync.await_count == 2
        assert await engine.load_from_backend() is None
        remote.full_state_load.assert_not_awaited()
        await engine.stop()

    @pytest.mark.asyncio
    async def test_backoff_reprobe_reopens(self, make_engine, remote):
        _, engine = await make_engine()
        remote.full_state_sync.side_effect = NetworkSyncError("Network request failed")

        await engine.sync_full_state()
        await engine.sync_full_state()
        assert engine.status().circuit_open is True

        await asyncio.sleep(0.2)

        assert engine.backend_available is True
        assert engine.status().circuit_open is False

        remote.full_state_sync.side_effect = None
        assert await engine.sync_full_state() is True
        assert engine.retry_count == 0
        await engine.stop()

    @pytest.mark.asyncio
    async def test_retries_exhausted_suppresses_backoff(self, make_engine, remote):
        _, engine = await make_engine()
        remote.full_state_sync.side_effect = NetworkSyncError("Network request failed")

        for _ in range(2):
            await engine.sync_full_state()
        await asyncio.sleep(0.2)
        await engine.sync_full_state()

        assert engine.retry_count == 3
        assert engine.backoff_pending is False
        assert engine.status().circuit_open is True
        await engine.stop()

    @pytest.mark.asyncio
    async def test_force_sync_bypasses_open_circuit_and_hash(self, make_engine, remote):
        manager, engine = await make_engine()

        assert await engine.sync_full_state() is True
        remote.full_state_sync.side_effect = NetworkSyncError("Network request failed")
        await manager.update_state(_add_quest(1))
        await engine.sync_full_state()
        await engine.sync_full_state()
        assert engine.status().circuit_open is True

        remote.full_state_sync.side_effect = None
        assert await engine.force_sync() is True
        assert remote.full_state_sync.await_count == 4

        # Hash now matches, but force still pushes
        assert await engine.force_sync() is True
        assert remote.full_state_sync.await_count == 5
        await engine.stop()

    @pytest.mark.asyncio
    async def test_reset_backend_status(self, make_engine, remote):
        _, engine = await make_engine()
        remote.full_state_sync.side_effect = NetworkSyncError("Network request failed")
        await engine.sync_full_state()
        await engine.sync_full_state()

        engine.reset_backend_status()

        status = engine.status()
        assert status.retry_count == 0
        assert status.backend_available is True
        assert status.circuit_open is False
        assert engine.backoff_pending is False


# ── Chat sync ─────────────────────────────────────────────────────

class TestChatSync:
    @pytest.mark.asyncio
    async def test_success_marks_backend_available(self, make_engine, remote, thread_factory):
        _, engine = await make_engine()
        thread = thread_factory(["hello", "hi there"])

        assert await engine.sync_chat(thread) is True

        user_id, thread_id, messages = remote.chat_sync.await_args.args
        assert thread_id == "thread-1"
        assert len(messages) == 2
        assert engine.backend_available is True
        assert engine.retry_count == 0

    @pytest.mark.asyncio
    async def test_chat_sync_ignores_hash(self, make_engine, remote, thread_factory):
        _, engine = await make_engine()
        thread = thread_factory(["hello"])

        await engine.sync_chat(thread)
        await engine.sync_chat(thread)
        assert remote.chat_sync.await_count == 2

    @pytest.mark.asyncio
    async def test_network_failure_marks_backend_down(self, make_engine, remote, thread_factory):
        _, engine = await make_engine()
        remote.chat_sync.side_effect = NetworkSyncError("fetch failed")

        assert await engine.sync_chat(thread_factory(["hello"])) is False
        assert engine.backend_available is False
        assert engine.backend_checked is True

    @pytest.mark.asyncio
    async def test_first_load_syncs_first_thread_once(self, make_engine, remote, state_factory, thread_factory):
        state = state_factory(chat_history=[thread_factory(["hello", "hi"])])
        _, engine = await make_engine(state)

        await engine.on_state_loaded()
        await engine.on_state_loaded()

        assert remote.chat_sync.await_count == 1
        assert engine.pending_sync_count == 2
        await engine.stop()

    @pytest.mark.asyncio
    async def test_first_load_skips_empty_thread(self, make_engine, remote, state_factory, thread_factory):
        _, engine = await make_engine(state_factory(chat_history=[thread_factory([])]))

        await engine.on_state_loaded()
        remote.chat_sync.assert_not_awaited()
        await engine.stop()


# ── Backend load ──────────────────────────────────────────────────

class TestLoadFromBackend:
    @pytest.mark.asyncio
    async def test_exists_returns_patch(self, make_engine, remote):
        _, engine = await make_engine()
        remote.full_state_load.return_value = {
            "exists": True,
            "user": {"id": "me", "name": "Remote Alex"},
            "quests": [{"id": "rq1", "title": "Remote quest", "status": "active"}],
            "memoryItems": "not-a-list",
        }

        patch = await engine.load_from_backend()

        assert patch is not None
        assert patch.user.name == "Remote Alex"
        assert patch.quests[0].id == "rq1"
        assert patch.memory_items == []
        assert patch.skills == []
        assert patch.settings is None
        assert engine.backend_available is True
        assert engine.backend_checked is True

    @pytest.mark.asyncio
    async def test_not_exists_returns_none(self, make_engine):
        _, engine = await make_engine()

        assert await engine.load_from_backend() is None
        assert engine.backend_checked is True
        assert engine.backend_available is False

    @pytest.mark.asyncio
    async def test_network_failure_returns_none(self, make_engine, remote):
        _, engine = await make_engine()
        remote.full_state_load.side_effect = NetworkSyncError("JSON Parse error: Unexpected token")

        assert await engine.load_from_backend() is None
        assert engine.backend_checked is True
        assert engine.backend_available is False


# ── Periodic tick ─────────────────────────────────────────────────

class TestAutoSync:
    @pytest.mark.asyncio
    async def test_tick_pushes_pending_changes_when_available(self, make_engine, remote, config):
        manager, engine = await make_engine()
        assert await engine.sync_full_state() is True

        engine.config = config.model_copy(update={"sync_debounce_seconds": 10.0})
        await manager.update_state(_add_quest(1))
        engine.request_sync()

        engine.start()
        await asyncio.sleep(0.25)
        await engine.stop()

        assert remote.full_state_sync.await_count == 2
        assert engine.pending_sync_count == 0

    @pytest.mark.asyncio
    async def test_tick_idle_without_pending(self, make_engine, remote):
        _, engine = await make_engine()
        assert await engine.sync_full_state() is True

        engine.start()
        await asyncio.sleep(0.25)
        await engine.stop()

        assert remote.full_state_sync.await_count == 1
