from __future__ import annotations

import json

import pytest

from navi.domain.context.state.state_manager import STATE_STORAGE_KEY, StateManager
from navi.domain.models.app_state import Quest
from navi.domain.models.sync_state import StatePatch


class TestLoad:
    @pytest.mark.asyncio
    async def test_empty_store_gives_initial_state(self, kv_store):
        manager = StateManager(kv_store)
        state = await manager.load()

        assert manager.is_loaded is True
        assert state.quests == []
        assert state.settings.theme == "clean-dark"

    @pytest.mark.asyncio
    async def test_invalid_fields_fall_back_individually(self, kv_store):
        await kv_store.set(STATE_STORAGE_KEY, json.dumps({
            "user": {"id": "me", "name": "Alex"},
            "quests": "corrupted",
            "skills": [{"id": "s1", "name": "Running"}],
            "settings": {"theme": "light"},
        }))

        state = await StateManager(kv_store).load()

        assert state.user.name == "Alex"
        assert state.quests == []
        assert state.skills[0].name == "Running"
        assert state.settings.theme == "light"
        assert state.settings.navi.profile.name == "Navi"

    @pytest.mark.asyncio
    async def test_corrupt_json_gives_initial_state(self, kv_store):
        await kv_store.set(STATE_STORAGE_KEY, "{not json")
        manager = StateManager(kv_store)

        state = await manager.load()
        assert state.user.name == ""
        assert manager.is_loaded is True


class TestUpdates:
    @pytest.mark.asyncio
    async def test_update_persists_and_notifies(self, kv_store):
        manager = StateManager(kv_store)
        await manager.load()
        seen = []
        manager.subscribe(lambda previous, current: seen.append((len(previous.quests), len(current.quests))))

        await manager.update_state(lambda s: s.model_copy(update={"quests": [Quest(id="q1", title="Walk")]}))

        assert seen == [(0, 1)]
        stored = json.loads(await kv_store.get(STATE_STORAGE_KEY))
        assert stored["quests"][0]["title"] == "Walk"
        assert "dailyCheckIns" in stored

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_update(self, kv_store):
        manager = StateManager(kv_store)
        await manager.load()
        calls = []

        def broken(previous, current):
            raise RuntimeError("listener bug")

        manager.subscribe(broken)
        manager.subscribe(lambda previous, current: calls.append(1))

        await manager.update_state(lambda s: s)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_round_trip_through_store(self, kv_store, state_factory):
        manager = StateManager(kv_store)
        await manager.load()
        await manager.replace_state(state_factory())

        reloaded = await StateManager(kv_store).load()
        assert reloaded == await manager.get_current_state()

    @pytest.mark.asyncio
    async def test_apply_patch(self, kv_store, state_factory):
        manager = StateManager(kv_store)
        await manager.load()
        await manager.replace_state(state_factory())

        state = await manager.apply_patch(StatePatch(quests=[Quest(id="remote", title="Remote")]))

        assert [q.id for q in state.quests] == ["remote"]
        assert state.user.name == "Alex"


class TestBackups:
    @pytest.mark.asyncio
    async def test_keeps_newest_three(self, kv_store):
        manager = StateManager(kv_store)
        await manager.load()
        for stamp in (1000, 2000, 3000, 4000, 5000):
            await kv_store.set(f"{STATE_STORAGE_KEY}_backup_{stamp}", "{}")
        await kv_store.set("@navi_ltm_compressed", "{}")

        deleted = await manager.prune_backups()

        assert deleted == [f"{STATE_STORAGE_KEY}_backup_1000", f"{STATE_STORAGE_KEY}_backup_2000"]
        remaining = sorted(await kv_store.list_keys())
        assert remaining == [
            "@mavis_lite_state_backup_3000",
            "@mavis_lite_state_backup_4000",
            "@mavis_lite_state_backup_5000",
            "@navi_ltm_compressed",
        ]

    @pytest.mark.asyncio
    async def test_create_backup_writes_snapshot(self, kv_store, state_factory):
        manager = StateManager(kv_store)
        await manager.load()
        await manager.replace_state(state_factory())

        key = await manager.create_backup()

        assert key.startswith("@mavis_lite_state_backup_")
        assert json.loads(await kv_store.get(key))["user"]["name"] == "Alex"
