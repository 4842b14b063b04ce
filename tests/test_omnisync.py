from __future__ import annotations

import pytest

from navi.domain.context.state.state_manager import StateManager
from navi.domain.memory.long_term_memory import LongTermMemoryRepository
from navi.domain.memory.omnisync import OMNISYNC_MESSAGE, run_omnisync
from navi.domain.models.memory import MemoryCategory, RawMemoryItem


class TestOmnisync:
    @pytest.mark.asyncio
    async def test_folds_chat_into_memory(self, kv_store, state_factory, thread_factory):
        manager = StateManager(kv_store)
        await manager.load()
        thread = thread_factory([
            "I want to learn the piano properly this year.",
            "Great goal.",
            "I prefer practicing early in the morning.",
            "Noted.",
        ])
        await manager.replace_state(state_factory(chat_history=[thread]))
        repository = LongTermMemoryRepository(kv_store)

        result = await run_omnisync(manager, repository)

        assert result.success is True
        assert result.message == OMNISYNC_MESSAGE
        assert result.snapshot.user_identity == "Alex"
        assert result.snapshot.chat_count == 4
        assert result.snapshot.memory_count == 2

        state = await manager.get_current_state()
        assert {item.type for item in state.memory_items} == {"goal", "preference"}
        assert state.session_summaries == []

        store = repository.store
        assert store.compression_runs == 1
        assert store.get_block(MemoryCategory.GOALS).details == ["learn the piano properly this year"]

        backups = [key for key in await kv_store.list_keys() if "_backup_" in key]
        assert len(backups) == 1

    @pytest.mark.asyncio
    async def test_known_memories_not_duplicated(self, kv_store, state_factory, thread_factory):
        manager = StateManager(kv_store)
        await manager.load()
        existing = RawMemoryItem(id="e1", type="goal", content="learn the piano properly this year")
        thread = thread_factory(["I want to learn the piano properly this year."])
        await manager.replace_state(state_factory(chat_history=[thread], memory_items=[existing]))

        result = await run_omnisync(manager, LongTermMemoryRepository(kv_store))

        assert result.success is True
        assert result.snapshot.memory_count == 1

    @pytest.mark.asyncio
    async def test_long_chat_adds_session_summary(self, kv_store, state_factory, thread_factory):
        manager = StateManager(kv_store)
        await manager.load()
        thread = thread_factory([f"Can you help with step {i}?" for i in range(12)])
        await manager.replace_state(state_factory(chat_history=[thread]))
        repository = LongTermMemoryRepository(kv_store)

        await run_omnisync(manager, repository)

        state = await manager.get_current_state()
        assert len(state.session_summaries) == 1
        assert "Guidance" in state.session_summaries[0].summary
        assert repository.store.get_block(MemoryCategory.CONTEXT) is not None

    @pytest.mark.asyncio
    async def test_failure_is_reported(self, kv_store):
        manager = StateManager(kv_store)
        await manager.load()

        class BrokenRepository(LongTermMemoryRepository):
            async def consolidate(self, *args, **kwargs):
                raise RuntimeError("disk full")

        result = await run_omnisync(manager, BrokenRepository(kv_store))

        assert result.success is False
        assert "disk full" in result.message
