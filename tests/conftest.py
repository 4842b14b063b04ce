from __future__ import annotations

from typing import Any, Callable, List, Optional
from unittest.mock import AsyncMock

import pytest

from navi.domain.context.state.state_manager import StateManager
from navi.domain.models.app_state import (
    AppState,
    ChatMessage,
    ChatThread,
    LeaderboardEntry,
    Quest,
    Skill,
    Stat,
    User,
)
from navi.domain.models.sync_state import ChatSyncResult, FullStateSyncResult
from navi.domain.sync.sync_engine import BackendSyncEngine
from navi.infrastructure.config import NaviConfig
from navi.infrastructure.storage.kv_store import InMemoryKeyValueStore


@pytest.fixture
def config() -> NaviConfig:
    """Engine config with millisecond-scale timers"""
    return NaviConfig(
        sync_debounce_seconds=0.05,
        auto_sync_interval_seconds=0.1,
        max_retry_count=2,
        retry_backoff_seconds=0.1,
        request_timeout_seconds=1.0,
        db_path=":memory:",
    )


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def remote() -> AsyncMock:
    fake = AsyncMock()
    fake.full_state_sync.return_value = FullStateSyncResult(
        success=True,
        timestamp="2026-01-01T00:00:00.000Z",
        synced_counts={"quests": 1},
    )
    fake.chat_sync.return_value = ChatSyncResult(success=True, message_count=2)
    fake.full_state_load.return_value = {"exists": False}
    return fake


def build_state(**overrides: Any) -> AppState:
    state = AppState(
        user=User(name="Alex"),
        quests=[Quest(id="q1", title="Morning run")],
        skills=[Skill(id="s1", name="Running", level=2, xp=120)],
        stats=[Stat(id="focus", name="Focus", value=7)],
        leaderboard=[LeaderboardEntry(id="me", name="Alex", xp=300, streak=4)],
    )
    return state.model_copy(update=overrides)


def chat_thread(texts: List[str], thread_id: str = "thread-1") -> ChatThread:
    messages = [
        ChatMessage(id=f"m{i}", role="user" if i % 2 == 0 else "assistant", content=text)
        for i, text in enumerate(texts)
    ]
    return ChatThread(id=thread_id, messages=messages)


@pytest.fixture
def state_factory() -> Callable[..., AppState]:
    return build_state


@pytest.fixture
def thread_factory() -> Callable[..., ChatThread]:
    return chat_thread


@pytest.fixture
def make_engine(kv_store, remote, config):
    """Async factory for a loaded StateManager plus engine"""

    async def factory(state: Optional[AppState] = None, load: bool = True):
        manager = StateManager(kv_store)
        if load:
            await manager.load()
            await manager.replace_state(state if state is not None else build_state())
        engine = BackendSyncEngine(manager, remote, config)
        return manager, engine

    return factory
