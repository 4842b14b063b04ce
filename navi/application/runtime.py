"""
Process-wide wiring for the memory and sync services.

NaviRuntime is constructed once at startup and handed to whatever needs the
services (the API layer, tests); nothing here is a module-level singleton.
"""

from typing import Optional
import structlog

from navi.domain.context.snapshot import build_compact_memory_context, build_system_state_block
from navi.domain.context.state.state_manager import StateManager
from navi.domain.memory.long_term_memory import LongTermMemoryRepository
from navi.domain.memory.omnisync import run_omnisync
from navi.domain.models.memory import LongTermMemoryStore
from navi.domain.models.sync_state import OmnisyncResult, StatePatch
from navi.domain.sync.sync_engine import BackendSyncEngine
from navi.infrastructure.config import NaviConfig, load_config
from navi.infrastructure.remote.sync_client import HttpRemoteSyncService, RemoteSyncService
from navi.infrastructure.storage.kv_store import FallbackKeyValueStore, KeyValueStore, SQLiteKeyValueStore

logger = structlog.get_logger(__name__)


class NaviRuntime:
    """Owns the storage, state, memory and sync services"""

    def __init__(
        self,
        config: Optional[NaviConfig] = None,
        kv_store: Optional[KeyValueStore] = None,
        remote: Optional[RemoteSyncService] = None
    ):
        self.config = config or load_config()
        self.kv_store = kv_store or FallbackKeyValueStore(SQLiteKeyValueStore(self.config.db_path))
        self.remote = remote or HttpRemoteSyncService(
            self.config.backend_url,
            timeout=self.config.request_timeout_seconds
        )
        self.state_manager = StateManager(
            self.kv_store,
            storage_key=self.config.state_storage_key,
            max_backups=self.config.max_backups
        )
        self.ltm = LongTermMemoryRepository(self.kv_store, storage_key=self.config.ltm_storage_key)
        self.sync_engine = BackendSyncEngine(self.state_manager, self.remote, self.config)
        self._started = False

    async def start(self) -> None:
        """Load local state and long-term memory, then start syncing"""

        if self._started:
            return
        await self.state_manager.load()
        await self.ltm.load()
        self.state_manager.subscribe(self.sync_engine.on_state_changed)
        self.sync_engine.start()
        await self.sync_engine.on_state_loaded()
        self._started = True
        logger.info("Navi runtime started", user_id=self.config.user_id, backend_url=self.config.backend_url)

    async def shutdown(self) -> None:
        await self.sync_engine.stop()
        close_remote = getattr(self.remote, "close", None)
        if close_remote is not None:
            await close_remote()
        close_store = getattr(self.kv_store, "close", None)
        if close_store is not None:
            await close_store()
        self._started = False
        logger.info("Navi runtime stopped")

    async def pull_from_backend(self) -> Optional[StatePatch]:
        """Load the remote state and merge it into local state"""

        patch = await self.sync_engine.load_from_backend()
        if patch is not None:
            await self.state_manager.apply_patch(patch)
        return patch

    async def compact_memory(self) -> LongTermMemoryStore:
        state = await self.state_manager.get_current_state()
        return await self.ltm.consolidate(
            state.memory_items,
            state.relationship_memories,
            state.session_summaries
        )

    async def omnisync(self) -> OmnisyncResult:
        return await run_omnisync(self.state_manager, self.ltm)

    async def build_agent_context(self, compact: bool = False) -> str:
        """Prompt fragment describing the user's state and long-term memory"""

        store = await self.ltm.load()
        if compact:
            return build_compact_memory_context(store.blocks)
        state = await self.state_manager.get_current_state()
        return build_system_state_block(state, store.blocks)
