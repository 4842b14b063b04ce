from typing import Optional, Sequence
import asyncio
import json
import structlog
from pydantic import ValidationError

from navi.domain.models.memory import (
    LongTermMemoryStore,
    RawMemoryItem,
    RelationshipMemory,
    SessionSummary,
    utc_iso,
)
from navi.infrastructure.storage.kv_store import KeyValueStore
from navi.infrastructure.observability.logging import sync_logger
from .compaction import compress_memories

logger = structlog.get_logger(__name__)

LTM_STORAGE_KEY = "@navi_ltm_compressed"


class LongTermMemoryRepository:
    """Owns the persisted LongTermMemoryStore.

    The store is loaded once and held in memory; every consolidation pass
    writes it back. Passes are serialized so there is a single writer.
    """

    def __init__(self, kv_store: KeyValueStore, storage_key: str = LTM_STORAGE_KEY):
        self.kv_store = kv_store
        self.storage_key = storage_key
        self._store: Optional[LongTermMemoryStore] = None
        self._lock = asyncio.Lock()

    @property
    def store(self) -> LongTermMemoryStore:
        return self._store if self._store is not None else LongTermMemoryStore()

    async def load(self) -> LongTermMemoryStore:
        """Load the store from disk, or start empty"""

        if self._store is not None:
            return self._store

        stored = await self.kv_store.get(self.storage_key)
        if stored:
            try:
                self._store = LongTermMemoryStore.model_validate(json.loads(stored))
                logger.info("Loaded long-term memory", blocks=len(self._store.blocks))
                return self._store
            except (ValueError, ValidationError) as e:
                logger.error("Failed to parse long-term memory, starting empty", error=str(e))

        self._store = LongTermMemoryStore()
        return self._store

    async def save(self, store: LongTermMemoryStore) -> None:
        self._store = store
        await self.kv_store.set(self.storage_key, json.dumps(store.to_wire()))
        logger.info("Saved long-term memory", blocks=len(store.blocks))

    async def consolidate(
        self,
        memory_items: Sequence[RawMemoryItem],
        relationship_memories: Sequence[RelationshipMemory],
        session_summaries: Sequence[SessionSummary]
    ) -> LongTermMemoryStore:
        """Run one compaction pass and persist the result"""

        async with self._lock:
            current = await self.load()
            previous_sources = sum(block.source_count for block in current.blocks)

            blocks = compress_memories(
                memory_items,
                relationship_memories,
                session_summaries,
                current.blocks
            )
            folded = sum(block.source_count for block in blocks) - previous_sources

            updated = current.model_copy(update={
                "blocks": blocks,
                "last_compressed": utc_iso(),
                "raw_memory_count": current.raw_memory_count + max(folded, 0),
                "compression_runs": current.compression_runs + 1,
            })
            await self.save(updated)

            sync_logger.log_compaction(
                input_counts={
                    "memory_items": len(memory_items),
                    "relationship_memories": len(relationship_memories),
                    "session_summaries": len(session_summaries),
                },
                block_count=len(blocks),
                detail_count=updated.total_details(),
                compression_runs=updated.compression_runs
            )
            return updated
