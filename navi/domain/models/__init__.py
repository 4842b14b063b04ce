from .base import CamelModel
from .memory import (
    MemoryItemType,
    MemoryCategory,
    RawMemoryItem,
    RelationshipMemory,
    SessionSummary,
    CompressedMemoryBlock,
    LongTermMemoryStore,
    utc_iso,
)
from .app_state import AppState, ChatMessage, ChatThread, QuestStatus
from .sync_state import (
    SyncStatus,
    FullStatePayload,
    FullStateSyncResult,
    ChatSyncResult,
    StatePatch,
    OmnisyncResult,
    OmnisyncSnapshot,
)
