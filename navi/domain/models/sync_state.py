from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from .base import CamelModel
from .app_state import (
    User, Skill, Quest, VaultEntry, ChatThread, DailyCheckIn,
    JournalEntry, LeaderboardEntry, Settings, NaviProfile, Stat,
)
from .memory import RawMemoryItem, RelationshipMemory, SessionSummary


class SyncStatus(BaseModel):
    """Read-only snapshot of the sync engine's observable state"""
    is_syncing: bool = False
    last_sync_time: Optional[str] = None
    sync_error: Optional[str] = None
    is_online: bool = True
    pending_sync_count: int = 0
    backend_available: bool = False
    backend_checked: bool = False
    retry_count: int = 0
    circuit_open: bool = False


class FullStatePayload(CamelModel):
    """Body of a full-state push"""
    user_id: str
    user: Optional[User] = None
    skills: List[Skill] = Field(default_factory=list)
    quests: List[Quest] = Field(default_factory=list)
    vault: List[VaultEntry] = Field(default_factory=list)
    memory_items: List[RawMemoryItem] = Field(default_factory=list)
    chat_history: List[ChatThread] = Field(default_factory=list)
    navi_profile: Optional[NaviProfile] = None
    daily_check_ins: List[DailyCheckIn] = Field(default_factory=list)
    session_summaries: List[SessionSummary] = Field(default_factory=list)
    relationship_memories: List[RelationshipMemory] = Field(default_factory=list)
    journal: List[JournalEntry] = Field(default_factory=list)
    leaderboard: List[LeaderboardEntry] = Field(default_factory=list)
    stats: List[Stat] = Field(default_factory=list)
    settings: Optional[Settings] = None


class FullStateSyncResult(CamelModel):
    success: bool = False
    timestamp: str = ""
    synced_counts: Dict[str, int] = Field(default_factory=dict)
    error: Optional[str] = None


class ChatSyncResult(CamelModel):
    success: bool = False
    message_count: int = 0


class StatePatch(CamelModel):
    """Partial local state assembled from a backend load; every field optional"""
    user: Optional[User] = None
    skills: Optional[List[Skill]] = None
    quests: Optional[List[Quest]] = None
    vault: Optional[List[VaultEntry]] = None
    memory_items: Optional[List[RawMemoryItem]] = None
    chat_history: Optional[List[ChatThread]] = None
    daily_check_ins: Optional[List[DailyCheckIn]] = None
    session_summaries: Optional[List[SessionSummary]] = None
    relationship_memories: Optional[List[RelationshipMemory]] = None
    journal: Optional[List[JournalEntry]] = None
    leaderboard: Optional[List[LeaderboardEntry]] = None
    settings: Optional[Settings] = None
    # Legacy servers only send the companion profile
    navi_profile: Optional[NaviProfile] = None

    def present_fields(self) -> List[str]:
        return [name for name, value in self if value is not None]


class OmnisyncSnapshot(BaseModel):
    user_identity: str = ""
    quest_count: int = 0
    skill_count: int = 0
    memory_count: int = 0
    vault_count: int = 0
    chat_count: int = 0
    bond_level: int = 1


class OmnisyncResult(BaseModel):
    success: bool
    message: str
    timestamp: str
    snapshot: OmnisyncSnapshot = Field(default_factory=OmnisyncSnapshot)
