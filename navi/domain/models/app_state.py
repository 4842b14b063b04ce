from typing import Dict, Any, List, Optional
from pydantic import Field
from enum import Enum

from .base import CamelModel
from .memory import RawMemoryItem, RelationshipMemory, SessionSummary, utc_iso


class QuestStatus(str, Enum):
    """Quest lifecycle status"""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    DECLINED = "declined"


class CharacterClass(CamelModel):
    """RPG class derived from the user's assessment"""
    mbti: str = ""
    archetype: str = ""
    level: int = 1
    rank: str = ""
    xp: int = 0
    traits: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    growth_areas: List[str] = Field(default_factory=list)
    hidden_class: Optional[str] = None
    hidden_class_unlocked_at: Optional[str] = None


class User(CamelModel):
    id: str = "me"
    name: str = ""
    avatar: str = ""
    focus_rhythm: str = ""
    timezone: str = ""
    character_class: Optional[CharacterClass] = None
    has_completed_assessment: bool = False


class SubSkill(CamelModel):
    id: str
    name: str = ""
    level: int = 1
    xp: int = 0
    notes: str = ""


class Skill(CamelModel):
    id: str
    name: str = ""
    level: int = 1
    xp: int = 0
    tags: List[str] = Field(default_factory=list)
    notes: str = ""
    sub_skills: Optional[List[SubSkill]] = None


class Stat(CamelModel):
    id: str
    name: str = ""
    value: float = 0
    delta: float = 0


class JournalEntry(CamelModel):
    id: str
    date: str = ""
    mood: int = 0
    energy: int = 0
    text: str = ""
    tags: List[str] = Field(default_factory=list)


class Session(CamelModel):
    id: str
    start: str = ""
    end: str = ""
    mode: str = "focus"
    bpm_target: int = 0
    notes: str = ""
    xp: int = 0


class DailyCheckIn(CamelModel):
    id: str
    date: str = ""
    energy: int = 0
    stress: int = 0
    mood: int = 0
    main_goal: Optional[str] = None


class VaultEntry(CamelModel):
    id: str
    type: str = "note"
    title: str = ""
    content: str = ""
    date: str = ""
    tags: List[str] = Field(default_factory=list)
    mood: Optional[int] = None
    energy: Optional[int] = None


class Milestone(CamelModel):
    id: str
    description: str = ""
    completed: bool = False


class Quest(CamelModel):
    id: str
    title: str = ""
    description: str = ""
    type: str = "one-time"
    category: str = "other"
    difficulty: str = "standard"
    xp_reward: int = 0
    related_to_class: bool = False
    status: QuestStatus = QuestStatus.PENDING
    created_at: str = Field(default_factory=utc_iso)
    completed_at: Optional[str] = None
    milestones: List[Milestone] = Field(default_factory=list)
    associated_skills: Optional[List[str]] = None


class ArchetypeEvolution(CamelModel):
    id: str
    from_archetype: str = ""
    to_archetype: str = ""
    required_xp: int = 0
    required_quests: int = 0
    required_level: int = 0
    description: str = ""
    unlocked: bool = False


class LeaderboardEntry(CamelModel):
    id: str
    name: str = ""
    xp: int = 0
    streak: int = 0


class ChatMessage(CamelModel):
    """Single chat message; some fields keep their snake_case wire names"""
    id: str
    role: str = "user"
    content: str = ""
    timestamp: str = Field(default_factory=utc_iso)
    full_output: Optional[str] = Field(None, alias="full_output")
    output_tokens: Optional[int] = Field(None, alias="output_tokens")
    is_summary: Optional[bool] = Field(None, alias="is_summary")
    metadata: Optional[Dict[str, Any]] = None

    @property
    def text(self) -> str:
        return self.full_output or self.content


class ChatThread(CamelModel):
    id: str
    messages: List[ChatMessage] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_iso)
    updated_at: str = Field(default_factory=utc_iso)


class CouncilMember(CamelModel):
    id: str
    name: str = ""
    role: str = ""
    specialty: str = ""
    member_class: str = Field("Core", alias="class")
    notes: Optional[str] = None


class NaviAvatar(CamelModel):
    style: Optional[str] = None
    type: str = "sparkle"
    primary_color: str = ""
    secondary_color: str = ""
    background_color: str = ""
    shape: str = "circle"
    glow_enabled: bool = False


class NaviCoreStats(CamelModel):
    logic: int = 50
    creativity: int = 50
    empathy: int = 50
    efficiency: int = 50


class NaviEnabledModes(CamelModel):
    life_os: bool = Field(True, alias="life_os")
    work_os: bool = Field(True, alias="work_os")
    social_os: bool = Field(True, alias="social_os")
    metaverse_os: bool = Field(False, alias="metaverse_os")


class NaviProfile(CamelModel):
    """Companion persona profile"""
    id: str = "navi"
    name: str = "Navi"
    personality_preset: str = "balanced"
    skin_id: str = "default"
    current_mode: str = "auto"
    enabled_modes: NaviEnabledModes = Field(default_factory=NaviEnabledModes)
    level: int = 1
    xp: int = 0
    rank: str = "Novice"
    bond_level: int = 1
    affection: int = 0
    loyalty: int = 0
    trust: int = 0
    bond_title: str = "Acquaintance"
    personality_state: str = "Neutral-Calm"
    unlocked_features: List[str] = Field(default_factory=list)
    interaction_count: int = 0
    last_interaction: Optional[str] = None
    avatar_description: str = ""
    memory_enabled: bool = True
    avatar: NaviAvatar = Field(default_factory=NaviAvatar)
    core_stats: NaviCoreStats = Field(default_factory=NaviCoreStats)


class NaviSettings(CamelModel):
    profile: NaviProfile = Field(default_factory=NaviProfile)


class Settings(CamelModel):
    session_default_minutes: int = 25
    show_energy_meter: bool = True
    theme: str = "clean-dark"
    navi: NaviSettings = Field(default_factory=NaviSettings)


class AppFile(CamelModel):
    id: str
    name: str = ""
    type: str = "other"
    uri: str = ""
    size: int = 0
    mime_type: str = ""
    created_at: str = Field(default_factory=utc_iso)
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    thumbnail: Optional[str] = None


class GeneratedImage(CamelModel):
    id: str
    prompt: str = ""
    url: str = ""
    created_at: str = Field(default_factory=utc_iso)
    size: str = ""
    tags: List[str] = Field(default_factory=list)


class AppState(CamelModel):
    """Complete local application state"""
    user: User = Field(default_factory=User)
    skills: List[Skill] = Field(default_factory=list)
    stats: List[Stat] = Field(default_factory=list)
    journal: List[JournalEntry] = Field(default_factory=list)
    vault: List[VaultEntry] = Field(default_factory=list)
    daily_check_ins: List[DailyCheckIn] = Field(default_factory=list)
    sessions: List[Session] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)
    leaderboard: List[LeaderboardEntry] = Field(default_factory=list)
    quests: List[Quest] = Field(default_factory=list)
    archetype_evolutions: List[ArchetypeEvolution] = Field(default_factory=list)
    chat_history: List[ChatThread] = Field(default_factory=list)
    custom_council_members: List[CouncilMember] = Field(default_factory=list)
    memory_items: List[RawMemoryItem] = Field(default_factory=list)
    session_summaries: List[SessionSummary] = Field(default_factory=list)
    relationship_memories: List[RelationshipMemory] = Field(default_factory=list)
    files: List[AppFile] = Field(default_factory=list)
    generated_images: List[GeneratedImage] = Field(default_factory=list)

    @property
    def navi_profile(self) -> NaviProfile:
        return self.settings.navi.profile

    def chat_message_count(self) -> int:
        return sum(len(thread.messages) for thread in self.chat_history)

    def all_chat_messages(self) -> List[ChatMessage]:
        return [message for thread in self.chat_history for message in thread.messages]

    def leaderboard_entry(self, entry_id: str = "me") -> Optional[LeaderboardEntry]:
        for entry in self.leaderboard:
            if entry.id == entry_id:
                return entry
        return None

    def quests_with_status(self, status: QuestStatus) -> List[Quest]:
        return [quest for quest in self.quests if quest.status == status]
