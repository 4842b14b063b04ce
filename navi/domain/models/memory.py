from typing import List
from pydantic import Field, field_validator
from datetime import datetime, timezone
from enum import Enum

from .base import CamelModel


def utc_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MemoryItemType(str, Enum):
    """Type tag of a raw memory observation"""
    GOAL = "goal"
    PREFERENCE = "preference"
    PATTERN = "pattern"
    IDENTITY = "identity"
    RELATIONSHIP = "relationship"
    WIN = "win"
    STRUGGLE = "struggle"


class MemoryCategory(str, Enum):
    """Long-term memory categories (one block each)"""
    IDENTITY = "identity"
    GOALS = "goals"
    PREFERENCES = "preferences"
    RELATIONSHIPS = "relationships"
    STRUGGLES = "struggles"
    ACHIEVEMENTS = "achievements"
    PATTERNS = "patterns"
    CONTEXT = "context"


class RawMemoryItem(CamelModel):
    """Atomic observation extracted from conversation"""
    id: str = Field(description="Unique memory identifier")
    # Kept as a plain string so unknown tags from older payloads fall back to context
    type: str = Field(description="One of MemoryItemType values")
    content: str = ""
    created_at: str = Field(default_factory=utc_iso)
    updated_at: str = Field(default_factory=utc_iso)
    importance_score: int = Field(default=1, description="1 (low) to 3 (high)")
    source_tags: List[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value):
        if isinstance(value, Enum):
            return value.value
        return value


class RelationshipMemory(CamelModel):
    """Loosely-typed observation categorized by keyword matching"""
    id: str
    category: str = ""
    detail: str = ""
    last_updated: str = Field(default_factory=utc_iso)
    importance: int = Field(default=1, description="1 (low) to 5 (high)")


class SessionSummary(CamelModel):
    """Textual summary of one interaction session"""
    id: str
    session_id: str
    summary: str = ""
    key_events: str = ""
    timestamp: str = Field(default_factory=utc_iso)


class CompressedMemoryBlock(CamelModel):
    """Unit of long-term memory; at most one per category"""
    id: str
    category: MemoryCategory
    summary: str = ""
    details: List[str] = Field(default_factory=list)
    importance: int = 1
    source_count: int = 0
    created_at: str = Field(default_factory=utc_iso)
    updated_at: str = Field(default_factory=utc_iso)


class LongTermMemoryStore(CamelModel):
    """Persisted aggregate of compressed memory blocks"""
    version: int = 2
    last_compressed: str = ""
    blocks: List[CompressedMemoryBlock] = Field(default_factory=list)
    raw_memory_count: int = 0
    compression_runs: int = 0

    def get_block(self, category: MemoryCategory):
        for block in self.blocks:
            if block.category == category:
                return block
        return None

    def total_details(self) -> int:
        return sum(len(block.details) for block in self.blocks)
