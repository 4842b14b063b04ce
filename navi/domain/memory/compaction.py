"""
Long-term memory compaction.

Folds raw memory items, relationship memories and session summaries into at
most one CompressedMemoryBlock per category. Each block keeps its newest 50
details, so memory stays bounded no matter how many facts are produced.
"""

from typing import Dict, List, Optional, Sequence
import time
import structlog

from navi.domain.models.memory import (
    MemoryCategory,
    RawMemoryItem,
    RelationshipMemory,
    SessionSummary,
    CompressedMemoryBlock,
    utc_iso,
)

logger = structlog.get_logger(__name__)

MAX_BLOCK_DETAILS = 50
MAX_SESSION_SUMMARIES = 10
MIN_DETAIL_LENGTH = 5
DUPLICATE_PREFIX_LENGTH = 30

CATEGORY_BY_TYPE: Dict[str, MemoryCategory] = {
    "identity": MemoryCategory.IDENTITY,
    "goal": MemoryCategory.GOALS,
    "preference": MemoryCategory.PREFERENCES,
    "relationship": MemoryCategory.RELATIONSHIPS,
    "struggle": MemoryCategory.STRUGGLES,
    "win": MemoryCategory.ACHIEVEMENTS,
    "pattern": MemoryCategory.PATTERNS,
}

# Checked in order; first match wins. Relationships precede identity because
# the identity keyword "am" also matches "family".
RELATIONSHIP_KEYWORDS = (
    (MemoryCategory.GOALS, ("goal", "plan", "want")),
    (MemoryCategory.PREFERENCES, ("prefer", "like", "love", "hate")),
    (MemoryCategory.RELATIONSHIPS, ("relation", "friend", "family", "partner")),
    (MemoryCategory.IDENTITY, ("identity", "am", "personal")),
    (MemoryCategory.STRUGGLES, ("struggle", "challenge", "difficult")),
    (MemoryCategory.ACHIEVEMENTS, ("win", "achieve", "success")),
    (MemoryCategory.PATTERNS, ("pattern", "habit", "routine")),
)

SUMMARY_TEMPLATES: Dict[MemoryCategory, str] = {
    MemoryCategory.IDENTITY: "User identity & self-description ({count} facts)",
    MemoryCategory.GOALS: "Active goals & aspirations ({count} items)",
    MemoryCategory.PREFERENCES: "Preferences & likes/dislikes ({count} items)",
    MemoryCategory.RELATIONSHIPS: "Relationships & social connections ({count} entries)",
    MemoryCategory.STRUGGLES: "Challenges & difficulties ({count} noted)",
    MemoryCategory.ACHIEVEMENTS: "Wins & accomplishments ({count} recorded)",
    MemoryCategory.PATTERNS: "Behavioral patterns & habits ({count} observed)",
    MemoryCategory.CONTEXT: "Session history & context ({count} sessions)",
}


def categorize_memory(item: RawMemoryItem) -> MemoryCategory:
    return CATEGORY_BY_TYPE.get(item.type, MemoryCategory.CONTEXT)


def categorize_relationship_memory(memory: RelationshipMemory) -> MemoryCategory:
    category = memory.category.lower()
    for target, keywords in RELATIONSHIP_KEYWORDS:
        if any(keyword in category for keyword in keywords):
            return target
    return MemoryCategory.CONTEXT


def is_duplicate_detail(existing_details: Sequence[str], detail: str) -> bool:
    """Near-duplicate test: either string contains the other's 30-char prefix"""

    candidate = detail.lower()
    candidate_prefix = candidate[:DUPLICATE_PREFIX_LENGTH]
    for existing in existing_details:
        existing_lower = existing.lower()
        if candidate_prefix in existing_lower or existing_lower[:DUPLICATE_PREFIX_LENGTH] in candidate:
            return True
    return False


def generate_block_summary(block: CompressedMemoryBlock) -> str:
    count = len(block.details)
    template = SUMMARY_TEMPLATES.get(block.category)
    if template is None:
        return f"{block.category.value} ({count} items)"
    return template.format(count=count)


def _new_block(category: MemoryCategory, detail: Optional[str], importance: int) -> CompressedMemoryBlock:
    now = utc_iso()
    return CompressedMemoryBlock(
        id=f"ltm-{category.value}-{int(time.time() * 1000)}",
        category=category,
        summary=f"{category.value.capitalize()} information",
        details=[detail] if detail is not None else [],
        importance=importance,
        source_count=1 if detail is not None else 0,
        created_at=now,
        updated_at=now,
    )


def _fold_detail(
    block_map: Dict[MemoryCategory, CompressedMemoryBlock],
    category: MemoryCategory,
    detail: str,
    importance: int
) -> bool:
    """Merge one detail into its category block; returns True if it was added"""

    if len(detail) < MIN_DETAIL_LENGTH:
        return False

    existing = block_map.get(category)
    if existing is None:
        block_map[category] = _new_block(category, detail, importance)
        return True

    if is_duplicate_detail(existing.details, detail):
        return False

    existing.details.append(detail)
    existing.source_count += 1
    existing.importance = max(existing.importance, importance)
    existing.updated_at = utc_iso()
    return True


def compress_memories(
    memory_items: Sequence[RawMemoryItem],
    relationship_memories: Sequence[RelationshipMemory],
    session_summaries: Sequence[SessionSummary],
    existing_blocks: Sequence[CompressedMemoryBlock]
) -> List[CompressedMemoryBlock]:
    """Fold raw memory sources into category-keyed blocks"""

    logger.debug(
        "Starting compaction",
        memory_items=len(memory_items),
        relationship_memories=len(relationship_memories),
        session_summaries=len(session_summaries),
        existing_blocks=len(existing_blocks)
    )

    block_map: Dict[MemoryCategory, CompressedMemoryBlock] = {}
    for block in existing_blocks:
        block_map[block.category] = block.model_copy(deep=True)

    for item in memory_items:
        _fold_detail(block_map, categorize_memory(item), item.content.strip(), item.importance_score)

    for memory in relationship_memories:
        detail = f"[{memory.category}] {memory.detail}".strip()
        _fold_detail(block_map, categorize_relationship_memory(memory), detail, memory.importance)

    if session_summaries:
        context_block = block_map.get(MemoryCategory.CONTEXT)
        if context_block is None:
            context_block = _new_block(MemoryCategory.CONTEXT, None, 2)
            context_block.summary = "Session history and context"

        for session in list(session_summaries)[-MAX_SESSION_SUMMARIES:]:
            detail = f"[Session {session.timestamp}] {session.summary} | {session.key_events}"
            already_folded = any(
                session.session_id in existing or existing == detail
                for existing in context_block.details
            )
            if not already_folded:
                context_block.details.append(detail)
                context_block.source_count += 1
                context_block.updated_at = utc_iso()

        block_map[MemoryCategory.CONTEXT] = context_block

    for block in block_map.values():
        if len(block.details) > MAX_BLOCK_DETAILS:
            block.details = block.details[-MAX_BLOCK_DETAILS:]
        block.summary = generate_block_summary(block)

    result = list(block_map.values())
    logger.debug(
        "Compaction finished",
        blocks=len(result),
        details=sum(len(block.details) for block in result)
    )
    return result
