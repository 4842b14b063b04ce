"""
Heuristic extraction of raw memories and session summaries from chat.
"""

from typing import List, Optional, Sequence
import re
import time
import uuid
import structlog

from navi.domain.models.app_state import ChatMessage
from navi.domain.models.memory import MemoryItemType, RawMemoryItem, SessionSummary, utc_iso

logger = structlog.get_logger(__name__)

RECENT_MESSAGE_WINDOW = 20
MAX_EXTRACTED = 10
MIN_SUMMARY_MESSAGES = 4

# (type, pattern, group to keep, minimum length, importance, tags)
EXTRACTION_RULES = (
    (
        MemoryItemType.GOAL,
        re.compile(r"\b(want to|need to|planning to|goal is|trying to|working on|hoping to)\s+([^.!?]{10,100})", re.IGNORECASE),
        2, 10, 3, ["auto-extracted", "conversation"],
    ),
    (
        MemoryItemType.PREFERENCE,
        re.compile(r"\b(I (like|love|prefer|enjoy|hate|dislike))\s+([^.!?]{5,80})", re.IGNORECASE),
        0, 10, 2, ["auto-extracted", "preference"],
    ),
    (
        MemoryItemType.IDENTITY,
        re.compile(r"\b(I am|I'm|I consider myself|I identify as)\s+([^.!?]{5,80})", re.IGNORECASE),
        0, 10, 3, ["auto-extracted", "identity"],
    ),
    (
        MemoryItemType.RELATIONSHIP,
        re.compile(r"\b(my (partner|spouse|friend|family|boss|colleague))\s+([^.!?]{10,100})", re.IGNORECASE),
        0, 15, 2, ["auto-extracted", "relationship"],
    ),
    (
        MemoryItemType.STRUGGLE,
        re.compile(r"\b(struggling with|having trouble|difficult|hard time with|challenge is)\s+([^.!?]{10,100})", re.IGNORECASE),
        0, 15, 3, ["auto-extracted", "challenge"],
    ),
)

TOPIC_KEYWORDS = (
    ("Quests/Goals", ("quest", "goal")),
    ("Skills/Learning", ("skill", "learn")),
    ("Emotional", ("feel", "emotion", "anxious", "stress")),
    ("Progress Review", ("progress", "achievement")),
    ("Guidance", ("help", "advice")),
)


def _memory_id() -> str:
    return f"mem-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def extract_memories_from_conversation(messages: Sequence[ChatMessage]) -> List[RawMemoryItem]:
    """Pull goal/preference/identity/relationship/struggle statements out of recent chat"""

    recent = list(messages)[-RECENT_MESSAGE_WINDOW:]
    conversation_text = "\n".join(f"{m.role}: {m.text}" for m in recent)

    extracted: List[RawMemoryItem] = []
    for memory_type, pattern, group, min_length, importance, tags in EXTRACTION_RULES:
        for match in pattern.finditer(conversation_text):
            text = match.group(group)
            if not text or len(text) <= min_length:
                continue
            now = utc_iso()
            extracted.append(RawMemoryItem(
                id=_memory_id(),
                type=memory_type.value,
                content=text.strip(),
                created_at=now,
                updated_at=now,
                importance_score=importance,
                source_tags=list(tags),
            ))

    logger.info("Extracted memories from conversation", count=len(extracted))
    return extracted[:MAX_EXTRACTED]


def create_session_summary(messages: Sequence[ChatMessage]) -> Optional[SessionSummary]:
    """Summarize a conversation by topic; None for very short sessions"""

    if len(messages) < MIN_SUMMARY_MESSAGES:
        return None

    user_messages = [m for m in messages if m.role == "user"]
    assistant_messages = [m for m in messages if m.role == "assistant"]

    topics: List[str] = []
    for message in user_messages:
        content = message.text.lower()
        for topic, keywords in TOPIC_KEYWORDS:
            if any(keyword in content for keyword in keywords) and topic not in topics:
                topics.append(topic)

    topic_text = ", ".join(topics[:3]) or "general topics"
    stamp = int(time.time() * 1000)

    return SessionSummary(
        id=f"summary-{stamp}",
        session_id=f"session-{stamp}",
        summary=f"Conversation about {topic_text} ({len(messages)} messages exchanged)",
        key_events=(
            f"User engaged with {len(user_messages)} questions/inputs. "
            f"Navi provided {len(assistant_messages)} responses."
        ),
        timestamp=utc_iso(),
    )


def filter_new_memories(existing: Sequence[RawMemoryItem], candidates: Sequence[RawMemoryItem]) -> List[RawMemoryItem]:
    """Drop candidates whose 30-char prefix already appears in an existing memory"""

    existing_contents = [item.content.lower() for item in existing]
    return [
        candidate for candidate in candidates
        if not any(candidate.content.lower()[:30] in content for content in existing_contents)
    ]
