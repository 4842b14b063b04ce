from typing import List
import structlog

from navi.domain.context.state.state_manager import StateManager
from navi.domain.models.app_state import AppState
from navi.domain.models.memory import RawMemoryItem, SessionSummary, utc_iso
from navi.domain.models.sync_state import OmnisyncResult, OmnisyncSnapshot
from navi.infrastructure.observability.logging import metrics
from .extraction import create_session_summary, extract_memories_from_conversation, filter_new_memories
from .long_term_memory import LongTermMemoryRepository

logger = structlog.get_logger(__name__)

OMNISYNC_MESSAGE = "Mavis-Lite Omnisync Complete. All systems, memory, and identity layers synchronized."
SESSION_SUMMARY_MIN_MESSAGES = 10


def _snapshot(state: AppState) -> OmnisyncSnapshot:
    return OmnisyncSnapshot(
        user_identity=state.user.name,
        quest_count=len(state.quests),
        skill_count=len(state.skills),
        memory_count=len(state.memory_items),
        vault_count=len(state.vault),
        chat_count=len(state.all_chat_messages()),
        bond_level=state.navi_profile.bond_level,
    )


async def run_omnisync(state_manager: StateManager, ltm_repository: LongTermMemoryRepository) -> OmnisyncResult:
    """Fold chat history into memory, snapshot state and consolidate long-term memory"""

    try:
        state = await state_manager.get_current_state()
        messages = state.all_chat_messages()

        new_memories: List[RawMemoryItem] = filter_new_memories(
            state.memory_items,
            extract_memories_from_conversation(messages)
        )
        summary = create_session_summary(messages) if len(messages) >= SESSION_SUMMARY_MIN_MESSAGES else None

        def merge(current: AppState) -> AppState:
            summaries: List[SessionSummary] = list(current.session_summaries)
            if summary is not None:
                summaries.append(summary)
            return current.model_copy(update={
                "memory_items": list(current.memory_items) + new_memories,
                "session_summaries": summaries,
            })

        state = await state_manager.update_state(merge)
        await state_manager.create_backup()

        await ltm_repository.consolidate(
            state.memory_items,
            state.relationship_memories,
            state.session_summaries
        )

        metrics.record_outcome("omnisync", "success")
        logger.info(
            "Omnisync complete",
            new_memories=len(new_memories),
            session_summary=summary is not None
        )
        return OmnisyncResult(
            success=True,
            message=OMNISYNC_MESSAGE,
            timestamp=utc_iso(),
            snapshot=_snapshot(state),
        )

    except Exception as e:
        metrics.record_outcome("omnisync", "failure")
        logger.error("Omnisync failed", error=str(e))
        return OmnisyncResult(
            success=False,
            message=f"Omnisync failed: {e}",
            timestamp=utc_iso(),
        )
