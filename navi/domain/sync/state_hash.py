"""
Change-detection fingerprint for full-state sync.

The hash covers a fixed projection of the state (counts, companion progress
and a few identity fields) rather than the whole tree, so it is cheap to
compute and ignores churn the backend does not care about.
"""

from typing import Dict, Any
import hashlib
import json

from navi.domain.models.app_state import AppState


def state_hash_fields(state: AppState) -> Dict[str, Any]:
    """Projection of the fields that decide whether a push is needed"""

    navi = state.navi_profile
    me = state.leaderboard_entry("me")
    character_class = state.user.character_class

    return {
        "questCount": len(state.quests),
        "skillCount": len(state.skills),
        "vaultCount": len(state.vault),
        "memoryCount": len(state.memory_items),
        "chatCount": state.chat_message_count(),
        "naviInteraction": navi.interaction_count,
        "naviBond": navi.bond_level,
        "naviXp": navi.xp,
        "naviLevel": navi.level,
        "journalCount": len(state.journal),
        "checkInCount": len(state.daily_check_ins),
        "sessionSummaryCount": len(state.session_summaries),
        "relationshipMemoryCount": len(state.relationship_memories),
        "fileCount": len(state.files),
        "imageCount": len(state.generated_images),
        "councilCount": len(state.custom_council_members),
        "leaderboardXp": me.xp if me else 0,
        "userName": state.user.name,
        "assessmentComplete": state.user.has_completed_assessment,
        "characterLevel": character_class.level if character_class else None,
        "statsFingerprint": "|".join(f"{stat.id}:{stat.value!r}" for stat in state.stats),
        "theme": state.settings.theme,
        "unlockedEvolutions": sum(1 for evolution in state.archetype_evolutions if evolution.unlocked),
    }


def compute_state_hash(state: AppState) -> str:
    """Deterministic hash of the sync-relevant projection"""

    canonical = json.dumps(state_hash_fields(state), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
