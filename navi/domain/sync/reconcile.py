"""
Backend load reconciliation.

A load response is turned into a StatePatch field by field: a missing or
malformed field is defaulted on its own instead of failing the whole load.
"""

from typing import Dict, Any, Optional
import structlog
from pydantic import TypeAdapter, ValidationError

from navi.domain.models.app_state import AppState, NaviProfile, Settings, User
from navi.domain.models.sync_state import StatePatch

logger = structlog.get_logger(__name__)

# patch field -> wire key; list fields default to []
LIST_FIELDS = {
    "skills": "skills",
    "quests": "quests",
    "vault": "vault",
    "memory_items": "memoryItems",
    "chat_history": "chatHistory",
    "daily_check_ins": "dailyCheckIns",
    "session_summaries": "sessionSummaries",
    "relationship_memories": "relationshipMemories",
    "journal": "journal",
    "leaderboard": "leaderboard",
}

_list_adapters = {
    name: TypeAdapter(StatePatch.model_fields[name].annotation)
    for name in LIST_FIELDS
}


def _validate_optional(model, raw: Any, field: str):
    if raw is None:
        return None
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.warning("Dropping malformed field from backend load", field=field, errors=e.error_count())
        return None


def build_state_patch(remote: Dict[str, Any]) -> StatePatch:
    """Assemble a partial state from a backend load response"""

    values: Dict[str, Any] = {}

    for name, wire_key in LIST_FIELDS.items():
        raw = remote.get(wire_key)
        if raw is None:
            values[name] = []
            continue
        try:
            values[name] = _list_adapters[name].validate_python(raw) or []
        except ValidationError as e:
            logger.warning("Dropping malformed field from backend load", field=wire_key, errors=e.error_count())
            values[name] = []

    values["user"] = _validate_optional(User, remote.get("user"), "user")
    values["settings"] = _validate_optional(Settings, remote.get("settings"), "settings")
    values["navi_profile"] = _validate_optional(NaviProfile, remote.get("naviProfile"), "naviProfile")

    return StatePatch(**values)


def apply_state_patch(state: AppState, patch: StatePatch) -> AppState:
    """Merge a patch into local state and return the new state"""

    updates: Dict[str, Any] = {}
    for name in LIST_FIELDS:
        value = getattr(patch, name)
        if value is not None:
            updates[name] = value

    if patch.user is not None:
        updates["user"] = patch.user

    settings: Optional[Settings] = None
    if patch.settings is not None:
        settings = patch.settings
    elif patch.navi_profile is not None:
        # Older servers only store the companion profile
        navi = state.settings.navi.model_copy(update={"profile": patch.navi_profile})
        settings = state.settings.model_copy(update={"navi": navi})
    if settings is not None:
        updates["settings"] = settings

    return state.model_copy(update=updates)
