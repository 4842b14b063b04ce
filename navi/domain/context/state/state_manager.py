from typing import Dict, Any, Callable, List, Optional
import asyncio
import json
import time
import structlog
from pydantic import TypeAdapter, ValidationError

from navi.domain.models.app_state import AppState
from navi.domain.models.sync_state import StatePatch
from navi.domain.sync.reconcile import apply_state_patch
from navi.infrastructure.storage.kv_store import KeyValueStore

logger = structlog.get_logger(__name__)

STATE_STORAGE_KEY = "@mavis_lite_state"

StateListener = Callable[[AppState, AppState], None]


def _field_adapters() -> Dict[str, TypeAdapter]:
    return {
        name: TypeAdapter(field.annotation)
        for name, field in AppState.model_fields.items()
    }


class StateManager:
    """Manages the local application state and its on-device persistence"""

    def __init__(
        self,
        kv_store: KeyValueStore,
        storage_key: str = STATE_STORAGE_KEY,
        max_backups: int = 3
    ):
        self.kv_store = kv_store
        self.storage_key = storage_key
        self.max_backups = max_backups
        self._state = AppState()
        self._loaded = False
        self._listeners: List[StateListener] = []
        self._adapters = _field_adapters()
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def backup_prefix(self) -> str:
        return f"{self.storage_key}_backup_"

    def subscribe(self, listener: StateListener) -> None:
        """Register a callback invoked with (previous, current) after each change"""
        self._listeners.append(listener)

    def _parse_stored(self, raw: Dict[str, Any]) -> AppState:
        # Validate each top-level field on its own; a bad field falls back to its default
        values: Dict[str, Any] = {}
        for name, field in AppState.model_fields.items():
            key = field.alias or name
            if key not in raw:
                continue
            try:
                values[name] = self._adapters[name].validate_python(raw[key])
            except ValidationError as e:
                logger.warning("Discarding invalid stored field", field=key, errors=e.error_count())
        return AppState(**values)

    async def load(self) -> AppState:
        """Load persisted state, falling back to the initial state"""

        stored = await self.kv_store.get(self.storage_key)
        state = AppState()
        if stored:
            try:
                raw = json.loads(stored)
                if isinstance(raw, dict):
                    state = self._parse_stored(raw)
                    logger.info("State loaded", quests=len(state.quests), memories=len(state.memory_items))
            except ValueError as e:
                logger.error("Failed to parse stored state, using initial state", error=str(e))
        else:
            logger.info("No stored state found, using initial state")

        async with self._lock:
            self._state = state
            self._loaded = True
        return state

    async def get_current_state(self) -> AppState:
        """Get current state"""

        async with self._lock:
            return self._state

    async def save(self) -> None:
        async with self._lock:
            payload = json.dumps(self._state.to_wire())
        await self.kv_store.set(self.storage_key, payload)

    async def update_state(self, mutator: Callable[[AppState], AppState]) -> AppState:
        """Apply a state transition, persist it and notify listeners"""

        async with self._lock:
            previous = self._state
            self._state = mutator(previous)
            current = self._state

        await self.save()
        self._notify(previous, current)
        return current

    async def replace_state(self, state: AppState) -> AppState:
        return await self.update_state(lambda _: state)

    async def apply_patch(self, patch: StatePatch) -> AppState:
        """Merge a backend-loaded patch into local state"""

        logger.info("Applying backend state patch", fields=patch.present_fields())
        return await self.update_state(lambda state: apply_state_patch(state, patch))

    def _notify(self, previous: AppState, current: AppState) -> None:
        for listener in self._listeners:
            try:
                listener(previous, current)
            except Exception as e:
                logger.error("State listener failed", listener=getattr(listener, "__name__", repr(listener)), error=str(e))

    async def create_backup(self) -> str:
        """Write a rollback snapshot of the current state and prune old ones"""

        key = f"{self.backup_prefix}{int(time.time() * 1000)}"
        async with self._lock:
            payload = json.dumps(self._state.to_wire())
        await self.kv_store.set(key, payload)
        logger.info("Rollback snapshot created", key=key)
        await self.prune_backups()
        return key

    async def prune_backups(self, keep: Optional[int] = None) -> List[str]:
        """Delete all but the newest backups; returns the deleted keys"""

        keep = self.max_backups if keep is None else keep
        keys = await self.kv_store.list_keys()
        backups = sorted(key for key in keys if key.startswith(self.backup_prefix))
        if len(backups) <= keep:
            return []
        to_delete = backups[:len(backups) - keep]
        await self.kv_store.delete_many(to_delete)
        logger.info("Cleaned up old backups", deleted=len(to_delete))
        return to_delete
