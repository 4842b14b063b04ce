"""
Local-first sync engine.

Pushes the local application state to the remote sync service without ever
blocking the caller, and tolerates a backend that is entirely unreachable.

Flow:
    state change -> request_sync() -> debounce timer -> sync_full_state()
    network failure -> backend marked down -> backoff timer -> optimistic retry
    retries exhausted -> suppressed until force_sync()
"""

from typing import Dict, Any, Optional
import asyncio
import time
import uuid
import structlog

from navi.domain.context.state.state_manager import StateManager
from navi.domain.models.app_state import AppState, ChatThread
from navi.domain.models.memory import utc_iso
from navi.domain.models.sync_state import FullStatePayload, StatePatch, SyncStatus
from navi.domain.sync.errors import is_network_error
from navi.domain.sync.reconcile import build_state_patch
from navi.domain.sync.state_hash import compute_state_hash
from navi.domain.sync.timers import CancellableTimer, PeriodicTask
from navi.infrastructure.config import NaviConfig
from navi.infrastructure.observability.logging import sync_logger, metrics
from navi.infrastructure.remote.sync_client import RemoteSyncService

logger = structlog.get_logger(__name__)


def build_full_state_payload(state: AppState, user_id: str) -> FullStatePayload:
    """Project local state onto the push body"""

    return FullStatePayload(
        user_id=user_id,
        user=state.user,
        skills=state.skills,
        quests=state.quests,
        vault=state.vault,
        memory_items=state.memory_items,
        chat_history=state.chat_history,
        navi_profile=state.navi_profile,
        daily_check_ins=state.daily_check_ins,
        session_summaries=state.session_summaries,
        relationship_memories=state.relationship_memories,
        journal=state.journal,
        leaderboard=state.leaderboard,
        stats=state.stats,
        settings=state.settings,
    )


class BackendSyncEngine:
    """Keeps the remote sync service approximately consistent with local state"""

    def __init__(
        self,
        state_manager: StateManager,
        remote: RemoteSyncService,
        config: Optional[NaviConfig] = None
    ):
        self.state_manager = state_manager
        self.remote = remote
        self.config = config or NaviConfig()

        self._is_syncing = False
        self._last_sync_time: Optional[str] = None
        self._sync_error: Optional[str] = None
        self._is_online = True
        self._pending_sync_count = 0
        self._backend_available = False
        self._backend_checked = False
        self._retry_count = 0
        self._last_synced_hash: Optional[str] = None
        self._initial_chat_synced = False

        self._debounce = CancellableTimer("sync-debounce")
        self._backoff = CancellableTimer("sync-backoff")
        self._auto_sync = PeriodicTask(
            "auto-sync",
            self.config.auto_sync_interval_seconds,
            self._auto_sync_tick
        )

    @property
    def user_id(self) -> str:
        return self.config.user_id

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def last_sync_time(self) -> Optional[str]:
        return self._last_sync_time

    @property
    def sync_error(self) -> Optional[str]:
        return self._sync_error

    @property
    def is_online(self) -> bool:
        return self._is_online

    @property
    def pending_sync_count(self) -> int:
        return self._pending_sync_count

    @property
    def backend_available(self) -> bool:
        return self._backend_available

    @property
    def backend_checked(self) -> bool:
        return self._backend_checked

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def last_synced_hash(self) -> Optional[str]:
        return self._last_synced_hash

    @property
    def debounce_pending(self) -> bool:
        return self._debounce.pending

    @property
    def backoff_pending(self) -> bool:
        return self._backoff.pending

    def status(self) -> SyncStatus:
        return SyncStatus(
            is_syncing=self._is_syncing,
            last_sync_time=self._last_sync_time,
            sync_error=self._sync_error,
            is_online=self._is_online,
            pending_sync_count=self._pending_sync_count,
            backend_available=self._backend_available,
            backend_checked=self._backend_checked,
            retry_count=self._retry_count,
            circuit_open=self._circuit_open(),
        )

    def _circuit_open(self) -> bool:
        return (
            self._backend_checked
            and not self._backend_available
            and self._retry_count >= self.config.max_retry_count
        )

    def compute_state_hash(self, state: AppState) -> str:
        return compute_state_hash(state)

    # Scheduling

    def request_sync(self) -> None:
        """Debounced push request; only the last request in a window fires"""

        self._pending_sync_count += 1
        self._debounce.schedule(self.config.sync_debounce_seconds, self.sync_full_state)
        metrics.set_gauge("sync.pending", self._pending_sync_count)
        logger.debug("Sync requested", pending=self._pending_sync_count)

    def _schedule_backoff(self) -> None:
        self._backoff.schedule(self.config.retry_backoff_seconds, self._on_backoff_elapsed)
        logger.info(
            "Backend retry scheduled",
            delay_seconds=self.config.retry_backoff_seconds,
            retry_count=self._retry_count
        )

    def _on_backoff_elapsed(self) -> None:
        # Optimistic: the next attempt is the reachability probe
        self._backend_available = True
        sync_logger.log_backend_transition(True, "backoff_elapsed", self._retry_count)

    async def _auto_sync_tick(self) -> None:
        if self._backend_available and self._pending_sync_count > 0:
            logger.info("Auto-sync retrying pending changes", pending=self._pending_sync_count)
            await self.sync_full_state()

    def start(self) -> None:
        self._auto_sync.start()
        logger.info("Sync engine started", interval_seconds=self.config.auto_sync_interval_seconds)

    async def stop(self) -> None:
        self._debounce.cancel()
        self._backoff.cancel()
        await self._auto_sync.stop()
        logger.info("Sync engine stopped")

    # Failure bookkeeping

    def _report(self, operation: str, outcome: str, duration_ms: Optional[float] = None, **kwargs) -> None:
        metrics.record_outcome(operation, outcome, duration_ms)
        sync_logger.log_sync_attempt(operation, self.user_id, outcome, duration_ms=duration_ms, **kwargs)

    def _mark_backend_up(self) -> None:
        was_available = self._backend_available
        self._backend_available = True
        self._backend_checked = True
        self._retry_count = 0
        if not was_available:
            sync_logger.log_backend_transition(True, "request_succeeded", 0)

    def _mark_backend_down(self, error: BaseException) -> None:
        self._backend_available = False
        self._backend_checked = True
        self._retry_count += 1
        sync_logger.log_backend_transition(False, str(error), self._retry_count)

    def _handle_push_failure(self, error: BaseException) -> None:
        self._is_online = False
        if is_network_error(error):
            self._mark_backend_down(error)
            if self._retry_count <= self.config.max_retry_count:
                self._schedule_backoff()
            else:
                logger.warning("Backend retries exhausted, automatic sync suppressed", retry_count=self._retry_count)
        else:
            self._sync_error = str(error) or error.__class__.__name__

    # Push / pull

    async def sync_full_state(self) -> bool:
        """Push the full local state when the guards allow; returns True on a successful push"""

        if not self.state_manager.is_loaded:
            logger.debug("Sync skipped, state not loaded")
            return False
        if self._is_syncing:
            logger.debug("Sync skipped, push already in flight")
            return False
        if self._circuit_open():
            logger.debug("Sync skipped, circuit open", retry_count=self._retry_count)
            return False

        state = await self.state_manager.get_current_state()
        state_hash = compute_state_hash(state)
        if state_hash == self._last_synced_hash:
            logger.debug("Sync skipped, state unchanged")
            return False

        self._is_syncing = True
        start_time = time.time()
        payload = build_full_state_payload(state, self.user_id)

        with structlog.contextvars.bound_contextvars(sync_id=uuid.uuid4().hex[:12], user_id=self.user_id):
            try:
                result = await asyncio.wait_for(
                    self.remote.full_state_sync(self.user_id, payload),
                    timeout=self.config.request_timeout_seconds
                )
                duration_ms = (time.time() - start_time) * 1000

                if not result.success:
                    self._is_online = False
                    self._sync_error = result.error or "Full state sync rejected"
                    self._report(
                        "full_state_sync", "rejected",
                        duration_ms=duration_ms, error=self._sync_error
                    )
                    return False

                self._last_sync_time = result.timestamp or utc_iso()
                self._sync_error = None
                self._pending_sync_count = 0
                self._mark_backend_up()
                self._last_synced_hash = state_hash
                self._is_online = True

                self._report(
                    "full_state_sync", "success",
                    duration_ms=duration_ms, synced_counts=result.synced_counts
                )
                return True

            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                self._handle_push_failure(e)
                kind = "network" if is_network_error(e) else "application"
                self._report(
                    "full_state_sync", kind,
                    duration_ms=duration_ms, error=str(e)
                )
                return False

            finally:
                self._is_syncing = False

    async def sync_chat(self, thread: ChatThread) -> bool:
        """Push a single chat thread; same guards as a full push but no hashing"""

        if not self.state_manager.is_loaded or self._is_syncing or self._circuit_open():
            return False

        self._is_syncing = True
        start_time = time.time()
        try:
            result = await asyncio.wait_for(
                self.remote.chat_sync(self.user_id, thread.id, thread.messages),
                timeout=self.config.request_timeout_seconds
            )
            duration_ms = (time.time() - start_time) * 1000
            if not result.success:
                self._sync_error = "Chat sync rejected"
                self._report("chat_sync", "rejected", duration_ms=duration_ms)
                return False

            self._mark_backend_up()
            self._report(
                "chat_sync", "success",
                duration_ms=duration_ms, thread_id=thread.id, message_count=result.message_count
            )
            return True

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            if is_network_error(e):
                self._mark_backend_down(e)
            else:
                self._sync_error = str(e) or e.__class__.__name__
            self._report("chat_sync", "failure", duration_ms=duration_ms, error=str(e))
            return False

        finally:
            self._is_syncing = False

    async def force_sync(self) -> bool:
        """Reset the breaker and push immediately, even when nothing changed"""

        logger.info("Force sync requested")
        self._retry_count = 0
        self._backend_available = True
        self._last_synced_hash = None
        self._debounce.cancel()
        return await self.sync_full_state()

    def reset_backend_status(self) -> None:
        self._retry_count = 0
        self._backend_available = True
        self._sync_error = None
        self._backoff.cancel()
        sync_logger.log_backend_transition(True, "manual_reset", 0)

    async def load_from_backend(self) -> Optional[StatePatch]:
        """Fetch the stored remote state as a partial patch; None when unavailable"""

        if self._circuit_open():
            logger.info("Backend load skipped, circuit open")
            return None

        start_time = time.time()
        try:
            response: Dict[str, Any] = await asyncio.wait_for(
                self.remote.full_state_load(self.user_id),
                timeout=self.config.request_timeout_seconds
            )
            duration_ms = (time.time() - start_time) * 1000

            if response.get("exists"):
                self._mark_backend_up()
                patch = build_state_patch(response)
                self._report(
                    "full_state_load", "loaded",
                    duration_ms=duration_ms, fields=patch.present_fields()
                )
                return patch

            self._backend_checked = True
            self._report("full_state_load", "empty", duration_ms=duration_ms)
            return None

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            if is_network_error(e):
                self._backend_available = False
                sync_logger.log_backend_transition(False, str(e), self._retry_count)
            self._report("full_state_load", "failure", duration_ms=duration_ms, error=str(e))
            self._backend_checked = True
            return None

    # State subscriptions

    async def on_state_loaded(self) -> None:
        """First-load hook: queue an initial push and send the first chat thread once"""

        self.request_sync()

        if self._initial_chat_synced:
            return
        state = await self.state_manager.get_current_state()
        if state.chat_history and state.chat_history[0].messages:
            self._initial_chat_synced = True
            await self.sync_chat(state.chat_history[0])

    def on_state_changed(self, previous: AppState, current: AppState) -> None:
        if compute_state_hash(previous) != compute_state_hash(current):
            self.request_sync()
