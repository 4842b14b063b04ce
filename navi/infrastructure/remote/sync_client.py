from typing import Dict, Any, List, Optional
from abc import ABC, abstractmethod
import json
import structlog
import httpx

from navi.domain.models import FullStatePayload, FullStateSyncResult, ChatSyncResult
from navi.domain.models.app_state import ChatMessage
from navi.domain.sync.errors import NetworkSyncError, RemoteSyncError

logger = structlog.get_logger(__name__)


class RemoteSyncService(ABC):
    """Remote persistence service consumed by the sync engine"""

    @abstractmethod
    async def full_state_sync(self, user_id: str, payload: FullStatePayload) -> FullStateSyncResult:
        ...

    @abstractmethod
    async def chat_sync(self, user_id: str, thread_id: str, messages: List[ChatMessage]) -> ChatSyncResult:
        ...

    @abstractmethod
    async def full_state_load(self, user_id: str) -> Dict[str, Any]:
        """Return the raw load response; every field is optional"""
        ...


class HttpRemoteSyncService(RemoteSyncService):
    """JSON-over-HTTP client for the sync backend"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def close(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise NetworkSyncError(f"Network request failed: {e}") from e

        if response.status_code >= 400:
            raise RemoteSyncError(
                f"Backend rejected {path} with status {response.status_code}",
                status_code=response.status_code
            )

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise NetworkSyncError(f"JSON Parse error: {e}") from e

        if not isinstance(body, dict):
            raise NetworkSyncError(f"Unexpected character in response body of {path}")
        return body

    async def full_state_sync(self, user_id: str, payload: FullStatePayload) -> FullStateSyncResult:
        body = payload.to_wire()
        body["userId"] = user_id
        logger.debug("Pushing full state", user_id=user_id)
        data = await self._request("POST", "/fullstate/sync", json=body)
        return FullStateSyncResult.model_validate(data)

    async def chat_sync(self, user_id: str, thread_id: str, messages: List[ChatMessage]) -> ChatSyncResult:
        body = {
            "userId": user_id,
            "threadId": thread_id,
            "messages": [message.to_wire() for message in messages],
        }
        data = await self._request("POST", "/chat/sync", json=body)
        return ChatSyncResult.model_validate(data)

    async def full_state_load(self, user_id: str) -> Dict[str, Any]:
        return await self._request("GET", "/fullstate/load", params={"userId": user_id})
