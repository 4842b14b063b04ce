"""
Error taxonomy for remote sync.

Network-class errors mean the backend is unreachable and feed the circuit
breaker; everything else is an application-class error reported as
``sync_error``.
"""

import asyncio
from typing import Optional

import httpx


NETWORK_ERROR_MARKERS = (
    "Network request failed",
    "JSON Parse error",
    "Unexpected character",
    "fetch failed",
    "Failed to fetch",
    "network",
    "ECONNREFUSED",
)


class SyncError(Exception):
    """Base class for remote sync failures"""


class NetworkSyncError(SyncError):
    """Backend unreachable or returned an unparsable body"""


class RemoteSyncError(SyncError):
    """Backend reachable but rejected the request"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def is_network_error(error: Optional[BaseException]) -> bool:
    """Classify an exception as network-class (transient, backend down)"""

    if error is None:
        return False
    if isinstance(error, RemoteSyncError):
        return False
    if isinstance(error, (NetworkSyncError, httpx.TransportError, ConnectionError, asyncio.TimeoutError, TimeoutError)):
        return True
    message = str(error)
    return any(marker in message for marker in NETWORK_ERROR_MARKERS)
