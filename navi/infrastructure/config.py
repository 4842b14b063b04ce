"""
Runtime configuration for the memory and sync services.

Values come from environment variables (a local ``.env`` is loaded first);
anything missing or unparsable falls back to the default.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


DEFAULT_USER_ID = "mavis-user-default"


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


class NaviConfig(BaseModel):
    """Settings shared by the sync engine, storage and logging"""
    user_id: str = Field(DEFAULT_USER_ID, description="Fixed single-user identity")
    backend_url: str = Field("http://localhost:8081/api", description="Remote sync service base URL")
    sync_debounce_seconds: float = 3.0
    auto_sync_interval_seconds: float = 120.0
    max_retry_count: int = 2
    retry_backoff_seconds: float = 60.0
    request_timeout_seconds: float = 30.0
    db_path: str = Field("data/mavis_lite.db", description="Embedded key-value database file")
    state_storage_key: str = "@mavis_lite_state"
    ltm_storage_key: str = "@navi_ltm_compressed"
    max_backups: int = 3
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "navi-core"


def load_config(env_file: Optional[str] = None) -> NaviConfig:
    """Build a NaviConfig from the environment"""

    load_dotenv(dotenv_path=env_file, override=False)
    defaults = NaviConfig()

    return NaviConfig(
        user_id=_str("NAVI_USER_ID", defaults.user_id),
        backend_url=_str("NAVI_BACKEND_URL", defaults.backend_url),
        sync_debounce_seconds=_float("NAVI_SYNC_DEBOUNCE_SECONDS", defaults.sync_debounce_seconds),
        auto_sync_interval_seconds=_float("NAVI_AUTO_SYNC_INTERVAL_SECONDS", defaults.auto_sync_interval_seconds),
        max_retry_count=_int("NAVI_MAX_RETRY_COUNT", defaults.max_retry_count),
        retry_backoff_seconds=_float("NAVI_RETRY_BACKOFF_SECONDS", defaults.retry_backoff_seconds),
        request_timeout_seconds=_float("NAVI_REQUEST_TIMEOUT_SECONDS", defaults.request_timeout_seconds),
        db_path=_str("NAVI_DB_PATH", defaults.db_path),
        state_storage_key=_str("NAVI_STATE_STORAGE_KEY", defaults.state_storage_key),
        ltm_storage_key=_str("NAVI_LTM_STORAGE_KEY", defaults.ltm_storage_key),
        max_backups=_int("NAVI_MAX_BACKUPS", defaults.max_backups),
        log_level=_str("LOG_LEVEL", defaults.log_level),
        log_format=_str("LOG_FORMAT", defaults.log_format),
        service_name=_str("SERVICE_NAME", defaults.service_name),
    )
