"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(os.environ if env is None else env)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    override = environ.get("SAFETYSYNC_DATA_DIR")
    if override:
        return Path(override).expanduser()

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "SafetySync"


DATA_DIR = get_default_data_dir(APP_NAME)
STORAGE_DIR = DATA_DIR / "storage"
SECRETS_DIR = DATA_DIR / "secrets"
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, STORAGE_DIR, SECRETS_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


KV_DB_PATH = STORAGE_DIR / "kv.db"
SERVICE_ACCOUNT_PATH = SECRETS_DIR / "service_account.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class SyncSettings:
    enabled: bool = True
    max_retries: int = 3
    auto_sync_interval_sec: int = 30
    call_timeout_sec: float = 20.0
    queue_key: str = "offline_queue"
    last_sync_key: str = "last_sync_timestamp"
    max_recent_errors: int = 20


SYNC = SyncSettings()


@dataclass(frozen=True)
class FirebaseSettings:
    project_id: str = os.environ.get("SAFETYSYNC_FIREBASE_PROJECT", "")
    database_id: str = "(default)"
    storage_bucket: str = os.environ.get("SAFETYSYNC_STORAGE_BUCKET", "")
    media_folder: str = "hazard_reports"
    service_account_path: Path = SERVICE_ACCOUNT_PATH
    scopes: tuple[str, ...] = (
        "https://www.googleapis.com/auth/datastore",
        "https://www.googleapis.com/auth/devstorage.read_write",
    )


FIREBASE = FirebaseSettings()


@dataclass(frozen=True)
class ConnectivitySettings:
    probe_host: str = "firestore.googleapis.com"
    probe_port: int = 443
    probe_timeout_sec: float = 3.0
    poll_interval_sec: int = 10


CONNECTIVITY = ConnectivitySettings()


@dataclass(frozen=True)
class LoggingSettings:
    path: Path = SYNC_LOG_PATH
    max_bytes: int = 1_000_000
    backup_count: int = 3
    level: str = "INFO"


LOGGING = LoggingSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "STORAGE_DIR",
    "SECRETS_DIR",
    "LOG_DIR",
    "KV_DB_PATH",
    "SERVICE_ACCOUNT_PATH",
    "SYNC_LOG_PATH",
    "SYNC",
    "FIREBASE",
    "CONNECTIVITY",
    "LOGGING",
    "get_default_data_dir",
]
