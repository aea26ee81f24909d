from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class SyncStatus:
    pending_action_count: int = 0
    is_online: bool = False
    is_syncing: bool = False
    last_sync_timestamp: Optional[int] = None
    recent_errors: Tuple[str, ...] = ()


__all__ = ["SyncStatus"]
